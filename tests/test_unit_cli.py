"""
Unit tests for the account-guard-check command.

Tests cover:
- Canonical text and JSON output
- Evaluation against a sample context
- Sample decoding ($pubkey, $hex, strings)
- Exit codes for rejected expressions and bad samples
"""

import json

import pytest

from cli.check_expression import EXIT_REJECTED, EXIT_USAGE, load_sample, main
from tests.helpers import make_key


def run_cli(capsys, *argv) -> tuple[list[str], str]:
    main(list(argv))
    captured = capsys.readouterr()
    return captured.out.splitlines(), captured.err


class TestLoadSample:
    """Tests for load_sample()."""

    def test_tagged_values(self):
        """Test $pubkey, $hex and plain strings."""
        key = make_key("owner")
        sample = load_sample(
            json.dumps(
                {
                    "owner": {"$pubkey": str(key)},
                    "tag": {"$hex": "00ff"},
                    "name": "vault",
                    "nested": {"amount": 5, "flag": True},
                }
            )
        )
        assert sample == {
            "owner": key,
            "tag": b"\x00\xff",
            "name": b"vault",
            "nested": {"amount": 5, "flag": True},
        }

    def test_non_object_rejected(self):
        """Test that the top level must be an object."""
        with pytest.raises(ValueError):
            load_sample("[1, 2]")


class TestCheckExpression:
    """Tests for main()."""

    def test_prints_canonical_text_and_json(self, capsys):
        """Test the two output lines for an accepted expression."""
        lines, _ = run_cli(
            capsys, "a.value+b>12", "--context", '{"a": {"value": 10}, "b": 3}'
        )
        assert lines[0] == "a.value + b > 12"
        assert json.loads(lines[1])
        assert len(lines) == 2

    def test_evaluate_true(self, capsys):
        """Test --evaluate on a satisfied expression."""
        lines, _ = run_cli(
            capsys,
            "a.value + b > 12",
            "--context",
            '{"a": {"value": 10}, "b": 3}',
            "--evaluate",
        )
        assert lines[-1] == "true"

    def test_evaluate_invalid(self, capsys):
        """Test that an Invalid result is reported as 'invalid'."""
        lines, _ = run_cli(capsys, "a / b == 0", "--context", '{"a": 1, "b": 0}', "--evaluate")
        assert lines[-1] == "invalid"

    def test_pubkey_sample(self, capsys):
        """Test comparison against a $pubkey sample value."""
        key = str(make_key("owner"))
        context = json.dumps({"owner": {"$pubkey": key}, "other": {"$pubkey": key}})
        lines, _ = run_cli(capsys, "owner == other", "--context", context, "--evaluate")
        assert lines[-1] == "true"

    def test_context_file(self, capsys, tmp_path):
        """Test reading the sample context from a file."""
        sample = tmp_path / "sample.json"
        sample.write_text('{"a": 4}')
        lines, _ = run_cli(capsys, "a * 2 == 8", "--context-file", str(sample), "--evaluate")
        assert lines[-1] == "true"

    def test_type_error_exits_rejected(self, capsys):
        """Test that an ill-typed expression exits 1 with error details."""
        with pytest.raises(SystemExit) as exc_info:
            main(["a == b", "--context", '{"a": 1, "b": "text"}'])
        assert exc_info.value.code == EXIT_REJECTED
        err = capsys.readouterr().err.splitlines()
        assert err[0].startswith("error: ")
        assert isinstance(json.loads(err[1]), dict)

    def test_syntax_error_exits_rejected(self, capsys):
        """Test that malformed text exits 1."""
        with pytest.raises(SystemExit) as exc_info:
            main(["a >", "--context", '{"a": 1}'])
        assert exc_info.value.code == EXIT_REJECTED

    @pytest.mark.parametrize("context", ["not json", "[1]", '{"x": 1.5}'])
    def test_bad_context_exits_usage(self, capsys, context):
        """Test that an unusable sample context is a usage error."""
        with pytest.raises(SystemExit) as exc_info:
            main(["x == 1", "--context", context])
        assert exc_info.value.code == EXIT_USAGE
        assert "invalid sample context" in capsys.readouterr().err

    def test_missing_context_file_exits_usage(self, tmp_path):
        """Test that an unreadable context file is a usage error."""
        with pytest.raises(SystemExit) as exc_info:
            main(["x == 1", "--context-file", str(tmp_path / "missing.json")])
        assert exc_info.value.code == EXIT_USAGE
