"""Check a constraint expression against a sample context.

Parses and shape-checks the expression, then prints its canonical text and
canonical JSON tree. With ``--evaluate`` the expression is also evaluated
against the sample.

Sample contexts are JSON objects. Strings are byte strings; an object of the
form ``{"$pubkey": "<base58>"}`` is a public key and ``{"$hex": "..."}`` is a
byte string given in hex.

Usage:
    uv run account-guard-check 'a.value + b > 12' --context '{"a": {"value": 10}, "b": 3}'
    uv run account-guard-check 'vault.owner == signer.key()' --context-file sample.json --evaluate
"""

from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from account_guard.compiler.canonicalizer import render_value
from account_guard.compiler.compiler import compile_expression
from account_guard.core.errors import GuardError
from account_guard.domain.pubkey import pubkey_from_base58
from account_guard.domain.shape import context_shape_from_sample

EXIT_REJECTED = 1
EXIT_USAGE = 2


def _from_json(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"$pubkey"}:
            return pubkey_from_base58(value["$pubkey"])
        if set(value) == {"$hex"}:
            return bytes.fromhex(value["$hex"])
        return {key: _from_json(item) for key, item in value.items()}
    if isinstance(value, str):
        return value.encode("utf-8")
    return value


def load_sample(text: str) -> dict[str, Any]:
    """Decode a JSON sample context into evaluation values."""
    raw = json.loads(text)
    if not isinstance(raw, dict):
        raise ValueError("sample context must be a JSON object")
    return {key: _from_json(value) for key, value in raw.items()}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="account-guard-check",
        description="Parse and shape-check a constraint expression",
    )
    parser.add_argument("expression", help="Expression text")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--context", default="{}", help="Sample context as JSON")
    source.add_argument("--context-file", type=Path, help="File holding the sample context")
    parser.add_argument(
        "--self",
        dest="self_name",
        default=None,
        help="Context entry that stands for the account being validated",
    )
    parser.add_argument(
        "--kind",
        choices=("constraint", "owner_expr", "address_expr"),
        default="constraint",
        help="How the expression is used (default: constraint)",
    )
    parser.add_argument(
        "--evaluate", action="store_true", help="Evaluate against the sample context"
    )
    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        text = args.context_file.read_text() if args.context_file else args.context
        sample = load_sample(text)
        shape = context_shape_from_sample(sample, self_name=args.self_name)
    except (OSError, ValueError) as exc:
        parser.error(f"invalid sample context: {exc}")

    try:
        compiled = compile_expression(args.expression, shape, args.kind)
    except GuardError as exc:
        print(f"error: {exc.message}", file=sys.stderr)
        print(json.dumps(exc.details, sort_keys=True, default=str), file=sys.stderr)
        sys.exit(EXIT_REJECTED)

    print(compiled.canonical)
    print(compiled.to_json())
    if args.evaluate:
        result = compiled.evaluate(sample)
        print("invalid" if result.is_invalid else render_value(result))


if __name__ == "__main__":
    main()
