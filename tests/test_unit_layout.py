"""
Unit tests for record layouts and typed account views.

Tests cover:
- Field type parsing and sizes
- Offset resolution, explicit offsets and explicit record sizes
- Decoding and encoding, including options and nested records
- Layout construction errors
- TypedAccount.write / reload against the live buffer
"""

import pytest

from account_guard.core.errors import LayoutError
from account_guard.domain.accounts import AccountHandle, TypedAccount
from account_guard.domain.layout import (
    FieldSpec,
    RecordLayout,
    TypeKind,
    parse_field_type,
)
from account_guard.domain.pubkey import DEFAULT_PUBKEY, SYSTEM_PROGRAM_ID
from tests.helpers import make_handle, make_key

# =============================================================================
# Field types
# =============================================================================


class TestFieldTypes:
    """Tests for parse_field_type()."""

    @pytest.mark.parametrize(
        "text,kind,size",
        [
            ("u8", TypeKind.INT, 1),
            ("i16", TypeKind.INT, 2),
            ("u64", TypeKind.INT, 8),
            ("i128", TypeKind.INT, 16),
            ("bool", TypeKind.BOOL, 1),
            ("pubkey", TypeKind.PUBKEY, 32),
            ("bytes[12]", TypeKind.BYTES, 12),
            ("option<u32>", TypeKind.OPTION, 5),
            ("option<pubkey>", TypeKind.OPTION, 33),
        ],
    )
    def test_parse_and_size(self, text, kind, size):
        """Test type kinds and byte sizes."""
        ftype = parse_field_type(text)
        assert ftype.kind == kind
        assert ftype.size == size
        assert ftype.describe() == text

    def test_is_u8(self):
        """Test the u8 predicate used for bump fields."""
        assert parse_field_type("u8").is_u8
        assert not parse_field_type("i8").is_u8
        assert not parse_field_type("u16").is_u8

    @pytest.mark.parametrize(
        "text", ["u7", "bytes[0]", "bytes[]", "option<option<u8>>", "float", "option<>"]
    )
    def test_unknown_types_raise(self, text):
        """Test that unsupported descriptors are rejected."""
        with pytest.raises(LayoutError):
            parse_field_type(text)

    def test_non_string_descriptor_raises(self):
        """Test that descriptors must be text, layouts or parsed types."""
        with pytest.raises(LayoutError):
            parse_field_type(8)


# =============================================================================
# Layout construction
# =============================================================================


class TestLayoutBuild:
    """Tests for RecordLayout.build()."""

    def test_sequential_offsets(self, vault_layout):
        """Test that fields pack back to back."""
        offsets = {f.name: f.offset for f in vault_layout.fields}
        assert offsets == {"authority": 0, "mint": 32, "amount": 64, "bump": 72}
        assert vault_layout.size == 73
        assert vault_layout.field_names == ["authority", "mint", "amount", "bump"]

    def test_explicit_offset_and_size(self):
        """Test explicit offsets and a padded record size."""
        layout = RecordLayout.build(
            "Padded",
            [FieldSpec("flag", "bool"), FieldSpec("value", "u32", offset=4)],
            size=16,
        )
        assert layout.get("value").offset == 4
        assert layout.size == 16

    def test_nested_record_size(self):
        """Test that a nested record contributes its own size."""
        inner = RecordLayout.build("Inner", [("a", "u16"), ("b", "u16")])
        outer = RecordLayout.build("Outer", [("head", "u8"), ("inner", inner)])
        assert outer.size == 5
        assert outer.get("inner").type.kind == TypeKind.RECORD

    @pytest.mark.parametrize(
        "fields,size",
        [
            ([("a", "u8"), ("a", "u16")], None),
            ([("1bad", "u8")], None),
            ([("__owner", "pubkey")], None),
            ([("a", "u8", -1)], None),
            ([("a", "u64")], 4),
            ([("a", "nope")], None),
        ],
    )
    def test_invalid_layouts_raise(self, fields, size):
        """Test duplicate names, bad names, negative offsets and short sizes."""
        with pytest.raises(LayoutError):
            RecordLayout.build("Bad", fields, size=size)


# =============================================================================
# Codec
# =============================================================================


class TestCodec:
    """Tests for decode() and encode()."""

    def test_encode_then_decode_vault(self, vault_layout):
        """Test a full record through the codec."""
        authority, mint = make_key("authority"), make_key("mint")
        raw = vault_layout.encode(
            {"authority": authority, "mint": mint, "amount": 2**40, "bump": 254}
        )
        assert len(raw) == 73
        assert raw[64:72] == (2**40).to_bytes(8, "little")
        assert vault_layout.decode(raw) == {
            "authority": authority,
            "mint": mint,
            "amount": 2**40,
            "bump": 254,
        }

    def test_missing_fields_are_zero(self, vault_layout):
        """Test zero-fill for fields not given."""
        decoded = vault_layout.decode(vault_layout.encode({"amount": 5}))
        assert decoded["authority"] == DEFAULT_PUBKEY
        assert decoded["bump"] == 0
        assert decoded == {**vault_layout.zero_values(), "amount": 5}

    def test_signed_and_wide_integers(self):
        """Test signed values and widths without a struct code."""
        layout = RecordLayout.build("Ints", [("small", "i8"), ("wide", "i128"), ("big", "u128")])
        values = {"small": -2, "wide": -(2**100), "big": 2**127 + 1}
        assert layout.decode(layout.encode(values)) == values

    def test_options_and_bytes(self):
        """Test option tags and right-padded byte arrays."""
        layout = RecordLayout.build(
            "Opts", [("backup", "option<pubkey>"), ("tag", "bytes[4]"), ("flag", "bool")]
        )
        raw = layout.encode({"backup": None, "tag": b"ab", "flag": True})
        assert raw[0] == 0
        decoded = layout.decode(raw)
        assert decoded["backup"] is None
        assert decoded["tag"] == b"ab\x00\x00"
        assert decoded["flag"] is True

        key = make_key("backup")
        assert layout.decode(layout.encode({"backup": key}))["backup"] == key

    def test_nested_record_values(self):
        """Test nested dicts through encode and decode."""
        inner = RecordLayout.build("Limits", [("max", "u32"), ("enabled", "bool")])
        outer = RecordLayout.build("Config", [("limits", inner)])
        raw = outer.encode({"limits": {"max": 9, "enabled": True}})
        assert outer.decode(raw) == {"limits": {"max": 9, "enabled": True}}

    def test_decode_at_offset(self, vault_layout):
        """Test decoding after an 8-byte header."""
        raw = b"\xaa" * 8 + vault_layout.encode({"amount": 3})
        assert vault_layout.decode(raw, 8)["amount"] == 3

    def test_decode_short_buffer_raises(self, vault_layout):
        """Test that a buffer shorter than the record is rejected."""
        with pytest.raises(LayoutError):
            vault_layout.decode(bytes(72))

    @pytest.mark.parametrize(
        "values",
        [
            {"amount": -1},
            {"amount": 2**64},
            {"bump": 256},
            {"amount": True},
            {"amount": "5"},
            {"authority": b"short"},
            {"nope": 1},
        ],
    )
    def test_encode_rejects_bad_values(self, vault_layout, values):
        """Test range, kind and unknown-field errors."""
        with pytest.raises(LayoutError):
            vault_layout.encode(values)

    def test_encode_error_names_nested_path(self):
        """Test that errors inside nested records carry the dotted path."""
        inner = RecordLayout.build("Limits", [("max", "u8")])
        outer = RecordLayout.build("Config", [("limits", inner)])
        with pytest.raises(LayoutError) as exc_info:
            outer.encode({"limits": {"max": 300}})
        assert exc_info.value.details["field"] == "limits.max"

    def test_bytes_too_long_raises(self):
        """Test that byte arrays do not truncate."""
        layout = RecordLayout.build("Tag", [("tag", "bytes[2]")])
        with pytest.raises(LayoutError):
            layout.encode({"tag": b"abc"})

    def test_encode_into_leaves_other_bytes(self, vault_layout):
        """Test partial writes into an existing buffer."""
        buffer = bytearray(b"\x07" * 81)
        vault_layout.encode_into(buffer, {"bump": 9}, offset=8)
        assert buffer[80] == 9
        assert buffer[:80] == b"\x07" * 80


# =============================================================================
# Accounts
# =============================================================================


class TestAccounts:
    """Tests for AccountHandle and TypedAccount."""

    def test_handle_normalizes_inputs(self):
        """Test key coercion and the bytearray buffer."""
        key = make_key("acct")
        handle = AccountHandle(
            public_key=str(key), owner_program=bytes(SYSTEM_PROGRAM_ID), data=b"\x01\x02"
        )
        assert handle.public_key == key
        assert handle.owner_program == SYSTEM_PROGRAM_ID
        assert isinstance(handle.data, bytearray)
        assert handle.data_len == 2

    @pytest.mark.parametrize("balance", [-1, 2**64, True])
    def test_handle_rejects_bad_balance(self, balance):
        """Test that balances must be u64 integers."""
        with pytest.raises(ValueError):
            make_handle("acct", balance=balance)

    def test_write_and_reload(self, vault_layout):
        """Test that write() updates the buffer and reload() re-reads it."""
        handle = make_handle("vault", data=bytes(8 + vault_layout.size))
        typed = TypedAccount(handle=handle, layout=vault_layout, data_offset=8)
        typed.reload()
        assert typed["amount"] == 0

        typed.write(amount=77, bump=3)
        assert typed["amount"] == 77
        assert handle.data[8 + 64 : 8 + 72] == (77).to_bytes(8, "little")

        handle.data[8 + 72] = 200
        typed.reload()
        assert typed.get("bump") == 200

    def test_write_without_layout_raises(self):
        """Test that raw accounts cannot be written through the view."""
        typed = TypedAccount(handle=make_handle("raw"))
        with pytest.raises(ValueError):
            typed.write(amount=1)

    def test_typed_account_delegates_to_handle(self):
        """Test the handle passthrough properties."""
        handle = make_handle("acct", signer=True, writable=True, balance=42)
        typed = TypedAccount(handle=handle)
        assert typed.key == handle.public_key
        assert typed.balance == 42
        assert typed.is_signer and typed.is_writable and not typed.is_executable
