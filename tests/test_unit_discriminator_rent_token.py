"""
Unit tests for discriminators, rent and the SPL token layouts.
"""

import hashlib

import pytest
from pydantic import ValidationError

from account_guard.validation.discriminator import (
    DISCRIMINATOR_LENGTH,
    ZERO_DISCRIMINATOR,
    account_discriminator,
    event_discriminator,
    instruction_discriminator,
    is_zeroed,
)
from account_guard.validation.rent import Rent
from account_guard.validation.token import (
    MINT_SIZE,
    TOKEN_ACCOUNT_SIZE,
    TokenLayoutError,
    decode_mint,
    decode_token_account,
    encode_mint,
    encode_token_account,
)
from tests.helpers import make_key

# =============================================================================
# Discriminators
# =============================================================================


class TestDiscriminators:
    """Tests for type discriminators."""

    def test_account_discriminator_is_sha256_prefix(self):
        """Test the account namespace preimage."""
        expected = hashlib.sha256(b"account:Vault").digest()[:8]
        assert account_discriminator("Vault") == expected
        assert len(account_discriminator("Vault")) == DISCRIMINATOR_LENGTH

    def test_namespaces_differ(self):
        """Test that account, instruction and event tags are distinct."""
        tags = {
            account_discriminator("Transfer"),
            instruction_discriminator("Transfer"),
            event_discriminator("Transfer"),
        }
        assert len(tags) == 3
        assert instruction_discriminator("initialize") == (
            hashlib.sha256(b"global:initialize").digest()[:8]
        )

    def test_empty_name_raises(self):
        """Test that a type name is required."""
        with pytest.raises(ValueError):
            account_discriminator("")

    def test_is_zeroed(self):
        """Test the all-zero check on the first eight bytes only."""
        assert is_zeroed(ZERO_DISCRIMINATOR + b"\x01")
        assert not is_zeroed(b"\x00" * 7 + b"\x01")
        assert not is_zeroed(b"")


# =============================================================================
# Rent
# =============================================================================


class TestRent:
    """Tests for the rent-exemption formula."""

    def test_default_minimum_balance(self):
        """Test (128 + len) * 3480 * 2."""
        rent = Rent()
        assert rent.minimum_balance(0) == 890_880
        assert rent.minimum_balance(165) == 2_039_280

    def test_is_exempt_boundary(self):
        """Test that exactly the minimum is exempt."""
        rent = Rent()
        minimum = rent.minimum_balance(100)
        assert rent.is_exempt(minimum, 100)
        assert not rent.is_exempt(minimum - 1, 100)

    def test_custom_parameters(self):
        """Test non-default rent parameters."""
        rent = Rent(lamports_per_byte_year=10, exemption_threshold=1.5, account_storage_overhead=0)
        assert rent.minimum_balance(100) == 1500

    def test_negative_length_raises(self):
        """Test that a negative data length is rejected."""
        with pytest.raises(ValueError):
            Rent().minimum_balance(-1)

    def test_invalid_parameters_raise(self):
        """Test parameter validation."""
        with pytest.raises(ValidationError):
            Rent(lamports_per_byte_year=0)

    def test_from_settings_uses_defaults(self):
        """Test that settings supply the host defaults."""
        assert Rent.from_settings() == Rent()


# =============================================================================
# Token layouts
# =============================================================================


class TestTokenLayouts:
    """Tests for SPL token account and mint layouts."""

    def test_token_account_fields(self):
        """Test decoding of every token account field."""
        mint, owner, delegate = make_key("mint"), make_key("owner"), make_key("delegate")
        raw = encode_token_account(
            mint,
            owner,
            amount=500,
            delegate=delegate,
            is_native=7,
            delegated_amount=20,
        )
        assert len(raw) == TOKEN_ACCOUNT_SIZE
        state = decode_token_account(raw)
        assert state.mint == mint
        assert state.owner == owner
        assert state.amount == 500
        assert state.delegate == delegate
        assert state.state == 1
        assert state.is_native == 7
        assert state.delegated_amount == 20
        assert state.close_authority is None

    def test_token_account_offsets(self):
        """Test that the owner sits at byte 32 and the amount at 64."""
        owner = make_key("owner")
        raw = encode_token_account(make_key("mint"), owner, amount=1)
        assert raw[32:64] == bytes(owner)
        assert raw[64:72] == (1).to_bytes(8, "little")

    def test_mint_fields(self):
        """Test decoding of every mint field."""
        authority, freeze = make_key("authority"), make_key("freeze")
        raw = encode_mint(authority, decimals=6, supply=10**9, freeze_authority=freeze)
        assert len(raw) == MINT_SIZE
        state = decode_mint(raw)
        assert state.mint_authority == authority
        assert state.supply == 10**9
        assert state.decimals == 6
        assert state.is_initialized is True
        assert state.freeze_authority == freeze

    def test_mint_without_authorities(self):
        """Test COption None tags."""
        state = decode_mint(encode_mint(None, decimals=0))
        assert state.mint_authority is None
        assert state.freeze_authority is None
        assert encode_mint(None, decimals=0)[:4] == b"\x00\x00\x00\x00"

    def test_short_buffers_raise(self):
        """Test that truncated data is rejected."""
        with pytest.raises(TokenLayoutError):
            decode_token_account(bytes(TOKEN_ACCOUNT_SIZE - 1))
        with pytest.raises(TokenLayoutError):
            decode_mint(bytes(MINT_SIZE - 1))

    def test_discriminator_prefix_is_skipped(self):
        """Test program-wrapped accounts with a leading discriminator."""
        tag = account_discriminator("Wrapped")
        mint = make_key("mint")
        raw = tag + encode_token_account(mint, make_key("owner"))
        assert decode_token_account(raw, discriminator=tag).mint == mint
        assert decode_token_account(raw).mint != mint

    def test_trailing_bytes_are_ignored(self):
        """Test that extension data after the base layout is tolerated."""
        raw = encode_mint(make_key("authority"), decimals=9) + b"\x01" * 40
        assert decode_mint(raw).decimals == 9

