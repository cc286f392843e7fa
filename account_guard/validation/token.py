"""
SPL token account and mint layouts.

Only the fields the validation pipeline reads are exposed, but both layouts
are declared in full so offsets are explicit:

Token account (165 bytes)
    mint @0, owner @32, amount @64, delegate COption @72, state @108,
    is_native COption<u64> @109, delegated_amount @121, close_authority COption @129

Mint (82 bytes)
    mint_authority COption @0, supply @36, decimals @44, is_initialized @45,
    freeze_authority COption @46

COption uses a 4-byte little-endian tag (1 = present) followed by the value.
"""

import struct
from dataclasses import dataclass

from solders.pubkey import Pubkey

from account_guard.domain.pubkey import (
    PUBKEY_LENGTH,
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
)
from account_guard.validation.discriminator import DISCRIMINATOR_LENGTH

TOKEN_ACCOUNT_SIZE = 165
MINT_SIZE = 82

TOKEN_PROGRAMS = frozenset({TOKEN_PROGRAM_ID, TOKEN_2022_PROGRAM_ID})


class TokenLayoutError(ValueError):
    """Raised when a buffer is too short to hold the expected layout."""


@dataclass(frozen=True)
class TokenAccountState:
    mint: Pubkey
    owner: Pubkey
    amount: int
    delegate: Pubkey | None
    state: int
    is_native: int | None
    delegated_amount: int
    close_authority: Pubkey | None


@dataclass(frozen=True)
class MintState:
    mint_authority: Pubkey | None
    supply: int
    decimals: int
    is_initialized: bool
    freeze_authority: Pubkey | None


def _slice(data: bytes | bytearray, size: int, discriminator: bytes | None) -> bytes:
    """
    Select the layout bytes of ``data``.

    Accounts wrapped by a program carry an 8-byte discriminator in front of
    the layout; when ``discriminator`` is given and matches, it is skipped.
    """
    raw = bytes(data)
    if (
        discriminator is not None
        and len(raw) >= DISCRIMINATOR_LENGTH + size
        and raw[:DISCRIMINATOR_LENGTH] == discriminator
    ):
        raw = raw[DISCRIMINATOR_LENGTH:]
    if len(raw) < size:
        raise TokenLayoutError(f"expected at least {size} bytes, got {len(raw)}")
    return raw


def _coption_pubkey(raw: bytes, offset: int) -> Pubkey | None:
    (tag,) = struct.unpack_from("<I", raw, offset)
    if tag == 0:
        return None
    return Pubkey.from_bytes(raw[offset + 4 : offset + 4 + PUBKEY_LENGTH])


def decode_token_account(
    data: bytes | bytearray, discriminator: bytes | None = None
) -> TokenAccountState:
    """
    Decode an SPL token account.

    Raises:
        TokenLayoutError: If the buffer is shorter than 165 bytes
    """
    raw = _slice(data, TOKEN_ACCOUNT_SIZE, discriminator)
    (is_native_tag,) = struct.unpack_from("<I", raw, 109)
    return TokenAccountState(
        mint=Pubkey.from_bytes(raw[0:32]),
        owner=Pubkey.from_bytes(raw[32:64]),
        amount=struct.unpack_from("<Q", raw, 64)[0],
        delegate=_coption_pubkey(raw, 72),
        state=raw[108],
        is_native=struct.unpack_from("<Q", raw, 113)[0] if is_native_tag else None,
        delegated_amount=struct.unpack_from("<Q", raw, 121)[0],
        close_authority=_coption_pubkey(raw, 129),
    )


def decode_mint(data: bytes | bytearray, discriminator: bytes | None = None) -> MintState:
    """
    Decode an SPL mint.

    Raises:
        TokenLayoutError: If the buffer is shorter than 82 bytes
    """
    raw = _slice(data, MINT_SIZE, discriminator)
    return MintState(
        mint_authority=_coption_pubkey(raw, 0),
        supply=struct.unpack_from("<Q", raw, 36)[0],
        decimals=raw[44],
        is_initialized=raw[45] != 0,
        freeze_authority=_coption_pubkey(raw, 46),
    )


def _coption_bytes(key: Pubkey | None) -> bytes:
    if key is None:
        return bytes(4 + PUBKEY_LENGTH)
    return struct.pack("<I", 1) + bytes(key)


def encode_token_account(
    mint: Pubkey,
    owner: Pubkey,
    amount: int = 0,
    delegate: Pubkey | None = None,
    state: int = 1,
    is_native: int | None = None,
    delegated_amount: int = 0,
    close_authority: Pubkey | None = None,
) -> bytes:
    """Encode an SPL token account (used to build fixtures and by callers creating accounts)."""
    native = struct.pack("<IQ", 1, is_native) if is_native is not None else bytes(12)
    out = (
        bytes(mint)
        + bytes(owner)
        + struct.pack("<Q", amount)
        + _coption_bytes(delegate)
        + bytes([state])
        + native
        + struct.pack("<Q", delegated_amount)
        + _coption_bytes(close_authority)
    )
    assert len(out) == TOKEN_ACCOUNT_SIZE
    return out


def encode_mint(
    mint_authority: Pubkey | None,
    decimals: int,
    supply: int = 0,
    is_initialized: bool = True,
    freeze_authority: Pubkey | None = None,
) -> bytes:
    out = (
        _coption_bytes(mint_authority)
        + struct.pack("<Q", supply)
        + bytes([decimals, 1 if is_initialized else 0])
        + _coption_bytes(freeze_authority)
    )
    assert len(out) == MINT_SIZE
    return out
