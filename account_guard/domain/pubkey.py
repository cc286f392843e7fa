"""
Public key helpers and well-known program ids.

All keys are ``solders.pubkey.Pubkey`` values; these helpers normalize the
textual and binary forms callers hand us.
"""

from solders.pubkey import Pubkey

PUBKEY_LENGTH = 32

SYSTEM_PROGRAM_ID = Pubkey.from_string("11111111111111111111111111111111")
TOKEN_PROGRAM_ID = Pubkey.from_string("TokenkegQfeZyiNwAJbNbGKPFXCWuBvf9Ss623VQ5DA")
TOKEN_2022_PROGRAM_ID = Pubkey.from_string("TokenzQdBNbLqP5VEhdkAS6EPFLC1PHnBqCXEpPxuEb")
ASSOCIATED_TOKEN_PROGRAM_ID = Pubkey.from_string("ATokenGPvbdGVxr1b2hvZbsiqW5xWH25efTNsLJA8knL")

DEFAULT_PUBKEY = Pubkey.default()


def pubkey_from_base58(text: str) -> Pubkey:
    """
    Parse a base58 public key.

    Raises:
        ValueError: If the text is not valid base58 or not 32 bytes
    """
    return Pubkey.from_string(text)


def pubkey_from_hex(text: str) -> Pubkey:
    """
    Parse a public key from exactly 64 hex characters.

    Raises:
        ValueError: If the text is not 64 hex characters
    """
    if len(text) != PUBKEY_LENGTH * 2:
        raise ValueError(f"expected {PUBKEY_LENGTH * 2} hex characters, got {len(text)}")
    return Pubkey.from_bytes(bytes.fromhex(text))


def to_pubkey(value: Pubkey | bytes | bytearray | str) -> Pubkey:
    """
    Coerce bytes, base58 text, or hex text to a Pubkey.

    Text of exactly 64 hex characters is read as hex; other text as base58.
    """
    if isinstance(value, Pubkey):
        return value
    if isinstance(value, (bytes, bytearray)):
        if len(value) != PUBKEY_LENGTH:
            raise ValueError(f"expected {PUBKEY_LENGTH} bytes, got {len(value)}")
        return Pubkey.from_bytes(bytes(value))
    if isinstance(value, str):
        if len(value) == PUBKEY_LENGTH * 2:
            try:
                return pubkey_from_hex(value)
            except ValueError:
                pass
        return pubkey_from_base58(value)
    raise TypeError(f"cannot convert {type(value).__name__} to Pubkey")
