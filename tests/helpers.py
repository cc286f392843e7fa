"""
Shared test helpers: deterministic keys, a fake PDA deriver, handle factories.
"""

from __future__ import annotations

import hashlib
from collections.abc import Sequence

from solders.pubkey import Pubkey

from account_guard.core.errors import PdaDerivationError
from account_guard.domain.accounts import AccountHandle
from account_guard.domain.layout import RecordLayout
from account_guard.domain.pubkey import SYSTEM_PROGRAM_ID
from account_guard.validation.discriminator import account_discriminator
from account_guard.validation.pda import check_seeds


def make_key(label: str) -> Pubkey:
    """Deterministic public key for a test label."""
    return Pubkey.from_bytes(hashlib.sha256(label.encode("utf-8")).digest())


PROGRAM_ID = make_key("program")

# Seed that makes FakeDeriver fail, as if no bump gave an off-curve point
UNDERIVABLE_SEED = b"off-curve-never"


class FakeDeriver:
    """
    Deterministic PDA deriver.

    The canonical bump is always 255, and ``create_program_address`` with
    that bump appended reproduces ``find_program_address``.
    """

    CANONICAL_BUMP = 255

    def __init__(self) -> None:
        self.calls: list[tuple[str, tuple[bytes, ...], Pubkey]] = []

    def _address(self, seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
        digest = hashlib.sha256()
        for item in seeds:
            digest.update(len(item).to_bytes(1, "little"))
            digest.update(item)
        digest.update(bytes(program_id))
        digest.update(b"ProgramDerivedAddress")
        return Pubkey.from_bytes(digest.digest())

    def find_program_address(
        self, seeds: Sequence[bytes], program_id: Pubkey
    ) -> tuple[Pubkey, int]:
        check_seeds(seeds, with_bump=True)
        self.calls.append(("find", tuple(seeds), program_id))
        if UNDERIVABLE_SEED in seeds:
            raise PdaDerivationError("Unable to find a viable program address bump seed")
        bump = self.CANONICAL_BUMP
        return self._address([*seeds, bytes([bump])], program_id), bump

    def create_program_address(self, seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
        check_seeds(seeds)
        self.calls.append(("create", tuple(seeds), program_id))
        if UNDERIVABLE_SEED in seeds:
            raise PdaDerivationError("Invalid seeds, address must fall off the curve")
        return self._address(seeds, program_id)


def make_handle(
    label: str,
    owner: Pubkey = SYSTEM_PROGRAM_ID,
    data: bytes = b"",
    balance: int = 1_000_000_000,
    signer: bool = False,
    writable: bool = False,
    executable: bool = False,
    key: Pubkey | None = None,
) -> AccountHandle:
    return AccountHandle(
        public_key=key or make_key(label),
        owner_program=owner,
        balance=balance,
        data=bytearray(data),
        is_signer=signer,
        is_writable=writable,
        is_executable=executable,
    )


def vault_data(layout: RecordLayout, **values) -> bytes:
    """Discriminator plus encoded Vault record."""
    return account_discriminator("Vault") + layout.encode(values)
