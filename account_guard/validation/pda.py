"""
Program-derived address derivation.

Derivation is delegated to a PdaDeriver so the pipeline can be exercised
with a deterministic fake; the default implementation uses ``solders``.
"""

from collections.abc import Sequence
from typing import Protocol

from solders.pubkey import Pubkey

from account_guard.core.errors import PdaDerivationError
from account_guard.domain.pubkey import ASSOCIATED_TOKEN_PROGRAM_ID, TOKEN_PROGRAM_ID

MAX_SEEDS = 16
MAX_SEED_LENGTH = 32


class PdaDeriver(Protocol):
    def find_program_address(
        self, seeds: Sequence[bytes], program_id: Pubkey
    ) -> tuple[Pubkey, int]: ...

    def create_program_address(self, seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey: ...


def check_seeds(seeds: Sequence[bytes], with_bump: bool = False) -> None:
    """
    Enforce the seed count and per-seed length limits.

    ``with_bump`` accounts for the bump byte appended to the seed list.

    Raises:
        PdaDerivationError: If a limit is exceeded
    """
    limit = MAX_SEEDS - 1 if with_bump else MAX_SEEDS
    if len(seeds) > limit:
        raise PdaDerivationError(
            f"Too many seeds: {len(seeds)} (max {limit})",
            details={"count": len(seeds), "max": limit},
        )
    for i, seed in enumerate(seeds):
        if len(seed) > MAX_SEED_LENGTH:
            raise PdaDerivationError(
                f"Seed {i} is {len(seed)} bytes (max {MAX_SEED_LENGTH})",
                details={"index": i, "length": len(seed)},
            )


class SoldersPdaDeriver:
    """PdaDeriver backed by ``solders.pubkey.Pubkey``."""

    def find_program_address(
        self, seeds: Sequence[bytes], program_id: Pubkey
    ) -> tuple[Pubkey, int]:
        check_seeds(seeds, with_bump=True)
        address, bump = Pubkey.find_program_address([bytes(s) for s in seeds], program_id)
        return address, bump

    def create_program_address(self, seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
        check_seeds(seeds)
        try:
            return Pubkey.create_program_address([bytes(s) for s in seeds], program_id)
        except Exception as exc:
            raise PdaDerivationError(
                f"Seeds do not produce a valid program address: {exc}",
                details={"program_id": str(program_id)},
            ) from exc


default_deriver = SoldersPdaDeriver()


def associated_token_address(
    wallet: Pubkey,
    mint: Pubkey,
    token_program: Pubkey = TOKEN_PROGRAM_ID,
    deriver: PdaDeriver = default_deriver,
) -> Pubkey:
    """Associated token account address for (wallet, mint) under ``token_program``."""
    address, _ = deriver.find_program_address(
        [bytes(wallet), bytes(token_program), bytes(mint)], ASSOCIATED_TOKEN_PROGRAM_ID
    )
    return address
