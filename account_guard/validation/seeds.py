"""
Seed specifications for program-derived addresses.

A seed is one of:

- a literal byte string
- a sibling account's public key
- a field of the validated account's own decoded data (pubkey or bytes)
- the bump byte of a sibling PDA: the canonical bump recorded earlier in
  the run, or else the sibling's stored ``bump`` field
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Union

from solders.pubkey import Pubkey

from account_guard.core.errors import AccountValidationError
from account_guard.domain.accounts import TypedAccount
from account_guard.domain.context import AccountContext
from account_guard.domain.enums import ErrorCode

STORED_BUMP_FIELD = "bump"


@dataclass(frozen=True)
class LiteralSeed:
    value: bytes


@dataclass(frozen=True)
class AccountSeed:
    name: str


@dataclass(frozen=True)
class FieldSeed:
    name: str


@dataclass(frozen=True)
class BumpSeed:
    name: str


SeedSpec = Union[LiteralSeed, AccountSeed, FieldSeed, BumpSeed]


def seed(value: bytes | str) -> LiteralSeed:
    """Literal seed; text is encoded as UTF-8."""
    if isinstance(value, str):
        value = value.encode("utf-8")
    return LiteralSeed(bytes(value))


def seed_account(name: str) -> AccountSeed:
    return AccountSeed(name)


def seed_field(name: str) -> FieldSeed:
    return FieldSeed(name)


def seed_bump(name: str) -> BumpSeed:
    return BumpSeed(name)


def _seeds_error(account: str | None, reason: str, **details: Any) -> AccountValidationError:
    return AccountValidationError(
        ErrorCode.CONSTRAINT_SEEDS, account=account, details={"reason": reason, **details}
    )


def _stored_bump(context: AccountContext, name: str) -> int | None:
    sibling = context.get(name)
    if isinstance(sibling, TypedAccount):
        value = sibling.fields.get(STORED_BUMP_FIELD)
        if isinstance(value, int) and not isinstance(value, bool) and 0 <= value <= 255:
            return value
    return None


def resolve_seeds(
    specs: Sequence[SeedSpec],
    own_fields: Mapping[str, Any],
    context: AccountContext,
    account: str | None = None,
) -> list[bytes]:
    """
    Resolve seed specs to byte strings for one run.

    Args:
        specs: Seed specs in declaration order
        own_fields: Decoded fields of the account being validated
        context: Sibling accounts and the bumps recorded so far
        account: Name of the account being validated, for error reports

    Raises:
        AccountValidationError: AccountNotEnoughAccountKeys for a missing
            sibling, ConstraintSeeds for a missing field or bump
    """
    resolved: list[bytes] = []
    for spec in specs:
        match spec:
            case LiteralSeed(value=value):
                resolved.append(value)
            case AccountSeed(name=name):
                resolved.append(bytes(context.key_of(name, requested_by=account)))
            case FieldSeed(name=name):
                value = own_fields.get(name)
                if isinstance(value, Pubkey):
                    resolved.append(bytes(value))
                elif isinstance(value, (bytes, bytearray)):
                    resolved.append(bytes(value))
                else:
                    raise _seeds_error(account, "seed field unavailable", field=name)
            case BumpSeed(name=name):
                bump = context.bumps.get(name)
                if bump is None:
                    bump = _stored_bump(context, name)
                if bump is None:
                    raise _seeds_error(account, "bump not found", bump=name)
                resolved.append(bytes([bump]))
    return resolved
