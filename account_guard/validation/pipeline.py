"""
Account Constraint Validation Pipeline.

Runs the fixed checklist for one account against its sibling context,
stopping at the first failure. The order is part of the contract: callers
depend on which error code is reported first for a malformed account.

    1.  size           len(data) >= required space   AccountDiscriminatorNotFound
    2.  discriminator  tag (or all-zero in zero mode) AccountDiscriminatorMismatch / ConstraintZero
    3.  owner          owner program                  ConstraintOwner
    4.  flags          mut, signer, address, executable
    5.  seeds          PDA membership                 ConstraintSeeds
    6.  has_one        field == sibling key           ConstraintHasOne
    7.  init           payer and writability          ConstraintMut / ConstraintSigner
    8.  close          destination                    ConstraintClose
    9.  realloc        payer and writability          ConstraintRealloc
    10. space          exact data length              ConstraintSpace
    11. token          associated-token, token, mint structure
    12. rent_exempt    balance >= minimum             ConstraintRentExempt
    13. expressions    owner_expr, address_expr, constraint   ConstraintRaw

An ``init``/``init_if_needed`` account that is still uninitialized has no
data yet, so the data-dependent steps are skipped for it.
"""

import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Any

from solders.pubkey import Pubkey

from account_guard.compiler.compiler import CompiledExpression, compile_expression
from account_guard.core.config import settings
from account_guard.core.errors import (
    AccountValidationError,
    ConstraintConfigError,
    PdaDerivationError,
)
from account_guard.domain.accounts import AccountHandle, TypedAccount
from account_guard.domain.context import AccountContext
from account_guard.domain.enums import ErrorCode
from account_guard.domain.pubkey import SYSTEM_PROGRAM_ID
from account_guard.domain.shape import AccountShape, ContextShape, shape_from_sample
from account_guard.validation.constraints import EXPRESSION_OPTIONS
from account_guard.validation.discriminator import DISCRIMINATOR_LENGTH, is_zeroed
from account_guard.validation.pda import associated_token_address
from account_guard.validation.seeds import resolve_seeds
from account_guard.validation.token import TokenLayoutError, decode_mint, decode_token_account

if TYPE_CHECKING:
    from account_guard.validation.account_type import AccountType

logger = logging.getLogger(__name__)


class Step(str, Enum):
    SIZE = "size"
    DISCRIMINATOR = "discriminator"
    OWNER = "owner"
    FLAGS = "flags"
    SEEDS = "seeds"
    HAS_ONE = "has_one"
    INIT = "init"
    CLOSE = "close"
    REALLOC = "realloc"
    SPACE = "space"
    TOKEN = "token"
    RENT_EXEMPT = "rent_exempt"
    EXPRESSIONS = "expressions"


ALL_STEPS = tuple(Step)
LOAD_STEPS = (Step.SIZE, Step.DISCRIMINATOR, Step.OWNER, Step.FLAGS)
CONSTRAINT_STEPS = (
    Step.HAS_ONE,
    Step.INIT,
    Step.CLOSE,
    Step.REALLOC,
    Step.SPACE,
    Step.TOKEN,
    Step.RENT_EXEMPT,
    Step.EXPRESSIONS,
)

# Steps that read account data; skipped for an init account that has none yet
DATA_STEPS = frozenset(
    {
        Step.SIZE,
        Step.DISCRIMINATOR,
        Step.OWNER,
        Step.HAS_ONE,
        Step.SPACE,
        Step.TOKEN,
        Step.RENT_EXEMPT,
        Step.EXPRESSIONS,
    }
)


def is_uninitialized(handle: AccountHandle) -> bool:
    """An account with no balance, or with no data still owned by the system program."""
    return handle.balance == 0 or (
        len(handle.data) == 0 and handle.owner_program == SYSTEM_PROGRAM_ID
    )


def scope_shape(scope: Mapping[str, Any], self_name: str | None) -> ContextShape:
    """
    Static shape of a live scope, for expressions compiled on first use.

    Absent (None) entries are shaped as optional accounts; paths through them
    evaluate to Invalid, so the expression fails with ConstraintRaw.
    """
    entries = {}
    for name, value in scope.items():
        if value is None:
            entries[name] = AccountShape(optional=True)
            continue
        try:
            entries[name] = shape_from_sample(value)
        except ValueError as exc:
            raise ConstraintConfigError(
                f"Cannot use context entry '{name}' in expressions: {exc}",
                details={"entry": name},
            ) from exc
    return ContextShape.of(entries, self_name=self_name)


class ValidationRun:
    """
    One pass of the pipeline over one account.

    ``account`` may already be a TypedAccount (from an earlier load phase),
    in which case its decoded fields are reused.
    """

    def __init__(
        self,
        account_type: "AccountType",
        account: AccountHandle | TypedAccount,
        context: AccountContext,
        name: str,
        program_id: Pubkey | None = None,
        compiled: Mapping[str, CompiledExpression] | None = None,
    ) -> None:
        self.account_type = account_type
        self.constraints = account_type.constraints
        self.context = context
        self.name = name
        self.program_id = program_id or account_type.program_id
        self.compiled = dict(compiled or {})
        if isinstance(account, TypedAccount):
            self.typed = account
        else:
            self.typed = TypedAccount(
                handle=account,
                layout=account_type.layout,
                data_offset=account_type.data_offset,
            )
        self.handle = self.typed.handle
        self.uninitialized = self.constraints.is_init and is_uninitialized(self.handle)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    def execute(self, steps: Sequence[Step] = ALL_STEPS) -> TypedAccount:
        """
        Run ``steps`` in order and return the typed account.

        Raises:
            AccountValidationError: At the first failing step
        """
        handlers = {
            Step.SIZE: self._check_size,
            Step.DISCRIMINATOR: self._check_discriminator,
            Step.OWNER: self._check_owner,
            Step.FLAGS: self._check_flags,
            Step.SEEDS: self._check_seeds,
            Step.HAS_ONE: self._check_has_one,
            Step.INIT: self._check_init,
            Step.CLOSE: self._check_close,
            Step.REALLOC: self._check_realloc,
            Step.SPACE: self._check_space,
            Step.TOKEN: self._check_token,
            Step.RENT_EXEMPT: self._check_rent_exempt,
            Step.EXPRESSIONS: self._check_expressions,
        }
        for step in steps:
            if self.uninitialized and step in DATA_STEPS:
                continue
            handlers[step]()
        return self.typed

    def _fail(self, code: ErrorCode, **details: Any) -> AccountValidationError:
        return AccountValidationError(code, account=self.name, details=details or None)

    # ------------------------------------------------------------------
    # 1-4: load checks
    # ------------------------------------------------------------------

    def _check_size(self) -> None:
        required = self.account_type.required_space
        if len(self.handle.data) < required:
            raise self._fail(
                ErrorCode.ACCOUNT_DISCRIMINATOR_NOT_FOUND,
                required=required,
                actual=len(self.handle.data),
            )

    def _check_discriminator(self) -> None:
        data = self.handle.data
        if self.constraints.zero:
            if not is_zeroed(data):
                raise self._fail(ErrorCode.CONSTRAINT_ZERO)
        elif self.account_type.discriminator is not None:
            if bytes(data[:DISCRIMINATOR_LENGTH]) != self.account_type.discriminator:
                raise self._fail(ErrorCode.ACCOUNT_DISCRIMINATOR_MISMATCH)
        if self.account_type.layout is not None and not self.typed.fields:
            self.typed.reload()

    def _check_owner(self) -> None:
        expected = self.constraints.owner
        if expected is not None and self.handle.owner_program != expected:
            raise self._fail(
                ErrorCode.CONSTRAINT_OWNER,
                expected=str(expected),
                actual=str(self.handle.owner_program),
            )

    def _check_flags(self) -> None:
        c = self.constraints
        if c.mut and not self.handle.is_writable:
            raise self._fail(ErrorCode.CONSTRAINT_MUT)
        if c.signer and not self.handle.is_signer:
            raise self._fail(ErrorCode.CONSTRAINT_SIGNER)
        if c.address is not None and self.handle.public_key != c.address:
            raise self._fail(ErrorCode.CONSTRAINT_ADDRESS, expected=str(c.address))
        if c.executable and not self.handle.is_executable:
            raise self._fail(ErrorCode.CONSTRAINT_EXECUTABLE)

    # ------------------------------------------------------------------
    # 5: PDA membership
    # ------------------------------------------------------------------

    def _check_seeds(self) -> None:
        c = self.constraints
        if c.seeds is None:
            return
        program_id = c.seeds_program or self.program_id
        if program_id is None:
            raise ConstraintConfigError(
                f"Account '{self.name}' declares seeds but no program id is known",
                details={"account": self.name},
            )
        seeds = resolve_seeds(c.seeds, self.typed.fields, self.context, account=self.name)
        deriver = self.account_type.deriver
        stored_bump = None
        if c.bump_field is not None and not self.uninitialized:
            stored_bump = self.typed.fields.get(c.bump_field)

        try:
            if stored_bump is not None:
                address = deriver.create_program_address(seeds + [bytes([stored_bump])], program_id)
                bump = stored_bump
            else:
                address, bump = deriver.find_program_address(seeds, program_id)
        except PdaDerivationError as exc:
            raise self._fail(ErrorCode.CONSTRAINT_SEEDS, reason=exc.message) from exc

        if address != self.handle.public_key:
            raise self._fail(ErrorCode.CONSTRAINT_SEEDS, expected=str(address))
        self.context.bumps[self.name] = bump

    # ------------------------------------------------------------------
    # 6-10: relational and lifecycle checks
    # ------------------------------------------------------------------

    def _check_has_one(self) -> None:
        for spec in self.constraints.has_one:
            target = self.context.key_of(spec.target, requested_by=self.name)
            value = self.typed.fields.get(spec.field)
            if not isinstance(value, Pubkey) or value != target:
                raise self._fail(
                    ErrorCode.CONSTRAINT_HAS_ONE, field=spec.field, target=spec.target
                )

    def _check_init(self) -> None:
        c = self.constraints
        if not c.is_init:
            return
        if not self.uninitialized:
            if c.init_if_needed:
                return
            raise self._fail(ErrorCode.ACCOUNT_ALREADY_INITIALIZED)
        if not self.handle.is_writable:
            raise self._fail(ErrorCode.CONSTRAINT_MUT)
        payer = self.context.handle(c.payer, requested_by=self.name)
        if not payer.is_signer:
            raise self._fail(ErrorCode.CONSTRAINT_SIGNER, payer=c.payer)
        if not payer.is_writable:
            raise self._fail(ErrorCode.CONSTRAINT_MUT, payer=c.payer)

    def _check_close(self) -> None:
        destination_name = self.constraints.close
        if destination_name is None:
            return
        if not self.handle.is_writable:
            raise self._fail(ErrorCode.CONSTRAINT_MUT)
        destination = self.context.handle(destination_name, requested_by=self.name)
        if not destination.is_writable:
            raise self._fail(ErrorCode.CONSTRAINT_CLOSE, destination=destination_name)
        if destination.public_key == self.handle.public_key:
            raise self._fail(ErrorCode.CONSTRAINT_CLOSE, destination=destination_name)

    def _check_realloc(self) -> None:
        realloc = self.constraints.realloc
        if realloc is None:
            return
        if realloc.payer is not None:
            payer = self.context.handle(realloc.payer, requested_by=self.name)
            if not payer.is_signer or not payer.is_writable:
                raise self._fail(ErrorCode.CONSTRAINT_REALLOC, payer=realloc.payer)
        if not self.handle.is_writable:
            raise self._fail(ErrorCode.CONSTRAINT_REALLOC)

    def _check_space(self) -> None:
        expected = self.account_type.exact_space
        if expected is not None and len(self.handle.data) != expected:
            raise self._fail(
                ErrorCode.CONSTRAINT_SPACE, expected=expected, actual=len(self.handle.data)
            )

    # ------------------------------------------------------------------
    # 11: token structure
    # ------------------------------------------------------------------

    def _program_key(self, sibling: str | None) -> Pubkey:
        if sibling is not None:
            return self.context.key_of(sibling, requested_by=self.name)
        return settings.default_token_program_key

    def _require_token_owner(self, program: Pubkey) -> None:
        if self.handle.owner_program != program:
            raise self._fail(
                ErrorCode.CONSTRAINT_OWNER,
                expected=str(program),
                actual=str(self.handle.owner_program),
            )

    def _check_token(self) -> None:
        c = self.constraints
        discriminator = self.account_type.discriminator

        if c.associated_token is not None:
            self._check_associated_token(discriminator)

        if c.has_token_constraints:
            self._require_token_owner(self._program_key(c.token_program))
            try:
                token = decode_token_account(self.handle.data, discriminator)
            except TokenLayoutError:
                code = (
                    ErrorCode.CONSTRAINT_TOKEN_MINT
                    if c.token_mint is not None
                    else ErrorCode.CONSTRAINT_TOKEN_OWNER
                )
                raise self._fail(code, reason="token account data too short") from None
            if c.token_mint is not None:
                if token.mint != self.context.key_of(c.token_mint, requested_by=self.name):
                    raise self._fail(ErrorCode.CONSTRAINT_TOKEN_MINT)
            if c.token_authority is not None:
                if token.owner != self.context.key_of(c.token_authority, requested_by=self.name):
                    raise self._fail(ErrorCode.CONSTRAINT_TOKEN_OWNER)
        elif c.token_program is not None:
            self._require_token_owner(self._program_key(c.token_program))

        if c.has_mint_constraints:
            self._require_token_owner(self._program_key(c.mint_token_program))
            try:
                mint = decode_mint(self.handle.data, discriminator)
            except TokenLayoutError:
                if c.mint_decimals is not None:
                    code = ErrorCode.CONSTRAINT_MINT_DECIMALS
                elif c.mint_freeze_authority is not None:
                    code = ErrorCode.CONSTRAINT_MINT_FREEZE_AUTHORITY
                else:
                    code = ErrorCode.CONSTRAINT_MINT_MINT_AUTHORITY
                raise self._fail(code, reason="mint data too short") from None
            if c.mint_authority is not None:
                expected = self.context.key_of(c.mint_authority, requested_by=self.name)
                if mint.mint_authority is None or mint.mint_authority != expected:
                    raise self._fail(ErrorCode.CONSTRAINT_MINT_MINT_AUTHORITY)
            if c.mint_freeze_authority is not None:
                expected = self.context.key_of(c.mint_freeze_authority, requested_by=self.name)
                if mint.freeze_authority is None or mint.freeze_authority != expected:
                    raise self._fail(ErrorCode.CONSTRAINT_MINT_FREEZE_AUTHORITY)
            if c.mint_decimals is not None and mint.decimals != c.mint_decimals:
                raise self._fail(
                    ErrorCode.CONSTRAINT_MINT_DECIMALS,
                    expected=c.mint_decimals,
                    actual=mint.decimals,
                )
        elif c.mint_token_program is not None:
            self._require_token_owner(self._program_key(c.mint_token_program))

    def _check_associated_token(self, discriminator: bytes | None) -> None:
        cfg = self.constraints.associated_token
        authority = self.context.key_of(cfg.authority, requested_by=self.name)
        mint = self.context.key_of(cfg.mint, requested_by=self.name)
        token_program = self._program_key(cfg.token_program)
        self._require_token_owner(token_program)
        try:
            token = decode_token_account(self.handle.data, discriminator)
        except TokenLayoutError:
            raise self._fail(
                ErrorCode.CONSTRAINT_TOKEN_OWNER, reason="token account data too short"
            ) from None
        if token.owner != authority:
            raise self._fail(ErrorCode.CONSTRAINT_TOKEN_OWNER)
        if token.mint != mint:
            raise self._fail(ErrorCode.CONSTRAINT_ASSOCIATED)
        try:
            expected = associated_token_address(
                authority, mint, token_program, deriver=self.account_type.deriver
            )
        except PdaDerivationError as exc:
            raise self._fail(ErrorCode.CONSTRAINT_ASSOCIATED, reason=exc.message) from exc
        if expected != self.handle.public_key:
            raise self._fail(ErrorCode.CONSTRAINT_ASSOCIATED, expected=str(expected))

    # ------------------------------------------------------------------
    # 12-13
    # ------------------------------------------------------------------

    def _check_rent_exempt(self) -> None:
        if not self.constraints.rent_exempt:
            return
        rent = self.account_type.rent
        if not rent.is_exempt(self.handle.balance, len(self.handle.data)):
            raise self._fail(
                ErrorCode.CONSTRAINT_RENT_EXEMPT,
                required=rent.minimum_balance(len(self.handle.data)),
                balance=self.handle.balance,
            )

    def _check_expressions(self) -> None:
        pending = [
            (kind, getattr(self.constraints, kind))
            for kind in EXPRESSION_OPTIONS
            if getattr(self.constraints, kind) is not None
        ]
        if not pending:
            return
        scope: dict[str, Any] = dict(self.context)
        scope[self.name] = self.typed
        shape = None
        for kind, source in pending:
            compiled = self.compiled.get(kind)
            if compiled is None:
                if shape is None:
                    shape = scope_shape(scope, self.name)
                compiled = compile_expression(source, shape, kind)
            if not compiled.check(scope):
                raise self._fail(ErrorCode.CONSTRAINT_RAW, kind=kind, expression=source)
