"""
AccountType: a named record layout bound to its ConstraintSet.

An AccountType is declared once per program account kind. ``build`` checks
that the constraints fit the layout (has_one fields are pubkeys, seed fields
exist, bump_field is a u8, the space expression resolves) so that validating
an account never meets a declaration error.
"""

import logging
from collections.abc import Mapping
from typing import Any

from solders.pubkey import Pubkey

from account_guard.compiler.compiler import CompiledExpression, compile_expression
from account_guard.core.errors import AccountValidationError, ConstraintConfigError
from account_guard.core.observability import run_context, track_validation
from account_guard.core.telemetry import get_tracer
from account_guard.domain.accounts import AccountHandle, TypedAccount
from account_guard.domain.context import AccountContext
from account_guard.domain.enums import ErrorCode
from account_guard.domain.layout import RecordLayout, TypeKind
from account_guard.domain.pubkey import to_pubkey
from account_guard.domain.shape import ContextShape
from account_guard.validation.constraints import (
    EXPRESSION_OPTIONS,
    ConstraintSet,
    resolve_space_expr,
)
from account_guard.validation.discriminator import DISCRIMINATOR_LENGTH, account_discriminator
from account_guard.validation.pda import PdaDeriver, default_deriver
from account_guard.validation.pipeline import ALL_STEPS, LOAD_STEPS, ValidationRun
from account_guard.validation.rent import Rent
from account_guard.validation.seeds import FieldSeed

logger = logging.getLogger(__name__)

DEFAULT_SELF_NAME = "self"


class AccountType:
    """
    Layout, discriminator and validation policy for one kind of account.

    Attributes:
        name: Type name, also the discriminator preimage (``account:<name>``)
        layout: Record layout, or None for accounts with no decoded data
        constraints: Validation policy
        discriminator: 8-byte tag, or None for raw (undiscriminated) accounts
        required_space: Minimum data length (declared space, else discriminator plus record)
        exact_space: Exact data length from ``space``/``space_expr``, if any
        program_id: Owning program, used to derive PDAs
    """

    def __init__(
        self,
        name: str,
        layout: RecordLayout | None,
        constraints: ConstraintSet,
        discriminator: bytes | None,
        exact_space: int | None,
        program_id: Pubkey | None,
        deriver: PdaDeriver,
        rent: Rent,
    ) -> None:
        self.name = name
        self.layout = layout
        self.constraints = constraints
        self.discriminator = discriminator
        self.exact_space = exact_space
        self.program_id = program_id
        self.deriver = deriver
        self.rent = rent

    def __repr__(self) -> str:
        return f"AccountType({self.name!r}, space={self.required_space})"

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(
        cls,
        name: str,
        layout: RecordLayout | None = None,
        constraints: ConstraintSet | None = None,
        *,
        discriminated: bool | None = None,
        program_id: Pubkey | str | bytes | None = None,
        constants: Mapping[str, int] | None = None,
        deriver: PdaDeriver | None = None,
        rent: Rent | None = None,
    ) -> "AccountType":
        """
        Declare an account type.

        Args:
            name: Type name
            layout: Record layout; None for raw accounts (signers, programs)
            constraints: Validation policy (default: no constraints)
            discriminated: Whether data starts with the 8-byte type tag.
                Defaults to True when a layout is given.
            program_id: Owning program id, needed for seeds without seeds_program
            constants: Extra named constants for ``space_expr``
            deriver: PDA deriver (default: solders)
            rent: Rent parameters (default: from settings)

        Raises:
            ConstraintConfigError: If the constraints do not fit the layout
        """
        constraints = constraints or ConstraintSet()
        if discriminated is None:
            discriminated = layout is not None

        discriminator = None
        if discriminated:
            discriminator = constraints.discriminator or account_discriminator(name)
        elif constraints.discriminator is not None:
            raise ConstraintConfigError(
                f"Account type '{name}' is not discriminated but sets a discriminator",
                details={"account_type": name},
            )

        if constraints.zero and discriminator is None:
            raise ConstraintConfigError(
                f"zero requires a discriminated account type ('{name}')",
                details={"account_type": name, "option": "zero"},
            )

        _check_layout_references(name, layout, constraints)

        record_size = layout.size if layout is not None else 0
        header = DISCRIMINATOR_LENGTH if discriminated else 0
        exact_space = constraints.space
        if constraints.space_expr is not None:
            named = {
                "INIT_SPACE": record_size,
                "DISCRIMINATOR_LENGTH": DISCRIMINATOR_LENGTH,
                **(constants or {}),
            }
            exact_space = resolve_space_expr(constraints.space_expr, named)
        if exact_space is not None and exact_space < header + record_size:
            raise ConstraintConfigError(
                f"space {exact_space} is smaller than the {header + record_size} bytes "
                f"'{name}' needs",
                details={"account_type": name, "space": exact_space},
            )

        account_type = cls(
            name=name,
            layout=layout,
            constraints=constraints,
            discriminator=discriminator,
            exact_space=exact_space,
            program_id=to_pubkey(program_id) if program_id is not None else None,
            deriver=deriver or default_deriver,
            rent=rent or Rent.from_settings(),
        )
        logger.debug(
            "Declared account type",
            extra={"account_type": name, "required_space": account_type.required_space},
        )
        return account_type

    # ------------------------------------------------------------------
    # Derived sizes
    # ------------------------------------------------------------------

    @property
    def data_offset(self) -> int:
        return DISCRIMINATOR_LENGTH if self.discriminator is not None else 0

    @property
    def required_space(self) -> int:
        """Minimum data length: the declared space if any, else discriminator plus record."""
        if self.exact_space is not None:
            return self.exact_space
        return self.data_offset + (self.layout.size if self.layout is not None else 0)

    @property
    def init_space(self) -> int:
        """Bytes to allocate on init."""
        return self.required_space

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def compile_expressions(self, shape: ContextShape) -> dict[str, CompiledExpression]:
        """
        Compile this type's expression constraints against a static scope shape.

        ``shape.self_name`` must name the account being validated.

        Raises:
            ExpressionTypeError: If an expression is ill-typed for ``shape``
        """
        compiled = {}
        for kind in EXPRESSION_OPTIONS:
            source = getattr(self.constraints, kind)
            if source is not None:
                compiled[kind] = compile_expression(source, shape, kind)
        return compiled

    def load(
        self, handle: AccountHandle, name: str | None = None
    ) -> TypedAccount:
        """
        Check size, discriminator, owner and account flags, then decode.

        Raises:
            AccountValidationError: On the first failing check
        """
        run = ValidationRun(self, handle, AccountContext(), name or self.name)
        with track_validation(self.name):
            return run.execute(LOAD_STEPS)

    def load_unchecked(self, handle: AccountHandle) -> TypedAccount:
        """
        Decode after checking only the data length.

        Raises:
            AccountValidationError: AccountDiscriminatorNotFound if the data is
                too short
        """
        if len(handle.data) < self.required_space:
            raise AccountValidationError(
                ErrorCode.ACCOUNT_DISCRIMINATOR_NOT_FOUND,
                account=self.name,
                details={"required": self.required_space, "actual": len(handle.data)},
            )
        typed = TypedAccount(handle=handle, layout=self.layout, data_offset=self.data_offset)
        typed.reload()
        return typed

    def validate(
        self,
        account: AccountHandle | TypedAccount,
        context: AccountContext | Mapping[str, Any] | None = None,
        name: str = DEFAULT_SELF_NAME,
        *,
        program_id: Pubkey | None = None,
        compiled: Mapping[str, CompiledExpression] | None = None,
    ) -> TypedAccount:
        """
        Run the full validation pipeline for one account.

        Args:
            account: The account to validate
            context: Sibling accounts by name. The account itself is visible
                to expressions under ``name``.
            name: Name of the account inside the context
            program_id: Overrides the type's program id for PDA derivation
            compiled: Precompiled expressions by option name; others are
                compiled on first use against the live context

        Returns:
            The typed account. Canonical PDA bumps are recorded in
            ``context.bumps`` when ``context`` is an AccountContext.

        Raises:
            AccountValidationError: At the first failing check
        """
        if not isinstance(context, AccountContext):
            context = AccountContext(context)
        tracer = get_tracer()
        with run_context(), track_validation(self.name):
            with tracer.start_as_current_span("account_guard.validate") as span:
                span.set_attribute("account_guard.account_type", self.name)
                span.set_attribute("account_guard.account", name)
                run = ValidationRun(
                    self, account, context, name, program_id=program_id, compiled=compiled
                )
                try:
                    typed = run.execute(ALL_STEPS)
                except AccountValidationError as exc:
                    span.set_attribute("account_guard.error_code", int(exc.code))
                    logger.info(
                        "Account validation failed",
                        extra={
                            "account": name,
                            "code": int(exc.code),
                            "error": exc.code.label,
                        },
                    )
                    raise
        logger.debug("Account validated", extra={"account": name})
        return typed

    def initialize(self, handle: AccountHandle, **values: Any) -> TypedAccount:
        """
        Write the discriminator and the initial record into a fresh account.

        Everything after the discriminator is zeroed before ``values`` are
        encoded, so unset fields read as zero.

        Raises:
            AccountValidationError: ConstraintMut if the account is not writable,
                AccountDidNotSerialize if its data is shorter than required
            LayoutError: On unknown fields or values that do not fit
        """
        if self.layout is None and values:
            raise ConstraintConfigError(
                f"Account type '{self.name}' has no layout to initialize",
                details={"account_type": self.name},
            )
        if not handle.is_writable:
            raise AccountValidationError(ErrorCode.CONSTRAINT_MUT, account=self.name)
        if len(handle.data) < self.required_space:
            raise AccountValidationError(
                ErrorCode.ACCOUNT_DID_NOT_SERIALIZE,
                account=self.name,
                details={"required": self.required_space, "actual": len(handle.data)},
            )
        data = handle.data
        offset = self.data_offset
        data[offset:] = bytes(len(data) - offset)
        if self.discriminator is not None:
            data[:DISCRIMINATOR_LENGTH] = self.discriminator
        typed = TypedAccount(handle=handle, layout=self.layout, data_offset=self.data_offset)
        if self.layout is not None:
            self.layout.encode_into(handle.data, values, offset=self.data_offset)
            typed.reload()
        return typed


def _check_layout_references(
    name: str, layout: RecordLayout | None, constraints: ConstraintSet
) -> None:
    def field_kind(field_name: str, option: str) -> Any:
        entry = layout.get(field_name) if layout is not None else None
        if entry is None:
            raise ConstraintConfigError(
                f"{option} names unknown field '{field_name}' of '{name}'",
                details={"account_type": name, "option": option, "field": field_name},
            )
        return entry.type

    for spec in constraints.has_one:
        ftype = field_kind(spec.field, "has_one")
        if ftype.kind != TypeKind.PUBKEY:
            raise ConstraintConfigError(
                f"has_one field '{spec.field}' of '{name}' must be a pubkey",
                details={"account_type": name, "field": spec.field},
            )

    for spec in constraints.seeds or ():
        if isinstance(spec, FieldSeed):
            ftype = field_kind(spec.name, "seeds")
            if ftype.kind not in (TypeKind.PUBKEY, TypeKind.BYTES):
                raise ConstraintConfigError(
                    f"seed field '{spec.name}' of '{name}' must be a pubkey or bytes",
                    details={"account_type": name, "field": spec.name},
                )

    if constraints.bump_field is not None:
        ftype = field_kind(constraints.bump_field, "bump_field")
        if not ftype.is_u8:
            raise ConstraintConfigError(
                f"bump_field '{constraints.bump_field}' of '{name}' must be a u8",
                details={"account_type": name, "field": constraints.bump_field},
            )
