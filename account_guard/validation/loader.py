"""
Multi-account instruction loading.

An instruction declares its accounts as ordered slots. Loading validates the
supplied handles in phases, so that constraints between accounts see every
sibling already decoded:

1. every account is loaded (size, discriminator, owner, flags)
2. PDAs are checked in declaration order, recording canonical bumps
3. no account key appears in two mutable slots unless one allows ``dup``
4. every account runs its remaining constraints

Expressions of every slot are compiled once, in ``InstructionAccounts.build``.
"""

import logging
import re
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field

from solders.pubkey import Pubkey

from account_guard.compiler.compiler import CompiledExpression
from account_guard.core.errors import AccountValidationError, ConstraintConfigError
from account_guard.core.observability import run_context, track_instruction_load
from account_guard.core.telemetry import get_tracer
from account_guard.domain.accounts import AccountHandle, TypedAccount
from account_guard.domain.context import AccountContext
from account_guard.domain.enums import ErrorCode
from account_guard.domain.pubkey import to_pubkey
from account_guard.domain.shape import ContextShape, account_shape
from account_guard.validation.account_type import AccountType
from account_guard.validation.pipeline import CONSTRAINT_STEPS, LOAD_STEPS, Step, ValidationRun

logger = logging.getLogger(__name__)

_SLOT_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


@dataclass(frozen=True)
class AccountSlot:
    """One named account position of an instruction."""

    name: str
    account_type: AccountType
    optional: bool = False


@dataclass
class LoadedAccounts:
    """Validated accounts of one instruction, by slot name."""

    context: AccountContext
    remaining: list[AccountHandle] = field(default_factory=list)

    @property
    def bumps(self) -> dict[str, int]:
        return self.context.bumps

    def __getitem__(self, name: str) -> TypedAccount | None:
        return self.context[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.context)


class InstructionAccounts:
    """
    Ordered account slots of one instruction, with precompiled expressions.

    Build with ``InstructionAccounts.build``; load with ``load(handles)``.
    """

    def __init__(
        self,
        program_id: Pubkey,
        slots: tuple[AccountSlot, ...],
        shape: ContextShape,
        compiled: dict[str, dict[str, CompiledExpression]],
    ) -> None:
        self.program_id = program_id
        self.slots = slots
        self.shape = shape
        self.compiled = compiled

    @classmethod
    def build(
        cls, program_id: Pubkey | str | bytes, slots: Sequence[AccountSlot]
    ) -> "InstructionAccounts":
        """
        Declare an instruction's accounts.

        Raises:
            ConstraintConfigError: On duplicate slot names, or constraints that
                reference accounts the instruction does not declare
            ExpressionSyntaxError: If an expression does not parse
            ExpressionTypeError: If an expression is ill-typed for the slots
        """
        slots = tuple(slots)
        names = [slot.name for slot in slots]
        for name in names:
            if not _SLOT_NAME_RE.match(name):
                raise ConstraintConfigError(
                    f"Invalid account slot name '{name}'", details={"slot": name}
                )
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ConstraintConfigError(
                f"Duplicate account slot names: {', '.join(duplicates)}",
                details={"slots": duplicates},
            )

        declared = set(names)
        for slot in slots:
            missing = [
                ref
                for ref in slot.account_type.constraints.referenced_accounts
                if ref not in declared
            ]
            if missing:
                raise ConstraintConfigError(
                    f"Account '{slot.name}' references undeclared accounts: {', '.join(missing)}",
                    details={"slot": slot.name, "missing": missing},
                )

        shape = ContextShape.of(
            {
                slot.name: account_shape(slot.account_type.layout, optional=slot.optional)
                for slot in slots
            }
        )
        compiled = {
            slot.name: slot.account_type.compile_expressions(shape.with_self(slot.name))
            for slot in slots
        }
        logger.debug(
            "Declared instruction accounts",
            extra={"slots": names, "program_id": str(program_id)},
        )
        return cls(to_pubkey(program_id), slots, shape, compiled)

    @property
    def required_count(self) -> int:
        """Handles needed: up to and including the last non-optional slot."""
        for index in range(len(self.slots) - 1, -1, -1):
            if not self.slots[index].optional:
                return index + 1
        return 0

    def load(self, handles: Sequence[AccountHandle | None]) -> LoadedAccounts:
        """
        Validate the supplied handles against the slots.

        Missing trailing optional slots read as None. Handles beyond the
        declared slots are returned as ``remaining`` without validation.

        Raises:
            AccountValidationError: At the first failing check of any phase
        """
        tracer = get_tracer()
        with run_context(), track_instruction_load():
            with tracer.start_as_current_span("account_guard.load_instruction") as span:
                span.set_attribute("account_guard.slots", len(self.slots))
                try:
                    loaded = self._load(handles)
                except AccountValidationError as exc:
                    span.set_attribute("account_guard.error_code", int(exc.code))
                    logger.info(
                        "Instruction accounts rejected",
                        extra={
                            "account": exc.account,
                            "code": int(exc.code),
                            "error": exc.code.label,
                        },
                    )
                    raise
        logger.debug("Instruction accounts loaded", extra={"slots": len(self.slots)})
        return loaded

    def _load(self, handles: Sequence[AccountHandle | None]) -> LoadedAccounts:
        if len(handles) < self.required_count:
            missing = self.slots[len(handles)].name
            raise AccountValidationError(
                ErrorCode.ACCOUNT_NOT_ENOUGH_ACCOUNT_KEYS,
                account=missing,
                details={"expected": self.required_count, "actual": len(handles)},
            )

        context = AccountContext()
        runs: list[tuple[AccountSlot, ValidationRun]] = []
        for index, slot in enumerate(self.slots):
            handle = handles[index] if index < len(handles) else None
            if handle is None:
                if not slot.optional:
                    raise AccountValidationError(
                        ErrorCode.ACCOUNT_NOT_ENOUGH_ACCOUNT_KEYS, account=slot.name
                    )
                context.bind(slot.name, None)
                continue
            run = ValidationRun(
                slot.account_type,
                handle,
                context,
                slot.name,
                program_id=self.program_id,
                compiled=self.compiled[slot.name],
            )
            context.bind(slot.name, run.execute(LOAD_STEPS))
            runs.append((slot, run))

        for _, run in runs:
            run.execute((Step.SEEDS,))

        self._check_duplicate_mutable(runs)

        for _, run in runs:
            run.execute(CONSTRAINT_STEPS)

        return LoadedAccounts(context=context, remaining=list(handles[len(self.slots) :]))

    @staticmethod
    def _check_duplicate_mutable(runs: list[tuple[AccountSlot, ValidationRun]]) -> None:
        seen: dict[Pubkey, str] = {}
        for slot, run in runs:
            constraints = slot.account_type.constraints
            if not constraints.mut or constraints.dup or constraints.is_init:
                continue
            key = run.handle.public_key
            if key in seen:
                raise AccountValidationError(
                    ErrorCode.CONSTRAINT_DUPLICATE_MUTABLE_ACCOUNT,
                    account=slot.name,
                    details={"duplicate_of": seen[key]},
                )
            seen[key] = slot.name
