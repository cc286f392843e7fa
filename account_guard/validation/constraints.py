"""
ConstraintSet: the immutable, per-account-type validation policy.

A ConstraintSet is built once, when a program declares its accounts, via
``ConstraintSet.build(**options)``. Every conflicting or incomplete
combination of options is rejected there, so validation never meets an
inconsistent policy:

- ``bump``, ``bump_field`` and ``seeds_program`` require ``seeds``
- ``seeds_program`` cannot be combined with ``init``/``init_if_needed``
- ``init`` and ``init_if_needed`` require ``payer`` and exclude each other
- ``zero`` cannot be combined with ``init``/``init_if_needed``
- ``executable`` excludes ``mut``, ``signer``, ``init``, ``init_if_needed``,
  ``close`` and ``realloc``
- ``associated_token`` needs both mint and authority, and excludes
  ``seeds`` and the ``token``/``mint`` groups
- the ``token`` group and the ``mint`` group exclude each other
- ``owner``/``owner_expr``, ``address``/``address_expr`` and
  ``space``/``space_expr`` are each mutually exclusive
- expression options must be non-empty and syntactically valid
"""

import logging
import re
from collections.abc import Mapping
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from solders.pubkey import Pubkey

from account_guard.compiler.parser import parse_expression
from account_guard.core.errors import ConstraintConfigError
from account_guard.domain.pubkey import to_pubkey
from account_guard.validation.discriminator import DISCRIMINATOR_LENGTH
from account_guard.validation.seeds import AccountSeed, BumpSeed, FieldSeed, LiteralSeed

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

TOKEN_GROUP = ("token_mint", "token_authority", "token_program")
MINT_GROUP = ("mint_authority", "mint_freeze_authority", "mint_decimals", "mint_token_program")
EXPRESSION_OPTIONS = ("owner_expr", "address_expr", "constraint")


def _check_name(value: str | None, option: str) -> str | None:
    if value is not None and not _NAME_RE.match(value):
        raise ValueError(f"{option} must name an account or field, got '{value}'")
    return value


class HasOneSpec(BaseModel):
    """Data field ``field`` must equal the public key of sibling ``target``."""

    model_config = ConfigDict(frozen=True)

    field: str
    target: str

    @field_validator("field", "target")
    @classmethod
    def validate_names(cls, v: str) -> str:
        return _check_name(v, "has_one")


class ReallocConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    payer: str | None = None
    zero_init: bool = True

    @field_validator("payer")
    @classmethod
    def validate_payer(cls, v: str | None) -> str | None:
        return _check_name(v, "realloc payer")


class AssociatedTokenConfig(BaseModel):
    """Sibling account names for the mint, the wallet (authority) and the token program."""

    model_config = ConfigDict(frozen=True)

    mint: str | None = None
    authority: str | None = None
    token_program: str | None = None

    @field_validator("mint", "authority", "token_program")
    @classmethod
    def validate_names(cls, v: str | None) -> str | None:
        return _check_name(v, "associated_token")


class ConstraintSet(BaseModel):
    """
    Validation policy for one account type.

    Use ``ConstraintSet.build(...)`` rather than the constructor; it turns
    every rejection into a ConstraintConfigError.
    """

    model_config = ConfigDict(frozen=True, extra="forbid", arbitrary_types_allowed=True)

    discriminator: bytes | None = None

    owner: Pubkey | None = None
    owner_expr: str | None = None

    mut: bool = False
    signer: bool = False
    zero: bool = False
    dup: bool = False
    executable: bool = False

    address: Pubkey | None = None
    address_expr: str | None = None

    space: int | None = Field(default=None, ge=0)
    space_expr: str | None = None

    seeds: tuple[Any, ...] | None = None
    bump: bool = False
    bump_field: str | None = None
    seeds_program: Pubkey | None = None

    init: bool = False
    init_if_needed: bool = False
    payer: str | None = None

    has_one: tuple[HasOneSpec, ...] = ()

    associated_token: AssociatedTokenConfig | None = None

    token_mint: str | None = None
    token_authority: str | None = None
    token_program: str | None = None

    mint_authority: str | None = None
    mint_freeze_authority: str | None = None
    mint_decimals: int | None = Field(default=None, ge=0, le=255)
    mint_token_program: str | None = None

    close: str | None = None
    realloc: ReallocConfig | None = None
    rent_exempt: bool = False

    constraint: str | None = None

    # ------------------------------------------------------------------
    # Field validators
    # ------------------------------------------------------------------

    @field_validator("owner", "address", "seeds_program", mode="before")
    @classmethod
    def parse_pubkey(cls, v: Any) -> Pubkey | None:
        if v is None:
            return None
        try:
            return to_pubkey(v)
        except TypeError as exc:
            raise ValueError(str(exc)) from exc

    @field_validator("discriminator", mode="before")
    @classmethod
    def validate_discriminator(cls, v: Any) -> bytes | None:
        if v is None:
            return None
        v = bytes(v)
        if len(v) != DISCRIMINATOR_LENGTH:
            raise ValueError(f"discriminator must be {DISCRIMINATOR_LENGTH} bytes, got {len(v)}")
        return v

    @field_validator("seeds", mode="before")
    @classmethod
    def validate_seeds(cls, v: Any) -> tuple[Any, ...] | None:
        if v is None:
            return None
        seeds = tuple(v)
        for spec in seeds:
            if not isinstance(spec, (LiteralSeed, AccountSeed, FieldSeed, BumpSeed)):
                raise ValueError(f"seeds entries must be seed specs, got {spec!r}")
            if not isinstance(spec, LiteralSeed):
                _check_name(spec.name, "seed reference")
        return seeds

    @field_validator("has_one", mode="before")
    @classmethod
    def normalize_has_one(cls, v: Any) -> tuple[Any, ...]:
        if v is None:
            return ()
        if isinstance(v, (str, Mapping, HasOneSpec)):
            v = [v]
        normalized = []
        for item in v:
            if isinstance(item, str):
                normalized.append({"field": item, "target": item})
            elif isinstance(item, (tuple, list)) and len(item) == 2:
                normalized.append({"field": item[0], "target": item[1]})
            else:
                normalized.append(item)
        return tuple(normalized)

    @field_validator(
        "payer",
        "bump_field",
        "token_mint",
        "token_authority",
        "token_program",
        "mint_authority",
        "mint_freeze_authority",
        "mint_token_program",
        "close",
    )
    @classmethod
    def validate_account_names(cls, v: str | None, info: ValidationInfo) -> str | None:
        return _check_name(v, info.field_name)

    @field_validator("owner_expr", "address_expr", "constraint", "space_expr")
    @classmethod
    def validate_expression_text(cls, v: str | None, info: ValidationInfo) -> str | None:
        if v is None:
            return None
        if not v.strip():
            raise ValueError(f"{info.field_name} must not be empty")
        if info.field_name != "space_expr":
            # Syntax errors propagate as ExpressionSyntaxError
            parse_expression(v)
        return v

    # ------------------------------------------------------------------
    # Conflict checks
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_conflicts(self) -> "ConstraintSet":
        def conflict(message: str, *options: str) -> ConstraintConfigError:
            return ConstraintConfigError(message, details={"options": list(options)})

        if (self.bump or self.bump_field or self.seeds_program) and self.seeds is None:
            raise conflict("bump, bump_field and seeds_program require seeds", "bump", "seeds")
        if self.seeds_program is not None and (self.init or self.init_if_needed):
            raise conflict("seeds_program cannot be used with init", "seeds_program", "init")

        if self.init and self.init_if_needed:
            raise conflict("init and init_if_needed are mutually exclusive", "init")
        if (self.init or self.init_if_needed) and self.payer is None:
            raise conflict("init and init_if_needed require payer", "init", "payer")
        if self.zero and (self.init or self.init_if_needed):
            raise conflict("zero cannot be combined with init", "zero", "init")

        if self.executable:
            clashing = [
                name
                for name in ("mut", "signer", "init", "init_if_needed")
                if getattr(self, name)
            ]
            if self.close is not None:
                clashing.append("close")
            if self.realloc is not None:
                clashing.append("realloc")
            if clashing:
                raise conflict(
                    f"executable cannot be combined with {', '.join(clashing)}",
                    "executable",
                    *clashing,
                )

        has_token = any(getattr(self, name) is not None for name in TOKEN_GROUP)
        has_mint = any(getattr(self, name) is not None for name in MINT_GROUP)
        if self.associated_token is not None:
            cfg = self.associated_token
            if cfg.mint is None or cfg.authority is None:
                raise conflict(
                    "associated_token requires both mint and authority", "associated_token"
                )
            if self.seeds is not None:
                raise conflict("associated_token cannot be combined with seeds", "seeds")
            if has_token or has_mint:
                raise conflict(
                    "associated_token cannot be combined with token or mint constraints",
                    "associated_token",
                )
        if has_token and has_mint:
            raise conflict("token and mint constraints are mutually exclusive", "token", "mint")

        for first, second in (
            ("owner", "owner_expr"),
            ("address", "address_expr"),
            ("space", "space_expr"),
        ):
            if getattr(self, first) is not None and getattr(self, second) is not None:
                raise conflict(f"{first} and {second} are mutually exclusive", first, second)

        return self

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def build(cls, **options: Any) -> "ConstraintSet":
        """
        Build a ConstraintSet, rejecting invalid combinations.

        Raises:
            ConstraintConfigError: On conflicting, incomplete or mistyped options
            ExpressionSyntaxError: If an expression option does not parse

        Example:
            >>> ConstraintSet.build(mut=True, has_one=["authority"])
            >>> ConstraintSet.build(executable=True, mut=True)  # Raises
        """
        try:
            return cls(**options)
        except ValidationError as exc:
            errors = [
                {"option": ".".join(str(p) for p in err["loc"]), "error": err["msg"]}
                for err in exc.errors()
            ]
            first = errors[0] if errors else {"option": "?", "error": str(exc)}
            raise ConstraintConfigError(
                f"Invalid constraint option '{first['option']}': {first['error']}",
                details={"errors": errors},
            ) from exc

    def is_set(self, option: str) -> bool:
        value = getattr(self, option)
        return not (value is None or value is False or value == ())

    def options(self) -> dict[str, Any]:
        """The options that differ from their defaults."""
        return {
            name: getattr(self, name) for name in type(self).model_fields if self.is_set(name)
        }

    def extend(self, **options: Any) -> "ConstraintSet":
        """
        Return a new set with extra options merged in.

        Raises:
            ConstraintConfigError: If an option is already set, or the merged
                set is invalid
        """
        for name in options:
            if name not in type(self).model_fields:
                raise ConstraintConfigError(
                    f"Unknown constraint option '{name}'", details={"option": name}
                )
            if self.is_set(name):
                raise ConstraintConfigError(
                    f"Constraint option '{name}' already set", details={"option": name}
                )
        merged = self.options()
        merged.update(options)
        return ConstraintSet.build(**merged)

    # ------------------------------------------------------------------
    # Derived flags
    # ------------------------------------------------------------------

    @property
    def is_init(self) -> bool:
        return self.init or self.init_if_needed

    @property
    def has_token_constraints(self) -> bool:
        return self.token_mint is not None or self.token_authority is not None

    @property
    def has_mint_constraints(self) -> bool:
        return (
            self.mint_authority is not None
            or self.mint_freeze_authority is not None
            or self.mint_decimals is not None
        )

    @property
    def referenced_accounts(self) -> list[str]:
        """Sibling account names this policy depends on, in check order."""
        names: list[str] = []
        for spec in self.seeds or ():
            if isinstance(spec, (AccountSeed, BumpSeed)):
                names.append(spec.name)
        names.extend(h.target for h in self.has_one)
        for name in (self.payer, self.close, self.realloc.payer if self.realloc else None):
            if name is not None:
                names.append(name)
        if self.associated_token is not None:
            cfg = self.associated_token
            names.extend(n for n in (cfg.mint, cfg.authority, cfg.token_program) if n)
        for name in TOKEN_GROUP + MINT_GROUP:
            value = getattr(self, name)
            if isinstance(value, str):
                names.append(value)
        return list(dict.fromkeys(names))


_SPACE_TERM_RE = re.compile(r"^(\d+|[A-Za-z_][A-Za-z0-9_]*(::[A-Za-z_][A-Za-z0-9_]*)*)$")


def resolve_space_expr(expr: str, constants: Mapping[str, int]) -> int:
    """
    Evaluate a space expression: integer literals and named constants joined
    by ``+`` and ``*``. ``Type::NAME`` resolves by its last segment.

    Example:
        >>> resolve_space_expr("8 + Vault::INIT_SPACE", {"INIT_SPACE": 72})
        80

    Raises:
        ConstraintConfigError: On malformed terms or unknown constants
    """
    total = 0
    for term in expr.split("+"):
        product = 1
        for factor in term.split("*"):
            factor = factor.strip()
            if not _SPACE_TERM_RE.match(factor):
                raise ConstraintConfigError(
                    f"Malformed space expression '{expr}'",
                    details={"space_expr": expr, "term": factor},
                )
            if factor.isdigit():
                product *= int(factor)
                continue
            name = factor.split("::")[-1]
            if name not in constants:
                raise ConstraintConfigError(
                    f"Unknown constant '{factor}' in space expression '{expr}'",
                    details={"space_expr": expr, "constant": factor},
                )
            product *= constants[name]
        total += product
    return total
