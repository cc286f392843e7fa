"""
Domain enums for the account validation core.

These enums give type-safe names to the expression language's operators and
functions, to the value kinds the shape checker reasons about, and to the
stable numeric error codes surfaced to the instruction handler.
"""

from enum import Enum, IntEnum


class ValueKind(str, Enum):
    """Kind of a runtime or static value in the expression language."""

    PUBKEY = "PUBKEY"
    INT = "INT"
    BOOL = "BOOL"
    BYTES = "BYTES"
    INVALID = "INVALID"


class UnaryOp(str, Enum):
    """Prefix operators."""

    NOT = "!"
    NEG = "-"


class BinaryOp(str, Enum):
    """
    Infix operators, grouped by precedence level.

    The string value is the exact token used in expression text.
    """

    OR = "||"
    AND = "&&"
    EQ = "=="
    NE = "!="
    GT = ">"
    GE = ">="
    LT = "<"
    LE = "<="
    ADD = "+"
    SUB = "-"
    MUL = "*"
    DIV = "/"
    MOD = "%"

    @property
    def is_logical(self) -> bool:
        return self in (BinaryOp.AND, BinaryOp.OR)

    @property
    def is_equality(self) -> bool:
        return self in (BinaryOp.EQ, BinaryOp.NE)

    @property
    def is_ordering(self) -> bool:
        return self in (BinaryOp.GT, BinaryOp.GE, BinaryOp.LT, BinaryOp.LE)

    @property
    def is_arithmetic(self) -> bool:
        return self in (BinaryOp.ADD, BinaryOp.SUB, BinaryOp.MUL, BinaryOp.DIV, BinaryOp.MOD)


class Function(str, Enum):
    """Built-in functions callable from expressions."""

    LEN = "len"
    ABS = "abs"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    CONTAINS = "contains"
    STARTS_WITH_CI = "starts_with_ci"
    ENDS_WITH_CI = "ends_with_ci"
    CONTAINS_CI = "contains_ci"
    IS_EMPTY = "is_empty"
    MIN = "min"
    MAX = "max"
    CLAMP = "clamp"
    AS_INT = "as_int"
    AS_BYTES = "as_bytes"

    @property
    def arity(self) -> int:
        return FUNCTION_ARITY[self]


FUNCTION_ARITY = {
    Function.LEN: 1,
    Function.ABS: 1,
    Function.STARTS_WITH: 2,
    Function.ENDS_WITH: 2,
    Function.CONTAINS: 2,
    Function.STARTS_WITH_CI: 2,
    Function.ENDS_WITH_CI: 2,
    Function.CONTAINS_CI: 2,
    Function.IS_EMPTY: 1,
    Function.MIN: 2,
    Function.MAX: 2,
    Function.CLAMP: 3,
    Function.AS_INT: 1,
    Function.AS_BYTES: 1,
}

# Byte-string predicates taking (haystack, needle)
BYTES_PREDICATES = frozenset(
    {
        Function.STARTS_WITH,
        Function.ENDS_WITH,
        Function.CONTAINS,
        Function.STARTS_WITH_CI,
        Function.ENDS_WITH_CI,
        Function.CONTAINS_CI,
    }
)


class ValidationOutcome(str, Enum):
    """Outcome label recorded for each validation run."""

    PASSED = "passed"
    FAILED = "failed"


class ErrorCode(IntEnum):
    """
    Stable numeric error codes reported by the validation pipeline.

    Numbering follows the host framework: 100-series for instruction
    dispatch, 2000-series for constraint violations, 3000-series for
    account-level failures. Program-defined errors start at 6000.
    """

    INSTRUCTION_MISSING = 100
    INSTRUCTION_FALLBACK_NOT_FOUND = 101
    INSTRUCTION_DID_NOT_DESERIALIZE = 102
    INSTRUCTION_DID_NOT_SERIALIZE = 103

    CONSTRAINT_MUT = 2000
    CONSTRAINT_HAS_ONE = 2001
    CONSTRAINT_SIGNER = 2002
    CONSTRAINT_RAW = 2003
    CONSTRAINT_OWNER = 2004
    CONSTRAINT_ADDRESS = 2005
    CONSTRAINT_SEEDS = 2006
    CONSTRAINT_EXECUTABLE = 2007
    CONSTRAINT_STATE = 2008
    CONSTRAINT_ASSOCIATED = 2009
    CONSTRAINT_ASSOCIATED_INIT = 2010
    CONSTRAINT_CLOSE = 2011
    CONSTRAINT_RENT_EXEMPT = 2012
    CONSTRAINT_ZERO = 2013
    CONSTRAINT_TOKEN_MINT = 2014
    CONSTRAINT_TOKEN_OWNER = 2015
    CONSTRAINT_MINT_MINT_AUTHORITY = 2016
    CONSTRAINT_MINT_FREEZE_AUTHORITY = 2017
    CONSTRAINT_MINT_DECIMALS = 2018
    CONSTRAINT_SPACE = 2019
    CONSTRAINT_ACCOUNT_IS_NONE = 2020
    CONSTRAINT_DUPLICATE_MUTABLE_ACCOUNT = 2040
    CONSTRAINT_REALLOC = 2042

    ACCOUNT_DISCRIMINATOR_MISMATCH = 3000
    ACCOUNT_DISCRIMINATOR_NOT_FOUND = 3001
    ACCOUNT_NOT_INITIALIZED = 3002
    ACCOUNT_NOT_PROGRAM_DATA = 3003
    ACCOUNT_NOT_ASSOCIATED_TOKEN_ACCOUNT = 3004
    ACCOUNT_OWNED_BY_WRONG_PROGRAM = 3005
    INVALID_PROGRAM_ID = 3006
    INVALID_PROGRAM_EXECUTABLE = 3007
    ACCOUNT_DID_NOT_DESERIALIZE = 3008
    ACCOUNT_DID_NOT_SERIALIZE = 3009
    ACCOUNT_NOT_SYSTEM_OWNED = 3010
    ACCOUNT_DUPLICATE_REALLOCS = 3011
    ACCOUNT_REALLOC_EXCEEDS_LIMIT = 3012
    ACCOUNT_SYSVAR_MISMATCH = 3013
    ACCOUNT_NOT_ENOUGH_ACCOUNT_KEYS = 3014
    ACCOUNT_NOT_RENT_EXEMPT = 3015
    ACCOUNT_ALREADY_INITIALIZED = 3016

    @property
    def message(self) -> str:
        """Human-readable message for this code."""
        return ERROR_MESSAGES[self]

    @property
    def label(self) -> str:
        """CamelCase name used in logs and metrics, e.g. ``ConstraintMut``."""
        return "".join(part.capitalize() for part in self.name.split("_"))


# Program-defined error codes start here
CUSTOM_ERROR_BASE = 6000


def custom_error_code(offset: int) -> int:
    """Return the numeric code for the program-defined error at ``offset``."""
    if offset < 0:
        raise ValueError(f"custom error offset must be non-negative, got {offset}")
    return CUSTOM_ERROR_BASE + offset


ERROR_MESSAGES = {
    ErrorCode.INSTRUCTION_MISSING: "8-byte instruction identifier not found",
    ErrorCode.INSTRUCTION_FALLBACK_NOT_FOUND: "Fallback functions are not supported",
    ErrorCode.INSTRUCTION_DID_NOT_DESERIALIZE: "Instruction data could not be deserialized",
    ErrorCode.INSTRUCTION_DID_NOT_SERIALIZE: "Instruction data could not be serialized",
    ErrorCode.CONSTRAINT_MUT: "A mut constraint was violated",
    ErrorCode.CONSTRAINT_HAS_ONE: "A has_one constraint was violated",
    ErrorCode.CONSTRAINT_SIGNER: "A signer constraint was violated",
    ErrorCode.CONSTRAINT_RAW: "A raw constraint was violated",
    ErrorCode.CONSTRAINT_OWNER: "An owner constraint was violated",
    ErrorCode.CONSTRAINT_ADDRESS: "An address constraint was violated",
    ErrorCode.CONSTRAINT_SEEDS: "A seeds constraint was violated",
    ErrorCode.CONSTRAINT_EXECUTABLE: "An executable constraint was violated",
    ErrorCode.CONSTRAINT_STATE: "Deprecated state constraint",
    ErrorCode.CONSTRAINT_ASSOCIATED: "An associated constraint was violated",
    ErrorCode.CONSTRAINT_ASSOCIATED_INIT: "An associated init constraint was violated",
    ErrorCode.CONSTRAINT_CLOSE: "A close constraint was violated",
    ErrorCode.CONSTRAINT_RENT_EXEMPT: "A rent exempt constraint was violated",
    ErrorCode.CONSTRAINT_ZERO: "A zero constraint was violated",
    ErrorCode.CONSTRAINT_TOKEN_MINT: "A token mint constraint was violated",
    ErrorCode.CONSTRAINT_TOKEN_OWNER: "A token owner constraint was violated",
    ErrorCode.CONSTRAINT_MINT_MINT_AUTHORITY: "A mint mint authority constraint was violated",
    ErrorCode.CONSTRAINT_MINT_FREEZE_AUTHORITY: "A mint freeze authority constraint was violated",
    ErrorCode.CONSTRAINT_MINT_DECIMALS: "A mint decimals constraint was violated",
    ErrorCode.CONSTRAINT_SPACE: "A space constraint was violated",
    ErrorCode.CONSTRAINT_ACCOUNT_IS_NONE: "A required account is not owned by this program",
    ErrorCode.CONSTRAINT_DUPLICATE_MUTABLE_ACCOUNT: (
        "A duplicate mutable account constraint was violated"
    ),
    ErrorCode.CONSTRAINT_REALLOC: "A realloc constraint was violated",
    ErrorCode.ACCOUNT_DISCRIMINATOR_MISMATCH: "Account discriminator did not match",
    ErrorCode.ACCOUNT_DISCRIMINATOR_NOT_FOUND: "Account discriminator not found",
    ErrorCode.ACCOUNT_NOT_INITIALIZED: "Account was not initialized",
    ErrorCode.ACCOUNT_NOT_PROGRAM_DATA: "Account is not a program data account",
    ErrorCode.ACCOUNT_NOT_ASSOCIATED_TOKEN_ACCOUNT: "Account is not an associated token account",
    ErrorCode.ACCOUNT_OWNED_BY_WRONG_PROGRAM: "Account is owned by wrong program",
    ErrorCode.INVALID_PROGRAM_ID: "Invalid program id",
    ErrorCode.INVALID_PROGRAM_EXECUTABLE: "Invalid program executable",
    ErrorCode.ACCOUNT_DID_NOT_DESERIALIZE: "Account data could not be deserialized",
    ErrorCode.ACCOUNT_DID_NOT_SERIALIZE: "Account data could not be serialized",
    ErrorCode.ACCOUNT_NOT_SYSTEM_OWNED: "Account is not owned by system program",
    ErrorCode.ACCOUNT_DUPLICATE_REALLOCS: "Account has duplicate reallocations",
    ErrorCode.ACCOUNT_REALLOC_EXCEEDS_LIMIT: "Account reallocation exceeds limit",
    ErrorCode.ACCOUNT_SYSVAR_MISMATCH: "Account is not expected sysvar",
    ErrorCode.ACCOUNT_NOT_ENOUGH_ACCOUNT_KEYS: "Not enough account keys provided",
    ErrorCode.ACCOUNT_NOT_RENT_EXEMPT: "Program not rent exempt",
    ErrorCode.ACCOUNT_ALREADY_INITIALIZED: "Account is already initialized",
}
