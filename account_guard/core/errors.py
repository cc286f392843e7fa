"""
Domain-specific exceptions for account validation.

Two families:

- ConfigurationError and its subclasses are setup-time failures. They are
  raised while a program's account policy is being declared (conflicting
  constraint options, malformed or ill-typed expressions, bad layouts) and
  are fatal to program construction.
- AccountValidationError is the runtime outcome of a failed validation run.
  It carries the stable ErrorCode the instruction handler surfaces.
"""

from typing import Any

from account_guard.domain.enums import ErrorCode


class GuardError(Exception):
    """Base exception for all account guard errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(GuardError):
    """
    Raised when a policy declaration is invalid.

    Examples:
    - Conflicting constraint options
    - Malformed expression text
    - Expression that does not type-check against the context shape
    """

    pass


class ConstraintConfigError(ConfigurationError):
    """
    Raised when a ConstraintSet cannot be built.

    Examples:
    - ``executable`` combined with ``mut``
    - ``init`` without ``payer``
    - ``has_one`` naming a field that is not a pubkey
    - Option set twice when extending a set
    """

    pass


class ExpressionSyntaxError(ConfigurationError):
    """
    Raised when expression text cannot be parsed.

    ``position`` is the zero-based character offset of the offending token.
    """

    def __init__(
        self,
        message: str,
        position: int,
        source: str = "",
        details: dict[str, Any] | None = None,
    ):
        self.position = position
        self.source = source
        merged = {"position": position, "source": source}
        merged.update(details or {})
        super().__init__(message, details=merged)


class ExpressionTypeError(ConfigurationError):
    """
    Raised when an expression is ill-typed against a context shape.

    Examples:
    - Comparing a pubkey with an integer
    - Arithmetic on a boolean
    - Access path that does not resolve
    - Expression that does not produce a boolean
    """

    pass


class LayoutError(ConfigurationError):
    """
    Raised when a record layout is malformed or a value cannot be encoded.

    Examples:
    - Duplicate field names
    - Unknown field type
    - Integer out of range for its field width
    """

    pass


class PdaDerivationError(GuardError):
    """Raised when a program-derived address cannot be computed from its seeds."""

    pass


class AccountValidationError(GuardError):
    """
    Raised when an account fails a validation step.

    The pipeline stops at the first failing step, so exactly one code is
    reported per run.
    """

    def __init__(
        self,
        code: ErrorCode,
        account: str | None = None,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.code = code
        self.account = account
        merged = {"code": int(code), "error": code.label}
        if account is not None:
            merged["account"] = account
        merged.update(details or {})
        text = message or code.message
        if account is not None:
            text = f"{text} (account: {account})"
        super().__init__(text, details=merged)


def error_code_of(error: Exception) -> int | None:
    """
    Get the numeric error code for an exception raised by a validation run.

    Args:
        error: The exception instance

    Returns:
        The ErrorCode value, or None for errors that carry no code
    """
    if isinstance(error, AccountValidationError):
        return int(error.code)
    return None
