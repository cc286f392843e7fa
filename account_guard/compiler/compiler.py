"""
Compiler entry point for constraint expressions.

Compiling parses expression text, shape-checks it against the static shape
of its evaluation scope, and returns a reusable CompiledExpression. Results
are cached by (text, shape), so each distinct expression is parsed and
checked once per process no matter how many accounts it guards.

Owner and address expressions are compiled into equality constraints on the
account being validated:

- ``owner_expr = E``   becomes ``<self>.__owner == (E)``
- ``address_expr = E`` becomes ``<self>.key() == (E)``
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from account_guard.compiler.ast import (
    AccessPath,
    BinaryNode,
    Node,
    Value,
    ValueNode,
    access_paths,
)
from account_guard.compiler.canonicalizer import (
    expression_to_dict,
    render_expression,
    to_canonical_json_string,
)
from account_guard.compiler.evaluator import Evaluator
from account_guard.compiler.parser import parse_expression
from account_guard.compiler.validator import check_expression
from account_guard.core.config import settings
from account_guard.core.errors import ConfigurationError, ExpressionTypeError
from account_guard.core.observability import metrics, record_evaluation
from account_guard.domain.enums import BinaryOp
from account_guard.domain.shape import OWNER_FIELD, ContextShape

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledExpression:
    """A parsed and shape-checked expression, ready to evaluate."""

    source: str
    root: Node
    access_paths: tuple[AccessPath, ...]
    self_name: str | None = None

    @property
    def canonical(self) -> str:
        return render_expression(self.root)

    def to_json(self) -> str:
        return to_canonical_json_string(expression_to_dict(self.root))

    def evaluate(self, scope: Mapping[str, Any]) -> Value:
        return Evaluator(scope, self.self_name).evaluate(self.root)

    def check(self, scope: Mapping[str, Any]) -> bool:
        """
        Evaluate and report whether the result is Boolean(true).

        Invalid results (absent optionals, division by zero, ...) are false.
        """
        result = self.evaluate(scope)
        if result.is_invalid:
            label = "invalid"
        elif result.is_true:
            label = "true"
        else:
            label = "false"
        record_evaluation(label)
        return result.is_true


def owner_constraint(self_name: str, expr: Node) -> Node:
    return BinaryNode(BinaryOp.EQ, ValueNode(AccessPath((self_name, OWNER_FIELD))), expr)


def address_constraint(self_name: str, expr: Node) -> Node:
    return BinaryNode(BinaryOp.EQ, ValueNode(AccessPath((self_name,), use_key=True)), expr)


def _compose(kind: str, self_name: str | None, root: Node) -> Node:
    if kind == "constraint":
        return root
    if self_name is None:
        raise ConfigurationError(
            f"{kind} needs the name of the account being validated",
            details={"kind": kind},
        )
    if kind == "owner_expr":
        return owner_constraint(self_name, root)
    if kind == "address_expr":
        return address_constraint(self_name, root)
    raise ConfigurationError(f"Unknown expression kind '{kind}'", details={"kind": kind})


def _compile_uncached(source: str, shape: ContextShape, kind: str) -> CompiledExpression:
    start_time = time.perf_counter()
    status = "success"
    try:
        parsed = parse_expression(source)
        root = _compose(kind, shape.self_name, parsed.root)
        try:
            check_expression(root, shape)
        except ExpressionTypeError as exc:
            exc.details.setdefault("expression", source)
            exc.details.setdefault("kind", kind)
            raise
        compiled = CompiledExpression(
            source=source,
            root=root,
            access_paths=access_paths(root),
            self_name=shape.self_name,
        )
    except ConfigurationError as exc:
        status = "error"
        logger.warning(
            "Expression rejected",
            extra={"expression": source, "kind": kind, "error": exc.message},
        )
        raise
    finally:
        if settings.metrics_enabled:
            metrics.expression_compilations_total.labels(status=status).inc()
            metrics.expression_compile_duration_seconds.observe(time.perf_counter() - start_time)

    logger.debug(
        "Compiled expression",
        extra={"expression": source, "kind": kind, "canonical": compiled.canonical},
    )
    return compiled


@lru_cache(maxsize=settings.expression_cache_size)
def _compile_cached(source: str, shape: ContextShape, kind: str) -> CompiledExpression:
    return _compile_uncached(source, shape, kind)


def compile_expression(
    source: str, shape: ContextShape, kind: str = "constraint"
) -> CompiledExpression:
    """
    Parse and shape-check an expression for a scope.

    Args:
        source: Expression text
        shape: Static shape of the scope it will be evaluated in
        kind: ``constraint`` (used as-is), ``owner_expr`` or ``address_expr``
              (compared against the ``self`` account's owner or key)

    Returns:
        CompiledExpression, shared between calls with the same arguments

    Raises:
        ExpressionSyntaxError: If the text does not parse
        ExpressionTypeError: If the expression is ill-typed for ``shape``
    """
    return _compile_cached(source, shape, kind)


def clear_compile_cache() -> None:
    _compile_cached.cache_clear()


def compile_cache_info() -> Any:
    return _compile_cached.cache_info()
