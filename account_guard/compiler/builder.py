"""
Programmatic construction of constraint expressions.

Builds the same AST the parser produces, so a policy can be written in code
and still be rendered to canonical text for logs and diffs:

    >>> from account_guard.compiler.builder import key_of, path
    >>> expr = key_of("authority").eq(path("vault.authority")).and_(path("vault.amount").gt(0))
    >>> expr.render()
    'authority.key() == vault.authority && vault.amount > 0'
"""

from typing import Any

from solders.pubkey import Pubkey

from account_guard.compiler.ast import (
    AccessPath,
    BinaryNode,
    CallNode,
    Node,
    UnaryNode,
    Value,
    ValueNode,
)
from account_guard.compiler.canonicalizer import render_expression
from account_guard.compiler.parser import KEYWORDS
from account_guard.compiler.tokenizer import is_identifier
from account_guard.domain.enums import BinaryOp, Function, UnaryOp


class Expr:
    """Immutable wrapper around an AST node with chaining helpers."""

    __slots__ = ("node",)

    def __init__(self, node: Node) -> None:
        self.node = node

    def __repr__(self) -> str:
        return f"Expr({self.render()!r})"

    def render(self) -> str:
        return render_expression(self.node)

    def _binary(self, op: BinaryOp, other: Any) -> "Expr":
        return Expr(BinaryNode(op, self.node, lit(other).node))

    # Logical
    def and_(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.AND, other)

    def or_(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.OR, other)

    def not_(self) -> "Expr":
        return Expr(UnaryNode(UnaryOp.NOT, self.node))

    # Comparison
    def eq(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.EQ, other)

    def ne(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.NE, other)

    def gt(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.GT, other)

    def ge(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.GE, other)

    def lt(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.LT, other)

    def le(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.LE, other)

    # Arithmetic
    def add(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.ADD, other)

    def sub(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.SUB, other)

    def mul(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.MUL, other)

    def div(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.DIV, other)

    def mod(self, other: Any) -> "Expr":
        return self._binary(BinaryOp.MOD, other)

    def neg(self) -> "Expr":
        return Expr(UnaryNode(UnaryOp.NEG, self.node))

    __add__ = add
    __sub__ = sub
    __mul__ = mul
    __truediv__ = div
    __mod__ = mod
    __neg__ = neg


def _segments(dotted: str) -> tuple[str, ...]:
    parts = tuple(dotted.split("."))
    for part in parts:
        if not is_identifier(part):
            raise ValueError(f"malformed access path: {dotted!r}")
        if part in KEYWORDS:
            raise ValueError(f"reserved word {part!r} in access path: {dotted!r}")
    return parts


def path(dotted: str) -> Expr:
    """Access path from dotted text, e.g. ``path("vault.authority")``."""
    return Expr(ValueNode(AccessPath(_segments(dotted))))


def key_of(dotted: str) -> Expr:
    """Public key of an account (or pubkey field): ``key_of("authority")``."""
    return Expr(ValueNode(AccessPath(_segments(dotted), use_key=True)))


def lit(value: Any) -> Expr:
    """
    Literal from a Python value, or pass-through for an existing Expr.

    bool, int, Pubkey, bytes and str (as UTF-8 bytes) are accepted.
    """
    if isinstance(value, Expr):
        return value
    converted = Value.from_python(value)
    if converted.is_invalid:
        raise ValueError(f"cannot use {value!r} as an expression literal")
    return Expr(ValueNode(converted))


def lit_pubkey(key: Pubkey | str) -> Expr:
    if isinstance(key, str):
        key = Pubkey.from_string(key)
    return Expr(ValueNode(Value.pubkey(key)))


def call(function: Function | str, *args: Any) -> Expr:
    """
    Function call, e.g. ``call("len", path("vault.name"))``.

    Raises:
        ValueError: On unknown functions or wrong argument counts
    """
    function = Function(function)
    if len(args) != function.arity:
        raise ValueError(
            f"{function.value}() takes {function.arity} argument(s), got {len(args)}"
        )
    return Expr(CallNode(function, tuple(lit(arg).node for arg in args)))


def all_of(*exprs: Any) -> Expr:
    """Conjunction of one or more expressions, left-associated."""
    if not exprs:
        raise ValueError("all_of() needs at least one expression")
    result = lit(exprs[0])
    for expr in exprs[1:]:
        result = result.and_(expr)
    return result


def any_of(*exprs: Any) -> Expr:
    """Disjunction of one or more expressions, left-associated."""
    if not exprs:
        raise ValueError("any_of() needs at least one expression")
    result = lit(exprs[0])
    for expr in exprs[1:]:
        result = result.or_(expr)
    return result
