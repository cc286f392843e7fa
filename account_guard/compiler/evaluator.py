"""
Evaluation of constraint expressions against live values.

The evaluator never raises for value-level problems: a missing field, an
absent optional, division by zero, integer overflow, or a kind mismatch in
an unchecked AST all produce Invalid, which the caller treats as failure.
"""

from collections.abc import Mapping
from typing import Any

from solders.pubkey import Pubkey

from account_guard.compiler.ast import (
    FALSE,
    INVALID,
    TRUE,
    AccessPath,
    BinaryNode,
    CallNode,
    Node,
    UnaryNode,
    Value,
    ValueNode,
)
from account_guard.domain.accounts import AccountHandle, TypedAccount
from account_guard.domain.enums import BinaryOp, Function, UnaryOp, ValueKind
from account_guard.domain.shape import LAMPORTS_FIELD, OWNER_FIELD

_MISSING = object()


def _field_of(obj: Any, name: str) -> Any:
    if isinstance(obj, TypedAccount):
        if name in obj.fields:
            return obj.fields[name]
        obj = obj.handle
    if isinstance(obj, AccountHandle):
        if name == OWNER_FIELD:
            return obj.owner_program
        if name == LAMPORTS_FIELD:
            return obj.balance
        return _MISSING
    if isinstance(obj, Mapping):
        return obj.get(name, _MISSING)
    return _MISSING


def resolve_path(access: AccessPath, scope: Mapping[str, Any], self_name: str | None) -> Value:
    """
    Resolve an access path against a live scope.

    The first segment is looked up in ``scope``; if absent the whole path is
    walked from the ``self_name`` entry instead.
    """
    first = access.parts[0]
    if first in scope:
        current = scope[first]
        rest = access.parts[1:]
    elif self_name is not None and self_name in scope:
        current = scope[self_name]
        rest = access.parts
    else:
        return INVALID

    for segment in rest:
        if current is None:
            return INVALID
        current = _field_of(current, segment)
        if current is _MISSING:
            return INVALID

    if current is None:
        return INVALID
    if access.use_key:
        if isinstance(current, (TypedAccount, AccountHandle)):
            return Value.pubkey(current.public_key)
        if isinstance(current, Pubkey):
            return Value.pubkey(current)
        return INVALID
    return Value.from_python(current)


def _truncating_div(a: int, b: int) -> int:
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b >= 0) else -q


class Evaluator:
    """Walks an AST against one scope."""

    def __init__(self, scope: Mapping[str, Any], self_name: str | None = None) -> None:
        self.scope = scope
        self.self_name = self_name

    def evaluate(self, node: Node) -> Value:
        match node:
            case ValueNode(operand=AccessPath() as access):
                return resolve_path(access, self.scope, self.self_name)
            case ValueNode(operand=value):
                return value
            case UnaryNode(op=op, operand=operand):
                return self._unary(op, self.evaluate(operand))
            case BinaryNode(op=op, left=left, right=right):
                return self._binary(op, left, right)
            case CallNode(function=function, args=args):
                return self._call(function, [self.evaluate(arg) for arg in args])
        return INVALID

    def _unary(self, op: UnaryOp, value: Value) -> Value:
        if op == UnaryOp.NOT:
            if value.kind != ValueKind.BOOL:
                return INVALID
            return FALSE if value.data else TRUE
        if value.kind != ValueKind.INT:
            return INVALID
        return Value.integer(-value.data)

    def _binary(self, op: BinaryOp, left_node: Node, right_node: Node) -> Value:
        left = self.evaluate(left_node)

        # Short-circuit: the right side is only evaluated when it decides the result
        if op == BinaryOp.AND:
            if left.kind != ValueKind.BOOL:
                return INVALID
            if not left.data:
                return FALSE
            right = self.evaluate(right_node)
            return right if right.kind == ValueKind.BOOL else INVALID
        if op == BinaryOp.OR:
            if left.kind != ValueKind.BOOL:
                return INVALID
            if left.data:
                return TRUE
            right = self.evaluate(right_node)
            return right if right.kind == ValueKind.BOOL else INVALID

        right = self.evaluate(right_node)
        if left.is_invalid or right.is_invalid:
            return INVALID

        if op.is_equality:
            if left.kind != right.kind:
                return INVALID
            equal = left.data == right.data
            return Value.boolean(equal if op == BinaryOp.EQ else not equal)

        if left.kind != ValueKind.INT or right.kind != ValueKind.INT:
            return INVALID
        a, b = left.data, right.data
        match op:
            case BinaryOp.GT:
                return Value.boolean(a > b)
            case BinaryOp.GE:
                return Value.boolean(a >= b)
            case BinaryOp.LT:
                return Value.boolean(a < b)
            case BinaryOp.LE:
                return Value.boolean(a <= b)
            case BinaryOp.ADD:
                return Value.integer(a + b)
            case BinaryOp.SUB:
                return Value.integer(a - b)
            case BinaryOp.MUL:
                return Value.integer(a * b)
            case BinaryOp.DIV:
                if b == 0:
                    return INVALID
                return Value.integer(_truncating_div(a, b))
            case BinaryOp.MOD:
                if b == 0:
                    return INVALID
                return Value.integer(a - b * _truncating_div(a, b))
        return INVALID

    def _call(self, function: Function, args: list[Value]) -> Value:
        if any(arg.is_invalid for arg in args):
            return INVALID

        kinds = [arg.kind for arg in args]
        data = [arg.data for arg in args]
        all_int = all(k == ValueKind.INT for k in kinds)
        all_bytes = all(k == ValueKind.BYTES for k in kinds)

        match function:
            case Function.LEN:
                return Value.integer(len(data[0])) if all_bytes else INVALID
            case Function.IS_EMPTY:
                return Value.boolean(len(data[0]) == 0) if all_bytes else INVALID
            case Function.STARTS_WITH:
                return Value.boolean(data[0].startswith(data[1])) if all_bytes else INVALID
            case Function.ENDS_WITH:
                return Value.boolean(data[0].endswith(data[1])) if all_bytes else INVALID
            case Function.CONTAINS:
                return Value.boolean(data[1] in data[0]) if all_bytes else INVALID
            case Function.STARTS_WITH_CI:
                if not all_bytes:
                    return INVALID
                return Value.boolean(data[0].lower().startswith(data[1].lower()))
            case Function.ENDS_WITH_CI:
                if not all_bytes:
                    return INVALID
                return Value.boolean(data[0].lower().endswith(data[1].lower()))
            case Function.CONTAINS_CI:
                if not all_bytes:
                    return INVALID
                return Value.boolean(data[1].lower() in data[0].lower())
            case Function.ABS:
                return Value.integer(abs(data[0])) if all_int else INVALID
            case Function.MIN:
                return Value.integer(min(data)) if all_int else INVALID
            case Function.MAX:
                return Value.integer(max(data)) if all_int else INVALID
            case Function.CLAMP:
                if not all_int:
                    return INVALID
                x, lo, hi = data
                if lo > hi:
                    return INVALID
                return Value.integer(min(max(x, lo), hi))
            case Function.AS_INT:
                return args[0] if all_int else INVALID
            case Function.AS_BYTES:
                if kinds[0] == ValueKind.BYTES:
                    return args[0]
                if kinds[0] == ValueKind.PUBKEY:
                    return Value.bytes_(bytes(data[0]))
                return INVALID
        return INVALID


def evaluate(node: Node, scope: Mapping[str, Any], self_name: str | None = None) -> Value:
    """
    Evaluate an AST against a live scope.

    Args:
        node: AST root
        scope: Names in scope (accounts, records, plain values)
        self_name: Entry whose fields resolve unqualified paths

    Returns:
        The resulting Value; Invalid on any value-level failure
    """
    return Evaluator(scope, self_name).evaluate(node)


def evaluate_bool(node: Node, scope: Mapping[str, Any], self_name: str | None = None) -> bool:
    """True only when the expression evaluates to Boolean(true)."""
    return evaluate(node, scope, self_name).is_true
