"""
Canonical renderings of constraint expressions.

Two forms:
- Canonical text: the expression re-rendered with single spaces around
  binary operators and only the parentheses precedence requires. Parsing the
  canonical text yields an equivalent AST, and rendering is idempotent.
- Canonical JSON: a key-sorted JSON document of the AST, byte-for-byte
  identical for the same expression. Useful as a cache key or for diffing
  policy declarations.
"""

import json
from typing import Any

from account_guard.compiler.ast import (
    I128_MIN,
    AccessPath,
    BinaryNode,
    CallNode,
    Node,
    UnaryNode,
    Value,
    ValueNode,
)
from account_guard.domain.enums import BinaryOp, ValueKind

_PRECEDENCE = {
    BinaryOp.OR: 1,
    BinaryOp.AND: 2,
    BinaryOp.EQ: 3,
    BinaryOp.NE: 3,
    BinaryOp.GT: 3,
    BinaryOp.GE: 3,
    BinaryOp.LT: 3,
    BinaryOp.LE: 3,
    BinaryOp.ADD: 4,
    BinaryOp.SUB: 4,
    BinaryOp.MUL: 5,
    BinaryOp.DIV: 5,
    BinaryOp.MOD: 5,
}
_UNARY_PRECEDENCE = 6
_ATOM_PRECEDENCE = 7


def _precedence(node: Node) -> int:
    if isinstance(node, BinaryNode):
        return _PRECEDENCE[node.op]
    if isinstance(node, UnaryNode):
        return _UNARY_PRECEDENCE
    if isinstance(node, ValueNode) and isinstance(node.operand, Value):
        if node.operand.kind == ValueKind.INT and node.operand.data < 0:
            return _UNARY_PRECEDENCE
    return _ATOM_PRECEDENCE


def render_value(value: Value) -> str:
    """
    Render a literal value as expression text.

    Byte strings that are valid UTF-8 without a double quote render as
    string literals; anything else uses ``bytes_hex``. The smallest 128-bit
    integer renders as a parenthesized subtraction.

    Raises:
        ValueError: For Invalid, which has no textual form
    """
    match value.kind:
        case ValueKind.BOOL:
            return "true" if value.data else "false"
        case ValueKind.INT:
            if value.data == I128_MIN:
                # no positive literal for its magnitude
                return f"({I128_MIN + 1} - 1)"
            return str(value.data)
        case ValueKind.PUBKEY:
            return f'pubkey("{value.data}")'
        case ValueKind.BYTES:
            try:
                text = value.data.decode("utf-8")
            except UnicodeDecodeError:
                text = None
            if text is not None and '"' not in text:
                return f'"{text}"'
            return f'bytes_hex("{value.data.hex()}")'
    raise ValueError("Invalid has no textual form")


def render_expression(node: Node) -> str:
    """
    Render an AST as canonical expression text.

    Example:
        >>> render_expression(parse_expression("(a+b)*2>c&&!(flag)").root)
        '(a + b) * 2 > c && !flag'
    """
    match node:
        case ValueNode(operand=AccessPath() as access):
            return access.render()
        case ValueNode(operand=value):
            return render_value(value)
        case UnaryNode(op=op, operand=operand):
            inner = render_expression(operand)
            if _precedence(operand) < _UNARY_PRECEDENCE:
                inner = f"({inner})"
            return f"{op.value}{inner}"
        case BinaryNode(op=op, left=left, right=right):
            level = _PRECEDENCE[op]
            left_text = render_expression(left)
            if _precedence(left) < level:
                left_text = f"({left_text})"
            right_text = render_expression(right)
            # Same-level right operands need parentheses to keep left associativity
            if _precedence(right) <= level:
                right_text = f"({right_text})"
            return f"{left_text} {op.value} {right_text}"
        case CallNode(function=function, args=args):
            return f"{function.value}({', '.join(render_expression(arg) for arg in args)})"
    raise TypeError(f"not an AST node: {node!r}")


def _value_to_dict(value: Value) -> dict[str, Any]:
    match value.kind:
        case ValueKind.PUBKEY:
            return {"kind": value.kind.value, "value": str(value.data)}
        case ValueKind.BYTES:
            return {"kind": value.kind.value, "hex": value.data.hex()}
        case ValueKind.INVALID:
            return {"kind": value.kind.value}
    return {"kind": value.kind.value, "value": value.data}


def expression_to_dict(node: Node) -> dict[str, Any]:
    """Convert an AST to a JSON-compatible dict."""
    match node:
        case ValueNode(operand=AccessPath() as access):
            return {"path": list(access.parts), "key": access.use_key}
        case ValueNode(operand=value):
            return {"literal": _value_to_dict(value)}
        case UnaryNode(op=op, operand=operand):
            return {"unary": op.value, "operand": expression_to_dict(operand)}
        case BinaryNode(op=op, left=left, right=right):
            return {
                "binary": op.value,
                "left": expression_to_dict(left),
                "right": expression_to_dict(right),
            }
        case CallNode(function=function, args=args):
            return {"call": function.value, "args": [expression_to_dict(a) for a in args]}
    raise TypeError(f"not an AST node: {node!r}")


def canonicalize_json(obj: Any) -> dict | list | Any:
    """
    Produce a deterministic, canonical representation of a JSON object.

    Dictionary keys are sorted at every level; list order is preserved.
    """
    if isinstance(obj, dict):
        return {k: canonicalize_json(v) for k, v in sorted(obj.items())}
    elif isinstance(obj, list):
        return [canonicalize_json(item) for item in obj]
    else:
        return obj


def to_canonical_json_string(obj: Any) -> str:
    """
    Convert a Python object to a canonical JSON string.

    Example:
        >>> to_canonical_json_string({"path": ["a"], "key": False})
        '{"key":false,"path":["a"]}'
    """
    canonical = canonicalize_json(obj)
    return json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def to_canonical_json_pretty(obj: Any) -> str:
    """Pretty-printed canonical JSON, for human-readable output."""
    canonical = canonicalize_json(obj)
    return json.dumps(canonical, sort_keys=True, indent=2, ensure_ascii=False)
