"""
Static shape checking for constraint expressions.

Infers the value kind of every AST node against a ContextShape and rejects
ill-typed expressions before any account is validated:

- Access paths must resolve to a scalar field (or ``.key()`` of an account
  or pubkey field)
- Logical operators take and yield booleans
- Equality needs both sides of the same kind
- Ordering and arithmetic take integers
- Function arguments match their declared kinds
- The whole expression yields a boolean

This check is the gatekeeper that keeps kind mismatches out of evaluation.
"""

import logging

from account_guard.compiler.ast import AccessPath, BinaryNode, CallNode, Node, UnaryNode, ValueNode
from account_guard.core.errors import ExpressionTypeError
from account_guard.domain.enums import BYTES_PREDICATES, BinaryOp, Function, UnaryOp, ValueKind
from account_guard.domain.shape import (
    AccountShape,
    ContextShape,
    RecordShape,
    ScalarShape,
    Shape,
)

logger = logging.getLogger(__name__)

# (argument kinds, result kind) for functions with a single signature
_SIGNATURES: dict[Function, tuple[tuple[ValueKind, ...], ValueKind]] = {
    Function.LEN: ((ValueKind.BYTES,), ValueKind.INT),
    Function.ABS: ((ValueKind.INT,), ValueKind.INT),
    Function.IS_EMPTY: ((ValueKind.BYTES,), ValueKind.BOOL),
    Function.MIN: ((ValueKind.INT, ValueKind.INT), ValueKind.INT),
    Function.MAX: ((ValueKind.INT, ValueKind.INT), ValueKind.INT),
    Function.CLAMP: ((ValueKind.INT, ValueKind.INT, ValueKind.INT), ValueKind.INT),
    Function.AS_INT: ((ValueKind.INT,), ValueKind.INT),
}
for _predicate in BYTES_PREDICATES:
    _SIGNATURES[_predicate] = ((ValueKind.BYTES, ValueKind.BYTES), ValueKind.BOOL)


def check_expression(root: Node, shape: ContextShape) -> None:
    """
    Check that an expression is well-typed and yields a boolean.

    Args:
        root: AST root
        shape: Static shape of the evaluation scope

    Raises:
        ExpressionTypeError: With the JSON-style path of the offending node

    Example:
        >>> shape = context_shape_from_sample({"a": {"value": 10}, "b": 3})
        >>> check_expression(parse_expression("a.value > b").root, shape)  # Passes
        >>> check_expression(parse_expression("a.value + b").root, shape)  # Raises
    """
    kind = infer_kind(root, shape)
    if kind != ValueKind.BOOL:
        raise ExpressionTypeError(
            f"Expression must produce a boolean, got {kind.value}",
            details={"path": "$", "kind": kind.value},
        )


def infer_kind(node: Node, shape: ContextShape, path: str = "$") -> ValueKind:
    """Infer the value kind of ``node``; raises ExpressionTypeError on violations."""
    match node:
        case ValueNode(operand=AccessPath() as access):
            return resolve_path_kind(access, shape, path)
        case ValueNode(operand=value):
            if value.is_invalid:
                raise ExpressionTypeError(
                    f"Invalid literal at {path}", details={"path": path}
                )
            return value.kind
        case UnaryNode(op=op, operand=operand):
            return _infer_unary(op, operand, shape, path)
        case BinaryNode(op=op, left=left, right=right):
            return _infer_binary(op, left, right, shape, path)
        case CallNode(function=function, args=args):
            return _infer_call(function, args, shape, path)
    raise ExpressionTypeError(f"Unknown node at {path}", details={"path": path})


def _require(kind: ValueKind, expected: ValueKind, what: str, path: str) -> None:
    if kind != expected:
        raise ExpressionTypeError(
            f"{what} at {path} requires {expected.value}, got {kind.value}",
            details={"path": path, "expected": expected.value, "actual": kind.value},
        )


def _infer_unary(op: UnaryOp, operand: Node, shape: ContextShape, path: str) -> ValueKind:
    kind = infer_kind(operand, shape, f"{path}.operand")
    if op == UnaryOp.NOT:
        _require(kind, ValueKind.BOOL, "Operator '!'", path)
        return ValueKind.BOOL
    _require(kind, ValueKind.INT, "Unary '-'", path)
    return ValueKind.INT


def _infer_binary(
    op: BinaryOp, left: Node, right: Node, shape: ContextShape, path: str
) -> ValueKind:
    left_kind = infer_kind(left, shape, f"{path}.left")
    right_kind = infer_kind(right, shape, f"{path}.right")

    if op.is_logical:
        _require(left_kind, ValueKind.BOOL, f"Operator '{op.value}'", f"{path}.left")
        _require(right_kind, ValueKind.BOOL, f"Operator '{op.value}'", f"{path}.right")
        return ValueKind.BOOL

    if op.is_equality:
        if left_kind != right_kind:
            raise ExpressionTypeError(
                f"Operator '{op.value}' at {path} compares {left_kind.value} "
                f"with {right_kind.value}",
                details={"path": path, "left": left_kind.value, "right": right_kind.value},
            )
        return ValueKind.BOOL

    _require(left_kind, ValueKind.INT, f"Operator '{op.value}'", f"{path}.left")
    _require(right_kind, ValueKind.INT, f"Operator '{op.value}'", f"{path}.right")
    return ValueKind.BOOL if op.is_ordering else ValueKind.INT


def _infer_call(
    function: Function, args: tuple[Node, ...], shape: ContextShape, path: str
) -> ValueKind:
    if len(args) != function.arity:
        raise ExpressionTypeError(
            f"{function.value}() at {path} takes {function.arity} argument(s), got {len(args)}",
            details={"path": path, "function": function.value},
        )
    kinds = [infer_kind(arg, shape, f"{path}.args[{i}]") for i, arg in enumerate(args)]

    if function == Function.AS_BYTES:
        if kinds[0] not in (ValueKind.BYTES, ValueKind.PUBKEY):
            raise ExpressionTypeError(
                f"as_bytes() at {path} requires BYTES or PUBKEY, got {kinds[0].value}",
                details={"path": f"{path}.args[0]", "actual": kinds[0].value},
            )
        return ValueKind.BYTES

    expected, result = _SIGNATURES[function]
    for i, (kind, want) in enumerate(zip(kinds, expected, strict=True)):
        _require(kind, want, f"{function.value}()", f"{path}.args[{i}]")
    return result


def resolve_path_kind(access: AccessPath, shape: ContextShape, path: str = "$") -> ValueKind:
    """
    Resolve an access path to the kind of value it produces.

    The first segment names a context entry; if no entry has that name the
    path is resolved against the fields of the ``self`` entry.
    """
    rendered = access.render()
    first = access.parts[0]
    current: Shape | None = shape.get(first)
    rest = access.parts[1:]
    if current is None:
        self_shape = shape.get(shape.self_name) if shape.self_name else None
        if self_shape is None:
            raise ExpressionTypeError(
                f"Unknown name '{first}' in '{rendered}' at {path}",
                details={"path": path, "access_path": rendered, "known": shape.names},
            )
        current = self_shape
        rest = access.parts

    for segment in rest:
        if isinstance(current, (RecordShape, AccountShape)):
            found = current.get(segment)
        else:
            found = None
        if found is None:
            raise ExpressionTypeError(
                f"'{rendered}' at {path}: no field '{segment}'",
                details={"path": path, "access_path": rendered, "segment": segment},
            )
        current = found

    if access.use_key:
        if isinstance(current, AccountShape):
            return ValueKind.PUBKEY
        if isinstance(current, ScalarShape) and current.kind == ValueKind.PUBKEY:
            return ValueKind.PUBKEY
        raise ExpressionTypeError(
            f"'{rendered}' at {path}: .key() needs an account or pubkey field",
            details={"path": path, "access_path": rendered},
        )

    if isinstance(current, ScalarShape):
        return current.kind
    raise ExpressionTypeError(
        f"'{rendered}' at {path} names a record, not a value",
        details={"path": path, "access_path": rendered},
    )
