"""
Value and AST model for constraint expressions.

Values are tagged (pubkey, int, bool, bytes, invalid). Integers are bounded
to signed 128 bits; anything outside that range becomes Invalid. Invalid
propagates through every operator and never compares equal to anything.
"""

from collections.abc import Iterator
from dataclasses import dataclass
from typing import Any, Union

from solders.pubkey import Pubkey

from account_guard.domain.enums import BinaryOp, Function, UnaryOp, ValueKind

I128_MIN = -(1 << 127)
I128_MAX = (1 << 127) - 1


@dataclass(frozen=True)
class Value:
    kind: ValueKind
    data: Pubkey | int | bool | bytes | None = None

    @classmethod
    def pubkey(cls, key: Pubkey) -> "Value":
        return cls(ValueKind.PUBKEY, key)

    @classmethod
    def integer(cls, n: int) -> "Value":
        if not I128_MIN <= n <= I128_MAX:
            return INVALID
        return cls(ValueKind.INT, n)

    @classmethod
    def boolean(cls, b: bool) -> "Value":
        return TRUE if b else FALSE

    @classmethod
    def bytes_(cls, b: bytes | bytearray) -> "Value":
        return cls(ValueKind.BYTES, bytes(b))

    @classmethod
    def from_python(cls, obj: Any) -> "Value":
        """
        Convert a decoded field value to a Value.

        bool is checked before int; str is read as UTF-8 bytes. Anything
        else (None, records, accounts) is Invalid.
        """
        if isinstance(obj, bool):
            return cls.boolean(obj)
        if isinstance(obj, int):
            return cls.integer(obj)
        if isinstance(obj, Pubkey):
            return cls.pubkey(obj)
        if isinstance(obj, (bytes, bytearray, memoryview)):
            return cls.bytes_(bytes(obj))
        if isinstance(obj, str):
            return cls.bytes_(obj.encode("utf-8"))
        return INVALID

    @property
    def is_invalid(self) -> bool:
        return self.kind == ValueKind.INVALID

    @property
    def is_true(self) -> bool:
        """True only for Boolean(true); the pipeline's pass condition."""
        return self.kind == ValueKind.BOOL and self.data is True

    def __repr__(self) -> str:
        if self.kind == ValueKind.INVALID:
            return "Value(INVALID)"
        return f"Value({self.kind.value}, {self.data!r})"


INVALID = Value(ValueKind.INVALID)
TRUE = Value(ValueKind.BOOL, True)
FALSE = Value(ValueKind.BOOL, False)


@dataclass(frozen=True)
class AccessPath:
    """Dotted field path; ``use_key`` marks a trailing ``.key()``."""

    parts: tuple[str, ...]
    use_key: bool = False

    def render(self) -> str:
        text = ".".join(self.parts)
        return f"{text}.key()" if self.use_key else text


@dataclass(frozen=True)
class ValueNode:
    operand: Value | AccessPath


@dataclass(frozen=True)
class UnaryNode:
    op: UnaryOp
    operand: "Node"


@dataclass(frozen=True)
class BinaryNode:
    op: BinaryOp
    left: "Node"
    right: "Node"


@dataclass(frozen=True)
class CallNode:
    function: Function
    args: tuple["Node", ...]


Node = Union[ValueNode, UnaryNode, BinaryNode, CallNode]


def children(node: Node) -> tuple[Node, ...]:
    match node:
        case ValueNode():
            return ()
        case UnaryNode(operand=operand):
            return (operand,)
        case BinaryNode(left=left, right=right):
            return (left, right)
        case CallNode(args=args):
            return args
    raise TypeError(f"not an AST node: {node!r}")


def walk(root: Node) -> Iterator[Node]:
    """Pre-order traversal, left to right, without recursion."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(children(node)))


def height(root: Node) -> int:
    best = 0
    stack = [(root, 1)]
    while stack:
        node, depth = stack.pop()
        best = max(best, depth)
        stack.extend((child, depth + 1) for child in children(node))
    return best


def access_paths(root: Node) -> tuple[AccessPath, ...]:
    """Distinct access paths in first-appearance order."""
    seen: dict[AccessPath, None] = {}
    for node in walk(root):
        if isinstance(node, ValueNode) and isinstance(node.operand, AccessPath):
            seen.setdefault(node.operand, None)
    return tuple(seen)
