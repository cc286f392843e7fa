"""
Recursive-descent parser for constraint expressions.

Grammar, lowest to highest precedence:

    expr        := or
    or          := and ("||" and)*
    and         := comparison ("&&" comparison)*
    comparison  := additive (("=="|"!="|">"|">="|"<"|"<=") additive)*
    additive    := term (("+"|"-") term)*
    term        := unary (("*"|"/"|"%") unary)*
    unary       := ("!"|"-") unary | primary
    primary     := "(" expr ")" | STRING | INT | "true" | "false"
                 | "pubkey" "(" STRING ")" | "pubkey_bytes" "(" STRING ")"
                 | "bytes_hex" "(" STRING ")"
                 | FUNC "(" [expr ("," expr)*] ")"
                 | IDENT ("." IDENT)* ["." "key" "(" ")"]

Binary operators at the same level associate to the left. Literal helper
calls are resolved here, so a malformed pubkey or hex string is a syntax
error rather than a runtime failure.
"""

import logging
from dataclasses import dataclass

from account_guard.compiler.ast import (
    I128_MAX,
    AccessPath,
    BinaryNode,
    CallNode,
    Node,
    UnaryNode,
    Value,
    ValueNode,
    access_paths,
    height,
)
from account_guard.compiler.tokenizer import Token, TokenKind, tokenize
from account_guard.core.errors import ExpressionSyntaxError
from account_guard.domain.enums import BinaryOp, Function, UnaryOp
from account_guard.domain.pubkey import pubkey_from_base58, pubkey_from_hex

logger = logging.getLogger(__name__)

KEYWORDS = frozenset({"true", "false", "pubkey", "pubkey_bytes", "bytes_hex"})

_COMPARISON_OPS = {
    "==": BinaryOp.EQ,
    "!=": BinaryOp.NE,
    ">": BinaryOp.GT,
    ">=": BinaryOp.GE,
    "<": BinaryOp.LT,
    "<=": BinaryOp.LE,
}
_ADDITIVE_OPS = {"+": BinaryOp.ADD, "-": BinaryOp.SUB}
_TERM_OPS = {"*": BinaryOp.MUL, "/": BinaryOp.DIV, "%": BinaryOp.MOD}
_FUNCTIONS = {f.value: f for f in Function}


@dataclass(frozen=True)
class ParsedExpression:
    """Parsed expression text: the AST root plus its distinct access paths."""

    source: str
    root: Node
    access_paths: tuple[AccessPath, ...]


class _Parser:
    def __init__(self, source: str, max_depth: int) -> None:
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0
        self.depth = 0
        self.max_depth = max_depth

    # ------------------------------------------------------------------
    # Token helpers
    # ------------------------------------------------------------------

    @property
    def current(self) -> Token:
        return self.tokens[self.index]

    def _advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != TokenKind.EOF:
            self.index += 1
        return token

    def _error(self, message: str, token: Token | None = None) -> ExpressionSyntaxError:
        token = token or self.current
        where = "end of input" if token.kind == TokenKind.EOF else f"position {token.position}"
        return ExpressionSyntaxError(
            f"{message} at {where}", position=token.position, source=self.source
        )

    def _expect(self, kind: TokenKind, what: str) -> Token:
        if self.current.kind != kind:
            found = self.current.text or "end of input"
            raise self._error(f"Expected {what}, found '{found}'")
        return self._advance()

    def _match_op(self, table: dict[str, BinaryOp]) -> BinaryOp | None:
        token = self.current
        if token.kind == TokenKind.OP and token.text in table:
            self._advance()
            return table[token.text]
        return None

    def _enter(self) -> None:
        self.depth += 1
        if self.depth > self.max_depth:
            raise self._error(f"Expression nested deeper than {self.max_depth} levels")

    def _leave(self) -> None:
        self.depth -= 1

    # ------------------------------------------------------------------
    # Grammar
    # ------------------------------------------------------------------

    def parse(self) -> Node:
        if self.current.kind == TokenKind.EOF:
            raise self._error("Empty expression")
        node = self._parse_or()
        if self.current.kind != TokenKind.EOF:
            raise self._error(f"Unexpected token '{self.current.text}'")
        return node

    def _parse_or(self) -> Node:
        left = self._parse_and()
        while self._match_op({"||": BinaryOp.OR}):
            left = BinaryNode(BinaryOp.OR, left, self._parse_and())
        return left

    def _parse_and(self) -> Node:
        left = self._parse_comparison()
        while self._match_op({"&&": BinaryOp.AND}):
            left = BinaryNode(BinaryOp.AND, left, self._parse_comparison())
        return left

    def _parse_comparison(self) -> Node:
        left = self._parse_additive()
        while (op := self._match_op(_COMPARISON_OPS)) is not None:
            left = BinaryNode(op, left, self._parse_additive())
        return left

    def _parse_additive(self) -> Node:
        left = self._parse_term()
        while (op := self._match_op(_ADDITIVE_OPS)) is not None:
            left = BinaryNode(op, left, self._parse_term())
        return left

    def _parse_term(self) -> Node:
        left = self._parse_unary()
        while (op := self._match_op(_TERM_OPS)) is not None:
            left = BinaryNode(op, left, self._parse_unary())
        return left

    def _parse_unary(self) -> Node:
        token = self.current
        if token.kind == TokenKind.OP and token.text in ("!", "-"):
            self._advance()
            self._enter()
            operand = self._parse_unary()
            self._leave()
            op = UnaryOp.NOT if token.text == "!" else UnaryOp.NEG
            return UnaryNode(op, operand)
        return self._parse_primary()

    def _parse_primary(self) -> Node:
        token = self.current

        if token.kind == TokenKind.LPAREN:
            self._advance()
            self._enter()
            node = self._parse_or()
            self._leave()
            self._expect(TokenKind.RPAREN, "')'")
            return node

        if token.kind == TokenKind.STRING:
            self._advance()
            return ValueNode(Value.bytes_(token.text.encode("utf-8")))

        if token.kind == TokenKind.INT:
            self._advance()
            number = int(token.text)
            if number > I128_MAX:
                raise self._error("Integer literal does not fit in 128 bits", token)
            return ValueNode(Value.integer(number))

        if token.kind == TokenKind.IDENT:
            if token.text == "true":
                self._advance()
                return ValueNode(Value.boolean(True))
            if token.text == "false":
                self._advance()
                return ValueNode(Value.boolean(False))
            if token.text in ("pubkey", "pubkey_bytes", "bytes_hex"):
                return self._parse_literal_call()
            if token.text in _FUNCTIONS and self.tokens[self.index + 1].kind == TokenKind.LPAREN:
                return self._parse_call()
            return self._parse_path()

        found = token.text or "end of input"
        raise self._error(f"Unexpected token '{found}'")

    def _parse_literal_call(self) -> Node:
        name_token = self._advance()
        self._expect(TokenKind.LPAREN, f"'(' after {name_token.text}")
        arg = self._expect(TokenKind.STRING, f"string argument to {name_token.text}")
        self._expect(TokenKind.RPAREN, "')'")
        text = arg.text
        try:
            if name_token.text == "pubkey":
                return ValueNode(Value.pubkey(pubkey_from_base58(text)))
            if name_token.text == "pubkey_bytes":
                return ValueNode(Value.pubkey(pubkey_from_hex(text)))
            if len(text) % 2:
                raise ValueError("odd number of hex characters")
            return ValueNode(Value.bytes_(bytes.fromhex(text)))
        except ValueError as exc:
            raise self._error(f"Invalid {name_token.text} literal \"{text}\" ({exc})", arg) from exc

    def _parse_call(self) -> Node:
        name_token = self._advance()
        function = _FUNCTIONS[name_token.text]
        self._expect(TokenKind.LPAREN, "'('")
        self._enter()
        args: list[Node] = []
        if self.current.kind != TokenKind.RPAREN:
            args.append(self._parse_or())
            while self.current.kind == TokenKind.COMMA:
                self._advance()
                args.append(self._parse_or())
        self._leave()
        self._expect(TokenKind.RPAREN, "')'")
        if len(args) != function.arity:
            raise self._error(
                f"{function.value}() takes {function.arity} argument(s), got {len(args)}",
                name_token,
            )
        return CallNode(function, tuple(args))

    def _parse_path(self) -> Node:
        first = self._advance()
        parts = [first.text]
        use_key = False
        while self.current.kind == TokenKind.DOT:
            self._advance()
            segment = self._expect(TokenKind.IDENT, "field name after '.'")
            if segment.text == "key" and self.current.kind == TokenKind.LPAREN:
                self._advance()
                self._expect(TokenKind.RPAREN, "')' after key(")
                use_key = True
                break
            if segment.text in KEYWORDS:
                raise self._error(f"Reserved word '{segment.text}' used as a field name", segment)
            parts.append(segment.text)
        if use_key and self.current.kind == TokenKind.DOT:
            raise self._error("'.key()' must end an access path")
        return ValueNode(AccessPath(tuple(parts), use_key))


def parse_expression(
    source: str, max_length: int | None = None, max_depth: int | None = None
) -> ParsedExpression:
    """
    Parse constraint expression text.

    Args:
        source: Expression text, e.g. ``"authority.key() == vault.authority"``
        max_length: Maximum accepted text length (defaults to settings)
        max_depth: Maximum nesting depth (defaults to settings)

    Returns:
        ParsedExpression with the AST root and distinct access paths

    Raises:
        ExpressionSyntaxError: On any malformed input
    """
    from account_guard.core.config import settings

    max_length = max_length or settings.expression_max_length
    max_depth = max_depth or settings.expression_max_depth

    if len(source) > max_length:
        raise ExpressionSyntaxError(
            f"Expression is {len(source)} characters long; the limit is {max_length}",
            position=max_length,
            source=source[:64],
        )

    root = _Parser(source, max_depth).parse()
    # Left-associative chains are built iteratively, so bound the tree too
    if height(root) > max_depth * 4:
        raise ExpressionSyntaxError(
            f"Expression tree is deeper than {max_depth * 4} nodes",
            position=0,
            source=source,
        )

    logger.debug("Parsed expression", extra={"expression": source})
    return ParsedExpression(source=source, root=root, access_paths=access_paths(root))
