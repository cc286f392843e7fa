"""
Tokenizer for constraint expression text.
"""

from dataclasses import dataclass
from enum import Enum

from account_guard.core.errors import ExpressionSyntaxError


class TokenKind(str, Enum):
    INT = "INT"
    STRING = "STRING"
    IDENT = "IDENT"
    OP = "OP"
    LPAREN = "("
    RPAREN = ")"
    COMMA = ","
    DOT = "."
    EOF = "EOF"


@dataclass(frozen=True)
class Token:
    kind: TokenKind
    text: str
    position: int


# Longest match first
_OPERATORS = ("||", "&&", "==", "!=", ">=", "<=", ">", "<", "+", "-", "*", "/", "%", "!")
_PUNCTUATION = {
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    ",": TokenKind.COMMA,
    ".": TokenKind.DOT,
}


def _is_ident_start(ch: str) -> bool:
    return ch == "_" or ("a" <= ch <= "z") or ("A" <= ch <= "Z")


def _is_ident_char(ch: str) -> bool:
    return _is_ident_start(ch) or ("0" <= ch <= "9")


def is_identifier(text: str) -> bool:
    """Whether ``text`` tokenizes as a single identifier."""
    return bool(text) and _is_ident_start(text[0]) and all(map(_is_ident_char, text[1:]))


def tokenize(source: str) -> list[Token]:
    """
    Split expression text into tokens, ending with an EOF token.

    Raises:
        ExpressionSyntaxError: On unterminated strings or unexpected characters
    """
    tokens: list[Token] = []
    i = 0
    n = len(source)
    while i < n:
        ch = source[i]
        if ch in " \t\r\n":
            i += 1
            continue

        if "0" <= ch <= "9":
            start = i
            while i < n and "0" <= source[i] <= "9":
                i += 1
            if i < n and _is_ident_start(source[i]):
                raise ExpressionSyntaxError(
                    f"Invalid integer literal at position {start}", position=start, source=source
                )
            tokens.append(Token(TokenKind.INT, source[start:i], start))
            continue

        if _is_ident_start(ch):
            start = i
            while i < n and _is_ident_char(source[i]):
                i += 1
            tokens.append(Token(TokenKind.IDENT, source[start:i], start))
            continue

        if ch == '"':
            start = i
            end = source.find('"', i + 1)
            if end < 0:
                raise ExpressionSyntaxError(
                    f"Unterminated string literal at position {start}",
                    position=start,
                    source=source,
                )
            tokens.append(Token(TokenKind.STRING, source[i + 1 : end], start))
            i = end + 1
            continue

        if ch in _PUNCTUATION:
            tokens.append(Token(_PUNCTUATION[ch], ch, i))
            i += 1
            continue

        for op in _OPERATORS:
            if source.startswith(op, i):
                tokens.append(Token(TokenKind.OP, op, i))
                i += len(op)
                break
        else:
            raise ExpressionSyntaxError(
                f"Unexpected character {ch!r} at position {i}", position=i, source=source
            )

    tokens.append(Token(TokenKind.EOF, "", n))
    return tokens
