"""
Token kinds and the Token record produced by the scanner.
"""
from dataclasses import dataclass
from enum import Enum, auto
from typing import Union


class TokenType(Enum):
    # Single-character tokens
    LEFT_PAREN = auto()
    RIGHT_PAREN = auto()
    LEFT_BRACE = auto()
    RIGHT_BRACE = auto()
    LEFT_SQRBRACKET = auto()
    RIGHT_SQRBRACKET = auto()
    COMMA = auto()
    DOT = auto()
    MINUS = auto()
    PLUS = auto()
    SEMICOLON = auto()
    SLASH = auto()
    STAR = auto()
    COLON = auto()

    # One or two character tokens
    DOUBLE_STAR = auto()
    BANG = auto()
    BANG_EQUAL = auto()
    EQUAL = auto()
    EQUAL_EQUAL = auto()
    GREATER = auto()
    GREATER_EQUAL = auto()
    LESS = auto()
    LESS_EQUAL = auto()
    PLUS_EQUAL = auto()
    MINUS_EQUAL = auto()
    STAR_EQUAL = auto()
    SLASH_EQUAL = auto()

    # Literals
    IDENTIFIER = auto()
    STRING = auto()
    NUMBER = auto()
    COMMAND = auto()

    # Keywords
    AND = auto()
    AS = auto()
    BREAK = auto()
    CATCH = auto()
    CLASS = auto()
    EACH = auto()
    ELSE = auto()
    FALSE = auto()
    FOR = auto()
    FUN = auto()
    IF = auto()
    IMPORT = auto()
    NIL = auto()
    OR = auto()
    PRINT = auto()
    RETURN = auto()
    SUPER = auto()
    THIS = auto()
    THROW = auto()
    TRUE = auto()
    TRY = auto()
    VAR = auto()
    WHILE = auto()

    EOF = auto()


KEYWORDS = {
    "and": TokenType.AND,
    "as": TokenType.AS,
    "break": TokenType.BREAK,
    "catch": TokenType.CATCH,
    "class": TokenType.CLASS,
    "each": TokenType.EACH,
    "else": TokenType.ELSE,
    "false": TokenType.FALSE,
    "for": TokenType.FOR,
    "fun": TokenType.FUN,
    "if": TokenType.IF,
    "import": TokenType.IMPORT,
    "nil": TokenType.NIL,
    "or": TokenType.OR,
    "print": TokenType.PRINT,
    "return": TokenType.RETURN,
    "super": TokenType.SUPER,
    "this": TokenType.THIS,
    "throw": TokenType.THROW,
    "true": TokenType.TRUE,
    "try": TokenType.TRY,
    "var": TokenType.VAR,
    "while": TokenType.WHILE,
}

# Compound assignment token -> the binary operator it applies.
COMPOUND_ASSIGNMENT = {
    TokenType.PLUS_EQUAL: TokenType.PLUS,
    TokenType.MINUS_EQUAL: TokenType.MINUS,
    TokenType.STAR_EQUAL: TokenType.STAR,
    TokenType.SLASH_EQUAL: TokenType.SLASH,
}

LiteralValue = Union[str, int, float, bool, None]


@dataclass(frozen=True)
class Token:
    type: TokenType
    lexeme: str
    literal: LiteralValue
    line: int

    def __repr__(self):
        return f"Token({self.type.name}, {self.lexeme!r}, line={self.line})"


def synthetic(type_: TokenType, lexeme: str, line: int) -> Token:
    """A token that never appeared in source (desugaring, native errors)."""
    return Token(type_, lexeme, None, line)
