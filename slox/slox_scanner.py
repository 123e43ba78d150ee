"""
The SLOX scanner: a single left-to-right pass turning source text into tokens.
"""
from typing import List, Optional

from slox.slox_errors import ErrorReporter
from slox.slox_tokens import KEYWORDS, LiteralValue, Token, TokenType

_SINGLE = {
    '(': TokenType.LEFT_PAREN,
    ')': TokenType.RIGHT_PAREN,
    '{': TokenType.LEFT_BRACE,
    '}': TokenType.RIGHT_BRACE,
    '[': TokenType.LEFT_SQRBRACKET,
    ']': TokenType.RIGHT_SQRBRACKET,
    ',': TokenType.COMMA,
    '.': TokenType.DOT,
    ':': TokenType.COLON,
    ';': TokenType.SEMICOLON,
}

# first char -> ((second char, two-char type), ...), fallback single-char type
_DOUBLE = {
    '*': ((('*', TokenType.DOUBLE_STAR), ('=', TokenType.STAR_EQUAL)), TokenType.STAR),
    '!': ((('=', TokenType.BANG_EQUAL),), TokenType.BANG),
    '=': ((('=', TokenType.EQUAL_EQUAL),), TokenType.EQUAL),
    '<': ((('=', TokenType.LESS_EQUAL),), TokenType.LESS),
    '>': ((('=', TokenType.GREATER_EQUAL),), TokenType.GREATER),
    '+': ((('=', TokenType.PLUS_EQUAL),), TokenType.PLUS),
    '-': ((('=', TokenType.MINUS_EQUAL),), TokenType.MINUS),
}

_QUOTES = {
    '"': TokenType.STRING,
    "'": TokenType.STRING,
    '`': TokenType.COMMAND,
}


def _is_digit(c: str) -> bool:
    return '0' <= c <= '9'


def _is_alpha(c: str) -> bool:
    return ('a' <= c <= 'z') or ('A' <= c <= 'Z') or c == '_'


class Scanner:
    """Converts raw source into a flat token list terminated by EOF.

    Errors (unexpected characters, unterminated strings) are reported to the
    `ErrorReporter` with origin "Scanner" and scanning carries on; callers
    check `reporter.had_error` before parsing.

    String escapes are handled by deleting the backslash from the source
    buffer itself, so only `\\<delimiter>` and `\\\\` are recognised and the
    lexemes of all later tokens are taken from the edited buffer.
    """

    def __init__(self, source: str, reporter: Optional[ErrorReporter] = None):
        self.source = source
        self.reporter = reporter or ErrorReporter()
        self.tokens: List[Token] = []
        self.start = 0
        self.current = 0
        self.line = 1

    def scan_tokens(self) -> List[Token]:
        while not self._is_at_end():
            self.start = self.current
            self._scan_token()
        self.tokens.append(Token(TokenType.EOF, "", None, self.line))
        return self.tokens

    # ------------------------------------------------------------------ helpers

    def _is_at_end(self) -> bool:
        return self.current >= len(self.source)

    def _advance(self) -> str:
        c = self.source[self.current]
        self.current += 1
        return c

    def _match(self, expected: str) -> bool:
        if self._is_at_end() or self.source[self.current] != expected:
            return False
        self.current += 1
        return True

    def _peek(self) -> str:
        if self._is_at_end():
            return '\0'
        return self.source[self.current]

    def _peek_next(self) -> str:
        if self.current + 1 >= len(self.source):
            return '\0'
        return self.source[self.current + 1]

    def _add_token(self, type_: TokenType, literal: LiteralValue = None):
        text = self.source[self.start:self.current]
        self.tokens.append(Token(type_, text, literal, self.line))

    def _error(self, message: str):
        self.reporter.error(self.line, message, "Scanner")

    def _remove_char_at(self, index: int):
        self.source = self.source[:index] + self.source[index + 1:]

    # ------------------------------------------------------------------ scanning

    def _scan_token(self):
        c = self._advance()
        if c in _SINGLE:
            self._add_token(_SINGLE[c])
        elif c in _DOUBLE:
            pairs, fallback = _DOUBLE[c]
            for second, two_char in pairs:
                if self._match(second):
                    self._add_token(two_char)
                    break
            else:
                self._add_token(fallback)
        elif c == '/':
            if self._match('/'):
                # A comment goes until the end of the line.
                while self._peek() != '\n' and not self._is_at_end():
                    self.current += 1
            elif self._match('='):
                self._add_token(TokenType.SLASH_EQUAL)
            else:
                self._add_token(TokenType.SLASH)
        elif c in (' ', '\r', '\t'):
            pass
        elif c == '\n':
            self.line += 1
        elif c in _QUOTES:
            self._string(c, _QUOTES[c])
        elif _is_digit(c):
            self._number()
        elif _is_alpha(c):
            self._identifier()
        else:
            self._error(f"Unexpected character '{c}'.")

    def _string(self, delimiter: str, type_: TokenType):
        while self._peek() != delimiter and not self._is_at_end():
            if self._peek() == '\n':
                self.line += 1
            if self._peek() == '\\' and self._peek_next() in (delimiter, '\\'):
                # Drop the backslash; the escaped char is stepped over below.
                self._remove_char_at(self.current)
            self.current += 1

        if self._is_at_end():
            self._error("Unterminated string.")
            return

        # The closing delimiter.
        self.current += 1
        value = self.source[self.start + 1:self.current - 1]
        self._add_token(type_, value)

    def _number(self):
        while _is_digit(self._peek()):
            self.current += 1

        is_decimal = False
        if self._peek() == '.' and _is_digit(self._peek_next()):
            is_decimal = True
            self.current += 1
            while _is_digit(self._peek()):
                self.current += 1

        text = self.source[self.start:self.current]
        self._add_token(TokenType.NUMBER, float(text) if is_decimal else int(text))

    def _identifier(self):
        while _is_alpha(self._peek()) or _is_digit(self._peek()):
            self.current += 1
        text = self.source[self.start:self.current]
        self._add_token(KEYWORDS.get(text, TokenType.IDENTIFIER))


def scan(source: str, reporter: Optional[ErrorReporter] = None) -> List[Token]:
    """Convenience wrapper: scan `source` and return its tokens."""
    return Scanner(source, reporter).scan_tokens()
