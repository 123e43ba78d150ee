from slox.slox_errors import ErrorReporter
from slox.slox_scanner import Scanner, scan
from slox.slox_tokens import TokenType as T


def types(src: str):
    return [t.type for t in scan(src)]


def test_punctuation_and_operators():
    assert types("( ) { } [ ] , . ; :") == [
        T.LEFT_PAREN, T.RIGHT_PAREN, T.LEFT_BRACE, T.RIGHT_BRACE,
        T.LEFT_SQRBRACKET, T.RIGHT_SQRBRACKET, T.COMMA, T.DOT,
        T.SEMICOLON, T.COLON, T.EOF,
    ]
    assert types("! != = == < <= > >= * ** / - + += -= *= /=") == [
        T.BANG, T.BANG_EQUAL, T.EQUAL, T.EQUAL_EQUAL, T.LESS, T.LESS_EQUAL,
        T.GREATER, T.GREATER_EQUAL, T.STAR, T.DOUBLE_STAR, T.SLASH, T.MINUS,
        T.PLUS, T.PLUS_EQUAL, T.MINUS_EQUAL, T.STAR_EQUAL, T.SLASH_EQUAL, T.EOF,
    ]


def test_keywords_and_identifiers():
    tokens = scan("var counter = nil; for each as _private")
    assert [t.type for t in tokens] == [
        T.VAR, T.IDENTIFIER, T.EQUAL, T.NIL, T.SEMICOLON, T.FOR, T.EACH, T.AS,
        T.IDENTIFIER, T.EOF,
    ]
    assert tokens[1].lexeme == "counter"
    assert tokens[-2].lexeme == "_private"


def test_numbers_keep_integer_and_decimal_kinds():
    tokens = scan("12 3.5 7.")
    assert tokens[0].literal == 12 and isinstance(tokens[0].literal, int)
    assert tokens[1].literal == 3.5
    # A trailing dot is not part of the number.
    assert [t.type for t in tokens[2:]] == [T.NUMBER, T.DOT, T.EOF]
    assert tokens[2].literal == 7


def test_strings_with_either_quote_and_commands():
    tokens = scan("\"double\" 'single' `ls -la`")
    assert [(t.type, t.literal) for t in tokens[:-1]] == [
        (T.STRING, "double"),
        (T.STRING, "single"),
        (T.COMMAND, "ls -la"),
    ]


def test_escaped_delimiter_and_backslash():
    tokens = scan(r'"say \"hi\"" "back\\slash" "keep \n"')
    assert tokens[0].literal == 'say "hi"'
    assert tokens[1].literal == "back\\slash"
    # Unknown escapes are left alone.
    assert tokens[2].literal == "keep \\n"


def test_escape_does_not_swallow_the_closing_quote():
    tokens = scan(r'"a\\" + 1')
    assert tokens[0].literal == "a\\"
    assert [t.type for t in tokens[1:]] == [T.PLUS, T.NUMBER, T.EOF]


def test_comments_and_line_counting():
    tokens = scan("a // ignored ( )\nb\n\"multi\nline\" c")
    assert [t.lexeme for t in tokens[:-1]] == ["a", "b", "\"multi\nline\"", "c"]
    assert [t.line for t in tokens] == [1, 2, 4, 4, 4]


def test_unexpected_character_is_reported_and_scanning_continues():
    reporter = ErrorReporter(echo=False)
    tokens = Scanner("a @ b", reporter).scan_tokens()
    assert reporter.had_error
    assert reporter.diagnostics[0].format() == "[line 1] ScannerError: Unexpected character '@'."
    assert [t.lexeme for t in tokens[:-1]] == ["a", "b"]


def test_unterminated_string():
    reporter = ErrorReporter(echo=False)
    Scanner('"open', reporter).scan_tokens()
    assert reporter.had_error
    assert "Unterminated string." in reporter.diagnostics[0].message
