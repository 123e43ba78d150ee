"""
Recursive-descent parser for SLOX.

Consumes the scanner's tokens and produces a list of statements. Grammar
violations are reported to the `ErrorReporter` (origin "Parser") and the
parser resynchronises at the next statement boundary, so one pass can
surface several errors. Callers must not evaluate the result when
`reporter.had_error` is set.
"""
from typing import Callable, List, Optional

from slox.slox_ast import (
    Assign, Binary, Block, Break, Call, Class, Command, Expr, Expression,
    Function, Get, Grouping, If, ListLiteral, Literal, Logical, ObjectLiteral,
    Print, Return, Set, Stmt, Super, This, Throw, Try, Unary, Var, Variable,
    While,
)
from slox.slox_errors import ErrorReporter, ParseError
from slox.slox_tokens import COMPOUND_ASSIGNMENT, Token, TokenType, synthetic

MAX_ARGUMENTS = 255

# An importer maps an import path to the statements of that file, or None
# when the file cannot be read.
Importer = Callable[[str], Optional[List[Stmt]]]

_STATEMENT_STARTS = {
    TokenType.CLASS, TokenType.FUN, TokenType.VAR, TokenType.FOR,
    TokenType.IF, TokenType.WHILE, TokenType.PRINT, TokenType.RETURN,
    TokenType.BREAK, TokenType.TRY, TokenType.THROW,
}


class Parser:
    def __init__(self, tokens: List[Token], reporter: Optional[ErrorReporter] = None,
                 importer: Optional[Importer] = None):
        self.tokens = tokens
        self.reporter = reporter or ErrorReporter()
        self.importer = importer
        self.current = 0
        self.loop_depth = 0

    # ------------------------------------------------------------------ public

    def parse(self) -> List[Stmt]:
        statements: List[Stmt] = []
        while not self._is_at_end():
            stmt = self._declaration()
            if stmt is not None:
                statements.append(stmt)
        return statements

    # ------------------------------------------------------------------ helpers

    def _peek(self, offset: int = 0) -> Token:
        index = min(self.current + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def _previous(self) -> Token:
        return self.tokens[self.current - 1]

    def _is_at_end(self, offset: int = 0) -> bool:
        return self._peek(offset).type == TokenType.EOF

    def _check(self, type_: TokenType, offset: int = 0) -> bool:
        if self._is_at_end(offset):
            return False
        return self._peek(offset).type == type_

    def _advance(self) -> Token:
        if not self._is_at_end():
            self.current += 1
        return self._previous()

    def _match(self, *types: TokenType) -> bool:
        for type_ in types:
            if self._check(type_):
                self._advance()
                return True
        return False

    def _consume(self, type_: TokenType, message: str) -> Token:
        if self._check(type_):
            return self._advance()
        raise self._error(self._peek(), message)

    def _consume_optional(self, type_: TokenType) -> Optional[Token]:
        if self._check(type_):
            return self._advance()
        return None

    def _error(self, token: Token, message: str) -> ParseError:
        self.reporter.token_error(token, message, "Parser")
        return ParseError(message)

    def _synchronize(self):
        """Discard tokens until a likely statement boundary."""
        self._advance()
        while not self._is_at_end():
            if self._previous().type == TokenType.SEMICOLON:
                return
            if self._peek().type in _STATEMENT_STARTS:
                return
            self._advance()

    # ------------------------------------------------------------------ declarations

    def _declaration(self) -> Optional[Stmt]:
        try:
            if self._match(TokenType.CLASS):
                return self._class_declaration()
            if self._match(TokenType.VAR):
                return self._var_declaration()
            return self._statement()
        except ParseError:
            self._synchronize()
            return None

    def _class_declaration(self) -> Class:
        name = self._consume(TokenType.IDENTIFIER, "Expect class name.")

        superclass = None
        if self._match(TokenType.LESS):
            superclass = Variable(self._consume(TokenType.IDENTIFIER, "Expect superclass name."))

        self._consume(TokenType.LEFT_BRACE, "Expect '{' before class body.")
        methods = []
        while not self._check(TokenType.RIGHT_BRACE) and not self._is_at_end():
            methods.append(self._function("method", self._peek()))
        self._consume(TokenType.RIGHT_BRACE, "Expect '}' after class body.")
        return Class(name, superclass, methods)

    def _var_declaration(self, terminated: bool = True) -> Var:
        name = self._consume(TokenType.IDENTIFIER, "Expect variable name.")
        initializer = None
        if self._match(TokenType.EQUAL):
            initializer = self._expression()
        if terminated:
            self._consume_optional(TokenType.SEMICOLON)
        return Var(name, initializer if initializer is not None else Literal(None))

    # ------------------------------------------------------------------ statements

    def _statement(self) -> Stmt:
        if self._match(TokenType.WHILE):
            return self._while_statement()
        if self._match(TokenType.FOR):
            return self._for_statement()
        if self._match(TokenType.IF):
            return self._if_statement()
        if self._match(TokenType.TRY):
            return self._try_statement()
        if self._match(TokenType.PRINT):
            return self._print_statement()
        if self._match(TokenType.THROW):
            return self._throw_statement()
        if self._match(TokenType.RETURN):
            return self._return_statement()
        if self._match(TokenType.BREAK):
            return self._break_statement()
        # `{ name: ...` opens an object literal, any other `{` a block.
        if self._check(TokenType.LEFT_BRACE) and not (
                self._check(TokenType.IDENTIFIER, 1) and self._check(TokenType.COLON, 2)):
            self._advance()
            return Block(self._block())
        return self._expression_statement()

    def _block(self) -> List[Stmt]:
        statements: List[Stmt] = []
        while not self._check(TokenType.RIGHT_BRACE) and not self._is_at_end():
            stmt = self._declaration()
            if stmt is not None:
                statements.append(stmt)
        self._consume(TokenType.RIGHT_BRACE, "Expect '}' after block.")
        return statements

    def _expression_statement(self, terminated: bool = True) -> Expression:
        expr = self._expression()
        if terminated:
            self._consume_optional(TokenType.SEMICOLON)
        return Expression(expr)

    def _print_statement(self) -> Print:
        value = self._expression()
        self._consume_optional(TokenType.SEMICOLON)
        return Print(value)

    def _throw_statement(self) -> Throw:
        keyword = self._previous()
        value = self._expression()
        self._consume_optional(TokenType.SEMICOLON)
        return Throw(keyword, value)

    def _return_statement(self) -> Return:
        keyword = self._previous()
        value: Expr = Literal(None)
        if not self._check(TokenType.SEMICOLON) and not self._check(TokenType.RIGHT_BRACE) \
                and not self._is_at_end():
            value = self._expression()
        self._consume_optional(TokenType.SEMICOLON)
        return Return(keyword, value)

    def _break_statement(self) -> Break:
        keyword = self._previous()
        self._consume_optional(TokenType.SEMICOLON)
        if self.loop_depth == 0:
            # Reported, but the statement parses fine; no resynchronisation needed.
            self._error(keyword, "Break must be in loop.")
        return Break(keyword)

    def _if_statement(self) -> If:
        condition = self._expression()
        then_branch = self._statement()
        else_branch = None
        if self._match(TokenType.ELSE):
            else_branch = self._statement()
        return If(condition, then_branch, else_branch)

    def _try_statement(self) -> Try:
        try_branch = self._statement()
        self._consume(TokenType.CATCH, "Expected 'catch' after 'try' body.")
        err_name = self._consume_optional(TokenType.IDENTIFIER)
        catch_branch = self._statement()
        return Try(try_branch, err_name, catch_branch)

    def _while_statement(self) -> While:
        condition = self._expression()
        self.loop_depth += 1
        try:
            body = self._statement()
        finally:
            self.loop_depth -= 1
        return While(condition, body)

    def _for_statement(self) -> Stmt:
        self._consume(TokenType.LEFT_PAREN, "Expect '(' after 'for'.")
        if self._match(TokenType.EACH):
            return self._foreach_statement()

        if self._match(TokenType.SEMICOLON):
            initializer = None
        else:
            if self._match(TokenType.VAR):
                initializer = self._var_declaration(terminated=False)
            else:
                initializer = self._expression_statement(terminated=False)
            self._consume(TokenType.SEMICOLON, "Expect ';' after loop initializer.")

        condition: Expr = Literal(True)
        if not self._check(TokenType.SEMICOLON):
            condition = self._expression()
        self._consume(TokenType.SEMICOLON, "Expect ';' after loop condition.")

        increment = None
        if not self._check(TokenType.RIGHT_PAREN):
            increment = self._expression()
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after for clauses.")

        self.loop_depth += 1
        try:
            body = self._statement()
        finally:
            self.loop_depth -= 1

        if increment is not None:
            body = Block([body, Expression(increment)])
        body = While(condition, body)
        if initializer is not None:
            body = Block([initializer, body])
        return body

    def _foreach_statement(self) -> Block:
        source = self._expression()
        self._consume(TokenType.AS, "Expect 'as' after expression.")
        identifier = self._consume(TokenType.IDENTIFIER, "Expected identifier after 'as'.")
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after identifier.")

        self.loop_depth += 1
        try:
            body = self._statement()
        finally:
            self.loop_depth -= 1

        line = identifier.line
        hidden = synthetic(TokenType.IDENTIFIER, "_" + identifier.lexeme, line)

        def protocol_call(method: str) -> Call:
            name = synthetic(TokenType.IDENTIFIER, method, line)
            return Call(Get(identifier, Variable(hidden), name), identifier, [])

        return Block([
            Var(identifier, Literal(None)),
            Var(hidden, source),
            Expression(protocol_call("iterreset")),
            While(
                protocol_call("iterhas"),
                Block([
                    Expression(Assign(identifier, protocol_call("iternext"))),
                    body,
                ]),
            ),
        ])

    # ------------------------------------------------------------------ functions

    def _function(self, kind: str, keyword: Token) -> Function:
        name = None
        if kind == "method":
            name = self._consume(TokenType.IDENTIFIER, "Expect method name.")
        elif self._check(TokenType.IDENTIFIER):
            name = self._advance()

        self._consume(TokenType.LEFT_PAREN, f"Expect '(' after {kind} name.")
        params: List[Token] = []
        if not self._check(TokenType.RIGHT_PAREN):
            while True:
                if len(params) >= MAX_ARGUMENTS:
                    self._error(self._peek(), f"Can't have more than {MAX_ARGUMENTS} parameters.")
                params.append(self._consume(TokenType.IDENTIFIER, "Expect parameter name."))
                if not self._match(TokenType.COMMA):
                    break
        self._consume(TokenType.RIGHT_PAREN, "Expect ')' after parameters.")

        # Loops outside the function don't make `break` legal inside it.
        enclosing_depth, self.loop_depth = self.loop_depth, 0
        try:
            statement = self._statement()
        finally:
            self.loop_depth = enclosing_depth

        body = statement.statements if isinstance(statement, Block) else [statement]
        return Function(keyword, name, params, self._implicit_return(body))

    def _implicit_return(self, body: List[Stmt]) -> List[Stmt]:
        """Rewrite a trailing expression statement into `return <expr>`."""
        if body and isinstance(body[-1], Expression):
            last = body[-1]
            keyword = synthetic(TokenType.RETURN, "return", self._previous().line)
            return body[:-1] + [Return(keyword, last.expression)]
        return body

    # ------------------------------------------------------------------ expressions

    def _expression(self) -> Expr:
        return self._assignment()

    def _assignment(self) -> Expr:
        expr = self._or()

        if self._match(TokenType.EQUAL, *COMPOUND_ASSIGNMENT):
            equals = self._previous()
            value = self._assignment()

            operator = None
            if equals.type in COMPOUND_ASSIGNMENT:
                operator = synthetic(COMPOUND_ASSIGNMENT[equals.type], equals.lexeme[0], equals.line)

            match expr:
                case Variable(name=name):
                    if operator is not None:
                        value = Binary(expr, operator, value)
                    return Assign(name, value)
                case Get(token=token, object=obj, name=name):
                    # The evaluator reads and writes the property through one lookup.
                    return Set(token, obj, name, value, operator)
            self._error(equals, "Invalid assignment target.")

        return expr

    def _or(self) -> Expr:
        expr = self._and()
        while self._match(TokenType.OR):
            operator = self._previous()
            expr = Logical(expr, operator, self._and())
        return expr

    def _and(self) -> Expr:
        expr = self._equality()
        while self._match(TokenType.AND):
            operator = self._previous()
            expr = Logical(expr, operator, self._equality())
        return expr

    def _binary_level(self, operand, *operators: TokenType) -> Expr:
        expr = operand()
        while self._match(*operators):
            operator = self._previous()
            expr = Binary(expr, operator, operand())
        return expr

    def _equality(self) -> Expr:
        return self._binary_level(self._comparison, TokenType.BANG_EQUAL, TokenType.EQUAL_EQUAL)

    def _comparison(self) -> Expr:
        return self._binary_level(
            self._term,
            TokenType.GREATER, TokenType.GREATER_EQUAL, TokenType.LESS, TokenType.LESS_EQUAL,
        )

    def _term(self) -> Expr:
        return self._binary_level(self._factor, TokenType.MINUS, TokenType.PLUS)

    def _factor(self) -> Expr:
        return self._binary_level(self._unary, TokenType.SLASH, TokenType.STAR, TokenType.DOUBLE_STAR)

    def _unary(self) -> Expr:
        if self._match(TokenType.BANG, TokenType.MINUS):
            operator = self._previous()
            return Unary(operator, self._unary())
        return self._call()

    def _call(self) -> Expr:
        expr = self._primary()
        while True:
            if self._match(TokenType.LEFT_PAREN):
                expr = self._finish_call(expr)
            elif self._match(TokenType.DOT):
                dot = self._previous()
                name = self._consume(TokenType.IDENTIFIER, "Expect property name after '.'.")
                expr = Get(dot, expr, name)
            elif self._match(TokenType.LEFT_SQRBRACKET):
                bracket = self._previous()
                name = self._expression()
                self._consume(TokenType.RIGHT_SQRBRACKET, "Expect ']' after expression.")
                expr = Get(bracket, expr, name)
            else:
                break
        return expr

    def _finish_call(self, callee: Expr) -> Call:
        arguments: List[Expr] = []
        if not self._check(TokenType.RIGHT_PAREN):
            while True:
                if len(arguments) >= MAX_ARGUMENTS:
                    self._error(self._peek(), f"Can't have more than {MAX_ARGUMENTS} arguments.")
                arguments.append(self._expression())
                if not self._match(TokenType.COMMA):
                    break
        paren = self._consume(TokenType.RIGHT_PAREN, "Expect ')' after arguments.")
        return Call(callee, paren, arguments)

    def _primary(self) -> Expr:
        if self._match(TokenType.FALSE):
            return Literal(False)
        if self._match(TokenType.TRUE):
            return Literal(True)
        if self._match(TokenType.NIL):
            return Literal(None)
        if self._match(TokenType.NUMBER, TokenType.STRING):
            return Literal(self._previous().literal)
        if self._match(TokenType.COMMAND):
            return Command(self._previous(), self._previous().literal)
        if self._match(TokenType.THIS):
            return This(self._previous())
        if self._match(TokenType.IDENTIFIER):
            return Variable(self._previous())
        if self._match(TokenType.FUN):
            return self._function("function", self._previous())
        if self._match(TokenType.LEFT_BRACE):
            return self._object()
        if self._match(TokenType.LEFT_SQRBRACKET):
            return self._list()
        if self._match(TokenType.LEFT_PAREN):
            expr = self._expression()
            self._consume(TokenType.RIGHT_PAREN, "Expect ')' after expression.")
            return Grouping(expr)
        if self._match(TokenType.SUPER):
            keyword = self._previous()
            self._consume(TokenType.DOT, "Expect '.' after 'super'.")
            method = self._consume(TokenType.IDENTIFIER, "Expect superclass method name.")
            return Super(keyword, method)
        if self._match(TokenType.IMPORT):
            return self._import()

        raise self._error(self._peek(), "Expect expression.")

    def _object(self) -> ObjectLiteral:
        brace = self._previous()
        keys: List[Expr] = []
        values: List[Expr] = []
        while not self._match(TokenType.RIGHT_BRACE):
            if self._is_at_end():
                raise self._error(self._peek(), "Expect '}' after object literal.")
            keys.append(self._expression())
            self._consume(TokenType.COLON, "Expect colon after expression.")
            values.append(self._expression())
            self._consume_optional(TokenType.COMMA)
        return ObjectLiteral(brace, keys, values)

    def _list(self) -> ListLiteral:
        bracket = self._previous()
        values: List[Expr] = []
        if not self._check(TokenType.RIGHT_SQRBRACKET):
            while True:
                values.append(self._expression())
                if not self._match(TokenType.COMMA):
                    break
        self._consume(TokenType.RIGHT_SQRBRACKET, "Expect ']' after array values.")
        return ListLiteral(bracket, values)

    def _import(self) -> Call:
        """`import "file"` splices the file's statements as an immediately-invoked function."""
        keyword = self._previous()
        filename = self._consume(TokenType.STRING, "Expect filename string after 'import'.")
        statements = self.importer(filename.literal) if self.importer is not None else None
        if statements is None:
            raise self._error(keyword, "No such file or directory.")
        return Call(Function(keyword, None, [], statements), keyword, [])


def parse(tokens: List[Token], reporter: Optional[ErrorReporter] = None,
          importer: Optional[Importer] = None) -> List[Stmt]:
    """Convenience wrapper around `Parser(...).parse()`."""
    return Parser(tokens, reporter, importer).parse()
