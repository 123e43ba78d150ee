"""
A pretty-printer for SLOX syntax trees and values.
"""
import math
from typing import Any, List, Union

from slox.slox_ast import (
    Assign, Binary, Block, Break, Call, Class, Command, Expr, Expression,
    Function, Get, Grouping, If, ListLiteral, Literal, Logical, ObjectLiteral,
    Print, Return, Set, Stmt, Super, This, Throw, Try, Unary, Var, Variable,
    While,
)
from slox.slox_datatypes import SloxInstance, format_number, stringify
from slox.slox_tokens import Token, TokenType

# Binding strength of each expression form, lowest first. Mirrors the parser.
_ASSIGNMENT, _OR, _AND, _EQUALITY, _COMPARISON, _TERM, _FACTOR, _UNARY, _CALL, _PRIMARY = range(1, 11)

_BINARY_PRECEDENCE = {
    TokenType.EQUAL_EQUAL: _EQUALITY,
    TokenType.BANG_EQUAL: _EQUALITY,
    TokenType.GREATER: _COMPARISON,
    TokenType.GREATER_EQUAL: _COMPARISON,
    TokenType.LESS: _COMPARISON,
    TokenType.LESS_EQUAL: _COMPARISON,
    TokenType.PLUS: _TERM,
    TokenType.MINUS: _TERM,
    TokenType.STAR: _FACTOR,
    TokenType.SLASH: _FACTOR,
    TokenType.DOUBLE_STAR: _FACTOR,
}

_OPERATOR_TEXT = {
    TokenType.EQUAL_EQUAL: "==", TokenType.BANG_EQUAL: "!=",
    TokenType.GREATER: ">", TokenType.GREATER_EQUAL: ">=",
    TokenType.LESS: "<", TokenType.LESS_EQUAL: "<=",
    TokenType.PLUS: "+", TokenType.MINUS: "-",
    TokenType.STAR: "*", TokenType.SLASH: "/", TokenType.DOUBLE_STAR: "**",
    TokenType.BANG: "!", TokenType.AND: "and", TokenType.OR: "or",
}

# A statement starting with one of these would glue onto a preceding bare condition.
_AMBIGUOUS_STARTS = ("(", "[", "-")


class Printer:
    """Formats SLOX syntax trees into canonical, re-parseable source text."""

    def __init__(self, indent_width=2):
        self._indent_char = " " * indent_width

    def pformat(self, obj: Union[Stmt, Expr, List[Stmt], Any], level=0) -> str:
        """Public entry point to format a node, a program, or a plain value."""
        if isinstance(obj, list):
            return "\n".join(self._stmt(s, level) for s in obj)
        if isinstance(obj, Stmt):
            return self._stmt(obj, level)
        if isinstance(obj, Expr):
            return self._expr(obj, level)
        return self.pformat_value(obj)

    def pformat_value(self, value: Any) -> str:
        """A runtime value as `print` shows it; instances only by class name."""
        if isinstance(value, SloxInstance):
            return f"{value.klass.name} instance"
        return stringify(value)

    # ------------------------------------------------------------------ literals

    def _literal(self, value: Any) -> str:
        match value:
            case None | bool():
                return stringify(value)
            case int() | float():
                return self._number(value)
            case str():
                return self._quote(value, '"')
            case _:
                raise TypeError(f"Printer cannot write a literal for {type(value).__name__}")

    def _number(self, value) -> str:
        if isinstance(value, float) and (math.isinf(value) or math.isnan(value)):
            return format_number(value)
        text = repr(value)
        if "e" in text:
            # The scanner has no exponent form.
            text = f"{value:f}".rstrip("0").rstrip(".") if isinstance(value, float) else str(value)
        return text

    def _quote(self, text: str, delimiter: str) -> str:
        escaped = text.replace("\\", "\\\\").replace(delimiter, "\\" + delimiter)
        return f"{delimiter}{escaped}{delimiter}"

    # ------------------------------------------------------------------ statements

    def _indent(self, level: int) -> str:
        return self._indent_char * level

    def _body(self, statements: List[Stmt], level: int) -> str:
        if not statements:
            return "{}"
        inner = "\n".join(self._stmt(s, level + 1) for s in statements)
        return "{\n" + inner + "\n" + self._indent(level) + "}"

    def _branch(self, stmt: Stmt, level: int, force_block: bool = False) -> str:
        """A statement nested after a bare expression (if/while) or keyword."""
        if isinstance(stmt, Block):
            return self._body(stmt.statements, level)
        text = self._stmt(stmt, level).lstrip()
        if force_block or text.startswith(_AMBIGUOUS_STARTS):
            return self._body([stmt], level)
        return text

    def _stmt(self, stmt: Stmt, level: int = 0) -> str:
        pad = self._indent(level)
        match stmt:
            case Expression(expression=expression):
                text = self._expr(expression, level)
                if text.startswith("{"):
                    # Would otherwise read as a block.
                    text = f"({text})"
                return f"{pad}{text};"
            case Print(expression=expression):
                return f"{pad}print {self._expr(expression, level)};"
            case Var(name=name, initializer=initializer):
                if initializer is None or (isinstance(initializer, Literal) and initializer.value is None):
                    return f"{pad}var {name.lexeme};"
                return f"{pad}var {name.lexeme} = {self._expr(initializer, level)};"
            case Block(statements=statements):
                return pad + self._body(statements, level)
            case If(condition=condition, then_branch=then_branch, else_branch=else_branch):
                # A bare nested `if` would capture this statement's `else`.
                force = else_branch is not None and isinstance(then_branch, If)
                text = f"{pad}if {self._expr(condition, level)} {self._branch(then_branch, level, force)}"
                if else_branch is not None:
                    text += f" else {self._branch(else_branch, level)}"
                return text
            case While(condition=condition, body=body):
                return f"{pad}while {self._expr(condition, level)} {self._branch(body, level)}"
            case Return(value=value):
                if value is None or (isinstance(value, Literal) and value.value is None):
                    return f"{pad}return;"
                return f"{pad}return {self._expr(value, level)};"
            case Break():
                return f"{pad}break;"
            case Throw(expression=expression):
                return f"{pad}throw {self._expr(expression, level)};"
            case Try(try_branch=try_branch, err_name=err_name, catch_branch=catch_branch):
                catch = "catch" if err_name is None else f"catch {err_name.lexeme}"
                catch_text = self._branch(catch_branch, level, force_block=err_name is None)
                return f"{pad}try {self._branch(try_branch, level)} {catch} {catch_text}"
            case Class(name=name, superclass=superclass, methods=methods):
                head = f"{pad}class {name.lexeme}"
                if superclass is not None:
                    head += f" < {superclass.name.lexeme}"
                if not methods:
                    return head + " {}"
                inner = "\n".join(self._method(m, level + 1) for m in methods)
                return head + " {\n" + inner + "\n" + pad + "}"
            case _:
                raise TypeError(f"Printer cannot format statement {type(stmt).__name__}")

    def _method(self, method: Function, level: int) -> str:
        params = ", ".join(p.lexeme for p in method.params)
        return f"{self._indent(level)}{method.name.lexeme}({params}) {self._body(method.body, level)}"

    # ------------------------------------------------------------------ expressions

    def _precedence(self, expr: Expr) -> int:
        match expr:
            case Assign() | Set():
                return _ASSIGNMENT
            case Logical(operator=operator):
                return _OR if operator.type == TokenType.OR else _AND
            case Binary(operator=operator):
                return _BINARY_PRECEDENCE[operator.type]
            case Unary():
                return _UNARY
            case Literal(value=value) if (isinstance(value, (int, float)) and not isinstance(value, bool)
                                          and (value < 0 or math.copysign(1, value) < 0)):
                return _UNARY
            case Call() | Get():
                return _CALL
            case _:
                return _PRIMARY

    def _operand(self, expr: Expr, minimum: int, level: int) -> str:
        text = self._expr(expr, level)
        if self._precedence(expr) < minimum:
            return f"({text})"
        return text

    def _target(self, obj: Expr, name: Union[Token, Expr], level: int) -> str:
        base = self._operand(obj, _CALL, level)
        if isinstance(name, Token):
            return f"{base}.{name.lexeme}"
        return f"{base}[{self._expr(name, level)}]"

    def _expr(self, expr: Expr, level: int = 0) -> str:
        match expr:
            case Literal(value=value):
                return self._literal(value)
            case Variable(name=name):
                return name.lexeme
            case This():
                return "this"
            case Super(method=method):
                return f"super.{method.lexeme}"
            case Grouping(expression=inner):
                return f"({self._expr(inner, level)})"
            case Command(value=value):
                return self._quote(value, "`")
            case Assign(name=name, value=value):
                return f"{name.lexeme} = {self._operand(value, _ASSIGNMENT, level)}"
            case Set(object=obj, name=name, value=value, operator=operator):
                equals = "=" if operator is None else f"{_OPERATOR_TEXT[operator.type]}="
                return f"{self._target(obj, name, level)} {equals} {self._operand(value, _ASSIGNMENT, level)}"
            case Logical(left=left, operator=operator, right=right) | Binary(left=left, operator=operator, right=right):
                precedence = self._precedence(expr)
                lhs = self._operand(left, precedence, level)
                rhs = self._operand(right, precedence + 1, level)
                return f"{lhs} {_OPERATOR_TEXT[operator.type]} {rhs}"
            case Unary(operator=operator, right=right):
                return f"{_OPERATOR_TEXT[operator.type]}{self._operand(right, _UNARY, level)}"
            case Call(callee=callee, arguments=arguments):
                args = ", ".join(self._operand(a, _ASSIGNMENT, level) for a in arguments)
                if isinstance(callee, Function):
                    # Immediately-invoked function (also what `import` expands to).
                    return f"({self._expr(callee, level)})({args})"
                return f"{self._operand(callee, _CALL, level)}({args})"
            case Get(object=obj, name=name):
                return self._target(obj, name, level)
            case Function(name=name, params=params, body=body):
                head = f"fun {name.lexeme}" if name is not None else "fun "
                return f"{head}({', '.join(p.lexeme for p in params)}) {self._body(body, level)}"
            case ListLiteral(values=values):
                return "[" + ", ".join(self._operand(v, _ASSIGNMENT, level) for v in values) + "]"
            case ObjectLiteral(keys=keys, values=values):
                pairs = []
                for key, value in zip(keys, values):
                    key_text = key.name.lexeme if isinstance(key, Variable) else self._expr(key, level)
                    pairs.append(f"{key_text}: {self._operand(value, _ASSIGNMENT, level)}")
                return "{" + ", ".join(pairs) + "}"
            case _:
                raise TypeError(f"Printer cannot format expression {type(expr).__name__}")
