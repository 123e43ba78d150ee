"""
Static scope resolution.

Walks the syntax tree once before execution, mirroring the scopes the
evaluator will create at runtime, and records for every local variable,
`this` and `super` reference how many environments lie between the use
and its declaration. References that are not found in any local scope
are left unrecorded and looked up in the globals at runtime.
"""
from enum import Enum, auto
from typing import Dict, List, Optional, TYPE_CHECKING, Union

from slox.slox_ast import (
    Assign, Binary, Block, Break, Call, Class, Command, Expr, Expression,
    Function, Get, Grouping, If, ListLiteral, Literal, Logical, ObjectLiteral,
    Print, Return, Set, Stmt, Super, This, Throw, Try, Unary, Var, Variable,
    While,
)
from slox.slox_errors import ErrorReporter
from slox.slox_tokens import Token

if TYPE_CHECKING:
    from slox.slox_interpreter import Evaluator


class ClassType(Enum):
    NONE = auto()
    CLASS = auto()
    SUBCLASS = auto()


class Resolver:
    def __init__(self, evaluator: 'Evaluator', reporter: Optional[ErrorReporter] = None):
        self.evaluator = evaluator
        self.reporter = reporter or evaluator.reporter
        self.scopes: List[Dict[str, bool]] = []
        self.current_class = ClassType.NONE

    def resolve_program(self, statements: List[Stmt]):
        self._resolve_all(statements)

    # ------------------------------------------------------------------ scopes

    def _begin_scope(self):
        self.scopes.append({})

    def _end_scope(self):
        self.scopes.pop()

    def _declare(self, name: Token):
        if not self.scopes:
            return
        scope = self.scopes[-1]
        if name.lexeme in scope:
            self._error(name, "Already a variable with this name in this scope.")
        scope[name.lexeme] = False

    def _define(self, name: Token):
        if not self.scopes:
            return
        self.scopes[-1][name.lexeme] = True

    def _resolve_local(self, expr: Expr, name: Token):
        for index in range(len(self.scopes) - 1, -1, -1):
            if name.lexeme in self.scopes[index]:
                self.evaluator.resolve(expr, len(self.scopes) - 1 - index)
                return

    def _error(self, token: Token, message: str):
        self.reporter.token_error(token, message, "Resolver")

    # ------------------------------------------------------------------ walking

    def _resolve_all(self, nodes: List[Union[Stmt, Expr]]):
        for node in nodes:
            self._resolve(node)

    def _resolve(self, node: Union[Stmt, Expr, Token, None]):
        match node:
            case None | Token() | Literal() | Command() | Break():
                pass

            # statements
            case Block(statements=statements):
                self._begin_scope()
                self._resolve_all(statements)
                self._end_scope()
            case Var(name=name, initializer=initializer):
                self._declare(name)
                self._resolve(initializer)
                self._define(name)
            case Class():
                self._resolve_class(node)
            case Expression(expression=expression) | Print(expression=expression):
                self._resolve(expression)
            case If(condition=condition, then_branch=then_branch, else_branch=else_branch):
                self._resolve(condition)
                self._resolve(then_branch)
                self._resolve(else_branch)
            case While(condition=condition, body=body):
                self._resolve(condition)
                self._resolve(body)
            case Return(value=value) | Throw(expression=value):
                self._resolve(value)
            case Try(try_branch=try_branch, err_name=err_name, catch_branch=catch_branch):
                self._resolve(try_branch)
                self._begin_scope()
                if err_name is not None:
                    self._declare(err_name)
                    self._define(err_name)
                self._resolve(catch_branch)
                self._end_scope()

            # expressions
            case Variable(name=name):
                if self.scopes and self.scopes[-1].get(name.lexeme) is False:
                    self._error(name, "Can't read local variable in its own initializer.")
                self._resolve_local(node, name)
            case Assign(name=name, value=value):
                self._resolve(value)
                self._resolve_local(node, name)
            case Function(name=name):
                if name is not None:
                    self._declare(name)
                    self._define(name)
                self._resolve_function(node)
            case Binary(left=left, right=right) | Logical(left=left, right=right):
                self._resolve(left)
                self._resolve(right)
            case Unary(right=right) | Grouping(expression=right):
                self._resolve(right)
            case Call(callee=callee, arguments=arguments):
                self._resolve(callee)
                self._resolve_all(arguments)
            case Get(object=obj, name=name):
                self._resolve(obj)
                self._resolve(name)
            case Set(object=obj, name=name, value=value):
                self._resolve(obj)
                self._resolve(name)
                self._resolve(value)
            case ListLiteral(values=values):
                self._resolve_all(values)
            case ObjectLiteral(keys=keys, values=values):
                # A bare identifier key names the field; it is not a variable read.
                self._resolve_all([key for key in keys if not isinstance(key, Variable)])
                self._resolve_all(values)
            case This(keyword=keyword):
                if self.current_class == ClassType.NONE:
                    self._error(keyword, "Can't use 'this' outside of a class.")
                    return
                self._resolve_local(node, keyword)
            case Super(keyword=keyword):
                if self.current_class == ClassType.NONE:
                    self._error(keyword, "Can't use 'super' outside of a class.")
                elif self.current_class != ClassType.SUBCLASS:
                    self._error(keyword, "Can't use 'super' in a class with no superclass.")
                self._resolve_local(node, keyword)
            case _:
                raise TypeError(f"Resolver cannot handle node {type(node).__name__}")

    def _resolve_function(self, function: Function):
        self._begin_scope()
        for param in function.params:
            self._declare(param)
            self._define(param)
        self._resolve_all(function.body)
        self._end_scope()

    def _resolve_class(self, stmt: Class):
        enclosing_class = self.current_class
        self.current_class = ClassType.CLASS

        self._declare(stmt.name)
        self._define(stmt.name)

        if stmt.superclass is not None:
            if stmt.superclass.name.lexeme == stmt.name.lexeme:
                self._error(stmt.superclass.name, "A class can't inherit from itself.")
            self.current_class = ClassType.SUBCLASS
            self._resolve(stmt.superclass)
            self._begin_scope()
            self.scopes[-1]["super"] = True

        self._begin_scope()
        self.scopes[-1]["this"] = True
        for method in stmt.methods:
            self._resolve_function(method)
        self._end_scope()

        if stmt.superclass is not None:
            self._end_scope()
        self.current_class = enclosing_class


def resolve_program(evaluator: 'Evaluator', statements: List[Stmt],
                    reporter: Optional[ErrorReporter] = None):
    Resolver(evaluator, reporter).resolve_program(statements)
