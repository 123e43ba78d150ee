"""
The SLOX syntax tree.

Two closed families of nodes: expressions (`Expr`) and statements (`Stmt`).
Nodes are plain dataclasses compared and hashed by identity, so a node can
key the resolver's side-table of scope distances. The tree is built once by
the parser and never mutated afterwards.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from slox.slox_tokens import Token


class Expr:
    """Base class for expression nodes."""
    __slots__ = ()


class Stmt:
    """Base class for statement nodes."""
    __slots__ = ()


# =================================================================
# Expressions
# =================================================================

@dataclass(eq=False)
class Assign(Expr):
    name: Token
    value: Expr


@dataclass(eq=False)
class Binary(Expr):
    left: Expr
    operator: Token
    right: Expr


@dataclass(eq=False)
class Call(Expr):
    callee: Expr
    paren: Token
    arguments: List[Expr] = field(default_factory=list)


@dataclass(eq=False)
class Command(Expr):
    """A backtick shell command; evaluates to the command's captured stdout."""
    token: Token
    value: str


@dataclass(eq=False)
class Function(Expr):
    """A function literal. `name` is set for `fun name(...)` and for methods."""
    keyword: Token
    name: Optional[Token]
    params: List[Token]
    body: List[Stmt]


@dataclass(eq=False)
class Get(Expr):
    """`object.name` or `object[expr]`; a computed name is an Expr."""
    token: Token
    object: Expr
    name: Union[Token, Expr]


@dataclass(eq=False)
class Grouping(Expr):
    expression: Expr


@dataclass(eq=False)
class ListLiteral(Expr):
    token: Token
    values: List[Expr] = field(default_factory=list)


@dataclass(eq=False)
class Literal(Expr):
    value: Any


@dataclass(eq=False)
class Logical(Expr):
    left: Expr
    operator: Token
    right: Expr


@dataclass(eq=False)
class ObjectLiteral(Expr):
    """`{key: value, ...}`. A bare identifier key names the field directly."""
    token: Token
    keys: List[Expr] = field(default_factory=list)
    values: List[Expr] = field(default_factory=list)


@dataclass(eq=False)
class Set(Expr):
    """`object.name = value`; with `operator` set, `object.name op= value`."""
    token: Token
    object: Expr
    name: Union[Token, Expr]
    value: Expr
    operator: Optional[Token] = None


@dataclass(eq=False)
class Super(Expr):
    keyword: Token
    method: Token


@dataclass(eq=False)
class This(Expr):
    keyword: Token


@dataclass(eq=False)
class Unary(Expr):
    operator: Token
    right: Expr


@dataclass(eq=False)
class Variable(Expr):
    name: Token


# =================================================================
# Statements
# =================================================================

@dataclass(eq=False)
class Block(Stmt):
    statements: List[Stmt] = field(default_factory=list)


@dataclass(eq=False)
class Break(Stmt):
    keyword: Token


@dataclass(eq=False)
class Class(Stmt):
    name: Token
    superclass: Optional[Variable]
    methods: List[Function] = field(default_factory=list)


@dataclass(eq=False)
class Expression(Stmt):
    expression: Expr


@dataclass(eq=False)
class If(Stmt):
    condition: Expr
    then_branch: Stmt
    else_branch: Optional[Stmt] = None


@dataclass(eq=False)
class Print(Stmt):
    expression: Expr


@dataclass(eq=False)
class Return(Stmt):
    keyword: Token
    value: Optional[Expr] = None


@dataclass(eq=False)
class Throw(Stmt):
    keyword: Token
    expression: Expr


@dataclass(eq=False)
class Try(Stmt):
    try_branch: Stmt
    err_name: Optional[Token]
    catch_branch: Stmt


@dataclass(eq=False)
class Var(Stmt):
    name: Token
    initializer: Optional[Expr] = None


@dataclass(eq=False)
class While(Stmt):
    condition: Expr
    body: Stmt
