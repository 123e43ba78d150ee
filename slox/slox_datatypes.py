"""
Defines the core data types for the SLOX runtime.

This module provides the environment chain, every callable kind (native
functions, native methods, user functions, classes), class instances and
the completion values used to unwind `return` and `break`. It also holds
the small set of predicates that define how SLOX values behave
(`is_number`, `is_truthy`, `values_equal`, `stringify`).
"""

import inspect
import math
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, TYPE_CHECKING

from slox.slox_errors import SloxRuntimeError
from slox.slox_tokens import Token, TokenType, synthetic

if TYPE_CHECKING:
    from slox.slox_ast import Function
    from slox.slox_interpreter import Evaluator


# =================================================================
# Environments
# =================================================================

class Environment:
    """A single lexical scope: a name -> value table plus its enclosing scope."""

    def __init__(self, enclosing: Optional['Environment'] = None):
        self.values: Dict[str, Any] = {}
        self.enclosing = enclosing

    def define(self, name: str, value: Any):
        self.values[name] = value

    def get(self, name: Token) -> Any:
        env = self
        while env is not None:
            if name.lexeme in env.values:
                return env.values[name.lexeme]
            env = env.enclosing
        raise SloxRuntimeError(name, f"Undefined variable '{name.lexeme}'.")

    def assign(self, name: Token, value: Any):
        env = self
        while env is not None:
            if name.lexeme in env.values:
                env.values[name.lexeme] = value
                return
            env = env.enclosing
        raise SloxRuntimeError(name, f"Undefined variable '{name.lexeme}'.")

    def ancestor(self, distance: int) -> 'Environment':
        env = self
        for _ in range(distance):
            env = env.enclosing
        return env

    def get_at(self, distance: int, name: str) -> Any:
        return self.ancestor(distance).values.get(name)

    def assign_at(self, distance: int, name: Token, value: Any):
        self.ancestor(distance).values[name.lexeme] = value

    def __contains__(self, name: str) -> bool:
        return name in self.values

    def __repr__(self) -> str:
        keys = ', '.join(self.values.keys())
        return f"<Environment values=[{keys}]{' enclosed' if self.enclosing else ''}>"


# =================================================================
# Completion values
# =================================================================

class Returning:
    """Completion of a `return` statement; unwound by the enclosing call."""
    __slots__ = ("value",)

    def __init__(self, value: Any):
        self.value = value

    def __repr__(self) -> str:
        return f"Returning({self.value!r})"


class _Breaking:
    """Completion of a `break` statement; unwound by the nearest loop."""
    __slots__ = ()

    def __repr__(self) -> str:
        return "BREAKING"


BREAKING = _Breaking()


# =================================================================
# Callables
# =================================================================

class SloxCallable(ABC):
    """Anything a SLOX program can call: it has a fixed arity and an async `call`."""
    name: str = ""

    @abstractmethod
    def arity(self) -> int:
        raise NotImplementedError

    @abstractmethod
    async def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        raise NotImplementedError


def _required_params(func: Callable, skip: int = 0) -> int:
    """Counts the required positional parameters of `func`, ignoring the first `skip`."""
    params = [
        p for p in inspect.signature(func).parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD) and p.default is p.empty
    ]
    return max(len(params) - skip, 0)


async def _settle(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class NativeFunction(SloxCallable):
    """A host function exposed as a SLOX global. May be sync or async."""

    def __init__(self, name: str, func: Callable, arity: Optional[int] = None):
        self.name = name
        self.func = func
        self._arity = _required_params(func) if arity is None else arity

    def arity(self) -> int:
        return self._arity

    async def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        return await _settle(self.func(*arguments))

    def __repr__(self) -> str:
        return f"<native fn {self.name}>"


class NativeMethod(SloxCallable):
    """A host method of a native class.

    `func` is called as `func(evaluator, this, *arguments)`; the method must
    be bound to an instance before it is called.
    """

    def __init__(self, name: str, func: Callable, arity: Optional[int] = None,
                 instance: Optional['SloxInstance'] = None):
        self.name = name
        self.func = func
        self._arity = _required_params(func, skip=2) if arity is None else arity
        self.instance = instance

    def arity(self) -> int:
        return self._arity

    def bind(self, instance: 'SloxInstance') -> 'NativeMethod':
        return NativeMethod(self.name, self.func, self._arity, instance)

    async def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        result = await _settle(self.func(evaluator, self.instance, *arguments))
        if self.name == "init":
            return self.instance
        return result

    def __repr__(self) -> str:
        return f"<native fn {self.name}>"


class SloxFunction(SloxCallable):
    """A user function: a `Function` node closed over its defining environment."""

    def __init__(self, declaration: 'Function', closure: Environment, is_initializer: bool = False):
        self.declaration = declaration
        self.closure = closure
        self.is_initializer = is_initializer
        self.name = declaration.name.lexeme if declaration.name else ""

    def arity(self) -> int:
        return len(self.declaration.params)

    def bind(self, instance: 'SloxInstance') -> 'SloxFunction':
        environment = Environment(self.closure)
        environment.define("this", instance)
        return SloxFunction(self.declaration, environment, self.is_initializer)

    async def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        environment = Environment(self.closure)
        for i, param in enumerate(self.declaration.params):
            environment.define(param.lexeme, arguments[i] if i < len(arguments) else None)

        completion = await evaluator.execute_block(self.declaration.body, environment)

        if self.is_initializer:
            return self.closure.get_at(0, "this")
        if isinstance(completion, Returning):
            return completion.value
        return None

    def __repr__(self) -> str:
        return f"<fn {self.name}>" if self.name else "<fn>"


class SloxClass(SloxCallable):
    """A class: a name, an optional superclass and a method table."""

    def __init__(self, name: str, superclass: Optional['SloxClass'], methods: Dict[str, SloxCallable]):
        self.name = name
        self.superclass = superclass
        self.methods = methods

    def find_method(self, name: str) -> Optional[SloxCallable]:
        klass = self
        while klass is not None:
            if name in klass.methods:
                return klass.methods[name]
            klass = klass.superclass
        return None

    def arity(self) -> int:
        initializer = self.find_method("init")
        return initializer.arity() if initializer is not None else 0

    async def call(self, evaluator: 'Evaluator', arguments: List[Any]) -> Any:
        instance = SloxInstance(self)
        initializer = self.find_method("init")
        if initializer is not None:
            await initializer.bind(instance).call(evaluator, arguments)
        return instance

    def is_subclass_of(self, other: 'SloxClass') -> bool:
        klass = self
        while klass is not None:
            if klass is other or klass.name == other.name:
                return True
            klass = klass.superclass
        return False

    def __repr__(self) -> str:
        return self.name


class SloxInstance:
    """An instance of a SloxClass. Fields shadow methods."""

    def __init__(self, klass: SloxClass):
        self.klass = klass
        self.fields: Dict[str, Any] = {}

    def get(self, name: Token) -> Any:
        value = self.get_permissive(name.lexeme)
        if value is None and name.lexeme not in self.fields:
            raise SloxRuntimeError(name, f"Undefined property '{name.lexeme}'.")
        return value

    def get_permissive(self, name: str) -> Any:
        """Field or bound method named `name`, or None when neither exists."""
        if name in self.fields:
            return self.fields[name]
        method = self.klass.find_method(name)
        if method is not None:
            return method.bind(self)
        return None

    def has(self, name: str) -> bool:
        return name in self.fields or self.klass.find_method(name) is not None

    def set(self, name: str, value: Any):
        self.fields[name] = value

    def __repr__(self) -> str:
        return f"{self.klass.name} instance"


def native_class(name: str, methods: Dict[str, Callable],
                 superclass: Optional[SloxClass] = None) -> SloxClass:
    """Builds a SloxClass whose methods are Python callables `f(evaluator, this, *args)`."""
    table: Dict[str, SloxCallable] = {
        method_name: NativeMethod(method_name, func) for method_name, func in methods.items()
    }
    return SloxClass(name, superclass, table)


def native_token(name: str, line: int = 0) -> Token:
    """A token used to attribute errors raised from native code."""
    return synthetic(TokenType.IDENTIFIER, name, line)


# =================================================================
# Value predicates
# =================================================================

def is_number(value: Any) -> bool:
    # bool is a subclass of int, so check it first
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_list_instance(value: Any) -> bool:
    return isinstance(value, SloxInstance) and value.klass.name == "List"


def is_truthy(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return value != 0
    if is_list_instance(value):
        return len(value.fields.get("_values") or []) > 0
    return True


def values_equal(a: Any, b: Any) -> bool:
    """Strict equality: values of different kinds are never equal."""
    if a is None or b is None:
        return a is b
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if is_number(a) and is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    return a is b


def format_number(value: Any) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
    return str(value)


def stringify(value: Any) -> str:
    """The plain text form of a value, as used by `+` concatenation."""
    match value:
        case None:
            return "nil"
        case bool():
            return "true" if value else "false"
        case int() | float():
            return format_number(value)
        case str():
            return value
        case _:
            return repr(value)
