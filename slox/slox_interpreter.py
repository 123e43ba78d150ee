"""
The core SLOX interpreter: an async tree-walking Evaluator.

Statements execute to a completion value: None for normal completion,
`Returning(value)` for `return` and `BREAKING` for `break`. Functions
unwind `Returning`, loops unwind `BREAKING`. Python exceptions are used
only for the two error kinds: `SloxRuntimeError` (fatal) and
`ThrownError` (a user `throw`, catchable by `try`).
"""
import asyncio
import os
import sys
import weakref
from typing import Any, Dict, List, Optional, Tuple, Union

from slox import slox_collections
from slox.slox_ast import (
    Assign, Binary, Block, Break, Call, Class, Command, Expr, Expression,
    Function, Get, Grouping, If, ListLiteral, Literal, Logical, ObjectLiteral,
    Print, Return, Set, Stmt, Super, This, Throw, Try, Unary, Var, Variable,
    While,
)
from slox.slox_datatypes import (
    BREAKING, Environment, Returning, SloxCallable, SloxClass, SloxFunction,
    SloxInstance, is_number, is_truthy, stringify, values_equal,
)
from slox.slox_errors import Diagnostic, ErrorReporter, SloxRuntimeError, ThrownError
from slox.slox_tokens import Token, TokenType, synthetic

Completion = Union[None, Returning, type(BREAKING)]

_ARITHMETIC = {
    TokenType.MINUS: lambda a, b: a - b,
    TokenType.STAR: lambda a, b: a * b,
    TokenType.SLASH: lambda a, b: a / b,
    TokenType.DOUBLE_STAR: lambda a, b: a ** b,
    TokenType.GREATER: lambda a, b: a > b,
    TokenType.GREATER_EQUAL: lambda a, b: a >= b,
    TokenType.LESS: lambda a, b: a < b,
    TokenType.LESS_EQUAL: lambda a, b: a <= b,
}


class Evaluator:
    """Executes resolved SLOX programs.

    The evaluator owns the global environment, the resolver's side-table
    (`locals`) and the list of side effects produced while running
    (`print` output and error reports, each a `{'topics': [...], 'message': str}`
    dict). Timer callbacks run on forks of the evaluator that share all of
    this state but keep their own current environment.
    """

    def __init__(self, reporter: Optional[ErrorReporter] = None):
        self.reporter = reporter or ErrorReporter()
        self.globals = Environment()
        self.environment = self.globals
        # Entries go away with the syntax tree they belong to.
        self.locals: "weakref.WeakKeyDictionary[Expr, int]" = weakref.WeakKeyDictionary()
        self.side_effects: List[Dict] = []
        self.active_tasks: set = set()
        self.current_line = 0
        self.source_dir: Optional[str] = None

    def _dbg(self, *parts):
        if os.environ.get("SLOX_DEBUG"):
            print("[DBG]", *parts, file=sys.stderr)

    def fork(self) -> 'Evaluator':
        """An evaluator sharing this one's state, for code running in its own task."""
        child = Evaluator.__new__(Evaluator)
        child.__dict__.update(self.__dict__)
        child.environment = self.globals
        return child

    # ------------------------------------------------------------------ entry points

    def resolve(self, expr: Expr, depth: int):
        self.locals[expr] = depth

    async def interpret(self, statements: List[Stmt], environment: Optional[Environment] = None) -> Any:
        """Runs a program, reporting (not raising) runtime and uncaught user errors."""
        try:
            return await self.run_program(statements, environment)
        except SloxRuntimeError as error:
            self.report_runtime_error(error)
        except ThrownError as error:
            payload = await self.pretty_stringify(error.payload)
            self.report_runtime_error(error, f"Uncaught exception: {payload}")
        return None

    async def run_program(self, statements: List[Stmt], environment: Optional[Environment] = None) -> Any:
        completion = await self.execute_block(statements, environment or self.environment)
        if isinstance(completion, Returning):
            return completion.value
        return None

    def report_runtime_error(self, error: Union[SloxRuntimeError, ThrownError],
                             message: Optional[str] = None) -> Diagnostic:
        diag = self.reporter.runtime_error(error, message)
        self.side_effects.append({'topics': ['stderr'], 'message': diag.format()})
        return diag

    # ------------------------------------------------------------------ statements

    async def execute_block(self, statements: List[Stmt], environment: Environment) -> Completion:
        previous = self.environment
        self.environment = environment
        try:
            for statement in statements:
                completion = await self.execute(statement)
                if completion is not None:
                    return completion
            return None
        finally:
            self.environment = previous

    async def execute(self, stmt: Stmt) -> Completion:
        match stmt:
            case Expression(expression=expression):
                await self.evaluate(expression)
            case Print(expression=expression):
                text = await self.pretty_stringify(await self.evaluate(expression))
                self.side_effects.append({'topics': ['stdout'], 'message': text})
            case Var(name=name, initializer=initializer):
                value = await self.evaluate(initializer) if initializer is not None else None
                self.environment.define(name.lexeme, value)
            case Block(statements=statements):
                return await self.execute_block(statements, Environment(self.environment))
            case If(condition=condition, then_branch=then_branch, else_branch=else_branch):
                if is_truthy(await self.evaluate(condition)):
                    return await self.execute(then_branch)
                if else_branch is not None:
                    return await self.execute(else_branch)
            case While(condition=condition, body=body):
                while is_truthy(await self.evaluate(condition)):
                    completion = await self.execute(body)
                    if completion is BREAKING:
                        break
                    if completion is not None:
                        return completion
            case Return(value=value):
                return Returning(await self.evaluate(value) if value is not None else None)
            case Break():
                return BREAKING
            case Throw(keyword=keyword, expression=expression):
                raise ThrownError(keyword, await self.evaluate(expression))
            case Try(try_branch=try_branch, err_name=err_name, catch_branch=catch_branch):
                try:
                    return await self.execute(try_branch)
                except ThrownError as error:
                    self._dbg("catch", err_name.lexeme if err_name else "_", repr(error.payload))
                    environment = Environment(self.environment)
                    if err_name is not None:
                        environment.define(err_name.lexeme, error.payload)
                    return await self.execute_block([catch_branch], environment)
            case Class():
                await self._execute_class(stmt)
            case _:
                raise TypeError(f"Evaluator cannot execute node {type(stmt).__name__}")
        return None

    async def _execute_class(self, stmt: Class):
        superclass = None
        if stmt.superclass is not None:
            superclass = await self.evaluate(stmt.superclass)
            if not isinstance(superclass, SloxClass):
                raise SloxRuntimeError(stmt.superclass.name, "Superclass must be a class.")

        self.environment.define(stmt.name.lexeme, None)

        closure = self.environment
        if superclass is not None:
            closure = Environment(closure)
            closure.define("super", superclass)

        methods = {
            method.name.lexeme: SloxFunction(method, closure, method.name.lexeme == "init")
            for method in stmt.methods
        }
        self.environment.define(stmt.name.lexeme, SloxClass(stmt.name.lexeme, superclass, methods))

    # ------------------------------------------------------------------ expressions

    async def evaluate(self, expr: Expr) -> Any:
        match expr:
            case Literal(value=value):
                return value
            case Grouping(expression=inner):
                return await self.evaluate(inner)
            case Variable(name=name):
                return self._look_up(name, expr)
            case This(keyword=keyword):
                return self._look_up(keyword, expr)
            case Assign(name=name, value=value_expr):
                value = await self.evaluate(value_expr)
                distance = self.locals.get(expr)
                if distance is not None:
                    self.environment.assign_at(distance, name, value)
                else:
                    self.globals.assign(name, value)
                return value
            case Unary(operator=operator, right=right):
                return self._unary(operator, await self.evaluate(right))
            case Binary(left=left, operator=operator, right=right):
                lhs = await self.evaluate(left)
                rhs = await self.evaluate(right)
                return self._binary(operator, lhs, rhs)
            case Logical(left=left, operator=operator, right=right):
                lhs = await self.evaluate(left)
                if operator.type == TokenType.OR:
                    if is_truthy(lhs):
                        return lhs
                elif not is_truthy(lhs):
                    return lhs
                return await self.evaluate(right)
            case Call():
                return await self._call(expr)
            case Function(name=name):
                function = SloxFunction(expr, self.environment)
                if name is not None:
                    self.environment.define(name.lexeme, function)
                return function
            case Get():
                return await self._get(expr)
            case Set():
                return await self._set(expr)
            case Super(keyword=keyword, method=method):
                return self._super(expr, keyword, method)
            case ListLiteral(values=values):
                items = [await self.evaluate(value) for value in values]
                return await self.make_list(items)
            case ObjectLiteral(keys=keys, values=values):
                instance = SloxInstance(slox_collections.Object)
                for key, value in zip(keys, values):
                    if isinstance(key, Variable):
                        name = key.name.lexeme
                    else:
                        name = stringify(await self.evaluate(key))
                    instance.fields[name] = await self.evaluate(value)
                return instance
            case Command(token=token, value=command):
                return await self._run_command(token, command)
            case _:
                raise TypeError(f"Evaluator cannot evaluate node {type(expr).__name__}")

    def _look_up(self, name: Token, expr: Expr) -> Any:
        distance = self.locals.get(expr)
        if distance is not None:
            return self.environment.get_at(distance, name.lexeme)
        return self.globals.get(name)

    def _unary(self, operator: Token, right: Any) -> Any:
        if operator.type == TokenType.BANG:
            return not is_truthy(right)
        if not is_number(right):
            raise SloxRuntimeError(operator, "Operand must be a number.")
        return -right

    def _binary(self, operator: Token, left: Any, right: Any) -> Any:
        match operator.type:
            case TokenType.EQUAL_EQUAL:
                return values_equal(left, right)
            case TokenType.BANG_EQUAL:
                return not values_equal(left, right)
            case TokenType.PLUS:
                if is_number(left) and is_number(right):
                    return left + right
                if isinstance(left, str) or isinstance(right, str):
                    return stringify(left) + stringify(right)
                raise SloxRuntimeError(operator, "Operands must be two numbers or include a string.")

        if not (is_number(left) and is_number(right)):
            raise SloxRuntimeError(operator, "Operands must be numbers.")
        try:
            result = _ARITHMETIC[operator.type](left, right)
        except ZeroDivisionError:
            raise SloxRuntimeError(operator, "Division by zero.")
        except OverflowError:
            raise SloxRuntimeError(operator, "Numeric result out of range.")
        if isinstance(result, complex):
            raise SloxRuntimeError(operator, "Result is not a real number.")
        return result

    # ------------------------------------------------------------------ calls

    async def _call(self, expr: Call) -> Any:
        callee = await self.evaluate(expr.callee)
        arguments = [await self.evaluate(argument) for argument in expr.arguments]
        self.current_line = expr.paren.line

        if not isinstance(callee, SloxCallable):
            raise SloxRuntimeError(expr.paren, "Can only call functions and classes.")
        if len(arguments) != callee.arity():
            raise SloxRuntimeError(
                expr.paren, f"Expected {callee.arity()} arguments but got {len(arguments)}.")
        return await self.invoke(callee, arguments, expr.paren)

    async def invoke(self, callee: SloxCallable, arguments: List[Any], token: Token) -> Any:
        """Calls `callee`, turning host exceptions from native code into runtime errors."""
        try:
            return await callee.call(self, arguments)
        except (SloxRuntimeError, ThrownError):
            raise
        except Exception as e:
            self._dbg("native error in", getattr(callee, "name", callee), type(e).__name__, e)
            raise SloxRuntimeError(token, f"{type(e).__name__}: {e}") from e

    async def _run_command(self, token: Token, command: str) -> str:
        self._dbg("command", command)
        process = await asyncio.create_subprocess_shell(
            command,
            stdout=asyncio.subprocess.PIPE,
            cwd=self.source_dir,
        )
        stdout, _ = await process.communicate()
        return stdout.decode("utf-8", errors="replace")

    # ------------------------------------------------------------------ properties

    async def _property_name(self, token: Token, name: Union[Token, Expr]) -> Tuple[str, Token]:
        if isinstance(name, Token):
            return name.lexeme, name
        text = stringify(await self.evaluate(name))
        return text, synthetic(TokenType.IDENTIFIER, text, token.line)

    async def _get(self, expr: Get) -> Any:
        obj = await self.evaluate(expr.object)
        name, token = await self._property_name(expr.token, expr.name)
        self.current_line = token.line
        if not isinstance(obj, SloxInstance):
            raise SloxRuntimeError(token, "Only instances have properties.")
        return await self._read_property(obj, name, token)

    async def _read_property(self, obj: SloxInstance, name: str, token: Token) -> Any:
        fallback = obj.get_permissive("_default")
        if fallback is not None and not obj.has(name):
            return await self.invoke(fallback, [name], token)
        return obj.get(token)

    async def _set(self, expr: Set) -> Any:
        obj = await self.evaluate(expr.object)
        name, token = await self._property_name(expr.token, expr.name)
        self.current_line = token.line
        if not isinstance(obj, SloxInstance):
            raise SloxRuntimeError(token, "Only instances have fields.")

        if expr.operator is not None:
            current = await self._read_property(obj, name, token)
            value = self._binary(expr.operator, current, await self.evaluate(expr.value))
        else:
            value = await self.evaluate(expr.value)
        fallback = obj.get_permissive("_default")
        if fallback is not None and not obj.has(name):
            await self.invoke(fallback, [name, value], token)
        else:
            obj.set(name, value)
        return value

    def _super(self, expr: Super, keyword: Token, method: Token) -> Any:
        distance = self.locals.get(expr)
        if distance is None:
            raise SloxRuntimeError(keyword, "Can't use 'super' here.")
        superclass = self.environment.get_at(distance, "super")
        instance = self.environment.get_at(distance - 1, "this")
        found = superclass.find_method(method.lexeme)
        if found is None:
            raise SloxRuntimeError(method, f"Undefined property '{method.lexeme}'.")
        return found.bind(instance)

    # ------------------------------------------------------------------ values

    async def make_list(self, values: List[Any]) -> SloxInstance:
        return await slox_collections.List.call(self, [values])

    async def make_object(self, fields: Dict[str, Any]) -> SloxInstance:
        instance = SloxInstance(slox_collections.Object)
        instance.fields.update(fields)
        return instance

    async def pretty_stringify(self, value: Any) -> str:
        """The text `print` shows: instances render through their `string` method."""
        if isinstance(value, SloxInstance):
            method = value.klass.find_method("string")
            if method is not None:
                result = await method.bind(value).call(self, [])
                return result if isinstance(result, str) else stringify(result)
        return stringify(value)

    # ------------------------------------------------------------------ timers

    def schedule(self, callback: SloxCallable, delay_ms: float, repeat: bool = False) -> asyncio.Task:
        """Runs `callback` after `delay_ms` (repeatedly when `repeat`) on a forked evaluator."""
        worker = self.fork()

        async def _runner():
            while True:
                await asyncio.sleep(max(delay_ms, 0) / 1000)
                try:
                    await worker.invoke(callback, [], synthetic(TokenType.IDENTIFIER, "timer", self.current_line))
                except SloxRuntimeError as error:
                    worker.report_runtime_error(error)
                    return
                except ThrownError as error:
                    payload = await worker.pretty_stringify(error.payload)
                    worker.report_runtime_error(error, f"Uncaught exception: {payload}")
                    return
                if not repeat:
                    return

        task = asyncio.create_task(_runner())
        self.active_tasks.add(task)
        task.add_done_callback(self.active_tasks.discard)
        return task

    def cancel_tasks(self) -> int:
        count = len(self.active_tasks)
        for task in list(self.active_tasks):
            task.cancel()
        self.active_tasks.clear()
        return count
