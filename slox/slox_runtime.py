import asyncio
import inspect
import math
import os
import random
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Literal, Optional

from slox import slox_collections, slox_file, slox_http, slox_serialize
from slox.slox_ast import Stmt
from slox.slox_datatypes import (
    Environment, NativeFunction, SloxCallable, SloxClass, SloxInstance, is_number,
    native_class, stringify,
)
from slox.slox_errors import Diagnostic, ErrorReporter
from slox.slox_interpreter import Evaluator
from slox.slox_parser import Parser
from slox.slox_resolver import Resolver
from slox.slox_scanner import Scanner

EXIT_USAGE = 64
EXIT_STATIC_ERROR = 65
EXIT_RUNTIME_ERROR = 70


# ===================================================================
# 1. The Standard Library
# ===================================================================

class StdLib:
    """Contains Python implementations for all SLOX global functions.

    Every method named `_name` is bound into the globals as `name`.
    """
    def __init__(self, evaluator: Evaluator, runner: Optional['ScriptRunner'] = None):
        self.evaluator = evaluator
        self.runner = runner

    # --- Time and process ---
    def _clock(self):
        return int(time.time() * 1000)

    async def _prompt(self, message):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, input, stringify(message))
        except EOFError:
            return None

    def _chr(self, code):
        return chr(int(code))

    def _exit(self, code):
        raise SystemExit(int(code))

    async def _eval(self, source):
        """Scan, parse, resolve and run `source` in this evaluator's globals."""
        evaluator = self.evaluator
        reporter = evaluator.reporter
        importer = self.runner.importer(self.runner.source_dir) if self.runner else None
        tokens = Scanner(stringify(source), reporter).scan_tokens()
        statements = Parser(tokens, reporter, importer).parse()
        if reporter.had_error:
            return None
        Resolver(evaluator, reporter).resolve_program(statements)
        if reporter.had_error:
            return None
        return await evaluator.run_program(statements, evaluator.globals)

    # --- Objects and classes ---
    def _instanceof(self, obj, klass):
        if not isinstance(obj, SloxInstance) or not isinstance(klass, SloxClass):
            return False
        return obj.klass.is_subclass_of(klass)

    def _has(self, obj, name):
        return isinstance(obj, SloxInstance) and stringify(name) in obj.fields

    def _get(self, obj, name):
        if not isinstance(obj, SloxInstance):
            raise TypeError("get expects an instance")
        return obj.fields.get(stringify(name))

    def _set(self, obj, name, value):
        if not isinstance(obj, SloxInstance):
            raise TypeError("set expects an instance")
        obj.fields[stringify(name)] = value
        return value

    async def _range(self, start, end):
        if not (is_number(start) and is_number(end)):
            raise TypeError("range expects two numbers")
        return await self.evaluator.make_list(list(range(int(start), int(end) + 1)))

    # --- Timers ---
    def _timeout(self, callback, ms):
        if not isinstance(callback, SloxCallable):
            raise TypeError("timeout expects a function")
        self.evaluator.schedule(callback, float(ms))
        return None

    def _interval(self, callback, ms):
        if not isinstance(callback, SloxCallable):
            raise TypeError("interval expects a function")
        self.evaluator.schedule(callback, float(ms), repeat=True)
        return None


# --- String and Math singletons ---

async def _text(evaluator, value) -> str:
    return await evaluator.pretty_stringify(value)


async def _string_repeat(evaluator, this, text, count):
    return (await _text(evaluator, text)) * int(count)


async def _string_trim(evaluator, this, text):
    return (await _text(evaluator, text)).strip()


async def _string_include(evaluator, this, text, part):
    return stringify(part) in await _text(evaluator, text)


async def _string_substring(evaluator, this, text, start, end):
    value = await _text(evaluator, text)
    begin = min(max(int(start), 0), len(value))
    stop = len(value) if end is None else min(max(int(end), 0), len(value))
    if begin > stop:
        begin, stop = stop, begin
    return value[begin:stop]


async def _string_split(evaluator, this, text, separator):
    value = await _text(evaluator, text)
    sep = stringify(separator)
    parts = list(value) if sep == "" else value.split(sep)
    return await evaluator.make_list(parts)


async def _string_length(evaluator, this, text):
    return len(await _text(evaluator, text))


StringClass = native_class("String", {
    "repeat": _string_repeat,
    "trim": _string_trim,
    "include": _string_include,
    "substring": _string_substring,
    "split": _string_split,
    "length": _string_length,
})


def _math_round(evaluator, this, x):
    # Halves round up, as in most scripting languages.
    return math.floor(x + 0.5)


MathClass = native_class("Math", {
    "random": lambda evaluator, this: random.random(),
    "randomRange": lambda evaluator, this, low, high: random.random() * (high - low) + low,
    "sin": lambda evaluator, this, x: math.sin(x),
    "cos": lambda evaluator, this, x: math.cos(x),
    "sqrt": lambda evaluator, this, x: math.sqrt(x),
    "floor": lambda evaluator, this, x: math.floor(x),
    "round": _math_round,
})


def native_globals() -> Dict[str, Any]:
    return {
        "String": SloxInstance(StringClass),
        "Math": SloxInstance(MathClass),
    }


# ===================================================================
# 2. Script Execution
# ===================================================================

@dataclass
class ExecutionResult:
    """The structured result of a script execution."""
    status: Literal['success', 'error']
    value: Any = None
    error_message: Optional[str] = None
    diagnostics: List[Diagnostic] = field(default_factory=list)
    side_effects: List[Dict] = field(default_factory=list)
    exit_code: int = 0

    def format_error(self) -> str:
        """All diagnostics of a failed run, one per line."""
        if self.status != 'error':
            return ""
        return str(self.error_message or "Unknown error")


class ScriptRunner:
    """Scans, parses, resolves and executes SLOX code."""

    _MODULES = (slox_collections, slox_serialize, slox_file, slox_http)

    def __init__(self, load_stdlib: bool = True, source_dir: Optional[str] = None):
        self.reporter = ErrorReporter()
        self.source_dir = source_dir  # directory of the current source file, if known
        self._load_stdlib = load_stdlib
        self.evaluator = self._new_evaluator()

    def _new_evaluator(self) -> Evaluator:
        evaluator = Evaluator(self.reporter)
        evaluator.source_dir = self.source_dir
        if self._load_stdlib:
            self._install_stdlib(evaluator)
        return evaluator

    def _install_stdlib(self, evaluator: Evaluator):
        stdlib = StdLib(evaluator, self)
        for name, member in inspect.getmembers(stdlib):
            if name.startswith('_') and not name.startswith('__') and callable(member):
                evaluator.globals.define(name[1:], NativeFunction(name[1:], member))
        bindings = dict(native_globals())
        for module in self._MODULES:
            bindings.update(module.native_globals())
        for name, value in bindings.items():
            evaluator.globals.define(name, value)

    def importer(self, base_dir: Optional[str]) -> Callable[[str], Optional[List[Stmt]]]:
        """Builds the parser's `import` hook; paths resolve against `base_dir`."""
        def _import(path: str) -> Optional[List[Stmt]]:
            try:
                source = slox_file.read_source(path, base_dir)
            except OSError:
                return None
            full_path = slox_file.resolve_path(path, base_dir)
            tokens = Scanner(source, self.reporter).scan_tokens()
            return Parser(tokens, self.reporter, self.importer(os.path.dirname(full_path))).parse()
        return _import

    async def run(self, source: str, independent: bool = False, interpret: bool = True,
                  environment: Optional[Environment] = None) -> Any:
        """Runs `source` and returns the program result.

        `independent` runs it on a fresh evaluator; `interpret=False` stops
        after parsing and returns the statements; `environment` runs the
        program inside that environment instead of the current one.
        """
        evaluator = self._new_evaluator() if independent else self.evaluator
        evaluator.source_dir = self.source_dir

        tokens = Scanner(source, self.reporter).scan_tokens()
        statements = Parser(tokens, self.reporter, self.importer(self.source_dir)).parse()
        if self.reporter.had_error:
            return None
        if not interpret:
            return statements

        Resolver(evaluator, self.reporter).resolve_program(statements)
        if self.reporter.had_error:
            return None
        return await evaluator.interpret(statements, environment)

    async def handle_script(self, source_code: str) -> ExecutionResult:
        """The main entry point to execute a script."""
        # Clear per-run state; the globals persist between runs.
        self.evaluator.side_effects.clear()
        self.reporter.reset()

        value = await self.run(source_code)

        diagnostics = list(self.reporter.diagnostics)
        for diag in diagnostics:
            if diag.origin != "Runtime":
                self.evaluator.side_effects.append({'topics': ['stderr'], 'message': diag.format()})

        if self.reporter.had_error or self.reporter.had_runtime_error:
            return ExecutionResult(
                status='error',
                error_message="\n".join(d.format() for d in diagnostics),
                diagnostics=diagnostics,
                side_effects=self.evaluator.side_effects,
                exit_code=EXIT_STATIC_ERROR if self.reporter.had_error else EXIT_RUNTIME_ERROR,
            )
        return ExecutionResult(
            status='success',
            value=value,
            side_effects=self.evaluator.side_effects,
        )

    async def wait_for_tasks(self, timeout: Optional[float] = None):
        """Waits for pending `timeout`/`interval` callbacks to finish."""
        pending = set(self.evaluator.active_tasks)
        if pending:
            await asyncio.wait(pending, timeout=timeout)

    def cancel_tasks(self) -> int:
        return self.evaluator.cancel_tasks()
