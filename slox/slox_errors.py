"""
Error types and the diagnostic sink shared by every pipeline stage.

Static errors (scanner, parser, resolver) are *reported* and accumulate;
the pipeline checks `ErrorReporter.had_error` between stages. Runtime
errors and user-thrown errors are Python exceptions.
"""
import os
import sys
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from slox.slox_tokens import Token, TokenType


class SloxRuntimeError(Exception):
    """An engine-detected fault. Fatal to the run; never catchable by `try`."""
    def __init__(self, token: Token, message: str):
        super().__init__(message)
        self.token = token
        self.message = message


class ThrownError(Exception):
    """A user `throw`. Carries an arbitrary payload value."""
    def __init__(self, token: Token, payload: Any):
        super().__init__(payload)
        self.token = token
        self.payload = payload


class ParseError(Exception):
    """Unwinds the parser to the nearest declaration for panic-mode recovery."""
    pass


@dataclass
class Diagnostic:
    where: Union[int, str]
    message: str
    origin: str = ""

    def format(self) -> str:
        return f"[line {self.where}] {self.origin}Error: {self.message}"

    def __str__(self):
        return self.format()


class ErrorReporter:
    """Collects diagnostics and tracks the two failure flags of a run."""

    def __init__(self, echo: Optional[bool] = None):
        self.diagnostics: List[Diagnostic] = []
        self.had_error = False
        self.had_runtime_error = False
        # Mirror diagnostics to stderr as they arrive when SLOX_DEBUG is set.
        self.echo = bool(os.environ.get("SLOX_DEBUG")) if echo is None else echo

    def error(self, where: Union[int, str], message: str, origin: str = "") -> Diagnostic:
        diag = Diagnostic(where, message, origin)
        self.diagnostics.append(diag)
        self.had_error = True
        self._echo(diag)
        return diag

    def token_error(self, token: Token, message: str, origin: str = "") -> Diagnostic:
        if token.type == TokenType.EOF:
            return self.error(f"{token.line} at end", message, origin)
        return self.error(f"{token.line} at '{token.lexeme}'", message, origin)

    def runtime_error(self, error: Union[SloxRuntimeError, ThrownError], message: Optional[str] = None) -> Diagnostic:
        text = message if message is not None else str(getattr(error, "message", error))
        diag = Diagnostic(error.token.line, text, "Runtime")
        self.diagnostics.append(diag)
        self.had_runtime_error = True
        self._echo(diag)
        return diag

    def reset(self):
        self.diagnostics.clear()
        self.had_error = False
        self.had_runtime_error = False

    def _echo(self, diag: Diagnostic):
        if self.echo:
            print("[DBG]", diag.format(), file=sys.stderr)
