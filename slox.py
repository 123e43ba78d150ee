import asyncio
import sys
from pathlib import Path
from typing import Dict, List

from slox.slox_datatypes import SloxInstance
from slox.slox_printer import Printer
from slox.slox_runtime import EXIT_USAGE, ScriptRunner

# A basic awaitable input prompt.
async def ainput(prompt: str) -> str:
    loop = asyncio.get_running_loop()
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return await loop.run_in_executor(None, sys.stdin.readline)

def _drain(effects: List[Dict], start: int = 0) -> int:
    """Write side effects from index `start` to the real streams; returns the new index."""
    for effect in effects[start:]:
        stream = sys.stderr if 'stderr' in effect.get('topics', []) else sys.stdout
        print(effect.get('message', ''), file=stream)
    return len(effects)

async def _echo(runner: ScriptRunner, printer: Printer, value):
    if isinstance(value, SloxInstance):
        print(await runner.evaluator.pretty_stringify(value))
    else:
        print(printer.pformat_value(value))

async def run_script_file(file_path: str):
    """Run a SLOX script file non-interactively and exit with appropriate status."""
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    runner = ScriptRunner(source_dir=str(p.parent.resolve()))
    printer = Printer()
    result = await runner.handle_script(source)
    seen = _drain(result.side_effects)
    if result.status == 'error':
        runner.cancel_tasks()
        raise SystemExit(result.exit_code)
    if result.value is not None:
        await _echo(runner, printer, result.value)

    # Keep running while timers are pending, flushing their output as it arrives.
    while runner.evaluator.active_tasks:
        await runner.wait_for_tasks(timeout=0.05)
        seen = _drain(result.side_effects, seen)
    if runner.reporter.had_runtime_error:
        raise SystemExit(result.exit_code or 70)

async def main():
    """Run a script file when provided, otherwise start the interactive REPL."""
    if len(sys.argv) > 2:
        print("Usage: slox.py [script]")
        raise SystemExit(EXIT_USAGE)
    if len(sys.argv) == 2:
        await run_script_file(sys.argv[1])
        return

    print("SLOX REPL v0.1")
    print("Type '.exit' or press Ctrl+D to quit.")

    # Setup
    runner = ScriptRunner(source_dir=str(Path.cwd()))
    printer = Printer()

    # REPL Loop
    seen = 0
    while True:
        try:
            raw = await ainput("> ")
            # Timer output that arrived while waiting for input.
            seen = _drain(runner.evaluator.side_effects, seen)
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == ".exit":
                break
            if line.startswith("."):
                line = "print " + line[1:]

            result = await runner.handle_script(line)
            seen = _drain(result.side_effects)
            if result.status == 'error':
                continue

            # Print final result
            if result.value is not None:
                await _echo(runner, printer, result.value)

        except EOFError:
            print("\nExiting.")
            break
        except Exception as e:
            print(f"Error: {e}", file=sys.stderr)

    runner.cancel_tasks()

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
