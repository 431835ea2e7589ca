"""BASIC entry point and REPL wiring."""
from __future__ import annotations
import argparse
import io
import sys
from typing import List, Optional

from hooks import HookRegistry
from interpreter import Interpreter, TracebackFormatter
from lexer import BasicIOError, Scanner
from parser import Statement, render_statement
from shell import Shell


def _install_trace(hooks: HookRegistry) -> None:
    @hooks.on("before_statement", priority=100)
    def trace(_interpreter: Interpreter, line_number: int, statement: Statement) -> None:
        print(f"[{line_number}] {render_statement(statement)}", file=sys.stderr)


def run_repl(interpreter: Interpreter) -> int:
    print("\x1b[38;2;153;221;255mBASIC\033[0m")
    print("type help for help and exit to exit")
    shell = Shell(interpreter)
    while True:
        try:
            line = input("\x1b[38;2;153;221;255m>>>\033[0m ")
        except EOFError:
            print()
            break
        try:
            if not shell.process(Scanner(io.StringIO(line + "\n"))):
                break
        except BasicIOError as exc:
            print(f"basic: fatal: {exc}", file=sys.stderr)
            return 1
    return 0


def run_cli(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Line-numbered BASIC interpreter")
    parser.add_argument("program", nargs="?", help="Program file path or literal program text with -source")
    parser.add_argument("-source", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal program text")
    parser.add_argument("-verbose", "--verbose", dest="verbose", action="store_true", help="Emit env snapshots and a traceback on errors")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("-trace", "--trace", dest="trace", action="store_true", help="Print each executed line to stderr")
    args = parser.parse_args(argv)

    hooks = HookRegistry()
    if args.trace:
        _install_trace(hooks)

    interpreter = Interpreter(verbose=args.verbose, hooks=hooks)

    if args.program is None:
        if args.source_mode:
            print("-source requires a program string", file=sys.stderr)
            return 1
        return run_repl(interpreter)

    if args.source_mode:
        loaded = interpreter.load_stream(io.StringIO(args.program))
    else:
        loaded = interpreter.load(args.program)
    if not loaded:
        return 1

    interpreter.run()
    error = interpreter.last_error
    if error is not None:
        if args.verbose or args.traceback_json:
            formatter = TracebackFormatter(interpreter)
            if args.verbose:
                print(formatter.format_text(error, verbose=args.verbose), file=sys.stderr)
            if args.traceback_json:
                print(formatter.to_json(error), file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(run_cli())
