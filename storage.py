from __future__ import annotations
import io
from typing import TextIO

from lexer import BasicIOError, Scanner
from parser import compile_line, render_statement
from program import ProgramStore


def write_program(store: ProgramStore, stream: TextIO) -> None:
    """Write one `<number> <statement>` line per stored line, ascending."""
    for line in store:
        stream.write(f"{line.number} {render_statement(line.statement)}\n")


def read_program(stream: TextIO) -> ProgramStore:
    """Compile a saved program into a new store.

    Raises BasicCompileError on the first line that does not compile; the
    caller's current program is never touched.
    """
    try:
        text = stream.read()
    except (OSError, UnicodeDecodeError) as exc:
        raise BasicIOError(str(exc)) from exc
    if text and not text.endswith("\n"):
        text += "\n"
    scanner = Scanner(io.StringIO(text))
    store = ProgramStore()
    while scanner.skip_blank():
        number, statement = compile_line(scanner)
        store.insert_or_replace(number, statement)
    return store
