import io
from typing import List

import pytest

from interpreter import Interpreter
from lexer import Scanner
from shell import Shell


class Console:
    """Collects everything a session writes, output and errors interleaved."""

    def __init__(self) -> None:
        self.lines: List[str] = []

    def write(self, text: str) -> None:
        self.lines.append(text + "\n")

    @property
    def text(self) -> str:
        return "".join(self.lines)


def scanner_for(text: str) -> Scanner:
    return Scanner(io.StringIO(text))


@pytest.fixture
def console():
    return Console()


@pytest.fixture
def interp(console):
    return Interpreter(output_sink=console.write, error_sink=console.write)


@pytest.fixture
def run_shell(interp, console):
    def _run(text: str) -> str:
        Shell(interp).process(scanner_for(text))
        return console.text

    return _run


@pytest.fixture
def load_program(interp):
    def _load(text: str) -> None:
        assert interp.load_stream(io.StringIO(text))

    return _load
