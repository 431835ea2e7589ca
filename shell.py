from __future__ import annotations
from typing import Callable, Dict, Optional, Tuple

from interpreter import Interpreter
from lexer import (
    TOKEN_EOL,
    TOKEN_INTEGER,
    TOKEN_KEYWORD,
    TOKEN_STRING,
    BasicCompileError,
    Scanner,
)
from parser import compile_line, compile_statement, render_statement


HELP_TEXT = """
<program> =
    <line-number> <statement>
    ...

<command> =
      <statement>
    | <line-number> <statement>
    | DELETE <line-number> [ '-' <line-number> ] ; delete one or a range of line numbers inclusive
    | EXIT
    | HELP
    | LIST [ <line-number> [ '-' <line-number> ]]
    | LOAD <filename> ; load a program into memory from <filename>
    | NEW ; start over with a new program
    | RUN ; run the program from the beginning
    | SAVE <filename> ; save the program in memory to <filename>

<statement> =
    | END ; end execution of the program
    | GOSUB <line-number> ... RETURN
    | GOTO <line-number>
    | IF <logical-expr> THEN <statement> [ELSE <statement>]
    | IF <logical-expr> GOTO <line-number>
    | <string-variable> '=' <string-expr>
    | <integer-variable> '=' <integer-expr>
    | PRINT <expr> [ ','  ...]
    | REM ... ; comment (remark); ' at the end of the line is also a comment

FOR, NEXT, WHILE, WEND and INPUT are reserved.

<string> = '"' ... '"'
<integer> = <digit> ...
<digit> = '0' ... '9'
<variable> = <string-variable> | <integer-variable>
<string-variable> = <name> '$'
<integer-variable> = <name> '%'
<integer-expr> =
      <integer-variable>
    | <integer>
    | '-' <expr>
    | <integer-expr> ( '+' | '-' | '*' | '/' ) <integer-expr>
<logical-expr> =
      <integer-expr> <logical-op> <integer-expr>
    | <string-expr> <logical-op> <string-expr>
<logical-op> = '=' | '<>' | '<' | '>' | '<=' | '>='
<string-expr> =
      <string-variable>
    | <string>
    | <string-expr> '+' <string-expr>

Operators group to the right: 2 * 3 + 4 is 2 * (3 + 4).
"""


class ShellError(BasicCompileError):
    """A malformed shell command."""


class Shell:
    """Reads commands and numbered lines and applies them to one session."""

    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter
        self.commands: Dict[str, Callable[[Scanner], bool]] = {
            "DELETE": self._delete,
            "EXIT": self._exit,
            "HELP": self._help,
            "LIST": self._list,
            "LOAD": self._load,
            "NEW": self._new,
            "RUN": self._run,
            "SAVE": self._save,
        }

    def process(self, scanner: Scanner) -> bool:
        """Handle commands until input runs out (True) or EXIT is given (False).

        BasicIOError from the scanner is not handled here.
        """
        while scanner.skip_blank():
            try:
                if not self.process_command(scanner):
                    return False
            except BasicCompileError as error:
                scanner.drain_line()
                self.interpreter.report(error)
        return True

    def process_command(self, scanner: Scanner) -> bool:
        token = scanner.peek_token()
        if token.type == TOKEN_EOL:
            # Only a comment on this line.
            scanner.next_token()
            return True
        if token.type == TOKEN_INTEGER:
            number, statement = compile_line(scanner)
            self.interpreter.program.insert_or_replace(number, statement)
            return True
        if token.type == TOKEN_KEYWORD and token.value in self.commands:
            scanner.next_token()
            return self.commands[token.value](scanner)
        statement = compile_statement(scanner, require_end_of_line=True)
        self.interpreter.execute_immediate(statement)
        return True

    # ---- argument helpers ----

    @staticmethod
    def read_range(scanner: Scanner, optional: bool) -> Optional[Tuple[int, Optional[int]]]:
        """Parse `[n [- m]]` up to the end of the line.

        Returns (start, end) where end is None for a single number, (1, None)
        for an omitted optional range, or None when the arguments are bad.
        """
        token = scanner.next_token()
        if token.type == TOKEN_EOL:
            return (1, None) if optional else None
        if token.type != TOKEN_INTEGER:
            return None
        start: int = token.value
        end: Optional[int] = None
        token = scanner.next_token()
        if token.is_operator("-"):
            token = scanner.next_token()
            if token.type != TOKEN_INTEGER:
                return None
            end = token.value
            if scanner.next_token().type != TOKEN_EOL:
                return None
            if end < start:
                return None
        elif token.type != TOKEN_EOL:
            return None
        return start, end

    @staticmethod
    def _expect_no_arguments(scanner: Scanner, command: str) -> None:
        if scanner.next_token().type != TOKEN_EOL:
            raise ShellError(f"{command} takes no arguments")

    @staticmethod
    def _expect_filename(scanner: Scanner, command: str) -> str:
        token = scanner.next_token()
        if token.type != TOKEN_STRING or scanner.next_token().type != TOKEN_EOL:
            raise ShellError(f"{command} expects one string argument")
        return token.value

    # ---- commands ----

    def _delete(self, scanner: Scanner) -> bool:
        bounds = self.read_range(scanner, optional=False)
        if bounds is None:
            raise ShellError("bad argument to DELETE")
        start, end = bounds
        if end is None:
            self.interpreter.program.delete(start)
        else:
            self.interpreter.program.delete_range(start, end)
        return True

    def _exit(self, scanner: Scanner) -> bool:
        self._expect_no_arguments(scanner, "EXIT")
        return False

    def _help(self, scanner: Scanner) -> bool:
        self._expect_no_arguments(scanner, "HELP")
        self.interpreter.output_sink(HELP_TEXT)
        return True

    def _list(self, scanner: Scanner) -> bool:
        bounds = self.read_range(scanner, optional=True)
        if bounds is None:
            raise ShellError("bad argument to LIST")
        start, end = bounds
        for line in self.interpreter.program.ascending_range(start, end):
            self.interpreter.output_sink(f"{line.number} {render_statement(line.statement)}")
        return True

    def _load(self, scanner: Scanner) -> bool:
        self.interpreter.load(self._expect_filename(scanner, "LOAD"))
        return True

    def _new(self, scanner: Scanner) -> bool:
        self._expect_no_arguments(scanner, "NEW")
        self.interpreter.reset()
        return True

    def _run(self, scanner: Scanner) -> bool:
        self._expect_no_arguments(scanner, "RUN")
        self.interpreter.run()
        return True

    def _save(self, scanner: Scanner) -> bool:
        self.interpreter.save(self._expect_filename(scanner, "SAVE"))
        return True
