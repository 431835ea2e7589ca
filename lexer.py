from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, TextIO, Union


class BasicError(Exception):
    """Base class for language-level errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BasicCompileError(BasicError):
    """Raised when scanning or compiling a line fails."""


class BasicRuntimeError(BasicError):
    """Raised when evaluating an expression or executing a statement fails."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.line_number: Optional[int] = None
        self.call_stack: List[object] = []
        self.step_index: Optional[int] = None


class BasicIOError(Exception):
    """Raised when the character source fails or ends where input was required.

    This is not part of the language's error surface: callers are expected to
    stop processing input altogether.
    """


TOKEN_EOL = "EOL"
TOKEN_KEYWORD = "KEYWORD"
TOKEN_INTEGER = "INTEGER"
TOKEN_STRING = "STRING"
TOKEN_OPERATOR = "OPERATOR"


@dataclass(frozen=True)
class Token:
    type: str
    value: Union[int, str, None] = None

    def is_operator(self, text: str) -> bool:
        return self.type == TOKEN_OPERATOR and self.value == text

    def is_keyword(self, text: str) -> bool:
        return self.type == TOKEN_KEYWORD and self.value == text


EOL = Token(TOKEN_EOL)

SINGLE_CHAR_OPERATORS = {"+", "-", "*", "/", "(", ")", ",", "="}

BINARY_OPERATORS = ("+", "-", "*", "/", "=", "<>", "<", "<=", ">", ">=")

WHITESPACE = " \t\r"

INT64_MAX = 2 ** 63 - 1


def _is_letter(ch: str) -> bool:
    return ("A" <= ch <= "Z") or ("a" <= ch <= "z")


class Scanner:
    """Turns a character stream into BASIC tokens, one line at a time.

    Tokens are produced lazily with a single token of pushback (`peek_token`).
    The end of every line is reported as an EOL token so the compiler can tell
    when a statement has nothing more on its line.
    """

    def __init__(self, stream: TextIO) -> None:
        self.stream = stream
        self.at_eol = False
        self._pushback: Optional[str] = None
        self._peeked: Optional[Token] = None

    # ---- characters ----

    def _read_char_eof(self) -> str:
        if self._pushback is not None:
            ch = self._pushback
            self._pushback = None
            return ch
        try:
            return self.stream.read(1)
        except (OSError, UnicodeDecodeError) as exc:
            raise BasicIOError(str(exc)) from exc

    def _read_char(self) -> str:
        ch = self._read_char_eof()
        if ch == "":
            raise BasicIOError("unexpected EOF")
        return ch

    def _unread_char(self, ch: str) -> None:
        self._pushback = ch

    # ---- tokens ----

    def next_token(self) -> Token:
        if self._peeked is not None:
            token = self._peeked
            self._peeked = None
            return token

        self.at_eol = False
        ch = self._read_char()
        while ch in WHITESPACE:
            ch = self._read_char()

        if ch == "\n":
            self.at_eol = True
            return EOL
        if ch == "'":
            while ch != "\n":
                ch = self._read_char()
            self.at_eol = True
            return EOL
        if _is_letter(ch):
            return self._consume_keyword(ch)
        if ch.isdigit() and ch.isascii():
            return self._consume_integer(ch)
        if ch == '"':
            return self._consume_string()
        if ch in SINGLE_CHAR_OPERATORS:
            return Token(TOKEN_OPERATOR, ch)
        if ch == "<":
            nxt = self._read_char()
            if nxt == "=":
                return Token(TOKEN_OPERATOR, "<=")
            if nxt == ">":
                return Token(TOKEN_OPERATOR, "<>")
            self._unread_char(nxt)
            return Token(TOKEN_OPERATOR, "<")
        if ch == ">":
            nxt = self._read_char()
            if nxt == "=":
                return Token(TOKEN_OPERATOR, ">=")
            self._unread_char(nxt)
            return Token(TOKEN_OPERATOR, ">")
        raise BasicCompileError(f"unexpected character: {ch}")

    def peek_token(self) -> Token:
        if self._peeked is None:
            self._peeked = self.next_token()
        return self._peeked

    def _consume_keyword(self, first: str) -> Token:
        chars: List[str] = [first]
        while True:
            ch = self._read_char()
            if _is_letter(ch):
                chars.append(ch)
                continue
            if ch in ("$", "%"):
                # The type suffix always ends the identifier.
                chars.append(ch)
                break
            self._unread_char(ch)
            break
        return Token(TOKEN_KEYWORD, "".join(chars).upper())

    def _consume_integer(self, first: str) -> Token:
        digits: List[str] = [first]
        while True:
            ch = self._read_char()
            if ch.isdigit() and ch.isascii():
                digits.append(ch)
                continue
            self._unread_char(ch)
            break
        value = int("".join(digits))
        if value > INT64_MAX:
            raise BasicCompileError(f"integer literal out of range: {value}")
        return Token(TOKEN_INTEGER, value)

    def _consume_string(self) -> Token:
        chars: List[str] = []
        while True:
            ch = self._read_char()
            if ch == '"':
                return Token(TOKEN_STRING, "".join(chars))
            if ch == "\n":
                self._unread_char(ch)
                raise BasicCompileError("unterminated string")
            chars.append(ch)

    # ---- line helpers ----

    def rest_of_line(self) -> str:
        """Return the raw text up to the end of the line, leaving the newline unread."""
        chars: List[str] = []
        while True:
            ch = self._read_char()
            if ch == "\n":
                self._unread_char(ch)
                return "".join(chars)
            chars.append(ch)

    def drain_line(self) -> None:
        """Discard the remainder of the current line so scanning restarts at the next one."""
        if self._peeked is not None:
            token = self._peeked
            self._peeked = None
            if token.type == TOKEN_EOL:
                return
        elif self.at_eol:
            return
        while True:
            ch = self._read_char_eof()
            if ch == "" or ch == "\n":
                break
        self.at_eol = True

    def skip_blank(self) -> bool:
        """Skip blank space between commands; return False once the input is exhausted."""
        if self._peeked is not None:
            if self._peeked.type != TOKEN_EOL:
                return True
            self._peeked = None
        while True:
            ch = self._read_char_eof()
            if ch == "":
                return False
            if ch in WHITESPACE or ch == "\n":
                continue
            self._unread_char(ch)
            self.at_eol = False
            return True
