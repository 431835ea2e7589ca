from __future__ import annotations
import json
import sys
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional, TextIO, Tuple

import numpy as np

from hooks import HookRegistry, StepContext
from lexer import BasicCompileError, BasicError, BasicIOError, BasicRuntimeError
from parser import (
    TOO_DEEP,
    TYPE_BOOL,
    TYPE_INT,
    TYPE_STR,
    Assign,
    BinaryOp,
    End,
    Expression,
    GoSub,
    Goto,
    IfGoto,
    IfThen,
    Literal,
    Negate,
    Print,
    Remark,
    Return,
    Statement,
    Value,
    Variable,
    render_statement,
)
from program import ProgramStore
import storage


HALT = -1

CONTEXT_GOSUB = "GOSUB"
# Reserved for loop statements; nothing pushes these yet.
CONTEXT_FOR = "FOR"
CONTEXT_WHILE = "WHILE"

_TYPE_NOUNS = {TYPE_INT: "integers", TYPE_STR: "strings", TYPE_BOOL: "booleans"}


# ---- integer arithmetic ----
#
# Integers behave like signed 64-bit machine words: results wrap around in
# two's complement instead of growing without bound.


def _int64(op: Callable[..., Any], *operands: int) -> int:
    with np.errstate(over="ignore"):
        return int(op(*(np.asarray(n, dtype=np.int64) for n in operands)))


def int_add(a: int, b: int) -> int:
    return _int64(np.add, a, b)


def int_sub(a: int, b: int) -> int:
    return _int64(np.subtract, a, b)


def int_mul(a: int, b: int) -> int:
    return _int64(np.multiply, a, b)


def int_neg(a: int) -> int:
    return _int64(np.negative, a)


def int_div(a: int, b: int) -> int:
    if b == 0:
        raise BasicRuntimeError("division by zero")
    if b == -1:
        # MIN // -1 overflows; negation wraps it back to MIN.
        return int_neg(a)
    quotient = abs(a) // abs(b)
    return -quotient if (a < 0) != (b < 0) else quotient


@dataclass(frozen=True)
class BinaryOperator:
    name: str
    integer_rule: Optional[Callable[[int, int], Value]] = None
    string_rule: Optional[Callable[[str, str], Value]] = None


def _comparison(name: str, compare: Callable[[Any, Any], bool]) -> BinaryOperator:
    return BinaryOperator(
        name=name,
        integer_rule=lambda a, b: Value.boolean(compare(a, b)),
        string_rule=lambda a, b: Value.boolean(compare(a, b)),
    )


BINARY_OPERATORS: Dict[str, BinaryOperator] = {
    "+": BinaryOperator(
        "+",
        integer_rule=lambda a, b: Value.integer(int_add(a, b)),
        string_rule=lambda a, b: Value.string(a + b),
    ),
    "-": BinaryOperator("-", integer_rule=lambda a, b: Value.integer(int_sub(a, b))),
    "*": BinaryOperator("*", integer_rule=lambda a, b: Value.integer(int_mul(a, b))),
    "/": BinaryOperator("/", integer_rule=lambda a, b: Value.integer(int_div(a, b))),
    "=": _comparison("=", lambda a, b: a == b),
    "<>": _comparison("<>", lambda a, b: a != b),
    "<": _comparison("<", lambda a, b: a < b),
    "<=": _comparison("<=", lambda a, b: a <= b),
    ">": _comparison(">", lambda a, b: a > b),
    ">=": _comparison(">=", lambda a, b: a >= b),
}


def format_value(value: Value) -> str:
    """Text PRINT writes for a value."""
    if value.type == TYPE_INT:
        return str(value.value)
    if value.type == TYPE_STR:
        return str(value.value)
    if value.type == TYPE_BOOL:
        return "TRUE" if value.value else "FALSE"
    raise BasicRuntimeError(f"unexpected value type {value.type}")


@dataclass(frozen=True)
class CallContext:
    kind: str
    line_number: int


@dataclass
class Environment:
    values: Dict[str, Value] = field(default_factory=dict)

    def get(self, name: str) -> Value:
        try:
            return self.values[name]
        except KeyError:
            raise BasicRuntimeError(f"variable not found: {name}") from None

    def set(self, name: str, value: Value) -> None:
        # The name's suffix fixes the type for the variable's whole lifetime.
        if name.endswith("$"):
            if value.type != TYPE_STR:
                raise BasicRuntimeError("expected a string value")
        elif name.endswith("%"):
            if value.type != TYPE_INT:
                raise BasicRuntimeError("expected an integer value")
        else:
            raise BasicRuntimeError(f"not a string or integer variable: {name}")
        self.values[name] = value

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Value) -> str:
            rendered = format_value(val)
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type}:{rendered}"

        return {k: _render(v) for k, v in self.values.items()}


@dataclass
class StepEntry:
    step_index: int
    state_id: str
    line_number: int
    statement: str
    rule: str
    env_snapshot: Optional[Dict[str, str]]


class StepLogger:
    """Keeps the most recent executed steps for tracing and tracebacks."""

    def __init__(self, verbose: bool, history: int = 1000) -> None:
        self.verbose = verbose
        self.entries: Deque[StepEntry] = deque(maxlen=history)
        self.next_state_index = 0
        self.line_last_entry: Dict[int, StepEntry] = {}

    def record(
        self,
        *,
        line_number: int,
        statement: Statement,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StepEntry:
        step_index = self.next_state_index
        entry = StepEntry(
            step_index=step_index,
            state_id=f"s_{step_index:06d}",
            line_number=line_number,
            statement=render_statement(statement),
            rule=statement.__class__.__name__.upper(),
            env_snapshot=env_snapshot,
        )
        self.entries.append(entry)
        self.line_last_entry[line_number] = entry
        self.next_state_index += 1
        return entry

    def last_entry_for_line(self, line_number: int) -> Optional[StepEntry]:
        return self.line_last_entry.get(line_number)


class Interpreter:
    """One BASIC session: the stored program, its variables and their I/O.

    Everything a run touches hangs off this object, so independent sessions
    never share state.
    """

    def __init__(
        self,
        *,
        verbose: bool = False,
        hooks: Optional[HookRegistry] = None,
        output_sink: Optional[Callable[[str], None]] = None,
        error_sink: Optional[Callable[[str], None]] = None,
    ) -> None:
        self.verbose = verbose
        self.hooks = hooks or HookRegistry()
        self.output_sink = output_sink or (lambda text: print(text))
        self.error_sink = error_sink or (lambda text: print(text, file=sys.stderr))
        self.logger = StepLogger(verbose=verbose)
        self.program = ProgramStore()
        self.environment = Environment()
        self.last_error: Optional[BasicRuntimeError] = None

    def reset(self) -> None:
        self.program = ProgramStore()
        self.environment = Environment()
        self.logger = StepLogger(verbose=self.verbose)
        self.last_error = None

    # ---- error reporting ----

    def report(self, error: BasicError) -> None:
        self.error_sink(f"basic: error: {error.message}")

    def report_message(self, message: str) -> None:
        self.error_sink(f"basic: error: {message}")

    # ---- evaluation ----

    def evaluate(self, expression: Expression) -> Value:
        if isinstance(expression, Literal):
            return expression.value
        if isinstance(expression, Variable):
            return self.environment.get(expression.name)
        if isinstance(expression, Negate):
            operand = self.evaluate(expression.operand)
            if operand.type != TYPE_INT:
                raise BasicRuntimeError("expected an integer value")
            return Value.integer(int_neg(operand.value))
        if isinstance(expression, BinaryOp):
            return self._evaluate_binary(expression)
        raise BasicRuntimeError(f"unsupported expression {type(expression).__name__}")

    def _evaluate_binary(self, expression: BinaryOp) -> Value:
        op = BINARY_OPERATORS[expression.operator]
        left = self.evaluate(expression.left)
        right = self.evaluate(expression.right)
        if left.type == TYPE_INT:
            if op.integer_rule is None:
                raise BasicRuntimeError(f"{op.name} does not work for {_TYPE_NOUNS[TYPE_INT]}")
            if right.type != TYPE_INT:
                raise BasicRuntimeError("expected an integer value")
            return op.integer_rule(left.value, right.value)
        if left.type == TYPE_STR:
            if op.string_rule is None:
                raise BasicRuntimeError(f"{op.name} does not work for {_TYPE_NOUNS[TYPE_STR]}")
            if right.type != TYPE_STR:
                raise BasicRuntimeError("expected a string value")
            return op.string_rule(left.value, right.value)
        if left.type == TYPE_BOOL:
            raise BasicRuntimeError(f"{op.name} does not work for {_TYPE_NOUNS[TYPE_BOOL]}")
        raise BasicRuntimeError(f"unexpected value type {left.type}")

    def _expect_boolean(self, value: Value) -> bool:
        if value.type != TYPE_BOOL:
            raise BasicRuntimeError("expected a boolean value")
        return bool(value.value)

    # ---- execution ----

    def execute_statement(
        self, statement: Statement, line_number: int, stack: List[CallContext]
    ) -> Tuple[int, List[CallContext]]:
        """Execute one statement and return the next line number and call stack.

        A next line number <= 0 stops the program. Raises BasicRuntimeError
        on failure; `run` and `execute_immediate` turn that into a halt.
        """
        if isinstance(statement, End):
            return HALT, stack
        if isinstance(statement, GoSub):
            stack.append(CallContext(CONTEXT_GOSUB, line_number))
            return statement.target, stack
        if isinstance(statement, Return):
            while stack:
                context = stack.pop()
                if context.kind == CONTEXT_GOSUB:
                    return context.line_number + 1, stack
            raise BasicRuntimeError("RETURN without a GOSUB")
        if isinstance(statement, Goto):
            return statement.target, stack
        if isinstance(statement, Remark):
            return line_number + 1, stack
        if isinstance(statement, Assign):
            value = self.evaluate(statement.expression)
            self.environment.set(statement.name, value)
            return line_number + 1, stack
        if isinstance(statement, Print):
            values = [self.evaluate(e) for e in statement.expressions]
            self.output_sink(", ".join(format_value(v) for v in values))
            return line_number + 1, stack
        if isinstance(statement, IfThen):
            if self._expect_boolean(self.evaluate(statement.test)):
                return self.execute_statement(statement.then_statement, line_number, stack)
            if statement.else_statement is not None:
                return self.execute_statement(statement.else_statement, line_number, stack)
            return line_number + 1, stack
        if isinstance(statement, IfGoto):
            if self._expect_boolean(self.evaluate(statement.test)):
                return statement.target, stack
            return line_number + 1, stack
        raise BasicRuntimeError(f"unsupported statement {type(statement).__name__}")

    def _step(
        self, line_number: int, statement: Statement, stack: List[CallContext]
    ) -> Tuple[int, List[CallContext]]:
        try:
            self._log_step(line_number, statement)
            self._emit_event("before_statement", self, line_number, statement)
            result = self.execute_statement(statement, line_number, stack)
            self._emit_event("after_statement", self, line_number, statement)
            return result
        except BasicRuntimeError as error:
            self._halt(error, line_number, stack)
            return HALT, stack
        except RecursionError:
            self._halt(BasicRuntimeError(TOO_DEEP), line_number, stack)
            return HALT, stack

    def _halt(self, error: BasicRuntimeError, line_number: int, stack: List[CallContext]) -> None:
        error.line_number = line_number
        error.call_stack = list(stack)
        if self.logger.entries:
            error.step_index = self.logger.entries[-1].step_index
        self.last_error = error
        self.report(error)
        self._notify_error(error)

    def execute_immediate(self, statement: Statement) -> None:
        """Run a statement outside the stored program (line context 0)."""
        self.last_error = None
        self._step(0, statement, [])

    def run(self) -> None:
        """Execute the stored program from its lowest line until it halts."""
        self.last_error = None
        stack: List[CallContext] = []
        line_number = 0
        try:
            self._emit_event("program_start", self)
        except BasicRuntimeError as error:
            self._halt(error, line_number, stack)
            return
        while True:
            line = self.program.first_line_at_or_after(line_number)
            if line is None:
                break
            line_number, stack = self._step(line.number, line.statement, stack)
            if line_number <= 0:
                break
        try:
            self._emit_event("program_end", self)
        except BasicRuntimeError as error:
            self._halt(error, 0, stack)

    # ---- persistence ----

    def save(self, path: str) -> bool:
        try:
            with open(path, "w", encoding="utf-8") as handle:
                storage.write_program(self.program, handle)
        except OSError as exc:
            self.report_message(f"SAVE: {exc}")
            return False
        return True

    def load(self, path: str) -> bool:
        try:
            handle = open(path, "r", encoding="utf-8")
        except OSError as exc:
            self.report_message(f"OPEN: {exc}")
            return False
        with handle:
            return self.load_stream(handle)

    def load_stream(self, stream: TextIO) -> bool:
        """Replace the program with the one read from `stream`.

        Nothing changes unless the whole stream compiles; a successful load
        also clears the variables.
        """
        try:
            program = storage.read_program(stream)
        except BasicCompileError as error:
            self.report(error)
            return False
        except BasicIOError as exc:
            self.report_message(f"LOAD: {exc}")
            return False
        self.program = program
        self.environment = Environment()
        return True

    # ---- hooks ----

    def _emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hooks.emit(event, *args)
        except BasicRuntimeError:
            raise
        except Exception as exc:
            raise BasicRuntimeError(f"hook '{event}' failed: {exc}") from exc

    def _notify_error(self, error: BasicRuntimeError) -> None:
        try:
            self.hooks.emit("on_error", self, error)
        except Exception as exc:
            self.report_message(f"hook 'on_error' failed: {exc}")

    def _log_step(self, line_number: int, statement: Statement) -> None:
        env_snapshot = self.environment.snapshot() if self.verbose else None
        entry = self.logger.record(line_number=line_number, statement=statement, env_snapshot=env_snapshot)
        try:
            self.hooks.step(
                self,
                StepContext(
                    step_index=entry.step_index,
                    rule=entry.rule,
                    line_number=line_number,
                    statement=statement,
                ),
            )
        except BasicRuntimeError:
            raise
        except Exception as exc:
            raise BasicRuntimeError(f"step watcher failed: {exc}") from exc


@dataclass
class TracebackFrame:
    name: str
    line_number: Optional[int]
    statement: Optional[str]
    state_entry: Optional[StepEntry]


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def build_frames(self, error: BasicRuntimeError) -> List[TracebackFrame]:
        frames: List[TracebackFrame] = []
        logger = self.interpreter.logger
        for context in error.call_stack:
            if not isinstance(context, CallContext):
                continue
            line = self.interpreter.program.get(context.line_number)
            frames.append(
                TracebackFrame(
                    name=context.kind,
                    line_number=context.line_number,
                    statement=render_statement(line) if line is not None else None,
                    state_entry=logger.last_entry_for_line(context.line_number),
                )
            )
        entry = logger.last_entry_for_line(error.line_number) if error.line_number is not None else None
        frames.append(
            TracebackFrame(
                name="<program>" if error.line_number else "<immediate>",
                line_number=error.line_number,
                statement=entry.statement if entry else None,
                state_entry=entry,
            )
        )
        return frames

    def format_text(self, error: BasicRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        for frame in self.build_frames(error):
            if frame.line_number:
                lines.append(f"  Line {frame.line_number}, in {frame.name}")
            else:
                lines.append(f"  {frame.name}")
            if frame.statement:
                lines.append(f"    {frame.statement}")
            if frame.state_entry:
                lines.append(
                    f"    State log index: {frame.state_entry.step_index}  State id: {frame.state_entry.state_id}"
                )
                if verbose and frame.state_entry.env_snapshot is not None:
                    snapshot = ", ".join(f"{k}={v}" for k, v in frame.state_entry.env_snapshot.items())
                    lines.append(f"    Env snapshot: {snapshot}")
        lines.append(f"{error.__class__.__name__}: {error.message}")
        return "\n".join(lines)

    def to_json(self, error: BasicRuntimeError) -> str:
        frames_json: List[Dict[str, Any]] = []
        for index, frame in enumerate(self.build_frames(error)):
            entry: Dict[str, Any] = {"frame_index": index, "name": frame.name}
            if frame.line_number is not None:
                entry["line_number"] = frame.line_number
            if frame.statement is not None:
                entry["statement"] = frame.statement
            if frame.state_entry:
                entry["state_id"] = frame.state_entry.state_id
                entry["step_index"] = frame.state_entry.step_index
                if frame.state_entry.env_snapshot is not None:
                    entry["env_snapshot"] = frame.state_entry.env_snapshot
            frames_json.append(entry)
        data = {
            "error": {
                "type": error.__class__.__name__,
                "message": error.message,
                "failing_step_index": error.step_index,
            },
            "traceback": frames_json,
        }
        return json.dumps(data, indent=2)
