from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from lexer import (
    BINARY_OPERATORS,
    TOKEN_EOL,
    TOKEN_INTEGER,
    TOKEN_KEYWORD,
    TOKEN_OPERATOR,
    TOKEN_STRING,
    BasicCompileError,
    Scanner,
)


TYPE_INT = "INTEGER"
TYPE_STR = "STRING"
TYPE_BOOL = "BOOLEAN"

# Keywords the language reserves without giving them a statement form yet.
RESERVED_KEYWORDS = {"FOR", "NEXT", "WHILE", "WEND", "INPUT"}

# Operators and parentheses nest at most this deep, which keeps evaluation and
# rendering well inside the interpreter's recursion limit.
MAX_EXPRESSION_DEPTH = 100
TOO_DEEP = "expression too deeply nested"


@dataclass(frozen=True)
class Value:
    type: str
    value: Union[int, str, bool]

    @staticmethod
    def integer(n: int) -> "Value":
        return Value(TYPE_INT, int(n))

    @staticmethod
    def string(s: str) -> "Value":
        return Value(TYPE_STR, s)

    @staticmethod
    def boolean(b: bool) -> "Value":
        return Value(TYPE_BOOL, bool(b))


class Expression:
    pass


@dataclass(frozen=True)
class Literal(Expression):
    value: Value


@dataclass(frozen=True)
class Variable(Expression):
    name: str


@dataclass(frozen=True)
class Negate(Expression):
    operand: Expression


@dataclass(frozen=True)
class BinaryOp(Expression):
    operator: str
    left: Expression
    right: Expression


class Statement:
    pass


@dataclass(frozen=True)
class End(Statement):
    pass


@dataclass(frozen=True)
class GoSub(Statement):
    target: int


@dataclass(frozen=True)
class Return(Statement):
    pass


@dataclass(frozen=True)
class Goto(Statement):
    target: int


@dataclass(frozen=True)
class Remark(Statement):
    text: str


@dataclass(frozen=True)
class Assign(Statement):
    name: str
    expression: Expression


@dataclass(frozen=True)
class Print(Statement):
    expressions: Tuple[Expression, ...]


@dataclass(frozen=True)
class IfThen(Statement):
    test: Expression
    then_statement: Statement
    else_statement: Optional[Statement] = None


@dataclass(frozen=True)
class IfGoto(Statement):
    test: Expression
    target: int


class Compiler:
    """Recursive-descent compiler from scanner tokens to statement trees.

    The public `compile_*` methods drain the rest of the current line before
    letting a `BasicCompileError` escape, so the next compile starts cleanly at
    the following line.
    """

    def __init__(self, scanner: Scanner) -> None:
        self.scanner = scanner
        self._depth = 0

    def compile_line(self) -> Tuple[int, Statement]:
        try:
            token = self.scanner.next_token()
            if token.type != TOKEN_INTEGER:
                raise BasicCompileError("statement must start with a line number")
            if token.value <= 0:
                raise BasicCompileError("line number must be positive")
            return token.value, self._compile_statement(require_end_of_line=True)
        except BasicCompileError:
            self.scanner.drain_line()
            raise
        except RecursionError:
            self.scanner.drain_line()
            raise BasicCompileError(TOO_DEEP) from None

    def compile_statement(self, require_end_of_line: bool = True) -> Statement:
        try:
            return self._compile_statement(require_end_of_line)
        except BasicCompileError:
            self.scanner.drain_line()
            raise
        except RecursionError:
            self.scanner.drain_line()
            raise BasicCompileError(TOO_DEEP) from None

    def compile_expression(self) -> Expression:
        try:
            return self._compile_expression()
        except BasicCompileError:
            self.scanner.drain_line()
            raise
        except RecursionError:
            self.scanner.drain_line()
            raise BasicCompileError(TOO_DEEP) from None

    # ---- expressions ----

    def _compile_expression(self) -> Expression:
        if self._depth >= MAX_EXPRESSION_DEPTH:
            raise BasicCompileError(TOO_DEEP)
        self._depth += 1
        try:
            return self._compile_operation()
        finally:
            self._depth -= 1

    def _compile_operation(self) -> Expression:
        expr = self._compile_primary()
        # A binary operator takes a whole expression on its right, so chains
        # group to the right and all operators share one precedence level.
        token = self.scanner.peek_token()
        if token.type == TOKEN_OPERATOR and token.value in BINARY_OPERATORS:
            self.scanner.next_token()
            right = self._compile_expression()
            expr = BinaryOp(operator=token.value, left=expr, right=right)
        return expr

    def _compile_primary(self) -> Expression:
        token = self.scanner.next_token()
        if token.type == TOKEN_INTEGER:
            return Literal(Value.integer(token.value))
        if token.type == TOKEN_STRING:
            return Literal(Value.string(token.value))
        if token.type == TOKEN_KEYWORD:
            return Variable(token.value)
        if token.is_operator("-"):
            return Negate(self._compile_expression())
        if token.is_operator("("):
            expr = self._compile_expression()
            if not self.scanner.next_token().is_operator(")"):
                raise BasicCompileError("missing closing ) in expression")
            return expr
        raise BasicCompileError("unexpected token in expression")

    # ---- statements ----

    def _compile_statement(self, require_end_of_line: bool) -> Statement:
        token = self.scanner.next_token()
        if token.type != TOKEN_KEYWORD:
            raise BasicCompileError("statement must start with a keyword or variable")
        keyword: str = token.value
        statement = self._compile_keyword(keyword)
        if require_end_of_line and self.scanner.next_token().type != TOKEN_EOL:
            raise BasicCompileError(f"too many arguments to keyword: {keyword}")
        return statement

    def _compile_keyword(self, keyword: str) -> Statement:
        if keyword == "END":
            return End()
        if keyword == "GOSUB":
            return GoSub(self._consume_line_number("GOSUB"))
        if keyword == "GOTO":
            return Goto(self._consume_line_number("GOTO"))
        if keyword == "RETURN":
            return Return()
        if keyword == "REM":
            return Remark(self.scanner.rest_of_line().strip(" \t\r"))
        if keyword == "IF":
            return self._compile_if()
        if keyword == "PRINT":
            return self._compile_print()
        if keyword in RESERVED_KEYWORDS:
            raise BasicCompileError(f"{keyword} is not implemented")
        if keyword.endswith("$") or keyword.endswith("%"):
            return self._compile_assignment(keyword)
        raise BasicCompileError(f"unknown keyword: {keyword}")

    def _compile_if(self) -> Statement:
        test = self._compile_expression()
        token = self.scanner.next_token()
        if token.is_keyword("THEN"):
            then_statement = self._compile_statement(require_end_of_line=False)
            else_statement: Optional[Statement] = None
            if self.scanner.peek_token().is_keyword("ELSE"):
                self.scanner.next_token()
                else_statement = self._compile_statement(require_end_of_line=False)
            return IfThen(test=test, then_statement=then_statement, else_statement=else_statement)
        if token.is_keyword("GOTO"):
            return IfGoto(test=test, target=self._consume_line_number("IF GOTO"))
        raise BasicCompileError("expected IF followed by THEN or GOTO")

    def _compile_print(self) -> Statement:
        expressions: List[Expression] = [self._compile_expression()]
        while self.scanner.peek_token().is_operator(","):
            self.scanner.next_token()
            expressions.append(self._compile_expression())
        return Print(tuple(expressions))

    def _compile_assignment(self, name: str) -> Statement:
        if not self.scanner.next_token().is_operator("="):
            raise BasicCompileError("expected '=' following variable name")
        return Assign(name=name, expression=self._compile_expression())

    def _consume_line_number(self, keyword: str) -> int:
        token = self.scanner.next_token()
        if token.type != TOKEN_INTEGER:
            raise BasicCompileError(f"missing line number for {keyword}")
        return token.value


def compile_line(scanner: Scanner) -> Tuple[int, Statement]:
    return Compiler(scanner).compile_line()


def compile_statement(scanner: Scanner, require_end_of_line: bool = True) -> Statement:
    return Compiler(scanner).compile_statement(require_end_of_line)


def compile_expression(scanner: Scanner) -> Expression:
    return Compiler(scanner).compile_expression()


# ---- canonical text ----


def render_value(value: Value) -> str:
    """Source form of a literal value."""
    if value.type == TYPE_INT:
        return str(value.value)
    if value.type == TYPE_STR:
        return f'"{value.value}"'
    if value.type == TYPE_BOOL:
        return "TRUE" if value.value else "FALSE"
    raise ValueError(f"unexpected value type {value.type}")


def render_expression(expression: Expression) -> str:
    if isinstance(expression, Literal):
        return render_value(expression.value)
    if isinstance(expression, Variable):
        return expression.name
    if isinstance(expression, Negate):
        return f"- {render_expression(expression.operand)}"
    if isinstance(expression, BinaryOp):
        left = render_expression(expression.left)
        # Only the left operand can need grouping: the right side is always a
        # full expression when compiled.
        if isinstance(expression.left, (BinaryOp, Negate)):
            left = f"({left})"
        return f"{left} {expression.operator} {render_expression(expression.right)}"
    raise ValueError(f"unexpected expression {type(expression).__name__}")


def render_statement(statement: Statement) -> str:
    """Canonical, re-parseable text of a compiled statement."""
    if isinstance(statement, End):
        return "END"
    if isinstance(statement, GoSub):
        return f"GOSUB {statement.target}"
    if isinstance(statement, Return):
        return "RETURN"
    if isinstance(statement, Goto):
        return f"GOTO {statement.target}"
    if isinstance(statement, Remark):
        return f"REM {statement.text}" if statement.text else "REM"
    if isinstance(statement, Assign):
        return f"{statement.name} = {render_expression(statement.expression)}"
    if isinstance(statement, Print):
        return "PRINT " + ", ".join(render_expression(e) for e in statement.expressions)
    if isinstance(statement, IfThen):
        text = f"IF {render_expression(statement.test)} THEN {render_statement(statement.then_statement)}"
        if statement.else_statement is not None:
            text += f" ELSE {render_statement(statement.else_statement)}"
        return text
    if isinstance(statement, IfGoto):
        return f"IF {render_expression(statement.test)} GOTO {statement.target}"
    raise ValueError(f"unexpected statement {type(statement).__name__}")
