import io

import pytest

from lexer import BasicCompileError, Scanner
from parser import (
    Assign,
    BinaryOp,
    End,
    GoSub,
    Goto,
    IfGoto,
    IfThen,
    Literal,
    Negate,
    Print,
    Remark,
    Return,
    Value,
    Variable,
    compile_expression,
    compile_line,
    compile_statement,
    render_expression,
    render_statement,
)


def scan(text):
    return Scanner(io.StringIO(text))


def stmt(text):
    return compile_statement(scan(text + "\n"))


def lit(n):
    return Literal(Value.integer(n))


def test_compile_line():
    assert compile_line(scan("10 print 1\n")) == (10, Print((lit(1),)))


def test_binary_operators_group_to_the_right():
    expr = compile_expression(scan("1 - 2 - 3\n"))
    assert expr == BinaryOp("-", lit(1), BinaryOp("-", lit(2), lit(3)))


def test_parentheses_group_left():
    expr = compile_expression(scan("(12 + 34) * 56\n"))
    assert expr == BinaryOp("*", BinaryOp("+", lit(12), lit(34)), lit(56))


def test_negate_takes_whole_expression():
    assert compile_expression(scan("- 1 + 2\n")) == Negate(BinaryOp("+", lit(1), lit(2)))


def test_keywords_are_variables_in_expressions():
    assert compile_expression(scan("abc% + x$\n")) == BinaryOp("+", Variable("ABC%"), Variable("X$"))


def test_simple_statements():
    assert stmt("end") == End()
    assert stmt("return") == Return()
    assert stmt("goto 50") == Goto(50)
    assert stmt("gosub 70") == GoSub(70)
    assert stmt('abc$ = "def"') == Assign("ABC$", Literal(Value.string("def")))
    assert stmt("print 1, 2") == Print((lit(1), lit(2)))


def test_remark_text_is_trimmed():
    assert stmt("rem   hello there  ") == Remark("hello there")
    assert stmt("rem") == Remark("")


def test_if_then_else():
    statement = stmt("if a% = 1 then print 2 else goto 40")
    assert statement == IfThen(
        test=BinaryOp("=", Variable("A%"), lit(1)),
        then_statement=Print((lit(2),)),
        else_statement=Goto(40),
    )


def test_if_goto():
    assert stmt('if a$ < "x" goto 90') == IfGoto(BinaryOp("<", Variable("A$"), Literal(Value.string("x"))), 90)


@pytest.mark.parametrize(
    "source, message",
    [
        ("print (1", "missing closing ) in expression"),
        ("print )", "unexpected token in expression"),
        ("print", "unexpected token in expression"),
        ('"abc"', "statement must start with a keyword or variable"),
        ("print 1 2", "too many arguments to keyword: PRINT"),
        ("goto", "missing line number for GOTO"),
        ("gosub x", "missing line number for GOSUB"),
        ("if 1 goto x", "missing line number for IF GOTO"),
        ("if 1 print 2", "expected IF followed by THEN or GOTO"),
        ("abc% 1", "expected '=' following variable name"),
        ("abc = 123", "unknown keyword: ABC"),
        ("for i% = 1", "FOR is not implemented"),
        ("wend", "WEND is not implemented"),
        ("input a$", "INPUT is not implemented"),
    ],
)
def test_compile_errors(source, message):
    with pytest.raises(BasicCompileError) as info:
        stmt(source)
    assert info.value.message == message


@pytest.mark.parametrize(
    "source, message",
    [
        ("print 1\n", "statement must start with a line number"),
        ("0 print 1\n", "line number must be positive"),
    ],
)
def test_compile_line_errors(source, message):
    with pytest.raises(BasicCompileError) as info:
        compile_line(scan(source))
    assert info.value.message == message


def test_error_drains_the_failing_line():
    scanner = scan("print (1 + 2 3 4\nprint 5\n")
    with pytest.raises(BasicCompileError):
        compile_statement(scanner)
    assert compile_statement(scanner) == Print((lit(5),))


def test_error_at_end_of_line_keeps_next_line():
    scanner = scan("goto\nprint 5\n")
    with pytest.raises(BasicCompileError):
        compile_statement(scanner)
    assert compile_statement(scanner) == Print((lit(5),))


def test_render_canonical_text():
    assert render_statement(stmt("if abc% <> 123 then print 234 else print 789")) == (
        "IF ABC% <> 123 THEN PRINT 234 ELSE PRINT 789"
    )
    assert render_statement(stmt('print abc%, "x", - 1')) == 'PRINT ABC%, "x", - 1'
    assert render_statement(stmt("rem")) == "REM"
    assert render_expression(Literal(Value.boolean(True))) == "TRUE"


def test_render_parenthesizes_left_operands():
    assert render_expression(compile_expression(scan("(1 + 2) * 3\n"))) == "(1 + 2) * 3"
    assert render_expression(compile_expression(scan("(- 1) + 2\n"))) == "(- 1) + 2"
    assert render_expression(compile_expression(scan("1 + 2 * 3\n"))) == "1 + 2 * 3"


@pytest.mark.parametrize(
    "source",
    [
        "end",
        "return",
        "goto 10",
        "gosub 20",
        "rem  a 'quoted' remark",
        'abc$ = "def" + x$',
        "n% = -(1 - 2) * (3 / -4)",
        'print 1, "two", t%',
        "if (a% + 1) * 2 >= 10 then print 1 else if b% then end else goto 5",
        "if a% <= b% goto 100",
        "if a$ = \"x\" then rem never",
        "print ((1 + 2) + 3) - (4 - 5)",
    ],
)
def test_render_round_trip(source):
    statement = stmt(source)
    assert stmt(render_statement(statement)) == statement


def test_print_holds_an_immutable_tuple():
    statement = stmt("print 1, 2")
    assert statement.expressions == (lit(1), lit(2))
    assert hash(statement) == hash(Print((lit(1), lit(2))))


@pytest.mark.parametrize(
    "source",
    [
        "print " + " + ".join(["1"] * 5000),
        "print " + "(" * 3000 + "1" + ")" * 3000,
    ],
)
def test_deep_expression_is_a_compile_error(source):
    scanner = scan(source + "\nprint 5\n")
    with pytest.raises(BasicCompileError) as info:
        compile_statement(scanner)
    assert info.value.message == "expression too deeply nested"
    assert compile_statement(scanner) == Print((lit(5),))
