import io

import pytest

from hooks import HookError, HookRegistry
from interpreter import Interpreter

PROGRAM = "10 a% = 1\n20 a% = a% + 1\n30 print a%\n"


@pytest.fixture
def hooks():
    return HookRegistry()


@pytest.fixture
def session(hooks, console):
    def _session(source=PROGRAM):
        interp = Interpreter(hooks=hooks, output_sink=console.write, error_sink=console.write)
        assert interp.load_stream(io.StringIO(source))
        return interp

    return _session


def test_events_fire_in_order(hooks, session, console):
    seen = []
    hooks.on("program_start", lambda interp: seen.append("start"))
    hooks.on("before_statement", lambda interp, line, stmt: seen.append(("before", line)))
    hooks.on("after_statement", lambda interp, line, stmt: seen.append(("after", line)))
    hooks.on("program_end", lambda interp: seen.append("end"))

    session().run()
    assert seen == [
        "start",
        ("before", 10), ("after", 10),
        ("before", 20), ("after", 20),
        ("before", 30), ("after", 30),
        "end",
    ]
    assert console.text == "2\n"


def test_higher_priority_runs_first(hooks, session):
    order = []

    @hooks.on("program_start")
    def plain(interp):
        order.append("plain")

    @hooks.on("program_start", priority=10)
    def urgent(interp):
        order.append("urgent")

    hooks.on("program_start", lambda interp: order.append("later"))

    session().run()
    assert order == ["urgent", "plain", "later"]


def test_step_watcher_interval(hooks, session):
    steps = []

    @hooks.every(2)
    def watch(interp, ctx):
        steps.append((ctx.step_index, ctx.line_number, ctx.rule))

    session().run()
    assert steps == [(0, 10, "ASSIGN"), (2, 30, "PRINT")]


def test_on_error_receives_runtime_error(hooks, session, console):
    errors = []
    hooks.on("on_error", lambda interp, error: errors.append((error.line_number, error.message)))

    session("10 print 1 / 0\n").run()
    assert errors == [(10, "division by zero")]
    assert console.text == "basic: error: division by zero\n"


def test_failing_hook_halts_the_run(hooks, session, console):
    @hooks.on("before_statement")
    def explode(interp, line, stmt):
        raise ValueError("boom")

    interp = session()
    interp.run()
    assert console.text == "basic: error: hook 'before_statement' failed: boom\n"
    assert interp.last_error.line_number == 10


def test_failing_step_watcher_halts_the_run(hooks, session, console):
    hooks.every(1, lambda interp, ctx: 1 / 0)

    session().run()
    assert console.text.startswith("basic: error: step watcher failed: ")


def test_unknown_event(hooks):
    with pytest.raises(HookError, match="unknown event: on_load"):
        hooks.on("on_load", lambda interp: None)


def test_interval_must_be_positive(hooks):
    with pytest.raises(HookError, match="step interval must be at least 1"):
        hooks.every(0, lambda interp, ctx: None)
