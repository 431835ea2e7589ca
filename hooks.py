"""Callbacks around program execution.

A `HookRegistry` belongs to one interpreter session. Handlers subscribe to
named events, and step watchers are called every N executed statements.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple


# event name -> arguments passed to its handlers
EVENTS: Dict[str, Tuple[str, ...]] = {
    "program_start": ("interpreter",),
    "before_statement": ("interpreter", "line_number", "statement"),
    "after_statement": ("interpreter", "line_number", "statement"),
    "on_error": ("interpreter", "error"),
    "program_end": ("interpreter",),
}


class HookError(Exception):
    pass


@dataclass(frozen=True)
class StepContext:
    step_index: int
    rule: str
    line_number: int
    statement: Any  # parser.Statement


Handler = Callable[..., None]
StepWatcher = Callable[[Any, StepContext], None]


class HookRegistry:
    def __init__(self) -> None:
        self._handlers: Dict[str, List[Tuple[int, Handler]]] = {name: [] for name in EVENTS}
        self._watchers: List[Tuple[int, StepWatcher]] = []

    def on(self, event: str, handler: Optional[Handler] = None, *, priority: int = 0):
        """Subscribe `handler` to `event`; usable as a decorator when `handler` is omitted.

        Higher priorities run first; equal priorities run in subscription order.
        """
        if event not in EVENTS:
            raise HookError(f"unknown event: {event}")

        def subscribe(fn: Handler) -> Handler:
            handlers = self._handlers[event]
            handlers.append((priority, fn))
            handlers.sort(key=lambda entry: -entry[0])
            return fn

        if handler is None:
            return subscribe
        return subscribe(handler)

    def every(self, interval: int, watcher: Optional[StepWatcher] = None):
        """Call `watcher(interpreter, ctx)` on steps 0, interval, 2 * interval, ..."""
        if interval < 1:
            raise HookError("step interval must be at least 1")

        def watch(fn: StepWatcher) -> StepWatcher:
            self._watchers.append((interval, fn))
            return fn

        if watcher is None:
            return watch
        return watch(watcher)

    def emit(self, event: str, *args: Any) -> None:
        for _priority, handler in self._handlers[event]:
            handler(*args)

    def step(self, interpreter: Any, ctx: StepContext) -> None:
        for interval, watcher in self._watchers:
            if ctx.step_index % interval == 0:
                watcher(interpreter, ctx)
