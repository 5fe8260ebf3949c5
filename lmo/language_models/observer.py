"""
Observation hooks around generation calls.

An observer records the start and the end of each provider call made
by a chat model as a `Generation` record. The observer, the current
trace id and the parent id are taken from context variables, which
the caller sets with the `observe` context manager; when no observer
is set, chat models do not create records.

Example:
    ```python
    from lmo.language_models.observer import LoggerObserver, observe
    from lmo.utils.logging import ConsoleLogger

    with observe(LoggerObserver(ConsoleLogger("trace")), trace_id="t1"):
        agent.run("What is the capital of Italy?")
    ```

Observers are a side channel: they receive the messages of the call,
but cannot change the thread or the control flow. An error raised by
an observer is reported to the caller of the generation.
"""

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field

from lmo.utils.logging import LoggerBase

from .thread import Message


class Generation(BaseModel):
    """The record of one provider call."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    trace_id: str | None = None
    parent_id: str | None = None
    name: str
    model: str
    model_parameters: dict[str, Any] = Field(default_factory=dict)
    input: list[Message] = Field(default_factory=list)
    output: list[Message] | None = None
    start_time: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    end_time: datetime | None = None


@runtime_checkable
class LLMObserver(Protocol):
    """Interface of the observers of generation calls."""

    def generation(self, generation: Generation) -> Generation: ...

    def generation_end(self, generation: Generation) -> Generation: ...


_observer: ContextVar[LLMObserver | None] = ContextVar(
    "lmo_observer", default=None
)
_trace_id: ContextVar[str | None] = ContextVar(
    "lmo_trace_id", default=None
)
_parent_id: ContextVar[str | None] = ContextVar(
    "lmo_parent_id", default=None
)


@contextmanager
def observe(
    observer: LLMObserver,
    *,
    trace_id: str | None = None,
    parent_id: str | None = None,
) -> Iterator[LLMObserver]:
    """Set the observer of the generation calls made in the block."""
    tokens = (
        _observer.set(observer),
        _trace_id.set(trace_id),
        _parent_id.set(parent_id),
    )
    try:
        yield observer
    finally:
        _parent_id.reset(tokens[2])
        _trace_id.reset(tokens[1])
        _observer.reset(tokens[0])


def current_observer() -> LLMObserver | None:
    return _observer.get()


def start_observe_generation(
    name: str,
    model: str,
    model_parameters: dict[str, Any],
    messages: list[Message],
) -> Generation | None:
    """Record the start of a generation. Returns None when there is no
    observer in the context."""
    observer = _observer.get()
    if observer is None:
        return None

    return observer.generation(
        Generation(
            trace_id=_trace_id.get(),
            parent_id=_parent_id.get(),
            name=f"llm-{name}",
            model=model,
            model_parameters=model_parameters,
            input=messages,
        )
    )


def stop_observe_generation(
    generation: Generation | None, messages: list[Message]
) -> None:
    """Record the end of a generation with the messages it produced."""
    observer = _observer.get()
    if observer is None or generation is None:
        return

    generation.output = messages
    generation.end_time = datetime.now(timezone.utc)
    observer.generation_end(generation)


class LoggerObserver:
    """An observer writing the generation records to a logger."""

    def __init__(self, logger: LoggerBase) -> None:
        self.logger = logger

    def generation(self, generation: Generation) -> Generation:
        self.logger.info(
            f"[{generation.trace_id}] {generation.name} started "
            f"(id: {generation.id}, model: {generation.model}, "
            f"{len(generation.input)} input messages)"
        )
        return generation

    def generation_end(self, generation: Generation) -> Generation:
        output = generation.output or []
        elapsed = (
            (generation.end_time - generation.start_time).total_seconds()
            if generation.end_time
            else 0.0
        )
        self.logger.info(
            f"[{generation.trace_id}] {generation.name} ended "
            f"(id: {generation.id}, {len(output)} output messages, "
            f"{elapsed:.2f}s)"
        )
        return generation


class RecordingObserver:
    """An observer that keeps the records in memory."""

    def __init__(self) -> None:
        self.started: list[Generation] = []
        self.ended: list[Generation] = []

    def generation(self, generation: Generation) -> Generation:
        self.started.append(generation)
        return generation

    def generation_end(self, generation: Generation) -> Generation:
        self.ended.append(generation)
        return generation
