"""Scoped observability spans for the agent loop.

The orchestrator and the provider adapters depend only on the minimal
contract defined here:

- :meth:`Telemetry.start_trace` — root span of one ``get_response`` call.
- :meth:`Telemetry.start_agent` / :meth:`start_chain` / :meth:`start_tool` /
  :meth:`start_span` — nested observations.
- :meth:`Telemetry.start_generation` — an LLM completion call, with model
  name and token usage.

Every ``start_*`` method returns a :class:`Span` that is used as a context
manager.  Spans nest through a :mod:`contextvars` pointer, so concurrent
calls on the same event loop get independent trees.  An exception leaving
the ``with`` block is recorded on the span before it propagates.

Attribute names follow the OpenTelemetry GenAI semantic conventions.  The
base :class:`Telemetry` reports finished spans through :mod:`logging`;
exporters subclass it and override :meth:`Telemetry.on_end`.
"""

from __future__ import annotations

import logging
import time
import traceback
import uuid
from contextvars import ContextVar, Token
from typing import Any

from pydantic_core import to_json

logger = logging.getLogger(__name__)

# ── Attribute names ───────────────────────────────────────────────────────────

ATTR_OPERATION_NAME = "gen_ai.operation.name"
ATTR_SYSTEM = "gen_ai.system"
ATTR_REQUEST_MODEL = "gen_ai.request.model"
ATTR_RESPONSE_MODEL = "gen_ai.response.model"
ATTR_PROMPT = "gen_ai.prompt"
ATTR_COMPLETION = "gen_ai.completion"
ATTR_INPUT_TOKENS = "gen_ai.usage.input_tokens"
ATTR_OUTPUT_TOKENS = "gen_ai.usage.output_tokens"
ATTR_TOTAL_TOKENS = "gen_ai.usage.total_tokens"
ATTR_TEMPERATURE = "gen_ai.request.temperature"
ATTR_MAX_TOKENS = "gen_ai.request.max_tokens"
ATTR_TRACE_NAME = "trace.name"
ATTR_TRACE_TAGS = "trace.tags"
ATTR_SESSION_ID = "session.id"
ATTR_USER_ID = "user.id"
ATTR_TOOL_NAME = "tool.name"

# ── Operation names ───────────────────────────────────────────────────────────

OP_CHAT = "chat"
OP_INVOKE_AGENT = "invoke_agent"
OP_EXECUTE_TOOL = "execute_tool"
OP_CHAIN = "chain"
OP_SPAN = "span"

_current_span: ContextVar[Span | None] = ContextVar("agentcore_current_span", default=None)


def serialize(value: Any) -> str:
    """Render a span input/output as text (strings pass through unchanged)."""
    if isinstance(value, str):
        return value
    return to_json(value, by_alias=True, fallback=str).decode()


def current_span() -> Span | None:
    """Return the innermost open span in this context, if any."""
    return _current_span.get()


class Span:
    """A single scoped observation.

    Created by :class:`Telemetry`; do not instantiate directly.
    """

    def __init__(
        self,
        telemetry: Telemetry,
        name: str,
        *,
        trace_id: str,
        parent_id: str | None,
        operation: str | None = None,
        input: Any = None,
    ) -> None:
        self._telemetry = telemetry
        self._token: Token[Span | None] | None = None
        self.name = name
        self.span_id = uuid.uuid4().hex[:16]
        self.trace_id = trace_id
        self.parent_id = parent_id
        self.attributes: dict[str, Any] = {}
        self.events: list[dict[str, Any]] = []
        self.input: str | None = None
        self.output: str | None = None
        self.status = "ok"
        self.start_time = time.monotonic()
        self.end_time: float | None = None

        if operation is not None:
            self.attributes[ATTR_OPERATION_NAME] = operation
        if input is not None:
            self.input = serialize(input)

    # ── Context manager ──────────────────────────────────────────────────

    def __enter__(self) -> Span:
        self._token = _current_span.set(self)
        return self

    def __exit__(self, exc_type: Any, exc: BaseException | None, tb: Any) -> bool:
        try:
            if exc is not None:
                self.record_exception(exc)
            self.end()
        finally:
            if self._token is not None:
                _current_span.reset(self._token)
                self._token = None
        return False

    # ── Recording ────────────────────────────────────────────────────────

    @property
    def is_ended(self) -> bool:
        return self.end_time is not None

    @property
    def duration_ms(self) -> float | None:
        if self.end_time is None:
            return None
        return (self.end_time - self.start_time) * 1000

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value

    def set_output(self, value: Any) -> None:
        if value is not None:
            self.output = serialize(value)

    def record_exception(self, exc: BaseException) -> None:
        """Mark the span as failed and attach an ``exception`` event.

        Recording the same exception twice is a no-op, so an explicit call
        followed by the context-manager exit leaves a single event.
        """
        if any(event.get("exc") is exc for event in self.events):
            return
        self.status = "error"
        self.events.append(
            {
                "name": "exception",
                "exc": exc,
                "exception.type": f"{type(exc).__module__}.{type(exc).__qualname__}",
                "exception.message": str(exc),
                "exception.stacktrace": "".join(
                    traceback.format_exception(type(exc), exc, exc.__traceback__)
                ),
            }
        )

    def end(self) -> None:
        if self.end_time is not None:
            return
        self.end_time = time.monotonic()
        self._telemetry.on_end(self)


class GenerationSpan(Span):
    """Span for an LLM completion call, with model and usage details."""

    def set_response_model(self, model: str | None) -> None:
        if model:
            self.attributes[ATTR_RESPONSE_MODEL] = model

    def set_token_usage(self, input_tokens: int | None, output_tokens: int | None) -> None:
        if input_tokens is None and output_tokens is None:
            return
        in_t = input_tokens or 0
        out_t = output_tokens or 0
        self.attributes[ATTR_INPUT_TOKENS] = in_t
        self.attributes[ATTR_OUTPUT_TOKENS] = out_t
        self.attributes[ATTR_TOTAL_TOKENS] = in_t + out_t

    def set_completion(self, completion: Any) -> None:
        if completion is None:
            return
        self.attributes[ATTR_COMPLETION] = serialize(completion)
        self.set_output(completion)


class Telemetry:
    """Span factory.

    The base implementation logs every finished span at DEBUG level.
    Subclasses can override :meth:`on_start` / :meth:`on_end` to export
    spans elsewhere.
    """

    # ── Span factories ───────────────────────────────────────────────────

    def start_trace(
        self,
        name: str,
        *,
        session_id: str | None = None,
        user_id: str | None = None,
        tags: list[str] | None = None,
        input: Any = None,
    ) -> Span:
        """Start a root span with a fresh trace id."""
        span = Span(self, name, trace_id=uuid.uuid4().hex, parent_id=None, input=input)
        span.set_attribute(ATTR_TRACE_NAME, name)
        if session_id is not None:
            span.set_attribute(ATTR_SESSION_ID, session_id)
        if user_id is not None:
            span.set_attribute(ATTR_USER_ID, user_id)
        if tags:
            span.set_attribute(ATTR_TRACE_TAGS, ",".join(tags))
        return self._started(span)

    def start_span(self, name: str, input: Any = None) -> Span:
        return self._observation(name, OP_SPAN, input)

    def start_agent(self, name: str, input: Any = None) -> Span:
        return self._observation(name, OP_INVOKE_AGENT, input)

    def start_chain(self, name: str, input: Any = None) -> Span:
        return self._observation(name, OP_CHAIN, input)

    def start_tool(self, tool_name: str, input: Any = None) -> Span:
        span = self._observation(f"Tool: {tool_name}", OP_EXECUTE_TOOL, input)
        span.set_attribute(ATTR_TOOL_NAME, tool_name)
        return span

    def start_generation(
        self,
        *,
        provider: str,
        model: str,
        input: Any = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> GenerationSpan:
        trace_id, parent_id = self._parent_ids()
        span = GenerationSpan(
            self,
            f"Generation: {model}",
            trace_id=trace_id,
            parent_id=parent_id,
            operation=OP_CHAT,
            input=input,
        )
        span.set_attribute(ATTR_SYSTEM, provider)
        span.set_attribute(ATTR_REQUEST_MODEL, model)
        if span.input is not None:
            span.set_attribute(ATTR_PROMPT, span.input)
        if temperature is not None:
            span.set_attribute(ATTR_TEMPERATURE, temperature)
        if max_tokens is not None:
            span.set_attribute(ATTR_MAX_TOKENS, max_tokens)
        self._started(span)
        return span

    def record_exception(self, exc: BaseException) -> None:
        """Record ``exc`` on the innermost open span, if there is one."""
        span = _current_span.get()
        if span is not None:
            span.record_exception(exc)

    # ── Hooks ────────────────────────────────────────────────────────────

    def on_start(self, span: Span) -> None:
        logger.debug("Span started: %s (trace=%s, span=%s)", span.name, span.trace_id, span.span_id)

    def on_end(self, span: Span) -> None:
        logger.debug(
            "Span finished: %s [%s] in %.1fms (trace=%s, span=%s)",
            span.name,
            span.status,
            span.duration_ms or 0.0,
            span.trace_id,
            span.span_id,
        )

    # ── Internals ────────────────────────────────────────────────────────

    def _parent_ids(self) -> tuple[str, str | None]:
        parent = _current_span.get()
        if parent is None:
            return uuid.uuid4().hex, None
        return parent.trace_id, parent.span_id

    def _observation(self, name: str, operation: str, input: Any) -> Span:
        trace_id, parent_id = self._parent_ids()
        span = Span(
            self,
            name,
            trace_id=trace_id,
            parent_id=parent_id,
            operation=operation,
            input=input,
        )
        return self._started(span)

    def _started(self, span: Span) -> Span:
        self.on_start(span)
        return span
