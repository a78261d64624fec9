"""Tests for telemetry spans: nesting, attributes, exceptions, context."""

from __future__ import annotations

import asyncio

import pytest

from agentcore.telemetry import (
    ATTR_INPUT_TOKENS,
    ATTR_OPERATION_NAME,
    ATTR_OUTPUT_TOKENS,
    ATTR_TOTAL_TOKENS,
    Span,
    Telemetry,
    current_span,
    serialize,
)

# ── Helpers ───────────────────────────────────────────────────────────────────


class RecordingTelemetry(Telemetry):
    def __init__(self) -> None:
        self.started: list[Span] = []
        self.ended: list[Span] = []

    def on_start(self, span: Span) -> None:
        self.started.append(span)

    def on_end(self, span: Span) -> None:
        self.ended.append(span)


# ── Nesting ───────────────────────────────────────────────────────────────────


def test_spans_nest_under_the_current_span() -> None:
    telemetry = RecordingTelemetry()

    with telemetry.start_trace("Agent", session_id="s", tags=["a", "b"]) as trace:
        with telemetry.start_agent("Agent") as agent:
            with telemetry.start_chain("Reasoning") as chain:
                assert current_span() is chain
            with telemetry.start_tool("roll_dice", input='{"sides": 6}') as tool:
                pass
        assert current_span() is trace
    assert current_span() is None

    assert trace.parent_id is None
    assert agent.parent_id == trace.span_id
    assert chain.parent_id == agent.span_id
    assert tool.parent_id == agent.span_id
    assert {s.trace_id for s in telemetry.ended} == {trace.trace_id}
    assert telemetry.ended == [chain, tool, agent, trace]
    assert tool.name == "Tool: roll_dice"
    assert tool.attributes[ATTR_OPERATION_NAME] == "execute_tool"
    assert tool.input == '{"sides": 6}'
    assert trace.attributes["trace.tags"] == "a,b"
    assert trace.attributes["session.id"] == "s"


def test_span_without_parent_starts_new_trace() -> None:
    telemetry = Telemetry()
    with telemetry.start_span("one") as one:
        pass
    with telemetry.start_span("two") as two:
        pass
    assert one.trace_id != two.trace_id
    assert one.is_ended and two.is_ended
    assert one.duration_ms is not None


def test_generation_span_records_model_and_usage() -> None:
    telemetry = RecordingTelemetry()

    with telemetry.start_generation(
        provider="openai", model="gpt-4o-mini", input=[{"role": "user"}],
        temperature=0.0, max_tokens=100,
    ) as generation:
        generation.set_response_model("gpt-4o-mini-2024")
        generation.set_token_usage(12, None)
        generation.set_completion({"toolCalls": []})

    assert generation.name == "Generation: gpt-4o-mini"
    assert generation.attributes[ATTR_OPERATION_NAME] == "chat"
    assert generation.attributes["gen_ai.request.temperature"] == 0.0
    assert generation.attributes["gen_ai.request.max_tokens"] == 100
    assert generation.attributes["gen_ai.prompt"] == '[{"role":"user"}]'
    assert generation.attributes[ATTR_INPUT_TOKENS] == 12
    assert generation.attributes[ATTR_OUTPUT_TOKENS] == 0
    assert generation.attributes[ATTR_TOTAL_TOKENS] == 12
    assert generation.output == '{"toolCalls":[]}'


def test_token_usage_absent_is_not_recorded() -> None:
    with Telemetry().start_generation(provider="ollama", model="m") as generation:
        generation.set_token_usage(None, None)
    assert ATTR_TOTAL_TOKENS not in generation.attributes


# ── Exceptions ────────────────────────────────────────────────────────────────


def test_exception_is_recorded_and_propagates() -> None:
    telemetry = RecordingTelemetry()

    with pytest.raises(ValueError, match="bad"):
        with telemetry.start_trace("t") as trace:
            with telemetry.start_chain("inner") as inner:
                raise ValueError("bad")

    assert inner.status == "error"
    assert trace.status == "error"
    (event,) = inner.events
    assert event["name"] == "exception"
    assert event["exception.type"] == "builtins.ValueError"
    assert event["exception.message"] == "bad"
    assert "ValueError: bad" in event["exception.stacktrace"]
    assert current_span() is None
    assert all(s.is_ended for s in telemetry.ended)


def test_explicit_record_then_exit_keeps_single_event() -> None:
    telemetry = Telemetry()
    error = RuntimeError("once")

    with pytest.raises(RuntimeError):
        with telemetry.start_span("s") as span:
            telemetry.record_exception(error)
            raise error

    assert len(span.events) == 1


def test_record_exception_without_open_span_is_noop() -> None:
    Telemetry().record_exception(RuntimeError("nobody listening"))


def test_end_is_idempotent() -> None:
    telemetry = RecordingTelemetry()
    with telemetry.start_span("s") as span:
        span.end()
    assert telemetry.ended == [span]


# ── Context isolation ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_concurrent_tasks_get_independent_trees() -> None:
    telemetry = RecordingTelemetry()

    async def run(name: str) -> tuple[Span, Span]:
        with telemetry.start_trace(name) as trace:
            await asyncio.sleep(0)
            with telemetry.start_chain("step") as step:
                await asyncio.sleep(0)
            return trace, step

    (trace_a, step_a), (trace_b, step_b) = await asyncio.gather(run("a"), run("b"))

    assert step_a.parent_id == trace_a.span_id
    assert step_b.parent_id == trace_b.span_id
    assert trace_a.trace_id != trace_b.trace_id


# ── serialize ─────────────────────────────────────────────────────────────────


def test_serialize() -> None:
    from agentcore.agent.llm_client import ChatMessage, ChatRole

    assert serialize("plain") == "plain"
    assert serialize({"a": 1}) == '{"a":1}'
    assert serialize([ChatMessage(role=ChatRole.USER, content="hi")]) == (
        '[{"role":"user","content":"hi","tool_call_id":null,'
        '"tool_name":null,"tool_call_requests":null}]'
    )
