"""Tests for the trajectory evaluators and trajectory extraction."""

from __future__ import annotations

import pytest

from agentcore.agent.llm_client import ChatMessage, ChatRole, ToolCallRequest
from agentcore.agent.trajectory import (
    StrictTrajectoryEvaluator,
    UnorderedTrajectoryEvaluator,
    history_trajectory,
    tool_trajectory,
)
from agentcore.telemetry import Span, Telemetry

# ── Helpers ───────────────────────────────────────────────────────────────────


class RecordingTelemetry(Telemetry):
    def __init__(self) -> None:
        self.spans: list[Span] = []

    def on_end(self, span: Span) -> None:
        self.spans.append(span)


def _assistant_calls(*names: str) -> ChatMessage:
    return ChatMessage(
        role=ChatRole.ASSISTANT,
        tool_call_requests=[
            ToolCallRequest(id=f"call_{i}", name=name) for i, name in enumerate(names)
        ],
    )


# ── Extraction ────────────────────────────────────────────────────────────────


def test_tool_trajectory_reads_tool_spans_in_start_order() -> None:
    telemetry = RecordingTelemetry()
    with telemetry.start_trace("Agent"):
        with telemetry.start_chain("Tools"):
            with telemetry.start_tool("roll_dice"):
                pass
            with telemetry.start_tool("deal_cards"):
                pass
        with telemetry.start_chain("Reasoning"):
            pass

    assert tool_trajectory(telemetry.spans) == ["roll_dice", "deal_cards"]


def test_history_trajectory_reads_assistant_requests() -> None:
    history = [
        ChatMessage(role=ChatRole.USER, content="roll and deal"),
        _assistant_calls("roll_dice", "deal_cards"),
        ChatMessage(role=ChatRole.TOOL, content="4", tool_call_id="call_0", tool_name="roll_dice"),
        ChatMessage(role=ChatRole.TOOL, content="Ace", tool_call_id="call_1", tool_name="deal_cards"),
        _assistant_calls("roll_dice"),
    ]
    assert history_trajectory(history) == ["roll_dice", "deal_cards", "roll_dice"]


# ── Strict ────────────────────────────────────────────────────────────────────


def test_strict_exact_match_ignores_case() -> None:
    result = StrictTrajectoryEvaluator().evaluate(
        ["roll_dice", "deal_cards"], ["Roll_Dice", "deal_cards"],
    )
    assert result.name == "trajectory_strict"
    assert result.value is True
    assert result.comment == "Exact match: Roll_Dice -> deal_cards"


@pytest.mark.parametrize(
    ("actual", "comment"),
    [
        (["roll_dice"], "Length mismatch: expected 2 tools, got 1"),
        (
            ["deal_cards", "roll_dice"],
            "Mismatch at position 0: expected 'roll_dice', got 'deal_cards'",
        ),
    ],
)
def test_strict_failures(actual: list[str], comment: str) -> None:
    result = StrictTrajectoryEvaluator().evaluate(["roll_dice", "deal_cards"], actual)
    assert result.value is False
    assert result.comment == comment


def test_no_expected_trajectory_has_no_value() -> None:
    result = StrictTrajectoryEvaluator().evaluate([], ["roll_dice"])
    assert result.value is None
    assert result.comment == "No expected trajectory given"


# ── Unordered ─────────────────────────────────────────────────────────────────


def test_unordered_passes_in_any_order_and_reports_extras() -> None:
    result = UnorderedTrajectoryEvaluator().evaluate(
        ["roll_dice", "deal_cards"], ["deal_cards", "web_search", "ROLL_DICE"],
    )
    assert result.name == "trajectory_unordered"
    assert result.value is True
    assert result.comment == "All 2 expected tool calls present (extra tools: web_search)"


def test_unordered_reports_missing_and_count_mismatch() -> None:
    result = UnorderedTrajectoryEvaluator().evaluate(
        ["roll_dice", "roll_dice", "deal_cards"], ["roll_dice"],
    )
    assert result.value is False
    assert result.comment == (
        "Missing: deal_cards (expected 1x); "
        "Count mismatch: roll_dice: expected 2x, got 1x"
    )
