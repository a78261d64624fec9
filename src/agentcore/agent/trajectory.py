"""Trajectory evaluators: expected vs actual tool-call sequences.

The actual trajectory is read from the finished spans of a trace
(:func:`tool_trajectory`) or from a conversation history
(:func:`history_trajectory`).  Tool names compare case-insensitively.

- :class:`StrictTrajectoryEvaluator` — same tools, same order, same count
- :class:`UnorderedTrajectoryEvaluator` — same tools with the same counts,
  in any order; extra tools are reported but do not fail the check
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable, Sequence

from agentcore.agent.judge import EvaluationResult
from agentcore.agent.llm_client import ChatMessage, ChatRole
from agentcore.telemetry import ATTR_OPERATION_NAME, ATTR_TOOL_NAME, OP_EXECUTE_TOOL, Span


def tool_trajectory(spans: Iterable[Span]) -> list[str]:
    """Names of the tools executed in a trace, in start order."""
    tool_spans = sorted(
        (s for s in spans if s.attributes.get(ATTR_OPERATION_NAME) == OP_EXECUTE_TOOL),
        key=lambda s: s.start_time,
    )
    return [s.attributes.get(ATTR_TOOL_NAME) or s.name.removeprefix("Tool: ") for s in tool_spans]


def history_trajectory(messages: Iterable[ChatMessage]) -> list[str]:
    """Names of the tools requested by assistant messages, in order."""
    names: list[str] = []
    for msg in messages:
        if msg.role == ChatRole.ASSISTANT and msg.tool_call_requests:
            names.extend(tc.name for tc in msg.tool_call_requests)
    return names


class _TrajectoryEvaluator:
    name = ""

    def evaluate(self, expected: Sequence[str], actual: Sequence[str]) -> EvaluationResult:
        if not expected:
            return EvaluationResult(name=self.name, value=None, comment="No expected trajectory given")
        passed, comment = self._compare(list(expected), list(actual))
        return EvaluationResult(name=self.name, value=passed, comment=comment)

    def _compare(self, expected: list[str], actual: list[str]) -> tuple[bool, str]:
        raise NotImplementedError


class StrictTrajectoryEvaluator(_TrajectoryEvaluator):
    """Passes only when ``actual`` is exactly ``expected``."""

    name = "trajectory_strict"

    def _compare(self, expected: list[str], actual: list[str]) -> tuple[bool, str]:
        if len(expected) != len(actual):
            return False, f"Length mismatch: expected {len(expected)} tools, got {len(actual)}"
        for i, (want, got) in enumerate(zip(expected, actual)):
            if want.lower() != got.lower():
                return False, f"Mismatch at position {i}: expected '{want}', got '{got}'"
        return True, f"Exact match: {' -> '.join(actual)}"


class UnorderedTrajectoryEvaluator(_TrajectoryEvaluator):
    """Passes when every expected tool was called the expected number of times."""

    name = "trajectory_unordered"

    def _compare(self, expected: list[str], actual: list[str]) -> tuple[bool, str]:
        expected_counts = Counter(t.lower() for t in expected)
        actual_counts = Counter(t.lower() for t in actual)

        missing = [
            f"{tool} (expected {count}x)"
            for tool, count in expected_counts.items()
            if tool not in actual_counts
        ]
        mismatched = [
            f"{tool}: expected {count}x, got {actual_counts[tool]}x"
            for tool, count in expected_counts.items()
            if tool in actual_counts and actual_counts[tool] != count
        ]
        if missing or mismatched:
            issues = []
            if missing:
                issues.append(f"Missing: {', '.join(missing)}")
            if mismatched:
                issues.append(f"Count mismatch: {', '.join(mismatched)}")
            return False, "; ".join(issues)

        comment = f"All {len(expected)} expected tool calls present"
        extra = [tool for tool in actual_counts if tool not in expected_counts]
        if extra:
            comment += f" (extra tools: {', '.join(extra)})"
        return True, comment
