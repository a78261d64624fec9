"""Tests for the LLM-as-a-judge evaluators.

The provider is an AsyncMock; the tests check prompt compilation, the
structured call, and how verdicts map to evaluation results.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from agentcore.agent.judge import (
    JUDGE_SCHEMA_NAME,
    AnswerRelevanceEvaluator,
    ContextRelevanceEvaluator,
    EvaluationResult,
    GroundednessEvaluator,
    JudgeResult,
    LLMJudge,
)
from agentcore.agent.llm_client import ChatMessage, ChatRole
from agentcore.errors import SchemaValidationError
from agentcore.telemetry import Span, Telemetry

TEMPLATE = "Question: {{query}}\nAnswer: {{generation}}\nScore 1 if relevant, else 0."


def _provider(verdict: JudgeResult | Exception) -> AsyncMock:
    provider = AsyncMock()
    if isinstance(verdict, Exception):
        provider.complete_structured = AsyncMock(side_effect=verdict)
    else:
        provider.complete_structured = AsyncMock(return_value=verdict)
    return provider


@pytest.mark.asyncio
async def test_judge_sends_prompt_as_system_message() -> None:
    provider = _provider(JudgeResult(score=1, explanation="fine"))

    verdict = await LLMJudge(provider).evaluate("Judge this.")

    assert verdict.score == 1
    messages, schema_name, shape = provider.complete_structured.call_args.args
    assert messages == [ChatMessage(role=ChatRole.SYSTEM, content="Judge this.")]
    assert schema_name == JUDGE_SCHEMA_NAME
    assert shape is JudgeResult


@pytest.mark.asyncio
async def test_relevance_evaluator_passes_on_score_one() -> None:
    provider = _provider(JudgeResult(score=1, explanation="Answers the question."))
    evaluator = AnswerRelevanceEvaluator(TEMPLATE, LLMJudge(provider))

    result = await evaluator.evaluate("What is 2+2?", "4")

    assert result == EvaluationResult(
        name="answer-relevance", value=True, comment="Answers the question."
    )
    (message,) = provider.complete_structured.call_args.args[0]
    assert message.content.startswith("Question: What is 2+2?\nAnswer: 4\n")


@pytest.mark.asyncio
@pytest.mark.parametrize("score", [0, 2, -1])
async def test_relevance_evaluator_fails_on_other_scores(score: int) -> None:
    provider = _provider(JudgeResult(score=score, explanation="Off topic."))
    result = await AnswerRelevanceEvaluator(TEMPLATE, LLMJudge(provider)).evaluate("q", "a")
    assert result.value is False


@pytest.mark.asyncio
async def test_malformed_verdict_propagates() -> None:
    provider = _provider(SchemaValidationError("JudgeResult: missing field 'score'"))
    with pytest.raises(SchemaValidationError):
        await LLMJudge(provider).evaluate("Judge this.")


# ── Context relevance and groundedness ────────────────────────────────────────


class RecordingTelemetry(Telemetry):
    def __init__(self) -> None:
        self.spans: list[Span] = []

    def on_end(self, span: Span) -> None:
        self.spans.append(span)


def _search_trace(*results: str, answer: bool = True) -> list[Span]:
    """A trace with one web_search tool span per result, each followed by a generation."""
    telemetry = RecordingTelemetry()
    with telemetry.start_trace("Agent"):
        with telemetry.start_tool("roll_dice") as dice:
            dice.set_output("4")
        for i, result in enumerate(results):
            with telemetry.start_tool("web_search", input='{"query": "q"}') as tool:
                tool.set_output(result)
            if answer:
                with telemetry.start_generation(provider="stub", model="m") as generation:
                    generation.set_completion(f"answer {i}")
    return telemetry.spans


def _sequenced_provider(*verdicts: JudgeResult) -> AsyncMock:
    provider = AsyncMock()
    provider.complete_structured = AsyncMock(side_effect=list(verdicts))
    return provider


@pytest.mark.asyncio
async def test_context_relevance_scores_each_retrieval_and_averages() -> None:
    spans = _search_trace("Paris is the capital.", "Cheese recipes.")
    provider = _sequenced_provider(
        JudgeResult(score=1, explanation="Relevant."),
        JudgeResult(score=0, explanation="Off topic."),
    )
    evaluator = ContextRelevanceEvaluator(
        "Q: {{query}}\nContext: {{context}}", LLMJudge(provider),
    )

    results = await evaluator.evaluate("Capital of France?", spans)

    assert [(r.name, r.value) for r in results] == [
        ("context-relevance", True),
        ("context-relevance", False),
        ("context-relevance-avg", 0.5),
    ]
    search_ids = [s.span_id for s in spans if s.name == "Tool: web_search"]
    assert [r.observation_id for r in results[:2]] == search_ids
    assert results[2].comment == "Average across 2 retrieval(s): Relevant. | Off topic."
    prompts = [c.args[0][0].content for c in provider.complete_structured.call_args_list]
    assert prompts == [
        "Q: Capital of France?\nContext: Paris is the capital.",
        "Q: Capital of France?\nContext: Cheese recipes.",
    ]


@pytest.mark.asyncio
async def test_context_relevance_without_retrievals() -> None:
    provider = _sequenced_provider()
    results = await ContextRelevanceEvaluator("{{query}}", LLMJudge(provider)).evaluate(
        "q", _search_trace(),
    )
    assert results == [
        EvaluationResult(
            name="context-relevance", value=False,
            comment="No retrieval tool calls found in trace",
        )
    ]
    provider.complete_structured.assert_not_called()


@pytest.mark.asyncio
async def test_groundedness_pairs_retrieval_with_next_generation() -> None:
    spans = _search_trace("Paris is the capital.")
    provider = _sequenced_provider(JudgeResult(score=1, explanation="Supported."))
    evaluator = GroundednessEvaluator(
        "Context: {{context}}\nGeneration: {{generation}}", LLMJudge(provider),
    )

    results = await evaluator.evaluate(spans)

    (generation,) = [s for s in spans if s.name == "Generation: m"]
    assert results[0] == EvaluationResult(
        name="groundedness",
        value=True,
        comment="[Context from: Tool: web_search] Supported.",
        observation_id=generation.span_id,
    )
    assert results[1].name == "groundedness-avg"
    assert results[1].value == 1.0
    (message,) = provider.complete_structured.call_args.args[0]
    assert message.content == "Context: Paris is the capital.\nGeneration: answer 0"


@pytest.mark.asyncio
async def test_groundedness_fails_retrieval_without_generation() -> None:
    provider = _sequenced_provider()
    results = await GroundednessEvaluator("{{context}}", LLMJudge(provider)).evaluate(
        _search_trace("orphan", answer=False),
    )

    assert results == [
        EvaluationResult(
            name="groundedness", value=False,
            comment="No generation found after 'Tool: web_search'",
        )
    ]
    provider.complete_structured.assert_not_called()


@pytest.mark.asyncio
async def test_retrieval_tools_are_configurable() -> None:
    provider = _sequenced_provider(JudgeResult(score=1, explanation="ok"))
    evaluator = ContextRelevanceEvaluator(
        "{{context}}", LLMJudge(provider), retrieval_tools=["roll_dice"],
    )

    results = await evaluator.evaluate("q", _search_trace("ignored"))

    assert results[0].value is True
    assert provider.complete_structured.call_args.args[0][0].content == "4"
