"""LLM-as-a-judge evaluation.

The judge sends a compiled evaluation prompt through the provider's
structured mode and decodes a :class:`JudgeResult`.  Evaluators wrap a
prompt template and turn verdicts into :class:`EvaluationResult` values:

- :class:`AnswerRelevanceEvaluator` — does the answer address the question
- :class:`ContextRelevanceEvaluator` — is each retrieved context relevant
  to the question
- :class:`GroundednessEvaluator` — is the generation that follows each
  retrieval grounded in it

Retrievals are the tool spans of a finished trace whose tool is listed in
``retrieval_tools`` (``web_search`` by default).  Decode failures are not
caught here: a malformed verdict raises
:class:`~agentcore.errors.SchemaValidationError`.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from pydantic import BaseModel, Field

from agentcore.agent.llm_client import ChatMessage, ChatRole, CompletionProvider
from agentcore.agent.prompts import compile_template
from agentcore.telemetry import ATTR_OPERATION_NAME, ATTR_TOOL_NAME, OP_CHAT, OP_EXECUTE_TOOL, Span

JUDGE_SCHEMA_NAME = "judge_result"
DEFAULT_RETRIEVAL_TOOLS = ("web_search",)


class JudgeResult(BaseModel):
    """Verdict of one judge call."""

    score: int = Field(description="1 if the criterion is met, otherwise 0.")
    explanation: str = Field(description="Why the score was given.")


@dataclass
class EvaluationResult:
    """A named score with the evaluator's comment.

    ``value`` is a bool for pass/fail checks, a float for averages, and
    ``None`` when there was nothing to evaluate.
    """

    name: str
    value: bool | float | None
    comment: str | None = None

    #: Span the score refers to, when it is tied to one observation.
    observation_id: str | None = None


class LLMJudge:
    """Runs a single evaluation prompt through the completion provider."""

    def __init__(self, provider: CompletionProvider) -> None:
        self._provider = provider

    async def evaluate(self, prompt: str) -> JudgeResult:
        messages = [ChatMessage(role=ChatRole.SYSTEM, content=prompt)]
        return await self._provider.complete_structured(
            messages, JUDGE_SCHEMA_NAME, JudgeResult,
        )


class AnswerRelevanceEvaluator:
    """Checks whether a generated answer addresses the user's question.

    Template variables: ``{{query}}`` and ``{{generation}}``.
    """

    name = "answer-relevance"

    def __init__(self, template: str, judge: LLMJudge) -> None:
        self._template = template
        self._judge = judge

    async def evaluate(self, query: str, generation: str) -> EvaluationResult:
        prompt = compile_template(
            self._template, {"query": query, "generation": generation},
        )
        verdict = await self._judge.evaluate(prompt)
        return EvaluationResult(
            name=self.name,
            value=verdict.score == 1,
            comment=verdict.explanation,
        )


# ── Trace helpers ─────────────────────────────────────────────────────────────


def retrieval_spans(spans: Iterable[Span], tool_names: Sequence[str]) -> list[Span]:
    """Tool spans of ``tool_names``, in start order."""
    wanted = {name.lower() for name in tool_names}
    return sorted(
        (
            s for s in spans
            if s.attributes.get(ATTR_OPERATION_NAME) == OP_EXECUTE_TOOL
            and str(s.attributes.get(ATTR_TOOL_NAME, "")).lower() in wanted
        ),
        key=lambda s: s.start_time,
    )


def next_generation(spans: Iterable[Span], after: Span) -> Span | None:
    """First generation span started once ``after`` had finished."""
    boundary = after.end_time if after.end_time is not None else after.start_time
    candidates = sorted(
        (
            s for s in spans
            if s.attributes.get(ATTR_OPERATION_NAME) == OP_CHAT and s.start_time >= boundary
        ),
        key=lambda s: s.start_time,
    )
    return candidates[0] if candidates else None


def _with_average(
    name: str,
    results: list[EvaluationResult],
    scores: list[int],
    comments: list[str],
    unit: str,
) -> list[EvaluationResult]:
    """Append the mean score of ``scores`` as a ``<name>-avg`` result."""
    if scores:
        results.append(
            EvaluationResult(
                name=f"{name}-avg",
                value=sum(scores) / len(scores),
                comment=f"Average across {len(scores)} {unit}: {' | '.join(comments)}",
            )
        )
    return results


# ── Per-retrieval evaluators ──────────────────────────────────────────────────


class ContextRelevanceEvaluator:
    """Judges each retrieved context against the user's question.

    Returns one boolean result per retrieval span plus a ``-avg`` result
    with the mean score.  Template variables: ``{{query}}`` and
    ``{{context}}``.
    """

    name = "context-relevance"

    def __init__(
        self,
        template: str,
        judge: LLMJudge,
        retrieval_tools: Sequence[str] = DEFAULT_RETRIEVAL_TOOLS,
    ) -> None:
        self._template = template
        self._judge = judge
        self._retrieval_tools = tuple(retrieval_tools)

    async def evaluate(self, query: str, spans: Sequence[Span]) -> list[EvaluationResult]:
        retrievals = retrieval_spans(spans, self._retrieval_tools)
        if not retrievals:
            return [
                EvaluationResult(
                    name=self.name, value=False, comment="No retrieval tool calls found in trace",
                )
            ]

        results: list[EvaluationResult] = []
        scores: list[int] = []
        comments: list[str] = []
        for retrieval in retrievals:
            prompt = compile_template(
                self._template, {"query": query, "context": retrieval.output or ""},
            )
            verdict = await self._judge.evaluate(prompt)
            scores.append(verdict.score)
            comments.append(verdict.explanation)
            results.append(
                EvaluationResult(
                    name=self.name,
                    value=verdict.score == 1,
                    comment=verdict.explanation,
                    observation_id=retrieval.span_id,
                )
            )
        return _with_average(self.name, results, scores, comments, "retrieval(s)")


class GroundednessEvaluator:
    """Judges whether the generation after each retrieval is grounded in it.

    For every retrieval span the next generation span is paired with it;
    a retrieval with no later generation fails without a judge call.
    Template variables: ``{{context}}`` and ``{{generation}}``.
    """

    name = "groundedness"

    def __init__(
        self,
        template: str,
        judge: LLMJudge,
        retrieval_tools: Sequence[str] = DEFAULT_RETRIEVAL_TOOLS,
    ) -> None:
        self._template = template
        self._judge = judge
        self._retrieval_tools = tuple(retrieval_tools)

    async def evaluate(self, spans: Sequence[Span]) -> list[EvaluationResult]:
        retrievals = retrieval_spans(spans, self._retrieval_tools)
        if not retrievals:
            return [
                EvaluationResult(
                    name=self.name, value=False, comment="No retrieval tool calls found in trace",
                )
            ]

        results: list[EvaluationResult] = []
        scores: list[int] = []
        comments: list[str] = []
        for retrieval in retrievals:
            generation = next_generation(spans, retrieval)
            if generation is None:
                comment = f"No generation found after '{retrieval.name}'"
                comments.append(comment)
                results.append(EvaluationResult(name=self.name, value=False, comment=comment))
                continue

            prompt = compile_template(
                self._template,
                {"context": retrieval.output or "", "generation": generation.output or ""},
            )
            verdict = await self._judge.evaluate(prompt)
            scores.append(verdict.score)
            comments.append(verdict.explanation)
            results.append(
                EvaluationResult(
                    name=self.name,
                    value=verdict.score == 1,
                    comment=f"[Context from: {retrieval.name}] {verdict.explanation}",
                    observation_id=generation.span_id,
                )
            )
        return _with_average(self.name, results, scores, comments, "retrieval-generation pair(s)")
