"""Bounded reasoning/tool-execution loop (state machine).

One call to :meth:`Agent.get_response` walks::

    REASONING → ANSWER → done
    REASONING → TOOL → EXECUTE_TOOLS → REASONING → ...

- **Reasoning** — a schema-constrained completion (no tools) over a
  text-only rendering of the conversation decides the :class:`Route`.
- **Answer** — one plain completion without tools produces the reply.
- **Tool** — a completion with the tool descriptors attached returns tool
  calls; each is dispatched in order and its result appended right after the
  assistant message that requested it.

The loop runs at most ``max_iterations`` reasoning steps and then raises
:class:`~agentcore.errors.IterationLimitExceeded`.  The agent keeps no
conversation state: the caller passes the full history on every call and the
working copy built here is discarded when the call returns.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum

from pydantic import BaseModel, Field

from agentcore.agent.llm_client import (
    ChatMessage,
    ChatRole,
    CompletionProvider,
    CompletionResult,
    ToolCallRequest,
    to_text_format,
)
from agentcore.agent.prompts import REASONING_PROMPT, PromptProvider
from agentcore.errors import IterationLimitExceeded
from agentcore.telemetry import Telemetry
from agentcore.tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

REASONING_SCHEMA_NAME = "reasoning_result"
DEFAULT_MAX_ITERATIONS = 10


# ── Result models ─────────────────────────────────────────────────────────────


class Route(StrEnum):
    """How the agent proceeds after a reasoning step."""

    TOOL = "tool"
    ANSWER = "answer"


class ReasoningResult(BaseModel):
    """Structured output of the reasoning step."""

    reasoning: str = Field(description="Brief explanation of the decision.")
    route: Route = Field(description="TOOL to call a tool, ANSWER to reply directly.")


@dataclass
class AgentResponse:
    """Value object returned to the caller of :meth:`Agent.get_response`."""

    #: The final reply text.
    content: str

    #: Id of the trace recorded for this call.
    trace_id: str | None = None


@dataclass
class _Histories:
    """Per-call message lists.

    ``working`` is what the reasoning and tool-selection calls see,
    including ``[Reasoning]`` notes.  ``transcript`` is the same
    conversation without those notes and feeds the final answer.
    """

    working: list[ChatMessage]
    transcript: list[ChatMessage]
    offset: int

    def append(self, message: ChatMessage, *, note: bool = False) -> None:
        self.working.append(message)
        if not note:
            self.transcript.append(message)

    @property
    def conversation(self) -> list[ChatMessage]:
        """Working history without the prefixed system prompt."""
        return self.working[self.offset:]


# ── Agent ─────────────────────────────────────────────────────────────────────


class Agent:
    """Stateless reasoning/tool loop around a completion provider.

    Args:
        provider: Completion provider used for every LLM call.
        registry: Tools the model may call.
        prompts: Source of the system and reasoning prompts.
        telemetry: Span factory; defaults to a logging-only :class:`Telemetry`.
        max_iterations: Upper bound on reasoning steps per call.
        name: Name of the trace and agent spans.
        session_id: Optional session id attached to every trace.
        system_prompt_key: Prompt key of the base system prompt.
        reasoning_prompt_key: Prompt key of the reasoning instruction.
    """

    def __init__(
        self,
        provider: CompletionProvider,
        registry: ToolRegistry,
        prompts: PromptProvider,
        telemetry: Telemetry | None = None,
        *,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        name: str = "Agent",
        session_id: str | None = None,
        system_prompt_key: str = "system",
        reasoning_prompt_key: str = "reasoning",
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self._provider = provider
        self._registry = registry
        self._prompts = prompts
        self._telemetry = telemetry or Telemetry()
        self._max_iterations = max_iterations
        self._name = name
        self._session_id = session_id
        self._system_prompt_key = system_prompt_key
        self._reasoning_prompt_key = reasoning_prompt_key

    @property
    def max_iterations(self) -> int:
        return self._max_iterations

    # ── Public entry point ────────────────────────────────────────────────

    async def get_response(
        self,
        history: Sequence[ChatMessage],
        cancel_event: asyncio.Event | None = None,
    ) -> AgentResponse:
        """Run the loop over ``history`` and return the final answer.

        Args:
            history: The full conversation so far; never modified.
            cancel_event: When set, the call stops at its next provider or
                tool boundary with :class:`asyncio.CancelledError`.

        Raises:
            IterationLimitExceeded: No answer within ``max_iterations``.
            SchemaValidationError: Reasoning output could not be decoded.
            UnknownTool, MissingRequiredParameter, ArgumentConversionError:
                A tool call from the model could not be dispatched.
        """
        caller_history = list(history)
        system_prompt = self._prompts.get_prompt(self._system_prompt_key)

        prefix: list[ChatMessage] = []
        if system_prompt:
            prefix.append(ChatMessage(role=ChatRole.SYSTEM, content=system_prompt))
        histories = _Histories(
            working=prefix + caller_history,
            transcript=prefix + caller_history,
            offset=len(prefix),
        )
        reasoning_system = self._reasoning_system_prompt(system_prompt)

        with self._telemetry.start_trace(
            self._name, session_id=self._session_id, input=caller_history,
        ) as trace:
            with self._telemetry.start_agent(self._name, input=caller_history) as agent:
                content = await self._run(histories, reasoning_system, cancel_event)
                agent.set_output(content)
            trace.set_output(content)
            return AgentResponse(content=content, trace_id=trace.trace_id)

    # ── Internal: loop ────────────────────────────────────────────────────

    async def _run(
        self,
        histories: _Histories,
        reasoning_system: str,
        cancel_event: asyncio.Event | None,
    ) -> str:
        for iteration in range(1, self._max_iterations + 1):
            decision = await self._reason(histories, reasoning_system, cancel_event)
            logger.info(
                "Iteration %d/%d: route=%s",
                iteration,
                self._max_iterations,
                decision.route.name,
            )

            if decision.route == Route.ANSWER:
                return await self._answer(histories, cancel_event)

            final = await self._use_tools(histories, cancel_event)
            if final is not None:
                return final

        raise IterationLimitExceeded(self._max_iterations)

    async def _reason(
        self,
        histories: _Histories,
        reasoning_system: str,
        cancel_event: asyncio.Event | None,
    ) -> ReasoningResult:
        """Decide the route; records the reasoning as a working-history note."""
        messages = [
            ChatMessage(role=ChatRole.SYSTEM, content=reasoning_system),
            *to_text_format(histories.conversation),
        ]
        with self._telemetry.start_chain("Reasoning", input=messages) as node:
            _check_cancelled(cancel_event)
            decision = await self._provider.complete_structured(
                messages, REASONING_SCHEMA_NAME, ReasoningResult,
            )
            _check_cancelled(cancel_event)
            node.set_output(decision)

        histories.append(
            ChatMessage(role=ChatRole.ASSISTANT, content=f"[Reasoning]\n{decision.reasoning}"),
            note=True,
        )
        return decision

    async def _answer(
        self,
        histories: _Histories,
        cancel_event: asyncio.Event | None,
    ) -> str:
        """Produce the final reply from the transcript, without tools."""
        with self._telemetry.start_chain("Answer", input=histories.transcript) as node:
            _check_cancelled(cancel_event)
            result = await self._provider.complete(histories.transcript)
            _check_cancelled(cancel_event)
            content = result.content or ""
            node.set_output(content)
        return content

    async def _use_tools(
        self,
        histories: _Histories,
        cancel_event: asyncio.Event | None,
    ) -> str | None:
        """Let the model pick tools and run them.

        Returns:
            The model's text if it declined to call any tool (the loop ends
            there), else ``None`` once every result has been appended.
        """
        with self._telemetry.start_chain("Tools", input=histories.working) as node:
            _check_cancelled(cancel_event)
            result: CompletionResult = await self._provider.complete(
                histories.working, tools=self._registry.get_descriptors(),
            )
            _check_cancelled(cancel_event)

            if not result.has_tool_calls:
                content = result.content or ""
                logger.info("Tool route produced no tool calls; answering with content")
                node.set_output(content)
                return content

            results = await self._execute_tool_calls(
                histories, result.tool_calls or [], cancel_event,
            )
            node.set_output({"results": results})
        return None

    async def _execute_tool_calls(
        self,
        histories: _Histories,
        tool_calls: list[ToolCallRequest],
        cancel_event: asyncio.Event | None,
    ) -> list[dict[str, str]]:
        """Dispatch ``tool_calls`` one after another.

        The assistant message listing every request goes first; each tool
        message is appended right after its own dispatch returns.
        """
        histories.append(
            ChatMessage(
                role=ChatRole.ASSISTANT,
                content="",
                tool_call_requests=list(tool_calls),
            )
        )

        results: list[dict[str, str]] = []
        for tool_call in tool_calls:
            _check_cancelled(cancel_event)
            with self._telemetry.start_tool(tool_call.name, input=tool_call.arguments) as span:
                output = await self._registry.dispatch(tool_call)
                span.set_output(output)
            _check_cancelled(cancel_event)

            histories.append(
                ChatMessage(
                    role=ChatRole.TOOL,
                    content=output,
                    tool_call_id=tool_call.id,
                    tool_name=tool_call.name,
                )
            )
            results.append({"name": tool_call.name, "result": output})
        return results

    def _reasoning_system_prompt(self, system_prompt: str | None) -> str:
        tools_text = self._registry.format_as_text()
        instruction = self._prompts.get_prompt(
            self._reasoning_prompt_key, {"tools": tools_text},
        )
        if not instruction:
            instruction = REASONING_PROMPT.replace("{{tools}}", tools_text)
        if system_prompt:
            return f"{system_prompt}\n\n{instruction}"
        return instruction


def _check_cancelled(cancel_event: asyncio.Event | None) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise asyncio.CancelledError("agent call cancelled")
