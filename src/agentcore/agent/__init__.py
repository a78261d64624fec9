"""LLM agent orchestration layer.

Provides the entry point for embedding applications:

- :func:`get_response` — run a conversation history through the
  reasoning/tool loop of the default agent.

The default agent is built lazily from :data:`agentcore.config.settings`;
tests and embedders can swap its collaborators with the ``set_*`` helpers.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from agentcore.agent.llm_client import (
    ChatMessage,
    ChatRole,
    CompletionProvider,
    CompletionResult,
    ToolCallRequest,
    create_provider,
)
from agentcore.agent.orchestrator import Agent, AgentResponse, ReasoningResult, Route
from agentcore.agent.prompts import LocalPromptProvider
from agentcore.config import settings
from agentcore.telemetry import Telemetry
from agentcore.tools import build_default_registry

logger = logging.getLogger(__name__)

# Module-level collaborators, lazily initialized.
_telemetry: Telemetry | None = None
_provider: CompletionProvider | None = None
_agent: Agent | None = None


def get_telemetry() -> Telemetry:
    """Return the module-level telemetry sink, creating it on first call."""
    global _telemetry
    if _telemetry is None:
        _telemetry = Telemetry()
    return _telemetry


def get_provider() -> CompletionProvider:
    """Return the module-level completion provider, creating it on first call."""
    global _provider
    if _provider is None:
        _provider = create_provider(settings, get_telemetry())
    return _provider


def set_provider(provider: CompletionProvider) -> None:
    """Override the module-level provider (useful for testing)."""
    global _provider, _agent
    _provider = provider
    # Reset the agent so it picks up the new provider.
    _agent = None


def get_agent() -> Agent:
    """Return the module-level agent, creating it on first call."""
    global _agent
    if _agent is None:
        _agent = Agent(
            provider=get_provider(),
            registry=build_default_registry(settings),
            prompts=LocalPromptProvider(settings.prompts_dir),
            telemetry=get_telemetry(),
            max_iterations=settings.max_iterations,
            name=settings.agent_name,
            system_prompt_key=settings.system_prompt_key,
            reasoning_prompt_key=settings.reasoning_prompt_key,
        )
        logger.debug("Created default agent (provider=%s)", settings.llm_provider)
    return _agent


def set_agent(agent: Agent | None) -> None:
    """Override the module-level agent (useful for testing)."""
    global _agent
    _agent = agent


async def get_response(history: Sequence[ChatMessage]) -> AgentResponse:
    """Run ``history`` through the default agent.

    Args:
        history: Full conversation so far, oldest message first.

    Returns:
        An :class:`AgentResponse` with the reply and its trace id.
    """
    return await get_agent().get_response(history)


__all__ = [
    "Agent",
    "AgentResponse",
    "ChatMessage",
    "ChatRole",
    "CompletionResult",
    "ReasoningResult",
    "Route",
    "ToolCallRequest",
    "get_agent",
    "get_provider",
    "get_response",
    "get_telemetry",
    "set_agent",
    "set_provider",
]
