"""Tool implementations for the LLM agent.

Each tool module exposes its descriptor and a ``register`` function;
:func:`build_default_registry` wires the built-in set.
"""

from __future__ import annotations

from agentcore.config import Settings
from agentcore.tools import cards, dice, search
from agentcore.tools.registry import ToolRegistry


def build_default_registry(settings: Settings) -> ToolRegistry:
    """Registry with dice and cards, plus web search when Tavily is configured."""
    registry = ToolRegistry()
    dice.register(registry)
    cards.register(registry)
    if settings.tavily.api_key:
        search.register(registry, settings.tavily)
    return registry


__all__ = ["ToolRegistry", "build_default_registry"]
