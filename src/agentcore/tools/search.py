"""Web search tool backed by the Tavily API.

- ``web_search`` — search the web and format the answer and top results

The tool receives its :class:`~agentcore.config.TavilySettings` at
construction time.  HTTP failures propagate to the caller of ``dispatch``.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from agentcore.config import TavilySettings
from agentcore.tools.registry import ToolParameterDescriptor, ToolRegistry

logger = logging.getLogger(__name__)

NAME = "web_search"
DESCRIPTION = "Performs a web search to find current information, news, or facts using Tavily"

PARAMETERS = [
    ToolParameterDescriptor(
        name="query",
        type="string",
        description="The search query to find information for",
        is_required=True,
    ),
]


class TavilySearchTool:
    """Calls the Tavily search endpoint and renders the response as markdown."""

    def __init__(self, settings: TavilySettings) -> None:
        self._settings = settings

    async def search(self, query: str) -> str:
        if not query or not query.strip():
            return "Error: query parameter is required"
        if not self._settings.api_key:
            return "Error: Tavily API key is not configured"

        payload = {
            "api_key": self._settings.api_key,
            "query": query,
            "search_depth": self._settings.search_depth,
            "include_answer": self._settings.include_answer,
            "max_results": self._settings.max_results,
        }
        logger.info("Tavily search: %s", query[:100])
        data = await self._post(payload)
        return format_results(data)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        async with aiohttp.ClientSession() as session:
            async with session.post(self._settings.base_url, json=payload) as response:
                response.raise_for_status()
                return await response.json()


def format_results(data: dict[str, Any]) -> str:
    """Render a Tavily response: direct answer first, then the results."""
    lines: list[str] = []

    answer = data.get("answer")
    if isinstance(answer, str) and answer.strip():
        lines.extend(["### Direct Answer", answer, ""])

    results = data.get("results")
    if results is not None:
        lines.append("### Search Results")
        for result in results:
            lines.append(f"* **{result.get('title', '')}** ({result.get('url', '')})")
            lines.append(f"  {result.get('content', '')}")
            lines.append("")

    return "\n".join(lines)


def register(registry: ToolRegistry, settings: TavilySettings) -> TavilySearchTool:
    """Register ``web_search`` on ``registry``."""
    tool = TavilySearchTool(settings)
    registry.register(
        name=NAME,
        description=DESCRIPTION,
        handler=tool.search,
        parameters=PARAMETERS,
    )
    return tool
