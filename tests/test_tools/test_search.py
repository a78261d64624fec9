"""Tests for the Tavily web search tool.

The HTTP call is patched out; no network access is needed.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from agentcore.agent.llm_client import ToolCallRequest
from agentcore.config import Settings, TavilySettings
from agentcore.tools import build_default_registry, search
from agentcore.tools.registry import ToolRegistry

_RESPONSE = {
    "answer": "Paris is the capital of France.",
    "results": [
        {"title": "France", "url": "https://example.org/france", "content": "Capital: Paris."},
        {"title": "Paris", "url": "https://example.org/paris", "content": "City of light."},
    ],
}


def test_format_results_with_answer_and_results() -> None:
    text = search.format_results(_RESPONSE)
    assert text.startswith("### Direct Answer\nParis is the capital of France.\n")
    assert "### Search Results" in text
    assert "* **France** (https://example.org/france)\n  Capital: Paris." in text
    assert text.index("### Direct Answer") < text.index("### Search Results")


def test_format_results_without_answer() -> None:
    text = search.format_results({"answer": None, "results": []})
    assert "Direct Answer" not in text
    assert text.startswith("### Search Results")


@pytest.mark.asyncio
async def test_search_posts_configured_payload() -> None:
    settings = TavilySettings(api_key="tvly-key", max_results=5, search_depth="advanced")
    tool = search.TavilySearchTool(settings)

    with patch.object(tool, "_post", AsyncMock(return_value=_RESPONSE)) as post:
        result = await tool.search("capital of France")

    payload = post.call_args.args[0]
    assert payload == {
        "api_key": "tvly-key",
        "query": "capital of France",
        "search_depth": "advanced",
        "include_answer": True,
        "max_results": 5,
    }
    assert "Paris is the capital of France." in result


@pytest.mark.asyncio
async def test_search_without_api_key_does_not_call_api() -> None:
    tool = search.TavilySearchTool(TavilySettings(api_key=""))
    with patch.object(tool, "_post", AsyncMock()) as post:
        result = await tool.search("anything")
    assert result == "Error: Tavily API key is not configured"
    post.assert_not_called()


@pytest.mark.asyncio
async def test_empty_query_returns_error_text() -> None:
    tool = search.TavilySearchTool(TavilySettings(api_key="k"))
    assert await tool.search("  ") == "Error: query parameter is required"


@pytest.mark.asyncio
async def test_http_errors_propagate_through_dispatch() -> None:
    registry = ToolRegistry()
    tool = search.register(registry, TavilySettings(api_key="k"))

    with patch.object(tool, "_post", AsyncMock(side_effect=ConnectionError("down"))):
        with pytest.raises(ConnectionError, match="down"):
            await registry.dispatch(
                ToolCallRequest(id="c", name="web_search", arguments='{"query": "news"}')
            )


def test_default_registry_includes_search_only_with_api_key() -> None:
    without_key = build_default_registry(Settings(tavily=TavilySettings(api_key="")))
    with_key = build_default_registry(Settings(tavily=TavilySettings(api_key="k")))

    assert [d.name for d in without_key.get_descriptors()] == ["roll_dice", "deal_cards"]
    assert [d.name for d in with_key.get_descriptors()] == [
        "roll_dice",
        "deal_cards",
        "web_search",
    ]
