"""Tests for the dice rolling tool."""

from __future__ import annotations

import random

import pytest

from agentcore.agent.llm_client import ToolCallRequest
from agentcore.tools import dice
from agentcore.tools.registry import ToolRegistry


def _registry(seed: int = 7) -> ToolRegistry:
    registry = ToolRegistry()
    dice.register(registry, rng=random.Random(seed))
    return registry


def test_descriptor() -> None:
    (descriptor,) = _registry().get_descriptors()
    assert descriptor.name == "roll_dice"
    (sides,) = descriptor.parameters
    assert sides.name == "sides"
    assert sides.type == "integer"
    assert sides.is_required is False
    assert sides.default_value == 6


@pytest.mark.asyncio
async def test_default_sides_with_empty_arguments() -> None:
    registry = _registry()
    for _ in range(50):
        result = await registry.dispatch(ToolCallRequest(id="c", name="roll_dice", arguments="{}"))
        assert 1 <= int(result) <= 6


@pytest.mark.asyncio
async def test_dispatch_matches_direct_call_with_same_seed() -> None:
    registry = _registry(seed=123)
    direct = dice.DiceRoller(random.Random(123))

    via_dispatch = await registry.dispatch(
        ToolCallRequest(id="c", name="roll_dice", arguments='{"sides": 20}')
    )
    assert via_dispatch == direct.roll(20)


def test_invalid_sides_returns_error_text() -> None:
    assert dice.DiceRoller().roll(0) == "Error: sides must be at least 1"


def test_single_sided_dice_always_one() -> None:
    roller = dice.DiceRoller()
    assert {roller.roll(1) for _ in range(10)} == {"1"}
