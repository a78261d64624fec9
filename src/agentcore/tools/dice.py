"""Dice rolling tool.

- ``roll_dice`` — roll one dice with a configurable number of sides
"""

from __future__ import annotations

import random

from agentcore.tools.registry import ToolParameterDescriptor, ToolRegistry

NAME = "roll_dice"
DESCRIPTION = "Rolls a dice with the specified number of sides and returns the result"

PARAMETERS = [
    ToolParameterDescriptor(
        name="sides",
        type="integer",
        description="The number of sides on the dice",
        is_required=False,
        default_value=6,
    ),
]


class DiceRoller:
    """Rolls dice using an injectable random source."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def roll(self, sides: int = 6) -> str:
        """Return a value in ``1..sides`` as text."""
        if sides < 1:
            return "Error: sides must be at least 1"
        return str(self._rng.randint(1, sides))


def register(registry: ToolRegistry, rng: random.Random | None = None) -> DiceRoller:
    """Register ``roll_dice`` on ``registry``."""
    roller = DiceRoller(rng)
    registry.register(
        name=NAME,
        description=DESCRIPTION,
        handler=roller.roll,
        parameters=PARAMETERS,
    )
    return roller
