"""Card dealing tool.

- ``deal_cards`` — deal cards from a freshly shuffled 52-card deck
"""

from __future__ import annotations

import random

from agentcore.tools.registry import ToolParameterDescriptor, ToolRegistry

NAME = "deal_cards"
DESCRIPTION = "Deals a specified number of cards from a standard 52-card deck (no jokers)"

SUITS = ("Hearts", "Diamonds", "Clubs", "Spades")
RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "Jack", "Queen", "King", "Ace")
DECK_SIZE = len(SUITS) * len(RANKS)

PARAMETERS = [
    ToolParameterDescriptor(
        name="count",
        type="integer",
        description=f"The number of cards to deal (1-{DECK_SIZE})",
        is_required=False,
        default_value=5,
    ),
]


def full_deck() -> list[str]:
    """All 52 cards, suit by suit."""
    return [f"{rank} of {suit}" for suit in SUITS for rank in RANKS]


class CardDealer:
    """Deals from a new deck on every call."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def deal(self, count: int = 5) -> str:
        """Return ``count`` distinct cards, comma separated."""
        if count < 1:
            return "Error: count must be at least 1"
        if count > DECK_SIZE:
            return f"Error: count cannot exceed {DECK_SIZE} (deck size)"
        return ", ".join(self._rng.sample(full_deck(), count))


def register(registry: ToolRegistry, rng: random.Random | None = None) -> CardDealer:
    """Register ``deal_cards`` on ``registry``."""
    dealer = CardDealer(rng)
    registry.register(
        name=NAME,
        description=DESCRIPTION,
        handler=dealer.deal,
        parameters=PARAMETERS,
    )
    return dealer
