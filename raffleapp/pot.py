"""Pot and prize split calculations.

All amounts are :class:`decimal.Decimal` so that the winner and platform
shares of a pot always add back up to the pot itself.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from raffleapp.entities import Money

Number = Union[Decimal, int, str]

WINNER_PERCENTAGE = Decimal("0.75")
PLATFORM_FEE_PERCENTAGE = Decimal("0.25")


def to_money(value: Number) -> Money:
    if isinstance(value, float):
        raise TypeError("Use Decimal, int or str for money amounts, not float")
    return value if isinstance(value, Decimal) else Decimal(value)


@dataclass(frozen=True)
class PrizeSplit:
    pot: Money
    winner: Money
    platform: Money


class PotAccounting:
    """Pure prize split rules for a fixed winner/platform percentage pair."""

    def __init__(
        self,
        winner_percentage: Number = WINNER_PERCENTAGE,
        platform_fee_percentage: Number = PLATFORM_FEE_PERCENTAGE,
    ) -> None:
        winner = to_money(winner_percentage)
        platform = to_money(platform_fee_percentage)
        if winner < 0 or platform < 0:
            raise ValueError("Percentages must be non-negative")
        if winner + platform != 1:
            raise ValueError(
                f"Winner and platform percentages must sum to 1, got {winner + platform}"
            )
        self._winner_percentage = winner
        self._platform_fee_percentage = platform

    @property
    def winner_percentage(self) -> Money:
        return self._winner_percentage

    @property
    def platform_fee_percentage(self) -> Money:
        return self._platform_fee_percentage

    def winner_share(self, pot: Number) -> Money:
        return to_money(pot) * self._winner_percentage

    def platform_share(self, pot: Number) -> Money:
        return to_money(pot) * self._platform_fee_percentage

    def split(self, pot: Number) -> PrizeSplit:
        amount = to_money(pot)
        if amount < 0:
            raise ValueError("Pot must be non-negative")
        return PrizeSplit(
            pot=amount,
            winner=self.winner_share(amount),
            platform=self.platform_share(amount),
        )

    def potential_prize(self, pot: Number, cost: Number) -> Money:
        """Winner share the pot would pay out once ``cost`` more is added."""

        return self.winner_share(to_money(pot) + to_money(cost))


_DEFAULT_ACCOUNTING = PotAccounting()


def winner_share(pot: Number) -> Money:
    return _DEFAULT_ACCOUNTING.winner_share(pot)


def platform_share(pot: Number) -> Money:
    return _DEFAULT_ACCOUNTING.platform_share(pot)


def split_pot(pot: Number) -> PrizeSplit:
    return _DEFAULT_ACCOUNTING.split(pot)


__all__ = [
    "PLATFORM_FEE_PERCENTAGE",
    "WINNER_PERCENTAGE",
    "PotAccounting",
    "PrizeSplit",
    "platform_share",
    "split_pot",
    "to_money",
    "winner_share",
]
