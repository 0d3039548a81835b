"""Domain types and the user-facing error taxonomy of the raffle."""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Optional

Money = Decimal
Address = str
TxHash = str
RoundId = int


class RaffleError(Exception):
    """Base class for recoverable, user-visible raffle conditions."""


class ConnectionFailure(RaffleError):
    pass


class InsufficientFunds(RaffleError):
    def __init__(self, cost: Money, balance: Money) -> None:
        super().__init__(f"Insufficient funds: cost {cost} exceeds balance {balance}")
        self.cost = cost
        self.balance = balance


class LimitExceeded(RaffleError):
    def __init__(self, requested: int, user_bets: int, limit: int) -> None:
        super().__init__(
            f"Limit exceeded: {user_bets} + {requested} tickets is over the "
            f"per-round cap of {limit}"
        )
        self.requested = requested
        self.user_bets = user_bets
        self.limit = limit


class TransactionFailure(RaffleError):
    pass


class BetInProgress(RaffleError):
    """Another bet for the same session has not resolved yet."""


@dataclass(frozen=True)
class WalletState:
    address: Optional[Address] = None
    is_connected: bool = False
    balance: Money = Decimal(0)
    is_connecting: bool = False

    def __post_init__(self) -> None:
        if self.is_connected != (self.address is not None):
            raise ValueError("A wallet is connected exactly when it has an address")
        if self.balance < 0:
            raise ValueError("Wallet balance must be non-negative")
        if self.is_connected and self.is_connecting:
            raise ValueError("A connected wallet cannot also be connecting")

    def with_balance(self, balance: Money) -> "WalletState":
        return replace(self, balance=balance)


DISCONNECTED_WALLET = WalletState()


@dataclass(frozen=True)
class BetReceipt:
    ticket_count: int
    cost: Money
    tx_hash: TxHash
    round_id: RoundId
    balance: Money
    pot: Money
    user_bets: int


@dataclass
class BettingResult:
    success: bool
    message: str
    receipt: Optional[BetReceipt] = None
