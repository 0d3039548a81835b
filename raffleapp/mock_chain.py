"""Stand-ins for the wallet handshake and the on-chain bet transaction.

Both behave like their real counterparts only in the ways the raffle cares
about: they take time, and they either resolve to an identifier or fail.
"""

from __future__ import annotations

import asyncio
import logging
import random
from decimal import Decimal
from typing import Any, Awaitable, Callable, Optional, Protocol

from raffleapp.entities import Address, Money, TxHash

logger = logging.getLogger(__name__)

ADDRESS_HEX_LENGTH = 40
TX_HASH_HEX_LENGTH = 64


class WalletConnector(Protocol):
    """Resolves to the connected wallet address or raises."""

    async def connect(self) -> Address:
        ...


class TransactionSubmitter(Protocol):
    """Resolves to the transaction hash of a bet or raises."""

    async def submit_bet(self, amount: Money) -> TxHash:
        ...


class MockChainError(RuntimeError):
    pass


class WalletRejected(MockChainError):
    pass


class TransactionRejected(MockChainError):
    pass


def random_hex(length: int, rng: Optional[random.Random] = None) -> str:
    source = rng or random
    return "0x" + "".join(source.choice("0123456789abcdef") for _ in range(length))


class MockChain:
    """Simulated wallet connector and transaction submitter.

    ``failure_rate`` is the probability that a call is rejected after its
    delay has elapsed.
    """

    def __init__(
        self,
        *,
        wallet_delay: float = 1.5,
        tx_delay: float = 3.0,
        failure_rate: float = 0.0,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        if not 0.0 <= failure_rate <= 1.0:
            raise ValueError("failure_rate must be within [0, 1]")
        self._wallet_delay = max(wallet_delay, 0.0)
        self._tx_delay = max(tx_delay, 0.0)
        self._failure_rate = failure_rate
        self._rng = rng or random.Random()
        self._sleep = sleep

    def _should_fail(self) -> bool:
        return self._failure_rate > 0 and self._rng.random() < self._failure_rate

    async def connect(self) -> Address:
        await self._sleep(self._wallet_delay)
        if self._should_fail():
            logger.debug("Mock wallet connection rejected")
            raise WalletRejected("User rejected the connection request")
        return random_hex(ADDRESS_HEX_LENGTH, self._rng)

    async def submit_bet(self, amount: Money) -> TxHash:
        if Decimal(amount) <= 0:
            raise ValueError("Bet amount must be positive")
        await self._sleep(self._tx_delay)
        if self._should_fail():
            logger.debug("Mock transaction rejected", extra={"cost": amount})
            raise TransactionRejected("Transaction reverted")
        return random_hex(TX_HASH_HEX_LENGTH, self._rng)


__all__ = [
    "MockChain",
    "MockChainError",
    "TransactionRejected",
    "TransactionSubmitter",
    "WalletConnector",
    "WalletRejected",
    "random_hex",
]
