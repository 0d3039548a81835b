"""In-memory wallet session backed by an asynchronous wallet connector."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Optional

from raffleapp.entities import (
    DISCONNECTED_WALLET,
    Address,
    ConnectionFailure,
    Money,
    WalletState,
)
from raffleapp.metrics import WALLET_CONNECT_COUNTER
from raffleapp.mock_chain import WalletConnector
from raffleapp.utils.formatting import format_address

logger = logging.getLogger(__name__)


class WalletSession:
    """Owns the connection status and spendable balance of one user.

    The state is an immutable :class:`WalletState` snapshot replaced
    wholesale on every change, so readers never observe a half-applied
    update.
    """

    def __init__(
        self,
        connector: WalletConnector,
        *,
        initial_balance: Money = Decimal(1000),
    ) -> None:
        if initial_balance < 0:
            raise ValueError("Initial balance must be non-negative")
        self._connector = connector
        self._initial_balance = Decimal(initial_balance)
        self._state: WalletState = DISCONNECTED_WALLET
        self._generation = 0
        self.last_error: Optional[ConnectionFailure] = None

    @property
    def state(self) -> WalletState:
        return self._state

    @property
    def address(self) -> Optional[Address]:
        return self._state.address

    @property
    def is_connected(self) -> bool:
        return self._state.is_connected

    @property
    def is_connecting(self) -> bool:
        return self._state.is_connecting

    @property
    def balance(self) -> Money:
        return self._state.balance

    async def connect(self) -> WalletState:
        """Connect through the connector and return the resulting state.

        A rejected connection leaves the session disconnected and records a
        :class:`ConnectionFailure` on :attr:`last_error` instead of raising.
        """

        if self._state.is_connected or self._state.is_connecting:
            return self._state

        generation = self._generation
        self.last_error = None
        self._state = replace(self._state, is_connecting=True)
        try:
            address = await self._connector.connect()
        except asyncio.CancelledError:
            if generation == self._generation:
                self._state = replace(self._state, is_connecting=False)
            raise
        except Exception as exc:
            WALLET_CONNECT_COUNTER.labels(status="failure").inc()
            logger.warning(
                "Failed to connect wallet",
                extra={
                    "category": "wallet",
                    "stage": "connect",
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )
            self.last_error = ConnectionFailure(str(exc) or "Wallet connection failed")
            if generation == self._generation:
                self._state = replace(self._state, is_connecting=False)
            return self._state

        if generation != self._generation:
            # disconnect() was called while the handshake was in flight.
            WALLET_CONNECT_COUNTER.labels(status="abandoned").inc()
            logger.info(
                "Discarding wallet connection finished after disconnect",
                extra={"category": "wallet", "stage": "connect"},
            )
            return self._state

        self._state = WalletState(
            address=address,
            is_connected=True,
            balance=self._initial_balance,
            is_connecting=False,
        )
        WALLET_CONNECT_COUNTER.labels(status="success").inc()
        logger.info(
            "Wallet connected",
            extra={
                "category": "wallet",
                "stage": "connect",
                "address": format_address(address),
            },
        )
        return self._state

    def disconnect(self) -> WalletState:
        """Reset to the disconnected, zero-balance state unconditionally."""

        self._generation += 1
        self._state = DISCONNECTED_WALLET
        logger.info("Wallet disconnected", extra={"category": "wallet", "stage": "disconnect"})
        return self._state

    def commit_balance(self, new_balance: Money) -> WalletState:
        """Replace the balance of a connected wallet."""

        if not self._state.is_connected:
            raise RuntimeError("Cannot change the balance of a disconnected wallet")
        if new_balance < 0:
            raise ValueError("Wallet balance must be non-negative")
        self._state = self._state.with_balance(new_balance)
        return self._state


__all__ = ["WalletSession"]
