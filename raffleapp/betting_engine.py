"""Ticket purchases using an optimistic hold and an asynchronous confirmation."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from raffleapp.config import ROUND_CREDIT_CONFIRMATION, ROUND_CREDIT_POLICIES
from raffleapp.entities import (
    BetInProgress,
    BetReceipt,
    BettingResult,
    InsufficientFunds,
    LimitExceeded,
    Money,
    RaffleError,
    TransactionFailure,
)
from raffleapp.metrics import (
    BET_CONFIRMATION_DURATION,
    BET_COUNTER,
    POT_GAUGE,
    TICKETS_SOLD_COUNTER,
)
from raffleapp.mock_chain import TransactionSubmitter
from raffleapp.pot import PotAccounting
from raffleapp.round_clock import RoundClock
from raffleapp.utils.formatting import format_address
from raffleapp.wallet_session import WalletSession

logger = logging.getLogger(__name__)


@dataclass
class RoundState:
    """Pot and per-wallet counter of the round currently open.

    ``round_id`` is the round the ``user_bets`` counter belongs to; ``None``
    until the engine first looks at the clock.
    """

    pot: Money = Decimal(0)
    user_bets: int = 0
    round_id: Optional[int] = None


class BettingEngine:
    """Validates, submits and settles ticket purchases for one wallet session.

    Only one bet may be in flight per engine; a second concurrent call is
    rejected with :class:`BetInProgress`. The tentative balance is kept local
    to :meth:`place_bet` and only written back once the transaction confirms.
    """

    def __init__(
        self,
        session: WalletSession,
        submitter: TransactionSubmitter,
        clock: RoundClock,
        *,
        round_state: Optional[RoundState] = None,
        ticket_price: Money = Decimal(5),
        max_bets_per_wallet: int = 100,
        accounting: Optional[PotAccounting] = None,
        credit_policy: str = ROUND_CREDIT_CONFIRMATION,
    ) -> None:
        if ticket_price <= 0:
            raise ValueError("Ticket price must be positive")
        if max_bets_per_wallet <= 0:
            raise ValueError("Max bets per wallet must be positive")
        if credit_policy not in ROUND_CREDIT_POLICIES:
            raise ValueError(f"Unknown round credit policy {credit_policy!r}")
        self._session = session
        self._submitter = submitter
        self._clock = clock
        self._round = round_state or RoundState()
        self._ticket_price = Decimal(ticket_price)
        self._max_bets = int(max_bets_per_wallet)
        self._accounting = accounting or PotAccounting()
        self._credit_policy = credit_policy
        self._lock = asyncio.Lock()
        self.ticket_selection = 1
        POT_GAUGE.set(float(self._round.pot))

    @property
    def round_state(self) -> RoundState:
        return self._round

    @property
    def pot(self) -> Money:
        return self._round.pot

    @property
    def user_bets(self) -> int:
        return self._round.user_bets

    @property
    def ticket_price(self) -> Money:
        return self._ticket_price

    @property
    def max_bets_per_wallet(self) -> int:
        return self._max_bets

    @property
    def is_processing(self) -> bool:
        return self._lock.locked()

    def cost_of(self, ticket_count: int) -> Money:
        return self._ticket_price * ticket_count

    # Ticket selection

    def increment_selection(self) -> int:
        if self.ticket_selection + self._round.user_bets < self._max_bets:
            self.ticket_selection += 1
        return self.ticket_selection

    def decrement_selection(self) -> int:
        self.ticket_selection = max(1, self.ticket_selection - 1)
        return self.ticket_selection

    def select_max(self) -> int:
        """Select the most tickets the wallet can both afford and still buy."""

        self._sync_round()
        remaining_allowed = self._max_bets - self._round.user_bets
        affordable = int(self._session.balance // self._ticket_price)
        self.ticket_selection = max(1, min(remaining_allowed, affordable, self._max_bets))
        return self.ticket_selection

    def potential_prize(self, ticket_count: Optional[int] = None) -> Money:
        tickets = self.ticket_selection if ticket_count is None else ticket_count
        return self._accounting.potential_prize(self._round.pot, self.cost_of(tickets))

    # Round lifecycle

    def _sync_round(self) -> int:
        """Roll the counter over if the clock has moved past its round."""

        current = self._clock.sample().round_id
        if self._round.round_id is None:
            self._round.round_id = current
        elif current > self._round.round_id:
            self._reset_round(current)
        return current

    def _reset_round(self, new_round_id: int) -> None:
        self._round.user_bets = 0
        self._round.round_id = new_round_id

    def on_round_end(self, ended_round_id: int) -> None:
        """Reset the per-wallet counter; the pot and balance are untouched."""

        if self._round.round_id is not None and self._round.round_id > ended_round_id:
            # Already rolled over when a bet confirmed after the boundary.
            return
        self._reset_round(ended_round_id + 1)
        split = self._accounting.split(self._round.pot)
        logger.info(
            "Round closed; ticket counter reset",
            extra={
                "category": "round",
                "stage": "round_end",
                "round_id": ended_round_id,
                "pot": split.pot,
                "winner_share": split.winner,
                "platform_share": split.platform,
            },
        )

    # Betting

    async def place_bet(self, ticket_count: Optional[int] = None) -> Optional[BetReceipt]:
        """Buy ``ticket_count`` tickets (the current selection by default).

        Returns ``None`` without touching any state when no wallet is
        connected. Raises :class:`InsufficientFunds`, :class:`LimitExceeded`,
        :class:`BetInProgress` or :class:`TransactionFailure`; in every one
        of those cases balance, pot and counter are left exactly as they were.
        """

        tickets = self.ticket_selection if ticket_count is None else ticket_count
        if not self._session.is_connected:
            BET_COUNTER.labels(status="not_connected").inc()
            logger.debug("Ignoring bet from a disconnected wallet")
            return None
        if isinstance(tickets, bool) or not isinstance(tickets, int) or tickets < 1:
            raise ValueError("Ticket count must be a positive integer")
        if self._lock.locked():
            BET_COUNTER.labels(status="in_progress").inc()
            raise BetInProgress("A bet is already being processed for this wallet")

        async with self._lock:
            submitted_round = self._sync_round()
            cost = self.cost_of(tickets)
            balance = self._session.balance
            if cost > balance:
                BET_COUNTER.labels(status="insufficient_funds").inc()
                raise InsufficientFunds(cost, balance)
            if self._round.user_bets + tickets > self._max_bets:
                BET_COUNTER.labels(status="limit_exceeded").inc()
                raise LimitExceeded(tickets, self._round.user_bets, self._max_bets)

            held_balance = balance - cost
            address = self._session.address
            log_extra = {
                "category": "bet",
                "address": format_address(address or ""),
                "round_id": submitted_round,
                "ticket_count": tickets,
                "cost": cost,
            }
            logger.info("Submitting bet", extra={**log_extra, "stage": "submit"})

            started = time.perf_counter()
            try:
                tx_hash = await self._submitter.submit_bet(cost)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                BET_COUNTER.labels(status="transaction_failed").inc()
                logger.warning(
                    "Bet transaction rejected; hold discarded",
                    extra={**log_extra, "stage": "confirm", "error_type": type(exc).__name__},
                )
                raise TransactionFailure(f"Transaction failed: {exc}") from exc
            finally:
                BET_CONFIRMATION_DURATION.observe(time.perf_counter() - started)

            if self._session.address != address or not self._session.is_connected:
                BET_COUNTER.labels(status="transaction_failed").inc()
                raise TransactionFailure("Wallet disconnected before the bet confirmed")

            return self._commit(
                tickets=tickets,
                cost=cost,
                held_balance=held_balance,
                tx_hash=tx_hash,
                submitted_round=submitted_round,
                log_extra=log_extra,
            )

    def _commit(
        self,
        *,
        tickets: int,
        cost: Money,
        held_balance: Money,
        tx_hash: str,
        submitted_round: int,
        log_extra: dict,
    ) -> BetReceipt:
        # No awaits below: the three writes land together.
        current_round = self._sync_round()
        credited_round = current_round
        count_tickets = True
        if current_round != submitted_round and self._credit_policy != ROUND_CREDIT_CONFIRMATION:
            credited_round = submitted_round
            count_tickets = False

        self._session.commit_balance(held_balance)
        self._round.pot += cost
        if count_tickets:
            self._round.user_bets += tickets
        self.ticket_selection = 1

        BET_COUNTER.labels(status="success").inc()
        TICKETS_SOLD_COUNTER.inc(tickets)
        POT_GAUGE.set(float(self._round.pot))
        logger.info(
            "Bet confirmed",
            extra={
                **log_extra,
                "stage": "commit",
                "tx_hash": tx_hash,
                "round_id": credited_round,
                "pot": self._round.pot,
            },
        )
        return BetReceipt(
            ticket_count=tickets,
            cost=cost,
            tx_hash=tx_hash,
            round_id=credited_round,
            balance=held_balance,
            pot=self._round.pot,
            user_bets=self._round.user_bets,
        )

    async def try_place_bet(self, ticket_count: Optional[int] = None) -> BettingResult:
        """Like :meth:`place_bet` but reports failures as a :class:`BettingResult`."""

        try:
            receipt = await self.place_bet(ticket_count)
        except (RaffleError, ValueError) as exc:
            logger.info(
                "Bet rejected",
                extra={"category": "bet", "error_type": type(exc).__name__},
            )
            return BettingResult(False, str(exc))
        if receipt is None:
            return BettingResult(False, "Connect wallet to start betting")
        return BettingResult(True, f"Bought {receipt.ticket_count} tickets", receipt)


__all__ = ["BettingEngine", "RoundState"]
