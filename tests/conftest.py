"""Pytest configuration shared across the test suite."""

import asyncio
import datetime as dt
import sys
from decimal import Decimal
from pathlib import Path
from typing import List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


import pytest

from raffleapp.betting_engine import BettingEngine, RoundState
from raffleapp.round_clock import RoundClock
from raffleapp.utils.time_utils import to_epoch_ms
from raffleapp.wallet_session import WalletSession

THIRTY_MINUTES_MS = 30 * 60 * 1000


class FakeClock:
    """Manually driven millisecond wall clock."""

    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms

    def set(self, value: dt.datetime) -> None:
        self.now = to_epoch_ms(value)


class FakeChain:
    """Wallet connector and transaction submitter with scripted outcomes."""

    def __init__(self, address: str = "0x" + "ab" * 20) -> None:
        self.address = address
        self.connect_error: Optional[Exception] = None
        self.submit_error: Optional[Exception] = None
        self.submitted: List[Decimal] = []
        self.connect_gate: Optional[asyncio.Event] = None
        self.submit_gate: Optional[asyncio.Event] = None
        self.on_submit = None
        self._tx_counter = 0

    async def connect(self) -> str:
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        if self.connect_error is not None:
            raise self.connect_error
        return self.address

    async def submit_bet(self, amount: Decimal) -> str:
        self.submitted.append(amount)
        if self.submit_gate is not None:
            await self.submit_gate.wait()
        if self.on_submit is not None:
            self.on_submit()
        if self.submit_error is not None:
            raise self.submit_error
        self._tx_counter += 1
        return f"0x{self._tx_counter:064x}"


def utc(*args: int) -> dt.datetime:
    return dt.datetime(*args, tzinfo=dt.timezone.utc)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock(to_epoch_ms(utc(2024, 1, 1, 10, 5, 0)))


@pytest.fixture
def round_clock(fake_clock: FakeClock) -> RoundClock:
    return RoundClock(THIRTY_MINUTES_MS, clock=fake_clock)


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def session(chain: FakeChain) -> WalletSession:
    return WalletSession(chain, initial_balance=Decimal(1000))


@pytest.fixture
def engine(session: WalletSession, chain: FakeChain, round_clock: RoundClock) -> BettingEngine:
    return BettingEngine(
        session,
        chain,
        round_clock,
        round_state=RoundState(pot=Decimal(12500)),
        ticket_price=Decimal(5),
        max_bets_per_wallet=100,
    )


async def wait_until(predicate, attempts: int = 200) -> bool:
    for _ in range(attempts):
        if predicate():
            return True
        await asyncio.sleep(0)
    return predicate()
