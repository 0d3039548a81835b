"""Application composition root for the raffle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from raffleapp.betting_engine import BettingEngine, RoundState
from raffleapp.config import Config
from raffleapp.logging_config import setup_logging
from raffleapp.mock_chain import MockChain
from raffleapp.pot import PotAccounting
from raffleapp.round_clock import RoundClock, RoundClockWorker
from raffleapp.utils.logging_helpers import ContextLoggerAdapter, add_context
from raffleapp.wallet_session import WalletSession


@dataclass(frozen=True)
class ApplicationServices:
    """Everything one raffle session needs, wired together."""

    logger: ContextLoggerAdapter
    config: Config
    chain: MockChain
    session: WalletSession
    accounting: PotAccounting
    clock: RoundClock
    engine: BettingEngine
    clock_worker: RoundClockWorker


def build_services(
    cfg: Config,
    *,
    chain: Optional[MockChain] = None,
    clock: Optional[RoundClock] = None,
    configure_logging: bool = True,
) -> ApplicationServices:
    """Initialise logging and build the session, engine and round clock."""

    if configure_logging:
        setup_logging(logging.INFO, debug_mode=cfg.DEBUG)
    logger = add_context(logging.getLogger("raffle"), category="startup")

    chain = chain or MockChain(
        wallet_delay=cfg.MOCK_WALLET_DELAY,
        tx_delay=cfg.MOCK_TX_DELAY,
        failure_rate=cfg.MOCK_FAILURE_RATE,
    )
    session = WalletSession(chain, initial_balance=cfg.INITIAL_BALANCE)
    accounting = PotAccounting(cfg.WINNER_PERCENTAGE, cfg.PLATFORM_FEE_PERCENTAGE)
    clock = clock or RoundClock(
        cfg.round_duration_ms,
        round_end_threshold_ms=cfg.ROUND_END_THRESHOLD_MS,
        tick_interval=cfg.TICK_INTERVAL_SECONDS,
    )
    engine = BettingEngine(
        session,
        chain,
        clock,
        round_state=RoundState(pot=cfg.INITIAL_POT),
        ticket_price=cfg.TICKET_PRICE,
        max_bets_per_wallet=cfg.MAX_BETS_PER_WALLET,
        accounting=accounting,
        credit_policy=cfg.ROUND_CREDIT_POLICY,
    )
    clock_worker = RoundClockWorker(clock, on_round_end=engine.on_round_end)

    logger.info(
        "Raffle services initialised",
        extra={
            "stage": "bootstrap",
            "round_duration_minutes": cfg.ROUND_DURATION_MINUTES,
            "ticket_price": cfg.TICKET_PRICE,
            "max_bets_per_wallet": cfg.MAX_BETS_PER_WALLET,
            "credit_policy": cfg.ROUND_CREDIT_POLICY,
        },
    )

    return ApplicationServices(
        logger=logger,
        config=cfg,
        chain=chain,
        session=session,
        accounting=accounting,
        clock=clock,
        engine=engine,
        clock_worker=clock_worker,
    )
