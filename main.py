#!/usr/bin/env python3

import asyncio
import os
import sys

from dotenv import load_dotenv

from raffleapp.bootstrap import ApplicationServices, build_services
from raffleapp.config import Config, ConfigError
from raffleapp.entities import RaffleError
from raffleapp.round_clock import RoundTick
from raffleapp.utils.formatting import format_address, format_amount, format_countdown


def _parse_ticket_plan(raw_value: str) -> list:
    plan = []
    for chunk in raw_value.split(","):
        chunk = chunk.strip()
        if chunk.isdigit() and int(chunk) > 0:
            plan.append(int(chunk))
    return plan


async def run(services: ApplicationServices, ticket_plan: list) -> None:
    cfg = services.config
    logger = services.logger.getChild("demo")
    engine = services.engine
    symbol = cfg.TOKEN_SYMBOL

    def report_tick(tick: RoundTick) -> None:
        if tick.seconds_left % 15 == 0 or tick.round_ended:
            logger.info(
                f"Next draw in {format_countdown(tick.minutes_left, tick.seconds_left)}"
                f" (at {tick.ends_at:%H:%M} UTC) | pot {format_amount(engine.pot, symbol)}",
                extra={"round_id": tick.round_id, "stage": "tick"},
            )

    services.clock_worker.add_tick_listener(report_tick)
    await services.clock_worker.start()
    try:
        state = await services.session.connect()
        if not state.is_connected:
            logger.error(
                "Wallet connection failed; continuing as a spectator",
                extra={"error_type": type(services.session.last_error).__name__},
            )
        else:
            session_logger = logger.bind(address=format_address(state.address))
            session_logger.info(
                f"Connected with balance {format_amount(state.balance, symbol)}"
            )
            for tickets in ticket_plan:
                try:
                    receipt = await engine.place_bet(tickets)
                except RaffleError as exc:
                    session_logger.warning(
                        f"Bet for {tickets} tickets rejected: {exc}",
                        extra={"error_type": type(exc).__name__},
                    )
                    continue
                if receipt is not None:
                    session_logger.info(
                        f"Bought {receipt.ticket_count} tickets for"
                        f" {format_amount(receipt.cost, symbol)}; balance"
                        f" {format_amount(receipt.balance, symbol)}, potential prize"
                        f" {format_amount(engine.potential_prize(1), symbol)}",
                        extra={"tx_hash": receipt.tx_hash, "round_id": receipt.round_id},
                    )
        # Keep the countdown running until interrupted.
        await asyncio.Event().wait()
    finally:
        await services.clock_worker.stop()


def main() -> None:
    load_dotenv()
    try:
        cfg: Config = Config()
    except ConfigError as exc:
        print(f"Invalid raffle configuration: {exc}", file=sys.stderr)
        sys.exit(1)
    services = build_services(cfg)
    ticket_plan = _parse_ticket_plan(os.getenv("RAFFLE_DEMO_TICKETS", "3,10,1"))
    try:
        asyncio.run(run(services, ticket_plan))
    except KeyboardInterrupt:
        services.logger.info("Raffle demo stopped", extra={"stage": "shutdown"})


if __name__ == "__main__":
    main()
