from decimal import Decimal
from pathlib import Path

import pytest

from conftest import FakeChain
from raffleapp.bootstrap import build_services
from raffleapp.config import Config, RaffleConstants


@pytest.fixture
def cfg(tmp_path: Path, monkeypatch) -> Config:
    monkeypatch.delenv("RAFFLE_TICKET_PRICE", raising=False)
    monkeypatch.delenv("RAFFLE_INITIAL_POT", raising=False)
    monkeypatch.delenv("RAFFLE_INITIAL_BALANCE", raising=False)
    monkeypatch.delenv("RAFFLE_ROUND_CREDIT_POLICY", raising=False)
    return Config(RaffleConstants(str(tmp_path / "missing.yaml")))


def test_build_services_wires_configured_rules(cfg: Config) -> None:
    services = build_services(cfg, configure_logging=False)

    assert services.engine.pot == Decimal(12500)
    assert services.engine.ticket_price == Decimal(5)
    assert services.engine.max_bets_per_wallet == 100
    assert services.clock.duration_ms == 30 * 60 * 1000
    assert services.session.is_connected is False
    assert services.accounting.winner_percentage == Decimal("0.75")


@pytest.mark.asyncio
async def test_services_place_a_bet_end_to_end(cfg: Config) -> None:
    services = build_services(cfg, chain=FakeChain(), configure_logging=False)

    await services.session.connect()
    receipt = await services.engine.place_bet(3)

    assert receipt is not None
    assert services.session.balance == Decimal(985)
    assert services.engine.pot == Decimal(12515)
    assert services.engine.user_bets == 3
