import asyncio
from decimal import Decimal

import pytest

from conftest import FakeChain
from raffleapp.entities import ConnectionFailure, WalletState
from raffleapp.wallet_session import WalletSession


def test_new_session_starts_disconnected(session: WalletSession) -> None:
    assert session.state == WalletState()
    assert session.address is None
    assert session.is_connected is False
    assert session.is_connecting is False
    assert session.balance == 0


@pytest.mark.asyncio
async def test_connect_sets_address_and_initial_balance(
    session: WalletSession, chain: FakeChain
) -> None:
    state = await session.connect()

    assert state.is_connected is True
    assert state.address == chain.address
    assert state.balance == Decimal(1000)
    assert state.is_connecting is False
    assert session.last_error is None


@pytest.mark.asyncio
async def test_connect_is_flagged_while_in_flight(
    session: WalletSession, chain: FakeChain
) -> None:
    chain.connect_gate = asyncio.Event()
    task = asyncio.create_task(session.connect())
    await asyncio.sleep(0)

    assert session.is_connecting is True
    assert session.is_connected is False

    chain.connect_gate.set()
    await task
    assert session.is_connecting is False
    assert session.is_connected is True


@pytest.mark.asyncio
async def test_failed_connect_stays_disconnected_and_records_error(
    session: WalletSession, chain: FakeChain
) -> None:
    chain.connect_error = RuntimeError("user rejected")

    state = await session.connect()

    assert state == WalletState()
    assert isinstance(session.last_error, ConnectionFailure)
    assert "user rejected" in str(session.last_error)

    chain.connect_error = None
    state = await session.connect()
    assert state.is_connected is True
    assert session.last_error is None


@pytest.mark.asyncio
async def test_connect_when_already_connected_is_a_no_op(
    session: WalletSession, chain: FakeChain
) -> None:
    first = await session.connect()
    chain.address = "0x" + "cd" * 20

    second = await session.connect()

    assert second == first


@pytest.mark.asyncio
async def test_disconnect_resets_everything(session: WalletSession) -> None:
    await session.connect()
    session.commit_balance(Decimal(985))

    state = session.disconnect()

    assert state == WalletState()
    assert session.balance == 0
    assert session.disconnect() == WalletState()


@pytest.mark.asyncio
async def test_disconnect_during_connect_discards_the_late_address(
    session: WalletSession, chain: FakeChain
) -> None:
    chain.connect_gate = asyncio.Event()
    task = asyncio.create_task(session.connect())
    await asyncio.sleep(0)

    session.disconnect()
    chain.connect_gate.set()
    state = await task

    assert state == WalletState()
    assert session.is_connected is False


@pytest.mark.asyncio
async def test_commit_balance_guards_invariants(session: WalletSession) -> None:
    with pytest.raises(RuntimeError):
        session.commit_balance(Decimal(10))

    await session.connect()
    with pytest.raises(ValueError):
        session.commit_balance(Decimal(-1))
    assert session.balance == Decimal(1000)


def test_wallet_state_rejects_inconsistent_flags() -> None:
    with pytest.raises(ValueError):
        WalletState(address="0xabc", is_connected=False)
    with pytest.raises(ValueError):
        WalletState(address="0xabc", is_connected=True, is_connecting=True)
    with pytest.raises(ValueError):
        WalletState(balance=Decimal(-5))
