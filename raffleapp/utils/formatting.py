"""Display helpers shared by the demo runner and log messages."""

from __future__ import annotations

from decimal import Decimal


def format_countdown(minutes_left: int, seconds_left: int) -> str:
    """Render a countdown as zero padded ``MM:SS``."""

    return f"{minutes_left:02d}:{seconds_left:02d}"


def format_address(address: str) -> str:
    """Shorten a wallet address to ``0x1234...abcd``."""

    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def format_amount(amount: Decimal, symbol: str) -> str:
    """Render ``amount`` with thousands separators followed by ``symbol``."""

    if amount == amount.to_integral_value():
        text = f"{int(amount):,}"
    else:
        text = f"{amount:,f}"
    return f"{text} {symbol}"


__all__ = ["format_countdown", "format_address", "format_amount"]
