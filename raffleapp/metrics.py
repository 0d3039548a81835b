"""Centralised Prometheus metric definitions for the raffle."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram


BET_COUNTER = Counter(
    "raffle_bet_total",
    "Total number of bet attempts by outcome",
    labelnames=["status"],
)

TICKETS_SOLD_COUNTER = Counter(
    "raffle_tickets_sold_total",
    "Total number of tickets confirmed",
)

BET_CONFIRMATION_DURATION = Histogram(
    "raffle_bet_confirmation_duration_seconds",
    "Latency distribution for simulated bet transactions",
)

WALLET_CONNECT_COUNTER = Counter(
    "raffle_wallet_connect_total",
    "Total number of wallet connection attempts by outcome",
    labelnames=["status"],
)

ROUND_END_COUNTER = Counter(
    "raffle_round_end_total",
    "Number of round boundaries observed by the round clock",
)

POT_GAUGE = Gauge(
    "raffle_pot_amount",
    "Current pot held in memory",
)
