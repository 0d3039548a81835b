import io
import json
import logging
from decimal import Decimal

from raffleapp.logging_config import ContextJsonFormatter
from raffleapp.utils.logging_helpers import STANDARD_CONTEXT_KEYS, add_context


def _capture(name: str):
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ContextJsonFormatter())
    logger = logging.getLogger(name)
    logger.addHandler(handler)
    logger.propagate = False
    logger.setLevel(logging.INFO)
    return logger, handler, stream


def test_context_json_formatter_includes_common_fields():
    logger, handler, stream = _capture("test.logging.formatter")

    logger.info(
        "Bet confirmed",
        extra={
            "round_id": 947_000,
            "cost": Decimal("15"),
            "stage": "commit",
            "ticket_count": 3,
            "request_id": "abc",
        },
    )

    handler.flush()
    logger.removeHandler(handler)
    payload = json.loads(stream.getvalue().strip())
    assert payload["message"] == "Bet confirmed"
    assert payload["round_id"] == 947_000
    assert payload["cost"] == "15"
    assert payload["stage"] == "commit"
    assert payload["extra"] == {"request_id": "abc"}
    assert payload["timestamp"].endswith("+00:00")


def test_context_adapter_injects_standard_keys():
    logger, handler, stream = _capture("test.logging.adapter")

    adapter = add_context(logger, address="0x1234...abcd")
    adapter.bind(round_id=5).info("hello", extra={"stage": "tick"})

    handler.flush()
    logger.removeHandler(handler)
    payload = json.loads(stream.getvalue().strip())
    assert payload["address"] == "0x1234...abcd"
    assert payload["round_id"] == 5
    assert payload["stage"] == "tick"
    for key in STANDARD_CONTEXT_KEYS:
        assert key in payload


def test_exception_is_serialised():
    logger, handler, stream = _capture("test.logging.exception")

    try:
        raise RuntimeError("boom")
    except RuntimeError:
        logger.exception("failed")

    handler.flush()
    logger.removeHandler(handler)
    payload = json.loads(stream.getvalue().strip())
    assert payload["level"] == "ERROR"
    assert "RuntimeError: boom" in payload["exception"]
