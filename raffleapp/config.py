import logging
import math
import os
from copy import deepcopy
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


logger = logging.getLogger(__name__)


_BASE_DIR = Path(__file__).resolve().parent.parent
_DEFAULT_CONFIG_DIR = _BASE_DIR / "config"
_DEFAULT_RAFFLE_CONSTANTS_PATH = _DEFAULT_CONFIG_DIR / "raffle_constants.yaml"

ROUND_CREDIT_CONFIRMATION = "confirmation"
ROUND_CREDIT_SUBMISSION = "submission"
ROUND_CREDIT_POLICIES = (ROUND_CREDIT_CONFIRMATION, ROUND_CREDIT_SUBMISSION)

_DEFAULT_RAFFLE_CONSTANTS_DATA: Dict[str, Any] = {
    "round": {
        "duration_minutes": 30,
        "tick_interval_seconds": 1.0,
        "round_end_threshold_ms": 1000,
        "credit_policy": ROUND_CREDIT_CONFIRMATION,
    },
    "betting": {
        "ticket_price": "5",
        "max_bets_per_wallet": 100,
        "token_symbol": "USDC",
    },
    "pot": {
        "initial_pot": "12500",
        "winner_percentage": "0.75",
        "platform_fee_percentage": "0.25",
    },
    "mock": {
        "initial_balance": "1000",
        "wallet_delay_seconds": 1.5,
        "tx_delay_seconds": 3.0,
        "failure_rate": 0.0,
    },
}


class ConfigError(ValueError):
    """Raised when the raffle constants violate a start-up invariant."""


def _resolve_config_path(candidate: Optional[str], default: Path) -> Path:
    if not candidate:
        return default
    path = Path(candidate)
    if not path.is_absolute():
        path = _BASE_DIR / path
    return path


def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    for key, value in overrides.items():
        if (
            isinstance(value, dict)
            and isinstance(base.get(key), dict)
        ):
            base[key] = _deep_merge(dict(base[key]), value)
        else:
            base[key] = value
    return base


class RaffleConstants:
    """Raffle rules loaded from YAML and merged over built-in defaults."""

    def __init__(
        self,
        path: Optional[str] = None,
        *,
        defaults: Optional[Dict[str, Any]] = None,
    ) -> None:
        self._path: Path = _resolve_config_path(
            path or os.getenv("RAFFLE_CONSTANTS_FILE"),
            _DEFAULT_RAFFLE_CONSTANTS_PATH,
        )
        self._defaults: Dict[str, Any] = deepcopy(
            defaults or _DEFAULT_RAFFLE_CONSTANTS_DATA
        )
        self._data: Dict[str, Any] = {}
        self.reload()

    @property
    def path(self) -> Path:
        return self._path

    def reload(self) -> None:
        raw_data: Dict[str, Any] = {}
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                loaded = yaml.safe_load(handle) or {}
                if not isinstance(loaded, dict):
                    logger.warning(
                        "Raffle constants file did not contain a mapping; using defaults.",
                        extra={
                            "category": "config",
                            "config_path": str(self._path),
                            "stage": "raffle_constants_load",
                            "error_type": "InvalidMapping",
                        },
                    )
                else:
                    raw_data = loaded
        except FileNotFoundError:
            logger.warning(
                "Raffle constants file not found; using default values.",
                extra={
                    "category": "config",
                    "config_path": str(self._path),
                    "stage": "raffle_constants_load",
                    "error_type": "FileNotFoundError",
                },
            )
        except yaml.YAMLError as exc:
            logger.warning(
                "Failed to parse raffle constants file; using defaults.",
                extra={
                    "category": "config",
                    "config_path": str(self._path),
                    "stage": "raffle_constants_load",
                    "error_type": type(exc).__name__,
                },
                exc_info=True,
            )

        merged = deepcopy(self._defaults)
        if raw_data:
            merged = _deep_merge(merged, raw_data)
        self._data = merged

    def get(self, key: str, default: Any = None) -> Any:
        value = self._data.get(key, default)
        return deepcopy(value)

    def section(self, key: str) -> Dict[str, Any]:
        section = self._data.get(key, {})
        if isinstance(section, dict):
            return deepcopy(section)
        return {}

    @property
    def round(self) -> Dict[str, Any]:
        return self.section("round")

    @property
    def betting(self) -> Dict[str, Any]:
        return self.section("betting")

    @property
    def pot(self) -> Dict[str, Any]:
        return self.section("pot")

    @property
    def mock(self) -> Dict[str, Any]:
        return self.section("mock")


class Config:
    """Process-wide raffle settings.

    Values come from :class:`RaffleConstants` and may be overridden by
    ``RAFFLE_*`` environment variables. Everything is resolved once, at
    construction, and validated before the object is handed out.
    """

    def __init__(self, constants: Optional[RaffleConstants] = None):
        self.constants: RaffleConstants = constants or RaffleConstants()
        round_section = self.constants.round
        betting_section = self.constants.betting
        pot_section = self.constants.pot
        mock_section = self.constants.mock

        self.ROUND_DURATION_MINUTES: int = self._parse_int_env(
            os.getenv("RAFFLE_ROUND_DURATION_MINUTES"),
            default=self._section_int(round_section, "round", "duration_minutes", 30),
            env_var="RAFFLE_ROUND_DURATION_MINUTES",
        )
        self.TICK_INTERVAL_SECONDS: float = (
            self._parse_positive_float(
                os.getenv("RAFFLE_TICK_INTERVAL_SECONDS"),
                env_var="RAFFLE_TICK_INTERVAL_SECONDS",
            )
            or self._section_float(
                round_section, "round", "tick_interval_seconds", 1.0
            )
        )
        self.ROUND_END_THRESHOLD_MS: int = self._section_int(
            round_section, "round", "round_end_threshold_ms", 1000
        )
        self.ROUND_CREDIT_POLICY: str = (
            os.getenv("RAFFLE_ROUND_CREDIT_POLICY", "").strip().lower()
            or str(round_section.get("credit_policy", ROUND_CREDIT_CONFIRMATION))
        )

        self.TICKET_PRICE: Decimal = self._parse_decimal_env(
            os.getenv("RAFFLE_TICKET_PRICE"),
            default=self._section_decimal(betting_section, "betting", "ticket_price", "5"),
            env_var="RAFFLE_TICKET_PRICE",
        )
        self.MAX_BETS_PER_WALLET: int = self._parse_int_env(
            os.getenv("RAFFLE_MAX_BETS_PER_WALLET"),
            default=self._section_int(
                betting_section, "betting", "max_bets_per_wallet", 100
            ),
            env_var="RAFFLE_MAX_BETS_PER_WALLET",
        )
        self.TOKEN_SYMBOL: str = str(betting_section.get("token_symbol", "USDC"))

        self.INITIAL_POT: Decimal = self._parse_decimal_env(
            os.getenv("RAFFLE_INITIAL_POT"),
            default=self._section_decimal(pot_section, "pot", "initial_pot", "12500"),
            env_var="RAFFLE_INITIAL_POT",
        )
        self.WINNER_PERCENTAGE: Decimal = self._section_decimal(
            pot_section, "pot", "winner_percentage", "0.75"
        )
        self.PLATFORM_FEE_PERCENTAGE: Decimal = self._section_decimal(
            pot_section, "pot", "platform_fee_percentage", "0.25"
        )

        self.INITIAL_BALANCE: Decimal = self._parse_decimal_env(
            os.getenv("RAFFLE_INITIAL_BALANCE"),
            default=self._section_decimal(
                mock_section, "mock", "initial_balance", "1000"
            ),
            env_var="RAFFLE_INITIAL_BALANCE",
        )
        self.MOCK_WALLET_DELAY: float = self._section_float(
            mock_section, "mock", "wallet_delay_seconds", 1.5
        )
        self.MOCK_TX_DELAY: float = self._section_float(
            mock_section, "mock", "tx_delay_seconds", 3.0
        )
        self.MOCK_FAILURE_RATE: float = self._section_float(
            mock_section, "mock", "failure_rate", 0.0
        )

        self.DEBUG: bool = os.getenv("RAFFLE_DEBUG", "").strip().lower() in {
            "1",
            "true",
            "yes",
            "on",
        }

        self.validate()

    @property
    def round_duration_ms(self) -> int:
        return self.ROUND_DURATION_MINUTES * 60 * 1000

    def validate(self) -> None:
        if self.ROUND_DURATION_MINUTES <= 0:
            raise ConfigError("Round duration must be greater than zero minutes")
        if self.TICKET_PRICE <= 0:
            raise ConfigError("Ticket price must be greater than zero")
        if self.MAX_BETS_PER_WALLET <= 0:
            raise ConfigError("Max bets per wallet must be greater than zero")
        if self.TICK_INTERVAL_SECONDS <= 0:
            raise ConfigError("Tick interval must be greater than zero seconds")
        if self.ROUND_END_THRESHOLD_MS < 0:
            raise ConfigError("Round end threshold must be non-negative")
        if self.MOCK_WALLET_DELAY < 0 or self.MOCK_TX_DELAY < 0:
            raise ConfigError("Mock delays must be non-negative")
        if self.INITIAL_BALANCE < 0 or self.INITIAL_POT < 0:
            raise ConfigError("Initial balance and pot must be non-negative")
        if self.WINNER_PERCENTAGE < 0 or self.PLATFORM_FEE_PERCENTAGE < 0:
            raise ConfigError("Prize percentages must be non-negative")
        if self.WINNER_PERCENTAGE + self.PLATFORM_FEE_PERCENTAGE != Decimal(1):
            raise ConfigError(
                "Winner and platform percentages must sum to exactly 1 "
                f"(got {self.WINNER_PERCENTAGE} + {self.PLATFORM_FEE_PERCENTAGE})"
            )
        if not 0.0 <= self.MOCK_FAILURE_RATE <= 1.0:
            raise ConfigError("Mock failure rate must be within [0, 1]")
        if self.ROUND_CREDIT_POLICY not in ROUND_CREDIT_POLICIES:
            raise ConfigError(
                f"Unknown round credit policy {self.ROUND_CREDIT_POLICY!r}; "
                f"expected one of {', '.join(ROUND_CREDIT_POLICIES)}"
            )

    @staticmethod
    def _section_int(section: Dict[str, Any], name: str, key: str, default: int) -> int:
        raw_value = section.get(key, default)
        if isinstance(raw_value, bool) or (
            isinstance(raw_value, float) and not raw_value.is_integer()
        ):
            raise ConfigError(f"{name}.{key} must be an integer, got {raw_value!r}")
        try:
            return int(raw_value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(
                f"{name}.{key} must be an integer, got {raw_value!r}"
            ) from exc

    @staticmethod
    def _section_float(
        section: Dict[str, Any], name: str, key: str, default: float
    ) -> float:
        raw_value = section.get(key, default)
        try:
            value = float(raw_value)
        except (TypeError, ValueError) as exc:
            raise ConfigError(f"{name}.{key} must be a number, got {raw_value!r}") from exc
        if isinstance(raw_value, bool) or not math.isfinite(value):
            raise ConfigError(f"{name}.{key} must be a finite number, got {raw_value!r}")
        return value

    @staticmethod
    def _section_decimal(
        section: Dict[str, Any], name: str, key: str, default: str
    ) -> Decimal:
        raw_value = section.get(key, default)
        if isinstance(raw_value, bool):
            raise ConfigError(f"{name}.{key} must be a decimal amount, got {raw_value!r}")
        try:
            value = Decimal(str(raw_value))
        except InvalidOperation as exc:
            raise ConfigError(
                f"{name}.{key} must be a decimal amount, got {raw_value!r}"
            ) from exc
        if not value.is_finite():
            raise ConfigError(f"{name}.{key} must be finite, got {raw_value!r}")
        return value

    @staticmethod
    def _parse_int_env(
        raw_value: Optional[str], *, default: int, env_var: str
    ) -> int:
        if raw_value is None:
            return default
        raw_value = raw_value.strip()
        if not raw_value:
            return default
        try:
            return int(raw_value)
        except ValueError:
            logger.warning(
                "Invalid integer value '%s' for %s; falling back to default %s.",
                raw_value,
                env_var,
                default,
            )
            return default

    @staticmethod
    def _parse_positive_float(
        raw_value: Optional[str], *, env_var: str
    ) -> Optional[float]:
        if not raw_value:
            return None
        try:
            value = float(raw_value)
        except ValueError:
            logger.warning(
                "Invalid float value '%s' for %s; ignoring it.",
                raw_value,
                env_var,
            )
            return None
        if not math.isfinite(value) or value <= 0:
            logger.warning(
                "%s must be a finite number greater than zero; ignoring %s.",
                env_var,
                raw_value,
            )
            return None
        return value

    @staticmethod
    def _parse_decimal_env(
        raw_value: Optional[str], *, default: Decimal, env_var: str
    ) -> Decimal:
        if raw_value is None:
            return default
        raw_value = raw_value.strip()
        if not raw_value:
            return default
        try:
            value = Decimal(raw_value)
        except InvalidOperation:
            value = None
        if value is None or not value.is_finite():
            logger.warning(
                "Invalid decimal value '%s' for %s; falling back to default %s.",
                raw_value,
                env_var,
                default,
            )
            return default
        return value
