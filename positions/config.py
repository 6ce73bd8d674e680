"""
Positions - Configuration.

Trailing stop limits, overridable from the environment with
``TrailingStopConfig.from_env()``.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from typing import Mapping, Optional

from core.exceptions import ConfigurationError


@dataclass
class TrailingStopConfig:
    default_distance_pct: Decimal = Decimal("5")
    min_distance_pct: Decimal = Decimal("0.1")
    max_distance_pct: Decimal = Decimal("50")

    def validate(self) -> None:
        if self.min_distance_pct <= 0:
            raise ConfigurationError("min_distance_pct must be positive", config_key="min_distance_pct")
        if self.max_distance_pct >= 100 or self.max_distance_pct < self.min_distance_pct:
            raise ConfigurationError(
                "max_distance_pct must be below 100 and >= min_distance_pct", config_key="max_distance_pct"
            )
        if not self.min_distance_pct <= self.default_distance_pct <= self.max_distance_pct:
            raise ConfigurationError(
                "default_distance_pct must lie between the min and max distance", config_key="default_distance_pct"
            )

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "TrailingStopConfig":
        env = os.environ if environ is None else environ
        config = cls()
        try:
            if env.get("TRAILING_STOP_DEFAULT_DISTANCE_PCT"):
                config.default_distance_pct = Decimal(env["TRAILING_STOP_DEFAULT_DISTANCE_PCT"])
            if env.get("TRAILING_STOP_MIN_DISTANCE_PCT"):
                config.min_distance_pct = Decimal(env["TRAILING_STOP_MIN_DISTANCE_PCT"])
            if env.get("TRAILING_STOP_MAX_DISTANCE_PCT"):
                config.max_distance_pct = Decimal(env["TRAILING_STOP_MAX_DISTANCE_PCT"])
        except ArithmeticError as e:
            raise ConfigurationError(f"Invalid trailing stop setting: {e}", cause=e) from e
        config.validate()
        return config
