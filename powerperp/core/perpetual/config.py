"""Static configuration for a perpetual market.

``PerpetualConfig()`` is a valid configuration; every field has a default.
``config_from_dict`` accepts plain mappings (e.g. parsed JSON) and validates
types the same way ``state_from_dict`` does.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Mapping

import yaml

from .errors import LedgerGuardError
from .math import BASE, MAX_UINT120

DELEVERAGING_TIMELOCK: int = 1800  # seconds


@dataclass(frozen=True)
class PerpetualConfig:
    # Minimum ratio of backing to exposure, base-scaled (1.075 = 107.5%).
    min_collateral: int = BASE * 1075 // 1000

    # Identity allowed to call admin operations.
    admin: str = "admin"

    # Identity holding deposited collateral in the token ledger.
    custody: str = "perpetual"

    deleveraging_timelock: int = DELEVERAGING_TIMELOCK

    def __post_init__(self) -> None:
        validate_min_collateral(self.min_collateral)
        if self.deleveraging_timelock < 0:
            raise LedgerGuardError(
                "config:deleveraging_timelock",
                f"deleveraging_timelock must be non-negative: {self.deleveraging_timelock}",
            )
        if not self.admin or not self.custody:
            raise LedgerGuardError("config:identity", "admin and custody must be non-empty")


def validate_min_collateral(value: int) -> int:
    if value < BASE or value > MAX_UINT120:
        raise LedgerGuardError(
            "min_collateral_out_of_range",
            f"min_collateral must be within [BASE, 2**120 - 1], got {value}",
        )
    return value


CONFIG_FIELD_NAMES: tuple[str, ...] = tuple(f.name for f in fields(PerpetualConfig))


def config_to_dict(config: PerpetualConfig) -> dict[str, int | str]:
    return {name: getattr(config, name) for name in CONFIG_FIELD_NAMES}


def config_from_dict(d: Mapping[str, Any]) -> PerpetualConfig:
    """Build a config from a mapping. Missing keys keep their defaults."""
    unknown = set(d) - set(CONFIG_FIELD_NAMES)
    if unknown:
        raise KeyError(f"unknown config keys: {sorted(unknown)}")
    kwargs: dict[str, Any] = {}
    for f in fields(PerpetualConfig):
        if f.name not in d:
            continue
        val = d[f.name]
        expected = int if f.type in ("int", int) else str
        if isinstance(val, bool) or not isinstance(val, expected):
            raise TypeError(f"config field {f.name!r} must be {expected.__name__}, got {type(val).__name__}")
        kwargs[f.name] = expected(val)
    return PerpetualConfig(**kwargs)


def load_config(path: str | Path) -> PerpetualConfig:
    """Read a YAML mapping of config fields from *path*."""
    obj = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if obj is None:
        return PerpetualConfig()
    if not isinstance(obj, Mapping):
        raise TypeError("config YAML must be a mapping")
    return config_from_dict(obj)
