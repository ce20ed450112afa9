"""Engine configuration shapes.

The configuration itself stays a plain mapping: the engine owns its schema and
its validation, the panel only edits a working copy.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

JsonDict = Dict[str, Any]
Configuration = Dict[str, Any]
FieldMetadata = Dict[str, JsonDict]

CONFIG_KEYS: Tuple[str, ...] = (
    "quantity",
    "stop_loss_pct",
    "target_pct",
    "max_daily_loss",
    "risk_per_trade_pct",
    "max_trades_per_day",
    "cooldown_minutes",
    "force_exit_time",
    "instrument_priority",
    "dry_run",
)

# Instruments the engine scans, in the order offered to the operator
INSTRUMENTS: Tuple[str, ...] = ("NIFTY", "BANKNIFTY", "FINNIFTY", "MIDCPNIFTY")


@dataclass(frozen=True)
class ConfigValidation:
    valid: bool
    errors: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: JsonDict) -> "ConfigValidation":
        errors = data.get("errors") or []
        return cls(valid=data.get("valid") is True, errors=[str(e) for e in errors])


@dataclass(frozen=True)
class DryRunToggle:
    dry_run: bool
    mode: str

    @classmethod
    def from_dict(cls, data: JsonDict) -> "DryRunToggle":
        dry_run = data["dry_run"]
        if not isinstance(dry_run, bool):
            raise TypeError("dry_run must be a boolean")
        return cls(dry_run=dry_run, mode=str(data.get("mode") or ("DRY_RUN" if dry_run else "LIVE")))


def describe_field(fields: FieldMetadata, key: str) -> str:
    meta = fields.get(key) or {}
    return str(meta.get("description") or "")
