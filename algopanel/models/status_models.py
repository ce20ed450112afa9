"""Engine status domain models.

Snapshots are immutable once parsed; each poll replaces the previous one wholesale.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from algopanel.infrastructure.utils.timeutils import parse_iso

JsonDict = Dict[str, Any]


class AlgoState(str, Enum):
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    STOPPED = "STOPPED"
    EMERGENCY_STOP = "EMERGENCY_STOP"


def _opt_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


@dataclass(frozen=True)
class Trade:
    symbol: str
    option_type: str        # "CE" | "PE"
    entry_price: float
    quantity: int
    entry_time: Optional[datetime] = None
    exit_price: Optional[float] = None
    exit_time: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.exit_price is not None

    @classmethod
    def from_dict(cls, data: JsonDict) -> "Trade":
        return cls(
            symbol=str(data.get("symbol") or ""),
            option_type=str(data.get("option_type") or ""),
            entry_price=float(data["entry_price"]),
            quantity=int(data.get("quantity") or 0),
            entry_time=parse_iso(data.get("entry_time")),
            exit_price=_opt_float(data.get("exit_price")),
            exit_time=parse_iso(data.get("exit_time")),
        )


@dataclass(frozen=True)
class RiskGuardStatus:
    daily_pnl: float = 0.0
    trade_count: int = 0
    max_trades_per_day: int = 5
    daily_loss_limit: float = 1000.0
    locked: bool = False
    date: Optional[date] = None

    @property
    def loss_limit_breached(self) -> bool:
        # Recomputed locally; the engine's own lock flag is shown separately
        return self.daily_pnl <= -self.daily_loss_limit

    @classmethod
    def from_dict(cls, data: Optional[JsonDict]) -> "RiskGuardStatus":
        data = data or {}
        parsed = parse_iso(data.get("date"))
        return cls(
            daily_pnl=float(data.get("daily_pnl") or 0.0),
            trade_count=int(data.get("trade_count") or 0),
            max_trades_per_day=int(data.get("max_trades_per_day") or 5),
            daily_loss_limit=float(data.get("daily_loss_limit") or 1000.0),
            locked=bool(data.get("locked", False)),
            date=parsed.date() if parsed else None,
        )


@dataclass(frozen=True)
class OperationalStatus:
    algo_state: AlgoState
    paused: bool = False
    mode: str = ""
    dry_run: bool = True
    active_trade: Optional[Trade] = None
    open_trade_pnl: Optional[float] = None
    risk_guard: RiskGuardStatus = RiskGuardStatus()

    @classmethod
    def from_dict(cls, data: JsonDict) -> "OperationalStatus":
        """Raises KeyError/ValueError/TypeError on a payload that is not a status."""
        active = data.get("active_trade")
        open_pnl = data.get("open_trade_pnl")
        return cls(
            algo_state=AlgoState(str(data["algo_state"]).upper()),
            paused=bool(data.get("paused", False)),
            mode=str(data.get("mode") or ""),
            dry_run=bool(data.get("dry_run", True)),
            active_trade=Trade.from_dict(active) if active else None,
            open_trade_pnl=_opt_float(open_pnl.get("pnl")) if isinstance(open_pnl, dict) else None,
            risk_guard=RiskGuardStatus.from_dict(data.get("risk_guard")),
        )


@dataclass(frozen=True)
class PnlSummary:
    net_pnl: float = 0.0
    total_trades: int = 0
    wins: int = 0
    losses: int = 0

    @classmethod
    def from_dict(cls, data: JsonDict) -> "PnlSummary":
        return cls(
            net_pnl=float(data.get("net_pnl") or 0.0),
            total_trades=int(data.get("total_trades") or 0),
            wins=int(data.get("wins") or 0),
            losses=int(data.get("losses") or 0),
        )
