"""Operator-facing facts computed from raw snapshots.

Nothing here trusts engine-side derived numbers: realized P&L, outcome labels
and the loss-limit breach are always recomputed from the raw fields.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import List, Optional

from algopanel.models.status_models import OperationalStatus, Trade
from algopanel.services.monitoring.ui_state import UiState

MODE_BANNERS = {
    True: "🟢 DRY_RUN: Orders are simulated, no real money at risk",
    False: "🔴 LIVE: Real orders, real money trading",
}


def format_amount(value: float) -> str:
    value = round(float(value), 2)
    if value == int(value):
        return str(int(value))
    return f"{value:.2f}"


def realized_pnl(trade: Trade) -> float:
    """(exit - entry) * quantity for closed trades, 0 for open ones."""
    if trade.exit_price is None:
        return 0.0
    return round((trade.exit_price - trade.entry_price) * trade.quantity, 2)


def outcome_label(trade: Trade) -> str:
    if not trade.is_closed:
        return "OPEN"
    pnl = realized_pnl(trade)
    if pnl >= 0:
        return f"PROFIT (+{format_amount(pnl)})"
    return f"LOSS ({format_amount(pnl)})"


@dataclass(frozen=True)
class TradeRow:
    symbol: str
    option_type: str
    entry_price: float
    exit_price: Optional[float]
    quantity: int
    entry_time: Optional[datetime]
    is_open: bool
    pnl: float
    outcome: str
    color: str


def trade_rows(trades: List[Trade]) -> List[TradeRow]:
    rows: List[TradeRow] = []
    for t in trades:
        pnl = realized_pnl(t)
        if not t.is_closed:
            color = "orange"
        else:
            color = "green" if pnl >= 0 else "red"
        rows.append(
            TradeRow(
                symbol=t.symbol,
                option_type=t.option_type,
                entry_price=t.entry_price,
                exit_price=t.exit_price,
                quantity=t.quantity,
                entry_time=t.entry_time,
                is_open=not t.is_closed,
                pnl=pnl,
                outcome=outcome_label(t),
                color=color,
            )
        )
    return rows


@dataclass(frozen=True)
class DashboardView:
    algo_label: str
    algo_color: str
    mode_label: str
    mode_color: str
    mode_banner: str
    has_active_trade: bool
    daily_pnl: float
    daily_pnl_color: str
    trades_today: str
    daily_loss_limit: float
    loss_limit_breached: bool
    risk_locked: bool
    risk_date: Optional[date]
    active_trade: Optional[Trade]
    unrealized_pnl: str
    unrealized_pnl_color: str


def build_dashboard(status: OperationalStatus, ui: UiState) -> DashboardView:
    risk = status.risk_guard
    open_pnl = status.open_trade_pnl
    return DashboardView(
        algo_label=ui.label,
        algo_color=ui.color,
        mode_label=status.mode or ("DRY_RUN" if status.dry_run else "LIVE"),
        mode_color="blue" if status.dry_run else "red",
        mode_banner=MODE_BANNERS[status.dry_run],
        has_active_trade=status.active_trade is not None,
        daily_pnl=risk.daily_pnl,
        daily_pnl_color="green" if risk.daily_pnl >= 0 else "red",
        trades_today=f"{risk.trade_count} / {risk.max_trades_per_day}",
        daily_loss_limit=risk.daily_loss_limit,
        loss_limit_breached=risk.loss_limit_breached,
        risk_locked=risk.locked,
        risk_date=risk.date,
        active_trade=status.active_trade,
        unrealized_pnl=f"{open_pnl:.2f}" if open_pnl is not None else "N/A",
        unrealized_pnl_color="green" if (open_pnl or 0) >= 0 else "red",
    )
