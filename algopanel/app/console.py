"""Plain-text rendering of panel views for the terminal."""

from __future__ import annotations

from typing import List, Optional

from algopanel.models.config_models import CONFIG_KEYS, Configuration, FieldMetadata, describe_field
from algopanel.models.status_models import PnlSummary
from algopanel.services.monitoring.dashboard import DashboardView, TradeRow, format_amount


def render_dashboard(view: DashboardView, *, warning: Optional[str] = None, stale_error: Optional[str] = None) -> str:
    lines: List[str] = ["📊 SmartAlgo Dashboard", ""]
    if warning:
        lines.append(warning)
    if stale_error:
        lines.append(f"⚠️ Failed to fetch status, showing last known data ({stale_error})")
    if warning or stale_error:
        lines.append("")

    lines += [
        f"Algo Status : {view.algo_label}",
        f"Mode        : {view.mode_label}",
        f"              {view.mode_banner}",
        f"Active Trade: {'YES' if view.has_active_trade else 'NO'}",
        f"Daily P&L   : ₹{format_amount(view.daily_pnl)}",
        "",
        "🛡️ Risk Management",
        f"  Trades Today    : {view.trades_today}",
        f"  Daily Loss Limit: ₹{format_amount(view.daily_loss_limit)}"
        + ("  ❗ BREACHED" if view.loss_limit_breached else ""),
        f"  Status          : {'🔒 LOCKED' if view.risk_locked else '🔓 ACTIVE'}",
        f"  Date            : {view.risk_date.isoformat() if view.risk_date else '-'}",
    ]

    trade = view.active_trade
    if trade is not None:
        entry_time = trade.entry_time.strftime("%H:%M:%S") if trade.entry_time else "-"
        lines += [
            "",
            "📈 Active Trade",
            f"  Symbol        : {trade.symbol}",
            f"  Type          : {trade.option_type}",
            f"  Entry Price   : ₹{trade.entry_price:.2f}",
            f"  Quantity      : {trade.quantity}",
            f"  Entry Time    : {entry_time}",
            f"  Unrealized P&L: {'₹' if view.unrealized_pnl != 'N/A' else ''}{view.unrealized_pnl}",
        ]
    return "\n".join(lines)


def render_trades(rows: List[TradeRow]) -> str:
    if not rows:
        return "No trades yet"
    header = f"{'Symbol':<14} {'Type':<5} {'Entry':>10} {'Exit':>10} {'Qty':>5}  Result"
    lines = ["📜 Trades", header, "-" * len(header)]
    for r in rows:
        exit_price = f"{r.exit_price:.2f}" if r.exit_price is not None else "-"
        lines.append(
            f"{r.symbol:<14} {r.option_type:<5} {r.entry_price:>10.2f} {exit_price:>10} {r.quantity:>5}  {r.outcome}"
        )
    return "\n".join(lines)


def render_pnl(summary: PnlSummary) -> str:
    return "\n".join(
        [
            "💰 PnL & Performance",
            f"Net PnL     : ₹ {format_amount(summary.net_pnl)}",
            f"Total Trades: {summary.total_trades}",
            f"Wins        : {summary.wins}",
            f"Losses      : {summary.losses}",
        ]
    )


def render_config(config: Configuration, fields: FieldMetadata) -> str:
    lines = ["⚙️ Configuration"]
    keys = [k for k in CONFIG_KEYS if k in config] + sorted(k for k in config if k not in CONFIG_KEYS)
    for key in keys:
        value = config[key]
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        desc = describe_field(fields, key)
        lines.append(f"  {key:<20} = {value}" + (f"    # {desc}" if desc else ""))
    return "\n".join(lines)
