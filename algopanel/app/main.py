"""Entrypoint.

Usage:
  algopanel login                      # exchange credentials for a session token
  algopanel status                     # one-shot dashboard
  algopanel watch                      # live dashboard (status/trades/pnl polling)
  algopanel start | pause              # guarded control commands
  algopanel emergency-stop [--yes]
  algopanel reset-emergency [--yes]
  algopanel close-trade [--yes]
  algopanel trades | pnl
  algopanel config show
  algopanel config set quantity=2 instrument_priority=NIFTY,BANKNIFTY
  algopanel config reset [--yes]
  algopanel config toggle-dry-run
  algopanel logout
"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx

from algopanel.app.console import render_config, render_dashboard, render_pnl, render_trades
from algopanel.app.panel import ControlPanel
from algopanel.infrastructure.engine.errors import PanelError, RemoteError, Unauthenticated, ValidationError
from algopanel.infrastructure.logging.logging import configure_logging, get_logger
from algopanel.infrastructure.utils.config import PanelConfig, load_config
from algopanel.models.config_models import CONFIG_KEYS, INSTRUMENTS, Configuration
from algopanel.models.status_models import OperationalStatus
from algopanel.services.config.config_workflow import Confirmer
from algopanel.services.control.command_dispatcher import Command
from algopanel.services.monitoring.dashboard import build_dashboard, trade_rows
from algopanel.services.monitoring.ui_state import derive

Handler = Callable[[ControlPanel, argparse.Namespace], Awaitable[None]]

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


# --------- value parsing for `config set` ---------
def coerce_value(key: str, raw: str, current: Any) -> Any:
    """Parse `raw` into the type of the field currently held in the working copy."""
    if key == "instrument_priority" or isinstance(current, list):
        codes = [part.strip().upper() for part in raw.split(",") if part.strip()]
        if key == "instrument_priority":
            unknown = [c for c in codes if c not in INSTRUMENTS]
            if unknown:
                raise ValueError(f"Unknown instrument(s): {', '.join(unknown)}; expected {', '.join(INSTRUMENTS)}")
        return codes
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE:
            return True
        if lowered in _FALSE:
            return False
        raise ValueError(f"{key} expects true/false, got {raw!r}")
    if isinstance(current, int):
        return int(raw)
    if isinstance(current, float):
        return float(raw)
    return raw


def parse_assignments(pairs: List[str], config: Configuration) -> List[Tuple[str, Any]]:
    out: List[Tuple[str, Any]] = []
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Expected KEY=VALUE, got {pair!r}")
        if key not in config and key not in CONFIG_KEYS:
            raise ValueError(f"Unknown configuration key: {key}")
        out.append((key, coerce_value(key, raw.strip(), config.get(key))))
    return out


def make_confirmer(assume_yes: bool) -> Confirmer:
    def confirm(prompt: str) -> bool:
        if assume_yes:
            return True
        try:
            answer = input(f"{prompt}\n[y/N] ")
        except EOFError:
            return False
        return answer.strip().lower() in ("y", "yes")

    return confirm


# --------- handlers ---------
def _require_session(panel: ControlPanel) -> None:
    if not panel.is_authenticated:
        raise Unauthenticated("Not logged in")


async def _refresh_status(panel: ControlPanel) -> Optional[OperationalStatus]:
    _require_session(panel)
    status = await panel.status.refresh()
    # A 401 during the refresh resets the panel before the error is recorded
    _require_session(panel)
    return status


async def _current_status(panel: ControlPanel) -> OperationalStatus:
    status = await _refresh_status(panel)
    if status is None:
        raise panel.status.last_error or RemoteError("Engine status unavailable")
    return status


def _print_dashboard(panel: ControlPanel, status: OperationalStatus) -> None:
    view = build_dashboard(status, derive(status, panel.dispatcher.in_flight is not None))
    error = panel.status.last_error
    print(render_dashboard(view, warning=panel.dispatcher.warning, stale_error=str(error) if error else None))


def _print_on_change(render: Callable[[Any], str]) -> Callable[[Any], None]:
    """Trades and P&L rarely change between polls; only reprint when they do."""
    last: List[Any] = []

    def listener(value: Any) -> None:
        if last and last[0] == value:
            return
        last[:] = [value]
        print(render(value))

    return listener


async def cmd_login(panel: ControlPanel, args: argparse.Namespace) -> None:
    username = args.username or panel.config.session.username or input("Username: ")
    password = panel.config.session.password or getpass.getpass("Password: ")
    await panel.login(username, password)
    print("✅ Logged in")


async def cmd_logout(panel: ControlPanel, args: argparse.Namespace) -> None:
    panel.logout()
    print("Logged out")


async def cmd_status(panel: ControlPanel, args: argparse.Namespace) -> None:
    _print_dashboard(panel, await _current_status(panel))


async def cmd_watch(panel: ControlPanel, args: argparse.Namespace) -> None:
    _require_session(panel)

    panel.status.subscribe(lambda status: _print_dashboard(panel, status))
    panel.status.on_error(lambda error: print(f"⚠️ Failed to fetch status: {error}", file=sys.stderr))
    panel.trades.subscribe(_print_on_change(lambda trades: render_trades(trade_rows(trades))))
    panel.pnl.subscribe(_print_on_change(render_pnl))

    if args.interval:
        panel.config.polling.status_interval_seconds = args.interval
    panel.start_monitoring()

    while panel.is_authenticated:
        await asyncio.sleep(0.5)
    raise Unauthenticated("Session ended, please log in again")


async def cmd_control(panel: ControlPanel, args: argparse.Namespace) -> None:
    command = Command(args.command)
    await _refresh_status(panel)
    result = await panel.dispatcher.dispatch(command)
    print(result.message)
    if result.status is not None:
        print(f"Algo Status: {derive(result.status).label}")


async def cmd_trades(panel: ControlPanel, args: argparse.Namespace) -> None:
    print(render_trades(trade_rows(await panel.api.get_trades())))


async def cmd_pnl(panel: ControlPanel, args: argparse.Namespace) -> None:
    print(render_pnl(await panel.api.get_pnl()))


async def cmd_config(panel: ControlPanel, args: argparse.Namespace) -> None:
    wf = panel.config_workflow

    if args.config_command == "toggle-dry-run":
        result = await wf.toggle_dry_run_live()
        print(f"✅ Switched to {result.mode} mode")
        return

    # Mutations are frozen during EMERGENCY STOP, so the panel needs a fresh status first
    await _refresh_status(panel)

    if args.config_command == "reset":
        config = await wf.reset_to_defaults()
        if config is None:
            print("Cancelled by operator")
            return
        print("✅ Config reset to defaults")
        print(render_config(config, wf.fields))
        return

    await wf.load()
    if args.config_command == "show":
        print(render_config(wf.working_copy or {}, wf.fields))
        return

    for key, value in parse_assignments(args.assignments, wf.working_copy or {}):
        wf.edit(key, value)
    saved = await wf.save()
    print("✅ Config saved successfully")
    print(render_config(saved, wf.fields))


HANDLERS: Dict[str, Handler] = {
    "login": cmd_login,
    "logout": cmd_logout,
    "status": cmd_status,
    "watch": cmd_watch,
    "trades": cmd_trades,
    "pnl": cmd_pnl,
    "config": cmd_config,
    **{c.value: cmd_control for c in Command},
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser("algopanel", description="Operator control panel for the trading engine")
    parser.add_argument("--config", help="Path to a YAML config file")
    parser.add_argument("--yes", "-y", action="store_true", help="Answer yes to confirmation prompts")

    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in to the engine")
    login.add_argument("--username", "-u")
    sub.add_parser("logout", help="Drop the current session")
    sub.add_parser("status", help="Show the dashboard once")
    watch = sub.add_parser("watch", help="Live dashboard")
    watch.add_argument("--interval", type=float, help="Status poll interval in seconds")
    sub.add_parser("trades", help="List trades")
    sub.add_parser("pnl", help="Show P&L summary")

    for c in Command:
        sub.add_parser(c.value, help=f"Send '{c.value}' to the engine")

    cfg = sub.add_parser("config", help="Engine configuration")
    cfg_sub = cfg.add_subparsers(dest="config_command", required=True)
    cfg_sub.add_parser("show")
    cfg_set = cfg_sub.add_parser("set")
    cfg_set.add_argument("assignments", nargs="+", metavar="KEY=VALUE")
    cfg_sub.add_parser("reset")
    cfg_sub.add_parser("toggle-dry-run")
    return parser


async def run_command(
    args: argparse.Namespace,
    config: PanelConfig,
    confirm: Confirmer,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    log = get_logger("cli")
    async with ControlPanel(config, confirm=confirm, transport=transport) as panel:
        try:
            await HANDLERS[args.command](panel, args)
            return 0
        except Unauthenticated as e:
            print(f"🔐 {e}. Run `algopanel login`.", file=sys.stderr)
        except ValidationError as e:
            print("❌ Configuration has errors. Please fix and try again.", file=sys.stderr)
            for err in e.errors:
                print(f"  - {err}", file=sys.stderr)
        except PanelError as e:
            print(f"❌ {e}", file=sys.stderr)
        except ValueError as e:
            print(f"❌ {e}", file=sys.stderr)
        log.info("command_failed", command=args.command)
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(Path(args.config) if args.config else None)
    except (FileNotFoundError, ValueError) as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.json_logs)

    try:
        return asyncio.run(run_command(args, config, make_confirmer(args.yes)))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
