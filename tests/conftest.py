import asyncio
import json
from typing import Any, Dict, List, Optional, Tuple

import httpx
import pytest
import pytest_asyncio

from algopanel.app.panel import ControlPanel
from algopanel.infrastructure.engine.engine_api_client import EngineApiClient
from algopanel.infrastructure.utils.config import PanelConfig
from algopanel.services.session.session_manager import Credentials, SessionManager

BASE_URL = "http://engine.test"
USERNAME = "admin"
PASSWORD = "secret"
TOKEN = "tok-abc-123"

DEFAULT_CONFIG = {
    "quantity": 1,
    "stop_loss_pct": 0.3,
    "target_pct": 0.6,
    "max_daily_loss": 1000.0,
    "risk_per_trade_pct": 1.0,
    "max_trades_per_day": 5,
    "cooldown_minutes": 5,
    "force_exit_time": "15:15",
    "instrument_priority": ["NIFTY", "BANKNIFTY"],
    "dry_run": True,
}


class FakeEngine:
    """In-memory stand-in for the trading engine's HTTP API."""

    def __init__(self) -> None:
        self.token = TOKEN
        self.expired = False

        self.algo_state = "RUNNING"
        self.paused = False
        self.active_trade: Optional[Dict[str, Any]] = None
        self.open_trade_pnl: Optional[Dict[str, Any]] = None
        self.risk_guard = {
            "daily_pnl": -250.0,
            "trade_count": 2,
            "max_trades_per_day": 5,
            "daily_loss_limit": 1000.0,
            "locked": False,
            "date": "2026-10-18",
        }

        self.config = dict(DEFAULT_CONFIG)
        self.validation: Dict[str, Any] = {"valid": True, "errors": []}
        self.fields = {"quantity": {"description": "Contracts per order"}}
        self.trades: List[Dict[str, Any]] = []
        self.pnl = {"net_pnl": 350.5, "total_trades": 4, "wins": 3, "losses": 1}

        self.calls: List[Tuple[str, str]] = []
        self.auth_headers: List[Optional[str]] = []
        self.failures: Dict[Tuple[str, str], Tuple[int, Any]] = {}
        self.gates: Dict[Tuple[str, str], asyncio.Event] = {}

    @property
    def dry_run(self) -> bool:
        return bool(self.config["dry_run"])

    def status_payload(self) -> Dict[str, Any]:
        return {
            "algo_state": self.algo_state,
            "paused": self.paused,
            "mode": "DRY_RUN" if self.dry_run else "LIVE",
            "dry_run": self.dry_run,
            "active_trade": self.active_trade,
            "open_trade_pnl": self.open_trade_pnl,
            "risk_guard": self.risk_guard,
        }

    def calls_to(self, method: str, path: str) -> int:
        return self.calls.count((method, path))

    async def handler(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))

        gate = self.gates.get((method, path))
        if gate is not None:
            await gate.wait()

        if path == "/auth/login":
            body = json.loads(request.content or b"{}")
            if body.get("username") == USERNAME and body.get("password") == PASSWORD:
                return httpx.Response(200, json={"access_token": self.token, "token_type": "bearer"})
            return httpx.Response(401, json={"detail": "Invalid credentials"})

        auth = request.headers.get("Authorization")
        self.auth_headers.append(auth)
        if self.expired or auth != f"Bearer {self.token}":
            return httpx.Response(401, json={"detail": "Token expired"})

        failure = self.failures.get((method, path))
        if failure is not None:
            status, body = failure
            return httpx.Response(status, json=body) if body is not None else httpx.Response(status)

        return self._route(method, path, request)

    def _route(self, method: str, path: str, request: httpx.Request) -> httpx.Response:
        if (method, path) == ("GET", "/control/status"):
            return httpx.Response(200, json=self.status_payload())

        if (method, path) == ("POST", "/control/resume"):
            if self.algo_state == "EMERGENCY_STOP":
                return httpx.Response(409, json={"detail": "Emergency stop active"})
            self.algo_state, self.paused = "RUNNING", False
            return httpx.Response(200, json={"status": "resumed"})

        if (method, path) == ("POST", "/control/pause"):
            self.algo_state, self.paused = "PAUSED", True
            return httpx.Response(200, json={"status": "paused"})

        if (method, path) == ("POST", "/control/emergency-stop"):
            self.algo_state = "EMERGENCY_STOP"
            return httpx.Response(200, json={"status": "emergency_stop"})

        if (method, path) == ("POST", "/control/reset-emergency"):
            if self.algo_state != "EMERGENCY_STOP":
                return httpx.Response(400, json={"detail": "Not in emergency stop"})
            self.algo_state, self.paused = "STOPPED", False
            return httpx.Response(200, json={"status": "stopped"})

        if (method, path) == ("POST", "/control/trades/close"):
            self.active_trade, self.open_trade_pnl = None, None
            return httpx.Response(200, json={"status": "closed"})

        if (method, path) == ("GET", "/control/trades"):
            return httpx.Response(200, json=self.trades)

        if (method, path) == ("GET", "/control/pnl"):
            return httpx.Response(200, json=self.pnl)

        if (method, path) == ("GET", "/config"):
            return httpx.Response(200, json=self.config)

        if (method, path) == ("POST", "/config"):
            body = json.loads(request.content)
            # The engine clamps out-of-range values instead of rejecting them
            body["quantity"] = max(1, min(100, int(body.get("quantity", 1))))
            self.config = body
            return httpx.Response(200, json={"config": self.config})

        if (method, path) == ("GET", "/config/fields"):
            return httpx.Response(200, json={"fields": self.fields})

        if (method, path) == ("GET", "/config/validate"):
            return httpx.Response(200, json=self.validation)

        if (method, path) == ("POST", "/config/reset"):
            self.config = dict(DEFAULT_CONFIG)
            return httpx.Response(200, json={"status": "reset"})

        if (method, path) == ("POST", "/config/toggle-dry-run"):
            self.config["dry_run"] = not self.dry_run
            return httpx.Response(200, json={"dry_run": self.dry_run, "mode": "DRY_RUN" if self.dry_run else "LIVE"})

        return httpx.Response(404, json={"detail": "Not Found"})


class Confirm:
    def __init__(self, answer: bool = True) -> None:
        self.answer = answer
        self.prompts: List[str] = []

    def __call__(self, prompt: str) -> bool:
        self.prompts.append(prompt)
        return self.answer


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def confirm():
    return Confirm()


@pytest.fixture
def panel_config():
    return PanelConfig.model_validate(
        {
            "engine": {"base_url": BASE_URL, "request_timeout_seconds": 5},
            "polling": {"status_interval_seconds": 1, "trades_interval_seconds": 1, "pnl_interval_seconds": 1},
            "session": {"token_path": ""},
        }
    )


@pytest.fixture
def session():
    return SessionManager()


@pytest_asyncio.fixture
async def api(engine, session):
    client = EngineApiClient(BASE_URL, session, transport=httpx.MockTransport(engine.handler))
    session.attach_authenticator(client.request_token)
    yield client
    await client.aclose()


@pytest_asyncio.fixture
async def authed_api(api, session):
    await session.login(Credentials(USERNAME, PASSWORD))
    return api


@pytest_asyncio.fixture
async def panel(engine, panel_config, confirm):
    p = ControlPanel(panel_config, confirm=confirm, transport=httpx.MockTransport(engine.handler))
    await p.login(USERNAME, PASSWORD)
    yield p
    await p.aclose()
