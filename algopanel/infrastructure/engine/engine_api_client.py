"""Remote engine HTTP client (single typed gateway) using asyncio + httpx.

Features:
- Bearer token read from the SessionManager at send time
- Fixed total timeout per request
- 401 -> session invalidation + Unauthenticated, never retried
- Any other failure normalized into RemoteError with the engine's message
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional, TypeVar

import httpx

from algopanel.infrastructure.engine.errors import AuthError, RemoteError, Unauthenticated
from algopanel.infrastructure.logging.logging import get_logger
from algopanel.models.config_models import Configuration, ConfigValidation, DryRunToggle, FieldMetadata
from algopanel.models.status_models import OperationalStatus, PnlSummary, Trade
from algopanel.services.session.session_manager import Credentials, SessionManager

JsonDict = Dict[str, Any]
T = TypeVar("T")


def _engine_message(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    if not isinstance(body, dict):
        return None

    detail = body.get("detail") or body.get("message") or body.get("error")
    if isinstance(detail, str) and detail.strip():
        return detail.strip()
    if isinstance(detail, list):
        # FastAPI-style [{"loc": [...], "msg": "..."}]
        msgs = [str(item.get("msg")) if isinstance(item, dict) else str(item) for item in detail]
        return "; ".join(m for m in msgs if m) or None
    return None


class EngineApiClient:
    def __init__(
        self,
        base_url: str,
        session: SessionManager,
        *,
        request_timeout_sec: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._logger = get_logger("engine_api")
        self._session = session
        self._request_timeout = request_timeout_sec
        self._http = httpx.AsyncClient(
            base_url=base_url,
            timeout=httpx.Timeout(request_timeout_sec),
            transport=transport,
            headers={"Accept": "application/json"},
        )
        self._req_id = 0

    async def aclose(self) -> None:
        await self._http.aclose()

    def _next_req_id(self) -> int:
        self._req_id += 1
        return self._req_id

    async def _request(
        self,
        method: str,
        path: str,
        *,
        payload: Optional[Any] = None,
        auth: bool = True,
    ) -> Any:
        req_id = self._next_req_id()
        headers: Dict[str, str] = {}
        generation = self._session.generation

        if auth:
            token = self._session.token
            if token is None:
                # Invalidated sessions never send, not even once more with the old token
                self._logger.debug("request_blocked_no_session", req_id=req_id, path=path)
                raise Unauthenticated("Not logged in")
            headers["Authorization"] = f"Bearer {token}"

        self._logger.debug("request_send", req_id=req_id, method=method, path=path)
        try:
            resp = await asyncio.wait_for(
                self._http.request(method, path, json=payload, headers=headers),
                timeout=self._request_timeout,
            )
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            self._logger.warning("request_timeout", req_id=req_id, path=path)
            raise RemoteError(f"Engine did not respond within {self._request_timeout:g}s") from e
        except httpx.HTTPError as e:
            self._logger.warning("request_failed", req_id=req_id, path=path, error=str(e))
            raise RemoteError(f"Engine unreachable: {e}") from e

        if resp.status_code == 401 and auth:
            self._session.invalidate("unauthorized", generation=generation)
            raise Unauthenticated("Session expired or invalid, please log in again")

        if resp.is_error:
            message = _engine_message(resp) or f"Request failed (HTTP {resp.status_code})"
            self._logger.warning("request_rejected", req_id=req_id, path=path, status=resp.status_code, message=message)
            raise RemoteError(message, status_code=resp.status_code)

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteError("Engine returned a non-JSON response", status_code=resp.status_code) from e

    @staticmethod
    def _parse(what: str, parse: Callable[[Any], T], data: Any) -> T:
        try:
            return parse(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RemoteError(f"Malformed {what} payload from engine: {e}") from e

    # ---- auth ----
    async def request_token(self, credentials: Credentials) -> str:
        try:
            data = await self._request(
                "POST",
                "/auth/login",
                payload={"username": credentials.username, "password": credentials.password},
                auth=False,
            )
        except RemoteError as e:
            if e.status_code in (400, 401, 403):
                raise AuthError("Invalid username or password") from e
            raise
        return self._parse("login", lambda d: str(d["access_token"]), data)

    # ---- status / history ----
    async def get_status(self) -> OperationalStatus:
        data = await self._request("GET", "/control/status")
        return self._parse("status", OperationalStatus.from_dict, data)

    async def get_trades(self) -> List[Trade]:
        data = await self._request("GET", "/control/trades")
        return self._parse("trades", lambda d: [Trade.from_dict(t) for t in (d or [])], data)

    async def get_pnl(self) -> PnlSummary:
        data = await self._request("GET", "/control/pnl")
        return self._parse("pnl", PnlSummary.from_dict, data or {})

    # ---- control commands ----
    async def resume_algo(self) -> Any:
        return await self._request("POST", "/control/resume")

    async def pause_algo(self) -> Any:
        return await self._request("POST", "/control/pause")

    async def emergency_stop(self) -> Any:
        return await self._request("POST", "/control/emergency-stop")

    async def reset_emergency_stop(self) -> Any:
        return await self._request("POST", "/control/reset-emergency")

    async def close_active_trade(self) -> Any:
        return await self._request("POST", "/control/trades/close")

    # ---- configuration ----
    async def get_config(self) -> Configuration:
        data = await self._request("GET", "/config")
        return self._parse("config", lambda d: dict(d), data)

    async def get_config_fields(self) -> FieldMetadata:
        data = await self._request("GET", "/config/fields")
        return self._parse("config fields", lambda d: dict(d.get("fields") or {}), data or {})

    async def validate_config(self) -> ConfigValidation:
        data = await self._request("GET", "/config/validate")
        return self._parse("validation", ConfigValidation.from_dict, data)

    async def save_config(self, config: Configuration) -> Configuration:
        data = await self._request("POST", "/config", payload=config)
        return self._parse("saved config", lambda d: dict(d["config"]), data)

    async def reset_config(self) -> Any:
        return await self._request("POST", "/config/reset")

    async def toggle_dry_run(self) -> DryRunToggle:
        data = await self._request("POST", "/config/toggle-dry-run")
        return self._parse("dry-run toggle", DryRunToggle.from_dict, data)
