"""Control panel composition root.

Wires session -> engine client -> pollers -> dispatcher / config workflow and
owns the single transition back to the unauthenticated state.
"""

from __future__ import annotations

from typing import List, Optional

import httpx

from algopanel.infrastructure.engine.engine_api_client import EngineApiClient
from algopanel.infrastructure.logging.logging import get_logger
from algopanel.infrastructure.utils.config import PanelConfig
from algopanel.models.status_models import PnlSummary, Trade
from algopanel.services.config.config_workflow import Confirmer, ConfigWorkflow
from algopanel.services.control.command_dispatcher import CommandDispatcher
from algopanel.services.monitoring.snapshot_poller import SnapshotPoller
from algopanel.services.monitoring.status_poller import StatusPoller
from algopanel.services.session.session_manager import Credentials, SessionManager


class ControlPanel:
    def __init__(
        self,
        config: PanelConfig,
        *,
        confirm: Confirmer,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._logger = get_logger("panel")
        self.config = config

        self.session = SessionManager(config.token_file)
        self.api = EngineApiClient(
            config.engine.base_url,
            self.session,
            request_timeout_sec=config.engine.request_timeout_seconds,
            transport=transport,
        )
        self.session.attach_authenticator(self.api.request_token)

        self.status = StatusPoller(self.api)
        self.trades: SnapshotPoller[List[Trade]] = SnapshotPoller("trades", self.api.get_trades)
        self.pnl: SnapshotPoller[PnlSummary] = SnapshotPoller("pnl", self.api.get_pnl)

        self.dispatcher = CommandDispatcher(self.api, self.status, confirm)
        self.config_workflow = ConfigWorkflow(self.api, self.status.ui_state, confirm)

        self.session.add_listener(self._on_session_ended)

    async def __aenter__(self) -> "ControlPanel":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def is_authenticated(self) -> bool:
        return self.session.is_authenticated()

    async def login(self, username: str, password: str) -> str:
        self.reset()
        return await self.session.login(Credentials(username=username, password=password))

    def logout(self) -> None:
        self.session.logout()
        # The listener already reset us when a token existed; this covers the no-token case
        self.reset()

    def start_monitoring(self) -> None:
        polling = self.config.polling
        self.status.start(polling.status_interval_seconds)
        self.trades.start(polling.trades_interval_seconds)
        self.pnl.start(polling.pnl_interval_seconds)

    def stop_monitoring(self) -> None:
        for poller in (self.status, self.trades, self.pnl):
            poller.stop()

    def reset(self) -> None:
        """Return to the unauthenticated view: nothing survives from the old session."""
        self.stop_monitoring()
        for poller in (self.status, self.trades, self.pnl):
            poller.clear()
        self.config_workflow.discard()
        self.dispatcher.clear()

    def _on_session_ended(self, reason: str) -> None:
        self._logger.warning("panel_reset", reason=reason)
        self.reset()

    async def aclose(self) -> None:
        self.stop_monitoring()
        await self.api.aclose()
