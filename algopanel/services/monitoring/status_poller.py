"""Status poller: the panel's only continuously running process."""

from __future__ import annotations

from typing import Optional

from algopanel.infrastructure.engine.engine_api_client import EngineApiClient
from algopanel.models.status_models import OperationalStatus
from algopanel.services.monitoring.snapshot_poller import SnapshotPoller
from algopanel.services.monitoring.ui_state import UiState, derive_optional


class StatusPoller(SnapshotPoller[OperationalStatus]):
    def __init__(self, api: EngineApiClient) -> None:
        super().__init__("status", api.get_status)

    def ui_state(self, command_in_flight: bool = False) -> Optional[UiState]:
        return derive_optional(self.latest, command_in_flight)
