"""Derived UI state: one authoritative reading of the engine's two state flags.

The engine reports both `algo_state` and a `paused` flag. They are reconciled
here, and only here, with a fixed precedence:

    EMERGENCY_STOP > STOPPED > paused > RUNNING
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from algopanel.models.status_models import AlgoState, OperationalStatus


class UiMode(str, Enum):
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    STOPPED = "STOPPED"
    EMERGENCY = "EMERGENCY"


_PRESENTATION = {
    UiMode.EMERGENCY: ("🚨 EMERGENCY STOP", "red"),
    UiMode.STOPPED: ("⛔ STOPPED", "gray"),
    UiMode.PAUSED: ("⏸ PAUSED", "yellow"),
    UiMode.RUNNING: ("▶ RUNNING", "green"),
}


@dataclass(frozen=True)
class UiState:
    mode: UiMode
    label: str
    color: str
    is_emergency: bool
    is_running: bool
    is_paused: bool
    is_stopped: bool
    disable_all: bool


def resolve_mode(status: OperationalStatus) -> UiMode:
    if status.algo_state == AlgoState.EMERGENCY_STOP:
        return UiMode.EMERGENCY
    if status.algo_state == AlgoState.STOPPED:
        return UiMode.STOPPED
    if status.paused or status.algo_state == AlgoState.PAUSED:
        return UiMode.PAUSED
    return UiMode.RUNNING


def derive(status: OperationalStatus, command_in_flight: bool = False) -> UiState:
    """Pure mapping from a status snapshot to what the operator may do."""
    mode = resolve_mode(status)
    label, color = _PRESENTATION[mode]
    is_emergency = mode == UiMode.EMERGENCY
    return UiState(
        mode=mode,
        label=label,
        color=color,
        is_emergency=is_emergency,
        is_running=mode == UiMode.RUNNING,
        is_paused=mode == UiMode.PAUSED,
        is_stopped=mode == UiMode.STOPPED,
        disable_all=command_in_flight or is_emergency,
    )


def derive_optional(status: Optional[OperationalStatus], command_in_flight: bool = False) -> Optional[UiState]:
    return derive(status, command_in_flight) if status is not None else None
