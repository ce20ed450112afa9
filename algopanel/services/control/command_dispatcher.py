"""Guarded control commands (start/pause/emergency-stop/reset/close-trade).

Every command is checked against the latest derived UI state before anything
is sent. Commands are serialized: while one is unresolved, all others are
rejected at the client.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from algopanel.infrastructure.engine.engine_api_client import EngineApiClient
from algopanel.infrastructure.engine.errors import PanelError, PreconditionError
from algopanel.infrastructure.logging.logging import get_logger
from algopanel.models.status_models import OperationalStatus
from algopanel.services.monitoring.status_poller import StatusPoller
from algopanel.services.monitoring.ui_state import UiState

Confirmer = Callable[[str], bool]

EMERGENCY_WARNING = "⚠️ Algo in EMERGENCY STOP mode"


class Command(str, Enum):
    START = "start"
    PAUSE = "pause"
    EMERGENCY_STOP = "emergency-stop"
    RESET_EMERGENCY = "reset-emergency"
    CLOSE_TRADE = "close-trade"


CONFIRM_PROMPTS: Dict[Command, str] = {
    Command.EMERGENCY_STOP: "⚠️ Emergency stop will halt all trading immediately. Continue?",
    Command.RESET_EMERGENCY: (
        "🚨 RESET EMERGENCY STOP\n\n"
        "This will move the algo to STOPPED state.\n"
        "Trading will NOT resume automatically.\n\n"
        "Proceed only after checking broker positions."
    ),
    Command.CLOSE_TRADE: "Close active trade immediately?",
}

SUCCESS_MESSAGES: Dict[Command, str] = {
    Command.START: "▶ Algo started",
    Command.PAUSE: "⏸ Algo paused",
    Command.EMERGENCY_STOP: EMERGENCY_WARNING,
    Command.RESET_EMERGENCY: "🟡 Emergency reset. Algo is now STOPPED.",
    Command.CLOSE_TRADE: "🚪 Active trade close requested",
}

RESUMED_MESSAGE = "▶ Algo resumed"


@dataclass(frozen=True)
class CommandResult:
    command: Command
    executed: bool
    message: str
    status: Optional[OperationalStatus] = None


class CommandDispatcher:
    def __init__(self, api: EngineApiClient, status_poller: StatusPoller, confirm: Confirmer) -> None:
        self._logger = get_logger("dispatcher")
        self._api = api
        self._poller = status_poller
        self._confirm = confirm
        self._in_flight: Optional[Command] = None
        self._warning: Optional[str] = None

        self._senders: Dict[Command, Callable[[], Awaitable[Any]]] = {
            Command.START: api.resume_algo,
            Command.PAUSE: api.pause_algo,
            Command.EMERGENCY_STOP: api.emergency_stop,
            Command.RESET_EMERGENCY: api.reset_emergency_stop,
            Command.CLOSE_TRADE: api.close_active_trade,
        }

    @property
    def in_flight(self) -> Optional[Command]:
        return self._in_flight

    @property
    def warning(self) -> Optional[str]:
        """Persistent banner raised by an emergency stop, cleared by a reset."""
        return self._warning

    def ui_state(self) -> Optional[UiState]:
        return self._poller.ui_state(command_in_flight=self._in_flight is not None)

    def clear(self) -> None:
        self._warning = None

    def check(self, command: Command) -> None:
        """Raise PreconditionError when `command` is not allowed right now."""
        if self._in_flight is not None:
            raise PreconditionError(f"'{self._in_flight.value}' is still in progress")

        ui = self.ui_state()
        status = self._poller.latest

        if command == Command.EMERGENCY_STOP:
            return

        if ui is None or status is None:
            raise PreconditionError("Engine status is not known yet")

        if command == Command.START:
            if ui.disable_all:
                raise PreconditionError("Controls are disabled while the engine is in EMERGENCY STOP")
            if ui.is_running:
                raise PreconditionError("Algo is already running")
        elif command == Command.PAUSE:
            if ui.disable_all:
                raise PreconditionError("Controls are disabled while the engine is in EMERGENCY STOP")
            if not ui.is_running:
                raise PreconditionError("Algo is not running")
        elif command == Command.RESET_EMERGENCY:
            if not ui.is_emergency:
                raise PreconditionError("Engine is not in EMERGENCY STOP")
        elif command == Command.CLOSE_TRADE:
            if status.active_trade is None:
                raise PreconditionError("There is no active trade to close")

    def can(self, command: Command) -> bool:
        try:
            self.check(command)
        except PreconditionError:
            return False
        return True

    async def start(self) -> CommandResult:
        return await self.dispatch(Command.START)

    async def pause(self) -> CommandResult:
        return await self.dispatch(Command.PAUSE)

    async def emergency_stop(self) -> CommandResult:
        return await self.dispatch(Command.EMERGENCY_STOP)

    async def reset_emergency(self) -> CommandResult:
        return await self.dispatch(Command.RESET_EMERGENCY)

    async def close_active_trade(self) -> CommandResult:
        return await self.dispatch(Command.CLOSE_TRADE)

    async def dispatch(self, command: Command) -> CommandResult:
        try:
            self.check(command)
        except PreconditionError as e:
            self._logger.warning("command_rejected", command=command.value, reason=str(e))
            raise

        prompt = CONFIRM_PROMPTS.get(command)
        if prompt is not None and not self._confirm(prompt):
            self._logger.info("command_cancelled", command=command.value)
            return CommandResult(command=command, executed=False, message="Cancelled by operator")

        message = SUCCESS_MESSAGES[command]
        ui = self.ui_state()
        if command == Command.START and ui is not None and ui.is_paused:
            message = RESUMED_MESSAGE

        self._in_flight = command
        try:
            self._logger.info("command_sent", command=command.value)
            try:
                await self._senders[command]()
            except PanelError as e:
                self._logger.warning("command_failed", command=command.value, error=str(e))
                raise

            if command == Command.EMERGENCY_STOP:
                self._warning = EMERGENCY_WARNING
            elif command == Command.RESET_EMERGENCY:
                self._warning = None

            self._logger.info("command_done", command=command.value)
            status = await self._poller.refresh()
        finally:
            self._in_flight = None

        return CommandResult(command=command, executed=True, message=message, status=status)
