"""Configuration edit session: load -> edit -> validate -> save.

The engine owns the configuration. The panel keeps a local working copy that
the operator mutates freely; nothing is sent until save(), and after a save the
working copy is replaced by what the engine echoes back (it may clamp or
normalize values).

Phases:
    EMPTY -> LOADED -> EDITING -> VALIDATING -> VALID -> SAVING -> SAVED
                                           \\-> INVALID -> EDITING
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from algopanel.infrastructure.engine.engine_api_client import EngineApiClient
from algopanel.infrastructure.engine.errors import PanelError, PreconditionError, ValidationError
from algopanel.infrastructure.logging.logging import get_logger
from algopanel.models.config_models import Configuration, DryRunToggle, FieldMetadata
from algopanel.services.monitoring.ui_state import UiState

Confirmer = Callable[[str], bool]

RESET_PROMPT = "Reset all settings to defaults?"


class ConfigPhase(str, Enum):
    EMPTY = "EMPTY"
    LOADED = "LOADED"
    EDITING = "EDITING"
    VALIDATING = "VALIDATING"
    VALID = "VALID"
    INVALID = "INVALID"
    SAVING = "SAVING"
    SAVED = "SAVED"


class ConfigWorkflow:
    def __init__(
        self,
        api: EngineApiClient,
        ui_state: Callable[[], Optional[UiState]],
        confirm: Confirmer,
    ) -> None:
        self._logger = get_logger("config_workflow")
        self._api = api
        self._ui_state = ui_state
        self._confirm = confirm

        self._phase = ConfigPhase.EMPTY
        self._working: Optional[Configuration] = None
        self._baseline: Optional[Configuration] = None
        self._fields: FieldMetadata = {}
        self._errors: List[str] = []
        self._saving = False
        # Bumped by discard(); results of calls issued before it are dropped
        self._epoch = 0

    # ---- read side ----
    @property
    def phase(self) -> ConfigPhase:
        return self._phase

    @property
    def working_copy(self) -> Optional[Configuration]:
        return dict(self._working) if self._working is not None else None

    @property
    def fields(self) -> FieldMetadata:
        return self._fields

    @property
    def errors(self) -> List[str]:
        return list(self._errors)

    @property
    def is_dirty(self) -> bool:
        return self._working != self._baseline

    @property
    def is_saving(self) -> bool:
        return self._saving

    def is_locked(self) -> bool:
        """True while the engine is in EMERGENCY STOP (config changes frozen)."""
        ui = self._ui_state()
        return ui is not None and ui.is_emergency

    def _ensure_unlocked(self, action: str) -> None:
        if self.is_locked():
            raise PreconditionError(f"Cannot {action} while the engine is in EMERGENCY STOP")

    def _ensure_loaded(self) -> Configuration:
        if self._working is None:
            raise PreconditionError("Configuration is not loaded")
        return self._working

    # ---- operations ----
    async def load(self) -> Configuration:
        if self._saving:
            raise PreconditionError("Cannot reload while a save is in progress")
        epoch = self._epoch
        config_res, fields_res = await asyncio.gather(
            self._api.get_config(),
            self._api.get_config_fields(),
            return_exceptions=True,
        )
        if epoch != self._epoch:
            raise PreconditionError("Edit session was discarded while loading")

        if isinstance(config_res, BaseException):
            self._logger.warning("config_load_failed", error=str(config_res))
            raise config_res

        if isinstance(fields_res, BaseException):
            if not isinstance(fields_res, PanelError):
                raise fields_res
            # Field descriptions are advisory; the form still works without them
            self._logger.warning("config_fields_load_failed", error=str(fields_res))
            self._fields = {}
        else:
            self._fields = fields_res

        self._apply_remote(config_res, ConfigPhase.LOADED)
        self._logger.info("config_loaded", keys=len(config_res))
        return dict(config_res)

    def edit(self, key: str, value: Any) -> None:
        if self._saving:
            raise PreconditionError("Cannot edit while a save is in progress")
        self._ensure_unlocked("edit configuration")
        working = self._ensure_loaded()

        self._working = {**working, key: value}
        self._phase = ConfigPhase.EDITING
        self._logger.debug("config_field_edited", key=key)

    async def save(self) -> Configuration:
        if self._saving:
            raise PreconditionError("A save is already in progress")
        self._ensure_unlocked("save configuration")
        payload = dict(self._ensure_loaded())

        epoch = self._epoch
        previous_phase = self._phase
        self._saving = True
        try:
            self._phase = ConfigPhase.VALIDATING
            try:
                validation = await self._api.validate_config()
            except PanelError:
                if epoch == self._epoch:
                    self._phase = previous_phase
                raise

            if epoch != self._epoch:
                self._logger.info("config_save_aborted_discarded")
                raise PreconditionError("Edit session was discarded while saving")

            if not validation.valid:
                self._errors = validation.errors
                self._phase = ConfigPhase.INVALID
                self._logger.warning("config_invalid", errors=validation.errors)
                raise ValidationError(validation.errors)

            self._errors = []
            self._phase = ConfigPhase.VALID

            self._phase = ConfigPhase.SAVING
            try:
                saved = await self._api.save_config(payload)
            except PanelError as e:
                if epoch == self._epoch:
                    self._phase = ConfigPhase.EDITING
                self._logger.warning("config_save_failed", error=str(e))
                raise

            if epoch != self._epoch:
                self._logger.info("config_save_result_discarded")
                return dict(saved)

            self._apply_remote(saved, ConfigPhase.SAVED)
            self._logger.info("config_saved", keys=len(saved))
            return dict(saved)
        finally:
            self._saving = False

    async def reset_to_defaults(self) -> Optional[Configuration]:
        """Returns the reloaded defaults, or None when the operator declined."""
        if self._saving:
            raise PreconditionError("A save is already in progress")
        self._ensure_unlocked("reset configuration")

        if not self._confirm(RESET_PROMPT):
            self._logger.info("config_reset_cancelled")
            return None

        epoch = self._epoch
        self._saving = True
        try:
            await self._api.reset_config()
            self._logger.info("config_reset")
            config = await self._api.get_config()
        finally:
            self._saving = False

        if epoch == self._epoch:
            self._apply_remote(config, ConfigPhase.LOADED)
        return dict(config)

    async def toggle_dry_run_live(self) -> DryRunToggle:
        """Flip DRY_RUN/LIVE. Allowed at all times, including EMERGENCY STOP."""
        epoch = self._epoch
        result = await self._api.toggle_dry_run()
        self._logger.info("dry_run_toggled", dry_run=result.dry_run, mode=result.mode)

        if epoch == self._epoch:
            if self._working is not None:
                self._working = {**self._working, "dry_run": result.dry_run}
            if self._baseline is not None:
                self._baseline = {**self._baseline, "dry_run": result.dry_run}
        return result

    def discard(self) -> None:
        """Drop the working copy and any pending results (session ended)."""
        self._epoch += 1
        self._phase = ConfigPhase.EMPTY
        self._working = None
        self._baseline = None
        self._fields = {}
        self._errors = []

    def _apply_remote(self, config: Dict[str, Any], phase: ConfigPhase) -> None:
        self._working = dict(config)
        self._baseline = dict(config)
        self._errors = []
        self._phase = phase
