import asyncio

import pytest
import pytest_asyncio

from algopanel.infrastructure.engine.errors import PreconditionError, RemoteError
from algopanel.services.control.command_dispatcher import (
    EMERGENCY_WARNING,
    RESUMED_MESSAGE,
    SUCCESS_MESSAGES,
    Command,
    CommandDispatcher,
)
from algopanel.services.monitoring.status_poller import StatusPoller
from algopanel.services.monitoring.ui_state import UiMode
from conftest import Confirm


@pytest_asyncio.fixture
async def poller(authed_api):
    p = StatusPoller(authed_api)
    await p.refresh()
    return p


@pytest.fixture
def dispatcher(authed_api, poller, confirm):
    return CommandDispatcher(authed_api, poller, confirm)


@pytest.mark.asyncio
async def test_resume_never_sent_when_running(dispatcher, engine):
    with pytest.raises(PreconditionError, match="already running"):
        await dispatcher.start()
    assert engine.calls_to("POST", "/control/resume") == 0


@pytest.mark.asyncio
async def test_pause_then_resume(dispatcher, engine, confirm):
    result = await dispatcher.pause()
    assert result.executed
    assert result.status.algo_state.value == "PAUSED"
    assert dispatcher.ui_state().mode == UiMode.PAUSED

    result = await dispatcher.start()
    assert result.executed
    assert result.message == RESUMED_MESSAGE
    assert dispatcher.ui_state().is_running
    assert engine.calls_to("POST", "/control/resume") == 1
    # start/pause never ask for confirmation
    assert confirm.prompts == []


@pytest.mark.asyncio
async def test_pause_rejected_when_not_running(dispatcher, poller, engine):
    engine.algo_state = "STOPPED"
    await poller.refresh()

    assert not dispatcher.can(Command.PAUSE)
    with pytest.raises(PreconditionError):
        await dispatcher.pause()
    assert engine.calls_to("POST", "/control/pause") == 0


@pytest.mark.asyncio
async def test_emergency_stop_needs_confirmation(authed_api, poller, engine):
    declined = CommandDispatcher(authed_api, poller, Confirm(answer=False))

    result = await declined.emergency_stop()

    assert not result.executed
    assert engine.calls_to("POST", "/control/emergency-stop") == 0


@pytest.mark.asyncio
async def test_emergency_stop_locks_controls_and_warns(dispatcher, engine, confirm):
    result = await dispatcher.emergency_stop()

    assert result.executed
    assert "halt all trading" in confirm.prompts[0]
    assert dispatcher.warning == EMERGENCY_WARNING
    ui = dispatcher.ui_state()
    assert ui.is_emergency and ui.disable_all

    with pytest.raises(PreconditionError):
        await dispatcher.start()
    assert engine.calls_to("POST", "/control/resume") == 0


@pytest.mark.asyncio
async def test_reset_emergency(dispatcher, engine, confirm):
    with pytest.raises(PreconditionError, match="not in EMERGENCY"):
        await dispatcher.reset_emergency()

    await dispatcher.emergency_stop()
    result = await dispatcher.reset_emergency()

    assert result.executed
    assert "will NOT resume automatically" in confirm.prompts[-1]
    assert dispatcher.ui_state().mode == UiMode.STOPPED
    assert dispatcher.warning is None


@pytest.mark.asyncio
async def test_close_trade_requires_active_trade(dispatcher, poller, engine):
    with pytest.raises(PreconditionError, match="no active trade"):
        await dispatcher.close_active_trade()

    engine.active_trade = {"symbol": "NIFTY", "option_type": "CE", "entry_price": 100, "quantity": 50}
    await poller.refresh()
    result = await dispatcher.close_active_trade()

    assert result.executed
    assert result.status.active_trade is None
    assert engine.calls_to("POST", "/control/trades/close") == 1


@pytest.mark.asyncio
async def test_commands_never_overlap(dispatcher, engine):
    gate = asyncio.Event()
    engine.gates[("POST", "/control/pause")] = gate

    pause = asyncio.create_task(dispatcher.pause())
    while dispatcher.in_flight is None:
        await asyncio.sleep(0)

    assert dispatcher.ui_state().disable_all
    with pytest.raises(PreconditionError, match="still in progress"):
        await dispatcher.emergency_stop()
    assert engine.calls_to("POST", "/control/emergency-stop") == 0

    gate.set()
    await pause
    assert dispatcher.in_flight is None


@pytest.mark.asyncio
async def test_failed_command_releases_lock(dispatcher, engine):
    engine.failures[("POST", "/control/pause")] = (500, {"detail": "broker offline"})

    with pytest.raises(RemoteError, match="broker offline"):
        await dispatcher.pause()

    assert dispatcher.in_flight is None
    assert dispatcher.can(Command.PAUSE)


@pytest.mark.asyncio
async def test_unknown_status_allows_only_emergency_stop(authed_api, engine, confirm):
    dispatcher = CommandDispatcher(authed_api, StatusPoller(authed_api), confirm)

    with pytest.raises(PreconditionError, match="not known"):
        await dispatcher.pause()

    result = await dispatcher.emergency_stop()
    assert result.executed


@pytest.mark.asyncio
async def test_start_from_stopped_reports_started(dispatcher, poller, engine):
    engine.algo_state = "STOPPED"
    await poller.refresh()

    result = await dispatcher.start()

    assert result.message == SUCCESS_MESSAGES[Command.START]
    assert dispatcher.ui_state().is_running
