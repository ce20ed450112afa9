import asyncio

import httpx
import pytest

from algopanel.infrastructure.engine.engine_api_client import EngineApiClient
from algopanel.infrastructure.engine.errors import AuthError, RemoteError, Unauthenticated
from algopanel.models.status_models import AlgoState
from algopanel.services.session.session_manager import Credentials, SessionManager
from conftest import BASE_URL, PASSWORD, TOKEN, USERNAME


@pytest.mark.asyncio
async def test_login_stores_token_and_attaches_it(api, session, engine):
    token = await session.login(Credentials(USERNAME, PASSWORD))

    assert token == TOKEN
    assert session.is_authenticated()

    status = await api.get_status()
    assert status.algo_state == AlgoState.RUNNING
    assert engine.auth_headers[-1] == f"Bearer {TOKEN}"


@pytest.mark.asyncio
async def test_login_with_bad_credentials(api, session):
    with pytest.raises(AuthError):
        await session.login(Credentials(USERNAME, "wrong"))
    assert not session.is_authenticated()


@pytest.mark.asyncio
async def test_no_call_without_session(api, engine):
    with pytest.raises(Unauthenticated):
        await api.get_status()
    assert engine.calls == []


@pytest.mark.asyncio
async def test_401_invalidates_session_and_blocks_further_calls(authed_api, session, engine):
    ended = []
    session.add_listener(ended.append)
    engine.expired = True

    with pytest.raises(Unauthenticated):
        await authed_api.pause_algo()

    assert not session.is_authenticated()
    assert ended == ["unauthorized"]

    sent = len(engine.calls)
    with pytest.raises(Unauthenticated):
        await authed_api.get_config()
    assert len(engine.calls) == sent


@pytest.mark.asyncio
async def test_engine_message_is_surfaced(authed_api, engine):
    engine.failures[("POST", "/control/resume")] = (409, {"detail": "Risk guard locked for today"})

    with pytest.raises(RemoteError) as exc_info:
        await authed_api.resume_algo()

    assert exc_info.value.status_code == 409
    assert exc_info.value.message == "Risk guard locked for today"


@pytest.mark.asyncio
async def test_generic_message_without_body(authed_api, engine):
    engine.failures[("GET", "/control/pnl")] = (503, None)

    with pytest.raises(RemoteError) as exc_info:
        await authed_api.get_pnl()

    assert exc_info.value.message == "Request failed (HTTP 503)"


@pytest.mark.asyncio
async def test_malformed_status_is_a_remote_error(authed_api, engine):
    engine.algo_state = "SOMETHING_NEW"

    with pytest.raises(RemoteError):
        await authed_api.get_status()


@pytest.mark.asyncio
async def test_timeout_is_a_remote_error():
    async def slow(request):
        if request.url.path == "/auth/login":
            return httpx.Response(200, json={"access_token": TOKEN})
        await asyncio.sleep(1)
        return httpx.Response(200, json={})

    session = SessionManager()
    client = EngineApiClient(BASE_URL, session, request_timeout_sec=0.05, transport=httpx.MockTransport(slow))
    session.attach_authenticator(client.request_token)
    try:
        await session.login(Credentials(USERNAME, PASSWORD))
        with pytest.raises(RemoteError, match="did not respond"):
            await client.get_status()
        # A timeout is not an auth failure
        assert session.is_authenticated()
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_connection_error_is_a_remote_error():
    def unreachable(request):
        raise httpx.ConnectError("connection refused", request=request)

    session = SessionManager()
    client = EngineApiClient(BASE_URL, session, transport=httpx.MockTransport(unreachable))
    session.attach_authenticator(client.request_token)
    try:
        with pytest.raises(RemoteError, match="unreachable"):
            await client.request_token(Credentials(USERNAME, PASSWORD))
    finally:
        await client.aclose()


@pytest.mark.asyncio
async def test_trades_and_pnl(authed_api, engine):
    engine.trades = [
        {"symbol": "NIFTY", "option_type": "CE", "entry_price": 100, "exit_price": 120, "quantity": 5},
        {"symbol": "NIFTY", "option_type": "PE", "entry_price": 90, "exit_price": None, "quantity": 5},
    ]

    trades = await authed_api.get_trades()
    pnl = await authed_api.get_pnl()

    assert [t.is_closed for t in trades] == [True, False]
    assert pnl.wins == 3 and pnl.net_pnl == 350.5
