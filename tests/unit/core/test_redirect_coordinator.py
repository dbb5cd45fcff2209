import pytest
from unittest.mock import AsyncMock, MagicMock, call

from core.http import PipelineRequest, PipelineResponse, Uri
from core.redirect import NullLogger, RedirectConfig, RedirectCoordinator
from core.session_slot import MappingSessionSlot

LOGIN_URL = "https://example.com/login"
TARGET_URL = "https://example.com/app/orders?id=7"
BASE_URL = "https://example.com/"
KEY = "RequestedPageBeforeLogin"


def returning(status_code: int, **headers):
    """Next handler stub answering with the given status."""
    return AsyncMock(return_value=PipelineResponse(status_code=status_code, headers=headers))


# --- Phase A: before route ---

@pytest.mark.asyncio
async def test_auth_required_short_circuits(coordinator, target_request):
    call_next = AsyncMock()

    result = await coordinator.handle(target_request, PipelineResponse(status_code=401), call_next)

    call_next.assert_not_called()
    assert result.status_code == 401
    assert result.get_header("Location") == LOGIN_URL


@pytest.mark.asyncio
async def test_auth_required_captures_requested_page(coordinator, session_data, target_request):
    await coordinator.handle(target_request, PipelineResponse(status_code=401), AsyncMock())

    assert session_data[KEY] == TARGET_URL


@pytest.mark.asyncio
async def test_first_requested_page_wins(coordinator, session_data):
    session_data[KEY] = TARGET_URL
    other = PipelineRequest.from_url("https://example.com/app/invoices")

    result = await coordinator.handle(other, PipelineResponse(status_code=401), AsyncMock())

    assert session_data[KEY] == TARGET_URL
    assert result.get_header("Location") == LOGIN_URL


@pytest.mark.asyncio
async def test_short_circuit_does_not_mutate_incoming_response(coordinator, target_request):
    incoming = PipelineResponse(status_code=401, headers={"X-Foo": "bar"})

    result = await coordinator.handle(target_request, incoming, AsyncMock())

    assert incoming.get_header("Location") is None
    assert result is not incoming
    assert result.get_header("X-Foo") == "bar"


# --- Phase C: after route ---

@pytest.mark.asyncio
async def test_downstream_401_redirects_to_login_without_capturing(coordinator, session_data, target_request, ok_response):
    call_next = returning(401)

    result = await coordinator.handle(target_request, ok_response, call_next)

    call_next.assert_awaited_once_with(target_request, ok_response)
    assert result.status_code == 401
    assert result.get_header("Location") == LOGIN_URL
    assert KEY not in session_data


@pytest.mark.asyncio
async def test_downstream_401_ignores_saved_page(coordinator, session_data, target_request, ok_response):
    session_data[KEY] = TARGET_URL

    result = await coordinator.handle(target_request, ok_response, returning(401))

    assert result.get_header("Location") == LOGIN_URL
    assert session_data[KEY] == TARGET_URL


@pytest.mark.asyncio
async def test_authorized_redirects_to_saved_page_and_clears_it(coordinator, session_data, ok_response):
    session_data[KEY] = TARGET_URL
    login_post = PipelineRequest.from_url(LOGIN_URL, method="POST")

    result = await coordinator.handle(login_post, ok_response, returning(204))

    assert result.status_code == 204
    assert result.get_header("Location") == TARGET_URL
    assert KEY not in session_data


@pytest.mark.asyncio
async def test_authorized_without_saved_page_goes_to_base_url(coordinator, ok_response):
    login_post = PipelineRequest.from_url(LOGIN_URL, method="POST")

    result = await coordinator.handle(login_post, ok_response, returning(204))

    assert result.get_header("Location") == BASE_URL


@pytest.mark.asyncio
async def test_authorized_never_redirects_back_to_login(coordinator, session_data, ok_response):
    session_data[KEY] = LOGIN_URL
    login_post = PipelineRequest.from_url(LOGIN_URL, method="POST")

    result = await coordinator.handle(login_post, ok_response, returning(204))

    assert result.get_header("Location") == BASE_URL
    assert KEY not in session_data


@pytest.mark.asyncio
async def test_second_login_does_not_replay_stale_page(coordinator, session_data, ok_response):
    session_data[KEY] = TARGET_URL
    login_post = PipelineRequest.from_url(LOGIN_URL, method="POST")

    first = await coordinator.handle(login_post, ok_response, returning(204))
    second = await coordinator.handle(login_post, ok_response, returning(204))

    assert first.get_header("Location") == TARGET_URL
    assert second.get_header("Location") == BASE_URL


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [200, 302, 403, 404, 500])
async def test_other_statuses_pass_through(coordinator, session_data, target_request, ok_response, status_code):
    session_data[KEY] = TARGET_URL
    downstream = PipelineResponse(status_code=status_code, body=b"payload")

    result = await coordinator.handle(target_request, ok_response, AsyncMock(return_value=downstream))

    assert result is downstream
    assert result.get_header("Location") is None
    assert session_data == {KEY: TARGET_URL}


@pytest.mark.asyncio
async def test_location_header_is_overwritten(coordinator, target_request, ok_response):
    result = await coordinator.handle(
        target_request, ok_response, returning(401, location="https://elsewhere.example/")
    )

    assert result.headers.getlist("location") == [LOGIN_URL]
    assert result.get_header("Location") == LOGIN_URL


# --- next handler shapes ---

@pytest.mark.asyncio
async def test_sync_next_handler_is_supported(coordinator, target_request, ok_response):
    def call_next(request, response):
        return response.with_status(204)

    result = await coordinator.handle(target_request, ok_response, call_next)

    assert result.status_code == 204
    assert result.get_header("Location") == BASE_URL


@pytest.mark.asyncio
async def test_coordinator_is_callable_as_stage(coordinator, target_request):
    result = await coordinator(target_request, PipelineResponse(status_code=401), AsyncMock())

    assert result.get_header("Location") == LOGIN_URL


# --- custom configuration ---

@pytest.mark.asyncio
async def test_custom_status_codes_and_key(target_request):
    data = {}
    config = RedirectConfig(
        login_url="/signin",
        requested_page_key="next_page",
        auth_required_status_code=403,
        authorized_status_code=205,
    )
    coordinator = RedirectCoordinator(MappingSessionSlot(data), config)

    first = await coordinator.handle(target_request, PipelineResponse(status_code=403), AsyncMock())
    assert first.get_header("Location") == "/signin"
    assert data == {"next_page": TARGET_URL}

    # 401 is an ordinary status under this configuration
    passed = await coordinator.handle(target_request, PipelineResponse(), returning(401))
    assert passed.get_header("Location") is None

    done = await coordinator.handle(target_request, PipelineResponse(), returning(205))
    assert done.get_header("Location") == TARGET_URL
    assert data == {}


@pytest.mark.asyncio
async def test_relative_request_uri_falls_back_to_root():
    coordinator = RedirectCoordinator(MappingSessionSlot({}), RedirectConfig(login_url="/login"))
    request = PipelineRequest(uri=Uri("/login", root_path="/portal"), method="POST")

    result = await coordinator.handle(request, PipelineResponse(), returning(204))

    assert result.get_header("Location") == "/portal/"


# --- logging ---

def test_null_logger_is_default(session, redirect_config):
    coordinator = RedirectCoordinator(session, redirect_config)
    assert isinstance(coordinator._logger, NullLogger)
    assert coordinator.config is redirect_config


@pytest.mark.asyncio
async def test_capture_is_logged(session, redirect_config, target_request):
    logger = MagicMock()
    coordinator = RedirectCoordinator(session, redirect_config, logger=logger)

    await coordinator.handle(target_request, PipelineResponse(status_code=401), AsyncMock())

    assert logger.info.call_args_list == [
        call("Before Route: Found status code", status=401),
        call("Before Route: Store startpage in session", url=TARGET_URL),
        call("Before Route: Redirect user to login page", url=LOGIN_URL, outcome="short_circuited"),
    ]
    logger.debug.assert_not_called()


@pytest.mark.asyncio
async def test_empty_uri_is_logged_but_still_stored(redirect_config):
    logger = MagicMock()
    session = MagicMock()
    session.get.return_value = None
    coordinator = RedirectCoordinator(session, redirect_config, logger=logger)

    await coordinator.handle(PipelineRequest(uri=Uri("")), PipelineResponse(status_code=401), AsyncMock())

    logger.info.assert_any_call("Before Route: Store startpage in session", url="(none?!)")
    session.set.assert_called_once_with(KEY, "")


@pytest.mark.asyncio
async def test_pass_through_logs_at_debug(session, redirect_config, target_request, ok_response):
    logger = MagicMock()
    coordinator = RedirectCoordinator(session, redirect_config, logger=logger)

    await coordinator.handle(target_request, ok_response, returning(200))

    assert logger.debug.call_args_list == [
        call("Before Route: noop"),
        call("After Route: noop", outcome="pass_through"),
    ]


# --- error propagation ---

@pytest.mark.asyncio
async def test_next_failure_propagates_unchanged(coordinator, session_data, target_request, ok_response):
    error = RuntimeError("route exploded")
    call_next = AsyncMock(side_effect=error)

    with pytest.raises(RuntimeError) as exc_info:
        await coordinator.handle(target_request, ok_response, call_next)

    assert exc_info.value is error
    assert session_data == {}


@pytest.mark.asyncio
async def test_session_failure_propagates(redirect_config, target_request):
    session = MagicMock()
    session.get.side_effect = KeyError("session store offline")
    coordinator = RedirectCoordinator(session, redirect_config)

    with pytest.raises(KeyError):
        await coordinator.handle(target_request, PipelineResponse(status_code=401), AsyncMock())
