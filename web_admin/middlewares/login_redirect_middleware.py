from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response
from fastapi import Request

from core.exceptions import SessionUnavailableError
from core.http import PipelineRequest, PipelineResponse, Uri
from core.logging import get_logger
from core.pipeline import Pipeline
from core.redirect import RedirectConfig, RedirectCoordinator, RedirectLogger
from core.session_slot import MappingSessionSlot

DEFAULT_STATUS = 200


def require_session(request: Request):
    """request.session, or SessionUnavailableError when SessionMiddleware is not installed outside us."""
    if "session" not in request.scope:
        raise SessionUnavailableError(
            "SessionMiddleware must be installed outside the login redirect middlewares",
            {"path": request.url.path},
        )
    return request.session


def to_pipeline_request(request: Request) -> PipelineRequest:
    return PipelineRequest(
        uri=Uri(str(request.url), root_path=request.scope.get("root_path", "")),
        method=request.method,
        headers=request.headers,
    )


class LoginRedirectMiddleware(BaseHTTPMiddleware):
    """
    Runs RedirectCoordinator for every request.

    The status seen before routing comes from ``request.state.auth_status``
    (set by AuthGateMiddleware or any other outer middleware); without a mark
    the request counts as 200 and goes straight to the route.
    """

    def __init__(
        self,
        app,
        config: Optional[RedirectConfig] = None,
        logger: Optional[RedirectLogger] = None,
        app_settings=None,
    ):
        super().__init__(app)
        if config is None:
            if app_settings is None:
                from core.config import settings as app_settings
            config = RedirectConfig.from_settings(app_settings)
        self.config = config
        self.logger = logger if logger is not None else get_logger(__name__)

    async def dispatch(self, request: Request, call_next):
        coordinator = RedirectCoordinator(
            MappingSessionSlot(require_session(request)), self.config, logger=self.logger
        )
        initial = PipelineResponse(status_code=getattr(request.state, "auth_status", DEFAULT_STATUS))

        downstream: dict = {}

        async def _call_next(pipeline_request: PipelineRequest, pipeline_response: PipelineResponse) -> PipelineResponse:
            response = await call_next(request)
            downstream["response"] = response
            return PipelineResponse(status_code=response.status_code, headers=response.headers)

        result = await Pipeline().add(coordinator).execute(to_pipeline_request(request), initial, _call_next)

        response = downstream.get("response")
        if response is None:
            # Short-circuited before routing
            return Response(status_code=result.status_code, headers=result.headers)

        location = result.get_header("Location")
        if location is not None and response.headers.get("location") != location:
            response.headers["Location"] = location
        return response
