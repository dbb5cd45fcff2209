"""
登录后回跳中间件 (Startpage Redirect)

Remembers the page a visitor asked for when the pipeline decided that a login
is required, and sends the visitor back there once the login handler reports
success.

Before route:
    Incoming response marked "auth required" (401): store the requested URL in
    the session (first one wins) and answer with ``Location: <login url>``
    without calling the rest of the pipeline.

After route:
    Response marked "auth required" (401): ``Location: <login url>``.
    Response marked "authorized" (204): ``Location: <stored url>`` (or the
    base URL), and the stored URL is cleared.
    Anything else passes through untouched.
"""
import enum
import inspect
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, Union

from core.config import DEFAULT_REQUESTED_PAGE_KEY
from core.exceptions import ConfigurationError
from core.http import PipelineRequest, PipelineResponse
from core.session_slot import SessionSlot

NextHandler = Callable[
    [PipelineRequest, PipelineResponse],
    Union[PipelineResponse, Awaitable[PipelineResponse]],
]


class RedirectLogger(Protocol):
    def info(self, event: str, **context: Any) -> Any: ...

    def debug(self, event: str, **context: Any) -> Any: ...


class NullLogger:
    """Discards everything. Selected when no logger is supplied."""

    def info(self, event: str, **context: Any) -> None:
        pass

    def debug(self, event: str, **context: Any) -> None:
        pass


class StatusKind(enum.Enum):
    NEEDS_AUTH = "needs_auth"
    JUST_AUTHORIZED = "just_authorized"
    OTHER = "other"


class Outcome(enum.Enum):
    SHORT_CIRCUITED = "short_circuited"
    REDIRECTED_TO_LOGIN = "redirected_to_login"
    REDIRECTED_TO_START = "redirected_to_start"
    PASS_THROUGH = "pass_through"


@dataclass(frozen=True)
class RedirectConfig:
    login_url: str
    requested_page_key: str = DEFAULT_REQUESTED_PAGE_KEY
    auth_required_status_code: int = 401
    authorized_status_code: int = 204

    def __post_init__(self) -> None:
        if not self.login_url:
            raise ConfigurationError("login_url must not be empty")
        if not self.requested_page_key:
            raise ConfigurationError("requested_page_key must not be empty")
        for name in ("auth_required_status_code", "authorized_status_code"):
            code = getattr(self, name)
            if isinstance(code, bool) or not isinstance(code, int) or not 100 <= code <= 599:
                raise ConfigurationError(f"{name} is not an HTTP status code", {name: code})
        if self.auth_required_status_code == self.authorized_status_code:
            raise ConfigurationError(
                "auth_required_status_code and authorized_status_code must differ",
                {"status_code": self.authorized_status_code},
            )

    @classmethod
    def from_settings(cls, app_settings) -> "RedirectConfig":
        return cls(
            login_url=app_settings.LOGIN_URL,
            requested_page_key=app_settings.REQUESTED_PAGE_SESSION_KEY,
            auth_required_status_code=app_settings.AUTH_REQUIRED_STATUS_CODE,
            authorized_status_code=app_settings.AUTHORIZED_STATUS_CODE,
        )

    def classify(self, status_code: int) -> StatusKind:
        if status_code == self.auth_required_status_code:
            return StatusKind.NEEDS_AUTH
        if status_code == self.authorized_status_code:
            return StatusKind.JUST_AUTHORIZED
        return StatusKind.OTHER


class RedirectCoordinator:
    def __init__(
        self,
        session: SessionSlot,
        config: RedirectConfig,
        logger: Optional[RedirectLogger] = None,
    ):
        self._session = session
        self._config = config
        self._logger = logger if logger is not None else NullLogger()

    @classmethod
    def from_settings(cls, session: SessionSlot, app_settings=None, logger: Optional[RedirectLogger] = None) -> "RedirectCoordinator":
        if app_settings is None:
            from core.config import settings as app_settings
        return cls(session, RedirectConfig.from_settings(app_settings), logger=logger)

    @property
    def config(self) -> RedirectConfig:
        return self._config

    @property
    def session(self) -> SessionSlot:
        return self._session

    async def handle(
        self,
        request: PipelineRequest,
        response: PipelineResponse,
        call_next: NextHandler,
    ) -> PipelineResponse:
        config = self._config
        key = config.requested_page_key

        # 1. Before route: a login is required before anything else runs
        status = response.status_code
        self._logger.info("Before Route: Found status code", status=status)

        kind = config.classify(status)
        if kind is StatusKind.NEEDS_AUTH:
            startpage = self._session.get(key)
            if startpage:
                self._logger.info("Before Route: Found startpage in session", url=startpage)
            else:
                uri = str(request.uri)
                self._logger.info("Before Route: Store startpage in session", url=uri or "(none?!)")
                self._session.set(key, uri)

            self._logger.info(
                "Before Route: Redirect user to login page",
                url=config.login_url,
                outcome=Outcome.SHORT_CIRCUITED.value,
            )
            return response.with_header("Location", config.login_url)

        self._logger.debug("Before Route: noop")

        # 2. Call next middleware
        response = call_next(request, response)
        if inspect.isawaitable(response):
            response = await response

        # 3. After route
        status = response.status_code
        self._logger.info("After Route: Found status code", status=status)

        kind = config.classify(status)
        if kind is StatusKind.NEEDS_AUTH:
            self._logger.info(
                "After Route: Redirect user to login page",
                url=config.login_url,
                outcome=Outcome.REDIRECTED_TO_LOGIN.value,
            )
            return response.with_header("Location", config.login_url)

        if kind is StatusKind.JUST_AUTHORIZED:
            default_start_url = request.uri.base_url
            start_url = self._session.get(key, default_start_url) or default_start_url

            # Never send a freshly authorized visitor back to the login page
            if start_url == config.login_url:
                start_url = default_start_url

            self._session.set(key, None)
            self._logger.info(
                "After Route: Redirect to startpage",
                url=start_url,
                outcome=Outcome.REDIRECTED_TO_START.value,
            )
            return response.with_header("Location", start_url)

        self._logger.debug("After Route: noop", outcome=Outcome.PASS_THROUGH.value)
        return response

    __call__ = handle
