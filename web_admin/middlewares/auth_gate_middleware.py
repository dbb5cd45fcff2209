from starlette.middleware.base import BaseHTTPMiddleware
from fastapi import Request
import logging

from web_admin.middlewares.login_redirect_middleware import require_session

logger = logging.getLogger(__name__)


class AuthGateMiddleware(BaseHTTPMiddleware):
    """
    Marks requests that need a login before routing.

    A request to a non-public path without a user in the session gets
    ``request.state.auth_status`` set to the "auth required" status code.
    The gate never answers by itself: LoginRedirectMiddleware (installed
    inside it) reads the mark and short-circuits the request.
    """

    def __init__(self, app, public_paths: list = None, user_key: str = "user", status_code: int = None, app_settings=None):
        super().__init__(app)
        if app_settings is None:
            from core.config import settings as app_settings
        self.public_paths = list(public_paths if public_paths is not None else app_settings.PUBLIC_PATHS)
        self.user_key = user_key
        self.status_code = status_code or app_settings.AUTH_REQUIRED_STATUS_CODE

    def is_public(self, path: str) -> bool:
        for public in self.public_paths:
            # "/" only covers the start page itself, not every path below it
            if public == "/":
                if path == "/":
                    return True
                continue
            prefix = public.rstrip("/")
            if path == prefix or path.startswith(prefix + "/"):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if not self.is_public(path) and not require_session(request).get(self.user_key):
            logger.info(f"Auth gate: login required for {request.method} {path}")
            request.state.auth_status = self.status_code

        return await call_next(request)
