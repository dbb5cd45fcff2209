import html
import logging
from contextlib import asynccontextmanager
from typing import Optional
from urllib.parse import urlsplit

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import HTMLResponse, JSONResponse, Response
from pydantic import BaseModel
from starlette.middleware.sessions import SessionMiddleware

from core.config import Settings
from core.redirect import RedirectConfig
from version import VERSION
from web_admin.middlewares.auth_gate_middleware import AuthGateMiddleware
from web_admin.middlewares.login_redirect_middleware import LoginRedirectMiddleware, require_session
from web_admin.middlewares.trace_middleware import TraceMiddleware

# 设置日志
logger = logging.getLogger(__name__)

SESSION_USER_KEY = "user"


class LoginPayload(BaseModel):
    username: str
    password: str


def _page(title: str, body: str) -> HTMLResponse:
    return HTMLResponse(f"<!DOCTYPE html><html><head><title>{html.escape(title)}</title></head><body>{body}</body></html>")


def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    创建 FastAPI 应用

    中间件顺序（外层在前）：Trace -> Session -> AuthGate -> LoginRedirect。
    注意：最后添加的中间件最先执行。
    """
    if app_settings is None:
        from core.config import settings as app_settings

    # 配置错误在启动时暴露，而不是在第一个请求时
    redirect_config = RedirectConfig.from_settings(app_settings)

    # 登录页挂在 LOGIN_URL 的路径上，并对匿名访客开放
    login_path = urlsplit(redirect_config.login_url).path or "/login"
    public_paths = list(app_settings.PUBLIC_PATHS)
    if login_path not in public_paths:
        public_paths.append(login_path)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Web Admin API 已启动, 登录页={redirect_config.login_url}")
        try:
            yield
        finally:
            logger.info("Web Admin API 已关闭")

    app = FastAPI(
        title="Startpage Redirect",
        version=VERSION,
        lifespan=lifespan,
        docs_url="/docs" if app_settings.DEBUG else None,
        redoc_url=None,
    )

    app.add_middleware(LoginRedirectMiddleware, config=redirect_config)
    app.add_middleware(
        AuthGateMiddleware,
        public_paths=public_paths,
        user_key=SESSION_USER_KEY,
        status_code=redirect_config.auth_required_status_code,
    )
    app.add_middleware(
        SessionMiddleware,
        secret_key=app_settings.session_secret,
        session_cookie=app_settings.SESSION_COOKIE_NAME,
        max_age=app_settings.SESSION_MAX_AGE,
        https_only=app_settings.COOKIE_SECURE,
        same_site="lax",
    )
    app.add_middleware(TraceMiddleware)

    authorized_status = redirect_config.authorized_status_code

    @app.get("/", response_class=HTMLResponse)
    async def start_page(request: Request):
        user = require_session(request).get(SESSION_USER_KEY)
        name = user["name"] if user else "guest"
        return _page("Start", f"<h1>Welcome, {html.escape(name)}</h1>")

    @app.get(login_path, response_class=HTMLResponse)
    async def login_page(request: Request):
        return _page("Login", f"<h1>Login</h1><p>POST JSON {{username, password}} to {html.escape(login_path)}</p>")

    @app.post(login_path)
    async def login(request: Request, payload: LoginPayload):
        """登录成功时返回 authorized 状态码，由 LoginRedirectMiddleware 决定跳转目标"""
        if not payload.username or not payload.password:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="username and password are required")
        require_session(request)[SESSION_USER_KEY] = {
            "name": payload.username,
            "is_admin": payload.username == "admin",
        }
        logger.info(f"用户登录成功: {payload.username}")
        return Response(status_code=authorized_status)

    @app.post("/logout")
    async def logout(request: Request):
        require_session(request).pop(SESSION_USER_KEY, None)
        return JSONResponse({"detail": "logged out"})

    @app.get("/account/{page}", response_class=HTMLResponse)
    async def account_page(request: Request, page: str):
        user = require_session(request)[SESSION_USER_KEY]
        return _page(page, f"<h1>{html.escape(page)}</h1><p>{html.escape(user['name'])}</p>")

    @app.get("/admin", response_class=HTMLResponse)
    async def admin_page(request: Request):
        user = require_session(request)[SESSION_USER_KEY]
        if not user.get("is_admin"):
            # 已登录但权限不足：由路由本身判定需要重新登录
            raise HTTPException(status_code=redirect_config.auth_required_status_code, detail="Admin login required")
        return _page("Admin", "<h1>Admin</h1>")

    return app
