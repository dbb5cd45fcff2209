"""
测试全局 conftest.py
"""
import sys
import os

# 确保项目根目录在 sys.path 最前面
_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

os.environ["APP_ENV"] = "testing"

import pytest

from core.config import Settings
from core.http import PipelineRequest, PipelineResponse
from core.redirect import RedirectConfig, RedirectCoordinator
from core.session_slot import MappingSessionSlot

LOGIN_URL = "https://example.com/login"
TARGET_URL = "https://example.com/app/orders?id=7"
BASE_URL = "https://example.com/"


@pytest.fixture
def test_settings():
    """独立的配置实例，不读取 .env"""
    return Settings(
        _env_file=None,
        APP_ENV="testing",
        SESSION_SECRET_KEY="test_session_secret",
        LOGIN_URL="/login",
        LOG_COLOR=False,
    )


@pytest.fixture
def session_data():
    return {}


@pytest.fixture
def session(session_data):
    return MappingSessionSlot(session_data)


@pytest.fixture
def redirect_config():
    return RedirectConfig(login_url=LOGIN_URL)


@pytest.fixture
def coordinator(session, redirect_config):
    return RedirectCoordinator(session, redirect_config)


@pytest.fixture
def target_request():
    return PipelineRequest.from_url(TARGET_URL)


@pytest.fixture
def ok_response():
    return PipelineResponse(status_code=200)


@pytest.fixture
def app(test_settings):
    from web_admin.fastapi_app import create_app
    return create_app(test_settings)


@pytest.fixture
async def client(app):
    """
    HTTP 客户端 fixture
    Cookie 在同一个客户端的请求之间保留，模拟同一个访客
    """
    from httpx import AsyncClient, ASGITransport

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c

