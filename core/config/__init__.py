from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Optional, List, Any, Union
from pathlib import Path

import logging
import secrets

# 设置日志
logger = logging.getLogger(__name__)

DEFAULT_REQUESTED_PAGE_KEY = "RequestedPageBeforeLogin"


class Settings(BaseSettings):
    """应用配置类，使用Pydantic v2实现类型安全的配置管理"""

    # === 基础配置 ===
    APP_ENV: str = Field(
        default="development",
        description="应用环境: development, testing, production"
    )
    DEBUG: bool = Field(
        default=False,
        description="是否启用调试模式"
    )

    # === 登录跳转配置 ===
    LOGIN_URL: str = Field(
        default="/login",
        description="登录页地址（绝对或相对）"
    )
    REQUESTED_PAGE_SESSION_KEY: str = Field(
        default=DEFAULT_REQUESTED_PAGE_KEY,
        description="会话中保存原始请求页面的键名"
    )
    AUTH_REQUIRED_STATUS_CODE: int = Field(
        default=401,
        description="表示需要登录的状态码"
    )
    AUTHORIZED_STATUS_CODE: int = Field(
        default=204,
        description="表示刚刚登录成功的状态码"
    )

    # === 会话配置 ===
    SESSION_SECRET_KEY: Optional[str] = Field(
        default=None,
        description="会话 Cookie 签名密钥，未设置时每个进程随机生成"
    )
    SESSION_COOKIE_NAME: str = Field(default="session")
    SESSION_MAX_AGE: int = Field(default=14 * 24 * 60 * 60)
    COOKIE_SECURE: bool = Field(default=False)
    PUBLIC_PATHS: Union[List[str], str] = Field(
        default=["/", "/login", "/logout", "/static", "/favicon.ico"],
        description="无需登录即可访问的路径前缀"
    )

    # === Web 服务 ===
    WEB_HOST: str = Field(default="127.0.0.1")
    WEB_PORT: int = Field(default=8080)

    # === 日志配置 ===
    LOG_LEVEL: str = Field(
        default="INFO",
        description="日志级别: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )
    LOG_FORMAT: str = Field(default="text")
    LOG_INCLUDE_TRACEBACK: bool = Field(default=False)
    LOG_COLOR: bool = Field(default=True)
    LOG_DIR: Optional[Path] = Field(
        default=None,
        description="日志文件存储目录，为空时只输出到控制台"
    )
    LOG_MAX_BYTES: int = Field(default=10 * 1024 * 1024)
    LOG_BACKUP_COUNT: int = Field(default=5)
    LOG_LEVEL_OVERRIDES: str = Field(default="")

    _generated_secret: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
        frozen=False,
        title="应用配置",
        json_schema_extra={
            "example": {
                "APP_ENV": "development",
                "LOGIN_URL": "/login",
                "LOG_LEVEL": "INFO"
            }
        }
    )

    @field_validator("PUBLIC_PATHS", mode="before")
    @classmethod
    def parse_list_fields(cls, v: Any) -> List[Any]:
        if isinstance(v, str):
            import json
            try:
                # 尝试 JSON 解析
                return list(json.loads(v))
            except json.JSONDecodeError:
                # 逗号分隔回退
                return [t.strip() for t in v.split(",") if t.strip()]
        return list(v)

    @field_validator("AUTH_REQUIRED_STATUS_CODE", "AUTHORIZED_STATUS_CODE")
    @classmethod
    def check_status_code(cls, v: int) -> int:
        if not 100 <= v <= 599:
            raise ValueError(f"HTTP status code out of range: {v}")
        return v

    @property
    def session_secret(self) -> str:
        """签名密钥；未配置时生成一次并缓存在实例上"""
        if not self.SESSION_SECRET_KEY:
            self.SESSION_SECRET_KEY = secrets.token_urlsafe(32)
            self._generated_secret = True
        return self.SESSION_SECRET_KEY

    def validate_required(self) -> None:
        """验证极其重要的配置项，若缺失则系统无法安全运行"""
        missing = []
        if not self.SESSION_SECRET_KEY or self._generated_secret:
            missing.append("SESSION_SECRET_KEY")
        if not self.LOGIN_URL:
            missing.append("LOGIN_URL")

        if missing:
            logger.error(
                f"缺少核心环境变量: {', '.join(missing)}。请在 .env 中配置后重新启动。"
            )
            if self.APP_ENV == "production":
                raise SystemExit(1)
            else:
                logger.warning("当前非生产环境，尝试降级启动...")


# 单例模式获取配置 - 使用lru_cache确保全局只有一个实例
@lru_cache()
def get_settings() -> Settings:
    """获取配置实例，使用lru_cache实现单例模式"""
    return Settings()

# 全局配置实例，方便直接导入使用
settings = get_settings()
