"""
统一日志模块 (Core Logging)
标准 logging 负责输出（控制台 / 滚动文件），structlog 负责结构化上下文
"""

import json
import logging
import re
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

import structlog
from dotenv import find_dotenv, load_dotenv

from core.context import trace_id_var

# Simple redaction keywords
_REDACT_KEYS = {"token", "password", "secret", "cookie", "authorization"}

_COMPILED_PATTERNS = []
for _k in _REDACT_KEYS:
    _e = re.escape(_k)
    _COMPILED_PATTERNS.extend(
        [
            (re.compile(rf"({_e}\s*=\s*)([^\s;,]+)", re.IGNORECASE), r"\1***"),
            (re.compile(rf'("{_e}"\s*:\s*")(.*?)(")', re.IGNORECASE), r"\1***\3"),
            (re.compile(rf"('{_e}'\s*:\s*')(.*?)(')", re.IGNORECASE), r"\1***\3"),
        ]
    )


def _redact(text: str) -> str:
    if not text:
        return text
    masked = text
    for _p, _r in _COMPILED_PATTERNS:
        masked = _p.sub(_r, masked)
    return masked


class JsonFormatter(logging.Formatter):
    """JSON 格式化器"""

    def __init__(
        self, include_traceback: bool = True, datefmt: str = None
    ) -> None:
        super().__init__(datefmt=datefmt)
        self.include_traceback = include_traceback
        self.datefmt = datefmt or "%Y-%m-%dT%H:%M:%S%z"

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": _redact(record.getMessage()),
            "trace_id": getattr(record, "trace_id", "-"),
            "func_name": record.funcName,
            "lineno": record.lineno,
        }

        if record.exc_info and self.include_traceback:
            payload["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(payload, ensure_ascii=False, default=str)


class ColorTextFormatter(logging.Formatter):
    """标准彩色文本格式化器"""

    _COLORS = {
        "DEBUG": "\x1b[90m",  # 灰
        "INFO": "\x1b[32m",  # 绿
        "WARNING": "\x1b[33m",  # 黄
        "ERROR": "\x1b[31m",  # 红
        "CRITICAL": "\x1b[35m",  # 品红
    }
    _RESET = "\x1b[0m"

    def __init__(
        self, use_color: bool = True, datefmt: str | None = None
    ) -> None:
        fmt = "%(asctime)s [%(trace_id)s][%(levelname)s][%(name)s] %(message)s"
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        record.msg = _redact(str(record.msg))
        out = super().format(record)
        if not self.use_color:
            return out
        color = self._COLORS.get(record.levelname)
        return f"{color}{out}{self._RESET}" if color else out


class _ContextFilter(logging.Filter):
    """Inject trace_id from the current context into every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "trace_id", None) in (None, "-"):
            record.trace_id = trace_id_var.get()
        return True


def configure_structlog() -> None:
    """配置 structlog 以对接标准 logging 系统"""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.KeyValueRenderer(
                key_order=["event"], drop_missing=True
            ),
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _apply_level_overrides(overrides: str) -> None:
    for item in overrides.split(","):
        item = item.strip()
        if not item or "=" not in item:
            continue
        name, lvl = item.split("=", 1)
        name = name.strip()
        if name:
            logging.getLogger(name).setLevel(getattr(logging, lvl.strip().upper(), logging.WARNING))


def setup_logging(app_settings=None) -> logging.Logger:
    """配置日志系统，包括滚动归档"""
    load_dotenv(find_dotenv(usecwd=True))

    if app_settings is None:
        from core.config import settings as app_settings

    configure_structlog()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, app_settings.LOG_LEVEL.upper(), logging.INFO))

    log_format = app_settings.LOG_FORMAT.lower()
    include_tb = app_settings.LOG_INCLUDE_TRACEBACK

    # 移除现有处理器
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    # Console Handler
    console_handler = logging.StreamHandler()
    if log_format == "json":
        formatter = JsonFormatter(include_traceback=include_tb)
    else:
        formatter = ColorTextFormatter(use_color=app_settings.LOG_COLOR)
    console_handler.setFormatter(formatter)
    console_handler.addFilter(_ContextFilter())
    root_logger.addHandler(console_handler)

    # File Handler (Rolling)
    if app_settings.LOG_DIR:
        log_dir = Path(app_settings.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            filename=str(log_dir / "app.log"),
            maxBytes=app_settings.LOG_MAX_BYTES,
            backupCount=app_settings.LOG_BACKUP_COUNT,
            encoding="utf-8",
        )
        if log_format == "json":
            file_formatter = JsonFormatter(include_traceback=include_tb)
        else:
            file_formatter = ColorTextFormatter(use_color=False)
        file_handler.setFormatter(file_formatter)
        file_handler.addFilter(_ContextFilter())
        root_logger.addHandler(file_handler)

    # Logger Overrides
    _apply_level_overrides(app_settings.LOG_LEVEL_OVERRIDES)

    get_logger(__name__).info(
        "Log system initialized",
        level=logging.getLevelName(root_logger.level),
        format=log_format,
        log_dir=str(app_settings.LOG_DIR or ""),
    )
    return root_logger


def get_logger(name: Optional[str] = None, **initial_values: Any):
    """structlog bound logger；info/debug 支持关键字上下文"""
    return structlog.get_logger(name or "root", **initial_values)

