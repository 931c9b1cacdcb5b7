"""
日志配置

标准库 logging 负责输出，structlog 负责结构化字段；
log_json=True 时输出 JSON（生产环境），否则输出便于阅读的控制台格式。
"""

import logging
import sys
from typing import Any, Optional

import structlog

from backoffice.config import Settings, get_settings


def setup_stdlib_logging(log_level: str) -> None:
    """配置标准库 logging"""
    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    root_logger.addHandler(console_handler)

    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)


def setup_structlog(json_output: bool) -> None:
    """配置 structlog 处理链"""
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_output:
        processors.append(structlog.processors.format_exc_info)
        processors.append(structlog.processors.JSONRenderer(ensure_ascii=False))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def configure_logging(settings: Optional[Settings] = None) -> None:
    """应用启动时调用一次"""
    settings = settings or get_settings()
    setup_stdlib_logging(settings.log_level.upper())
    setup_structlog(settings.log_json)


def add_context(**kwargs: Any) -> None:
    """绑定上下文字段，之后同一请求 / 任务内的日志都会带上"""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
