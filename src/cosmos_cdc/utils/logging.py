"""
日志配置模块 - 使用 structlog 输出结构化日志

同步任务通常由调度器在容器中运行，生产环境建议 JSON 输出；
本地调试使用控制台渲染。
"""

import logging
import sys
from contextlib import contextmanager
from typing import Any, Iterator, List

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

# 这些 SDK 在 INFO 级别会逐条输出 HTTP 请求
_NOISY_LOGGERS = (
    "azure",
    "azure.core.pipeline.policies.http_logging_policy",
    "azure.identity",
    "snowflake.connector",
    "urllib3",
)


def _sync_error_fields(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """
    展开 exc_info 中的异常

    同步错误的 entity/phase 作为独立字段输出，底层原因附在异常文本后。
    """
    exc_info = event_dict.pop("exc_info", None)
    if not isinstance(exc_info, BaseException):
        if exc_info:
            event_dict["exc_info"] = exc_info
        return event_dict

    for field in ("entity", "phase"):
        value = getattr(exc_info, field, None)
        if value and field not in event_dict:
            event_dict[field] = value

    text = f"{type(exc_info).__name__}: {exc_info}"
    cause = exc_info.__cause__
    if cause is not None and cause is not getattr(exc_info, "cause", None):
        text += f" <- {type(cause).__name__}: {cause}"
    event_dict["exception"] = text
    return event_dict


def _processors(json_format: bool) -> List[Processor]:
    shared: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _sync_error_fields,
    ]
    if json_format:
        return shared + [
            structlog.stdlib.add_logger_name,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(ensure_ascii=False),
        ]
    return shared + [
        structlog.dev.ConsoleRenderer(
            colors=sys.stdout.isatty(),
            sort_keys=False,
            pad_level=False,
        ),
    ]


def configure_logging(
    log_level: str = "INFO",
    json_format: bool = False,
) -> None:
    """
    配置结构化日志

    可重复调用：CLI 先按命令行参数配置，读取配置文件后再按 log_level 调整。

    参数:
        log_level: 日志级别 (DEBUG, INFO, WARNING, ERROR)
        json_format: 是否使用 JSON 格式输出
    """
    level = getattr(logging, log_level.upper())
    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    structlog.configure(
        processors=_processors(json_format),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str | None = None) -> Any:
    """
    获取结构化日志记录器

    示例:
        >>> logger = get_logger(__name__)
        >>> logger.info("batch_fetched", count=3, last=1700000103)
        2024-01-01T10:30:00Z [info] batch_fetched count=3 last=1700000103
    """
    return structlog.get_logger(name)


@contextmanager
def log_context(**kwargs: Any) -> Iterator[None]:
    """
    在 with 块内为所有日志附加上下文字段，退出时恢复

    示例:
        >>> with log_context(entity="Organization"):
        ...     logger.info("merge_committed")  # 自动包含 entity
    """
    with structlog.contextvars.bound_contextvars(**kwargs):
        yield
