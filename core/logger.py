from __future__ import annotations

import sys
import logging
import warnings
from enum import Enum, IntEnum
from types import FrameType
from typing import cast
from itertools import chain

import loguru
from loguru import logger

from config.default import ENVIRONMENT, EnvironmentEnum


class LogLevelEnum(IntEnum):
    """日志级别"""

    CRITICAL = logging.CRITICAL
    ERROR = logging.ERROR
    WARNING = logging.WARNING
    INFO = logging.INFO
    DEBUG = logging.DEBUG
    NOTSET = logging.NOTSET


class LoggerNameEnum(str, Enum):
    root = "root"
    httpx = "httpx"
    httpcore = "httpcore"
    openai = "openai"
    anthropic = "anthropic"
    botocore = "botocore"
    aiobotocore = "aiobotocore"


# 连接级别的调试日志过于嘈杂
IgnoredLoggerNames = [
    LoggerNameEnum.httpcore.value,
]


class InterceptHandler(logging.Handler):
    """Logs to loguru from Python logging module"""

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.split(".")[0] in IgnoredLoggerNames:
            return
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:  # noqa: WPS609
            frame = cast(FrameType, frame.f_back)
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level,
            record.getMessage(),
        )


def setup_loguru_logging_intercept(
    level: int | str = logging.DEBUG,
    modules: tuple = (),
) -> None:
    logging.basicConfig(handlers=[InterceptHandler()], level=level)  # noqa
    for logger_name in chain(("",), modules):
        mod_logger = logging.getLogger(logger_name)
        mod_logger.handlers = [InterceptHandler(level=level)]
        mod_logger.setLevel(level)
        mod_logger.propagate = False


def edit_record_and_gen_format(record: loguru.Record) -> str:
    extra = record.get("extra") or {}
    if record["level"].no <= 10:
        # debug
        level_color = "white"
    elif record["level"].no <= 20:
        # info
        level_color = "blue"
    elif record["level"].no <= 30:
        # warning
        level_color = "yellow"
    elif record["level"].no <= 40:
        # error
        level_color = "red"
    else:
        # other
        level_color = "magenta"
    if ENVIRONMENT in [EnvironmentEnum.local.value]:
        format_s = (
            "<green>[{time:YYYY-MM-DD HH:mm:ss}]</green> | "
            + f"<{level_color}>"
            + "<bold>[{level}]</bold>"
            + f"</{level_color}>"
            + " | <fg 0,75,0><underline>{name}:{line}</underline> >> {function}</fg 0,75,0> | <cyan>{message}</cyan>"
        )
    else:
        format_s = "[{time:YYYY-MM-DD HH:mm:ss}] | [{level}] | {name}:{line} >> {function} | {message}"

    if extra:
        format_s += " | {extra}"

    return format_s + "\n{exception}"


def setup_loguru(
    level: LogLevelEnum | str = LogLevelEnum.INFO,
) -> None:
    """配置 loguru 输出并接管标准库 logging

    Args:
        level: 日志级别，支持 LogLevelEnum 或级别名称
    """
    if isinstance(level, str):
        level = LogLevelEnum[level.upper()]

    logger.remove()
    logger.add(
        sink=sys.stderr,  # type: ignore
        format=edit_record_and_gen_format,
        level=int(level),
        serialize=False,
        backtrace=True,
        diagnose=ENVIRONMENT != EnvironmentEnum.production.value,
        colorize=None,
    )

    # provider SDK 使用标准库 logging
    setup_loguru_logging_intercept(
        level=logging.getLevelName(int(level)),
        modules=tuple(name.value for name in LoggerNameEnum if name is not LoggerNameEnum.root),
    )

    # capture warning
    logging.captureWarnings(True)
    showwarning_ = warnings.showwarning

    def showwarning(message, *args, **kwargs):
        logger.warning(message)
        showwarning_(message, *args, **kwargs)

    warnings.showwarning = showwarning


__all__ = [
    "LogLevelEnum",
    "LoggerNameEnum",
    "InterceptHandler",
    "setup_loguru",
]
