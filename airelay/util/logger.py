"""Process-wide ``airelay`` logger: stderr plus an optional rotating file."""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path

from airelay.config.settings import settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"
LOG_FILENAME = "airelay.log"
MAX_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 5
# httpx/httpcore 在 INFO 下每个上游请求都会打一行
_CHATTY_LIBRARIES = ("httpx", "httpcore")


def _level_from(raw: str) -> int:
    level = logging.getLevelName(str(raw or "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def _file_handler(log_dir: str, formatter: logging.Formatter) -> logging.Handler | None:
    if not log_dir.strip():
        return None
    try:
        directory = Path(log_dir)
        directory.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(
            directory / LOG_FILENAME,
            maxBytes=MAX_BYTES,
            backupCount=BACKUP_COUNT,
            encoding="utf-8",
        )
    except OSError:
        # 只读文件系统或挂载目录无写权限
        return None
    handler.setFormatter(formatter)
    return handler


def _build_logger() -> logging.Logger:
    relay_logger = logging.getLogger("airelay")
    if relay_logger.handlers:
        return relay_logger

    level = _level_from(settings.log_level)
    relay_logger.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    stream_handler = logging.StreamHandler()
    stream_handler.setFormatter(formatter)
    relay_logger.addHandler(stream_handler)

    file_handler = _file_handler(settings.log_dir, formatter)
    if file_handler is not None:
        relay_logger.addHandler(file_handler)

    if level > logging.DEBUG:
        for name in _CHATTY_LIBRARIES:
            logging.getLogger(name).setLevel(logging.WARNING)

    relay_logger.propagate = False
    return relay_logger


logger = _build_logger()
