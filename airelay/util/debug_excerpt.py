"""
调试用文本摘要：记录用户消息、模型回复、上游错误体时统一截断。
仅在 LOG_LEVEL=debug 时由调用方打 DEBUG 日志；本模块只提供截断与格式化。
"""

from __future__ import annotations

import logging

from airelay.util.logger import logger

DEFAULT_EXCERPT_MAX_LEN = 300


def excerpt_for_debug(text: str, max_len: int = DEFAULT_EXCERPT_MAX_LEN) -> str:
    """Return a single-line, length-capped excerpt of ``text``."""
    if not text:
        return ""
    s = " ".join(str(text).split())
    if len(s) <= max_len:
        return s
    return f"{s[:max_len]} ... [truncated, total {len(s)} chars]"


def debug_log_text(
    label: str,
    text: str,
    *,
    request_id: str = "-",
    max_len: int = DEFAULT_EXCERPT_MAX_LEN,
) -> None:
    """
    仅当 DEBUG 开启时打一条文本摘要日志。
    label: 如 "chat_message", "chat_reply", "speech_input"
    """
    if not logger.isEnabledFor(logging.DEBUG):
        return
    logger.debug("%s request_id=%s excerpt=%s", label, request_id, excerpt_for_debug(text, max_len=max_len))
