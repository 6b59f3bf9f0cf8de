"""Text preparation for speech synthesis."""

from __future__ import annotations

ELLIPSIS = "..."
_SENTENCE_ENDINGS = ".?!"


def truncate_for_speech(text: str, limit: int = 700, window: int = 200) -> str:
    """Cut ``text`` to at most ``limit`` chars, preferring a sentence boundary.

    The last ``window`` characters before the limit are scanned backwards for
    ``.``, ``?`` or ``!``; when none is found the text is hard cut and an
    ellipsis is appended, so the result never exceeds ``limit + len(ELLIPSIS)``.
    """
    cleaned = (text or "").strip()
    if limit <= 0 or len(cleaned) <= limit:
        return cleaned

    start = max(0, limit - max(0, window))
    head = cleaned[:limit]
    for index in range(limit - 1, start - 1, -1):
        if head[index] in _SENTENCE_ENDINGS:
            return head[: index + 1]
    return f"{head.rstrip()}{ELLIPSIS}"
