"""Client history <-> provider message mapping."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable

from airelay.core.models import ConversationTurn, Role


PLACEHOLDER_USER_TEXT = "(continued)"

_ASSISTANT_LABELS = frozenset({"assistant", "model", "ai", "bot"})
_SYSTEM_LABELS = frozenset({"system", "developer"})


class Dialect(str, Enum):
    OPENAI = "openai"
    GEMINI = "gemini"


# 每种方言的角色词表；反向映射由同一张表生成，保证往返一致
_ROLE_LABELS: dict[Dialect, dict[Role, str]] = {
    Dialect.OPENAI: {Role.USER: "user", Role.ASSISTANT: "assistant"},
    Dialect.GEMINI: {Role.USER: "user", Role.ASSISTANT: "model"},
}


@dataclass(slots=True)
class NormalizedHistory:
    system: str | None
    messages: list[dict[str, Any]] = field(default_factory=list)


def coerce_role(label: object) -> Role:
    if str(label or "").strip().lower() in _ASSISTANT_LABELS:
        return Role.ASSISTANT
    return Role.USER


def is_system_turn(item: dict[str, Any]) -> bool:
    return str(item.get("role") or "").strip().lower() in _SYSTEM_LABELS


def _flatten_parts(value: object) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return "".join(_flatten_parts(item) for item in value)
    if isinstance(value, dict):
        text = value.get("text")
        if isinstance(text, str):
            return text
    return ""


def turn_text(item: dict[str, Any]) -> str:
    for key in ("text", "content", "parts"):
        if key in item and item[key] is not None:
            return _flatten_parts(item[key])
    return ""


def split_system(raw_turns: Iterable[Any]) -> tuple[str | None, list[dict[str, Any]]]:
    system_parts: list[str] = []
    remaining: list[dict[str, Any]] = []
    for item in raw_turns or []:
        if not isinstance(item, dict):
            continue
        if is_system_turn(item):
            text = turn_text(item).strip()
            if text:
                system_parts.append(text)
            continue
        remaining.append(item)
    system = "\n\n".join(system_parts) if system_parts else None
    return system, remaining


def parse_turns(raw_turns: Iterable[Any]) -> list[ConversationTurn]:
    turns: list[ConversationTurn] = []
    for item in raw_turns or []:
        if not isinstance(item, dict):
            continue
        turns.append(ConversationTurn(role=coerce_role(item.get("role")), text=turn_text(item)))
    return turns


def cap_turns(turns: list[ConversationTurn], max_turns: int) -> list[ConversationTurn]:
    if max_turns <= 0 or len(turns) <= max_turns:
        return list(turns)
    return list(turns[-max_turns:])


def ensure_user_first(turns: list[ConversationTurn]) -> list[ConversationTurn]:
    if not turns or turns[0].role == Role.USER:
        return list(turns)
    return [ConversationTurn(role=Role.USER, text=PLACEHOLDER_USER_TEXT), *turns]


def to_provider(turns: Iterable[ConversationTurn], dialect: Dialect) -> list[dict[str, Any]]:
    labels = _ROLE_LABELS[dialect]
    if dialect == Dialect.GEMINI:
        return [{"role": labels[turn.role], "parts": [{"text": turn.text}]} for turn in turns]
    return [{"role": labels[turn.role], "content": turn.text} for turn in turns]


def from_provider(messages: Iterable[dict[str, Any]], dialect: Dialect) -> list[ConversationTurn]:
    reverse = {label: role for role, label in _ROLE_LABELS[dialect].items()}
    turns: list[ConversationTurn] = []
    for message in messages:
        role = reverse.get(str(message.get("role") or ""), Role.USER)
        turns.append(ConversationTurn(role=role, text=turn_text(message)))
    return turns


def normalize_history(raw_turns: Iterable[Any], dialect: Dialect, max_turns: int) -> NormalizedHistory:
    system, remaining = split_system(raw_turns)
    turns = ensure_user_first(cap_turns(parse_turns(remaining), max_turns))
    return NormalizedHistory(system=system, messages=to_provider(turns, dialect))
