"""Genre system prompts loaded from YAML with an mtime-based cache."""

from __future__ import annotations

from copy import deepcopy
from pathlib import Path
from threading import Lock
from typing import Any

import yaml

from airelay.config.settings import settings
from airelay.core.errors import ConfigurationError
from airelay.util.logger import logger


DEFAULT_GENRE = "default"

_DEFAULT_PROMPTS: dict[str, dict[str, Any]] = {
    "default": {
        "system": "You are Johnny, a friendly, step-by-step tech helper. Speak plainly.",
    },
    "rpg": {
        "system": (
            "You are the Game Master (GM) for a text-based RPG called StoryForge.\n"
            "Your goal is to guide the player through an immersive, open-ended adventure.\n\n"
            "CORE RULES:\n"
            "1. Be Descriptive: use vivid imagery (sight, sound, smell) to set the scene.\n"
            "2. Open-Ended: allow the player to do anything. React logically to their actions.\n"
            "3. Game State: track the player's status implicitly.\n"
            "4. Combat: if the player fights, describe the combat and decide the outcome from their actions.\n"
            "5. Items: you can award items. When you do, append a JSON action at the very end of your reply.\n\n"
            "JSON ACTIONS (after a newline, at the end of the reply):\n"
            '- Give Item: {"action": "add_item", "item": {"name": "Item Name", "description": "Short description", '
            '"type": "weapon/potion/key/etc"}}\n'
            '- Damage Player: write "You take 5 damage." in the narrative; the client parses "(-X HP)".\n'
            '- Heal Player: write "You regain 10 health." in the narrative; the client parses "(+X HP)".'
        ),
    },
}

_CACHE_LOCK = Lock()
_CACHE_PATH = ""
_CACHE_MTIME_NS = -1
_CACHE_PROMPTS: dict[str, dict[str, Any]] | None = None


def _resolve_prompts_file(path: str) -> Path:
    candidate = Path(path)
    if candidate.is_absolute():
        return candidate
    app_root = Path(__file__).resolve().parents[2]
    candidates = [Path.cwd() / candidate, app_root / candidate]
    for item in candidates:
        if item.exists():
            return item.resolve()
    return candidates[-1].resolve()


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            base[key] = _deep_merge(dict(base[key]), value)
        else:
            base[key] = value
    return base


def load_prompts(path: str | None = None) -> dict[str, dict[str, Any]]:
    global _CACHE_PATH, _CACHE_MTIME_NS, _CACHE_PROMPTS

    prompts_path = _resolve_prompts_file(path or settings.prompts_path)
    path_key = str(prompts_path)
    mtime_ns = prompts_path.stat().st_mtime_ns if prompts_path.exists() else -1

    with _CACHE_LOCK:
        if _CACHE_PROMPTS is not None and _CACHE_PATH == path_key and _CACHE_MTIME_NS == mtime_ns:
            return deepcopy(_CACHE_PROMPTS)

        prompts = deepcopy(_DEFAULT_PROMPTS)
        if prompts_path.exists():
            try:
                raw = yaml.safe_load(prompts_path.read_text(encoding="utf-8")) or {}
            except yaml.YAMLError as exc:
                raise ConfigurationError("Genre prompts file is not valid YAML", f"{prompts_path}: {exc}"[:600]) from exc
            if not isinstance(raw, dict):
                raise ConfigurationError("Genre prompts file must be a mapping", str(prompts_path))
            genres = raw.get("genres", raw)
            if not isinstance(genres, dict):
                raise ConfigurationError("Genre prompts 'genres' must be a mapping", str(prompts_path))
            for name, entry in genres.items():
                # 允许简写：genre: "prompt text"
                if isinstance(entry, str):
                    genres[name] = {"system": entry}
            prompts = _deep_merge(prompts, genres)
            logger.info("genre prompts loaded path=%s genres=%s", prompts_path, sorted(prompts))
        else:
            logger.info("genre prompts file not found, using defaults path=%s", prompts_path)

        _CACHE_PATH = path_key
        _CACHE_MTIME_NS = mtime_ns
        _CACHE_PROMPTS = prompts
        return deepcopy(prompts)


def system_prompt_for(genre: str | None, path: str | None = None) -> str:
    prompts = load_prompts(path)
    key = str(genre or "").strip().lower() or DEFAULT_GENRE
    entry = prompts.get(key)
    if entry is None:
        logger.debug("unknown genre=%s, falling back to %s", key, DEFAULT_GENRE)
        entry = prompts.get(DEFAULT_GENRE, {})
    return str(entry.get("system") or "")
