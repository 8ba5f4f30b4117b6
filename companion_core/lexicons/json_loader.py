from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

logger = logging.getLogger("companion_core.lexicons")


@dataclass(slots=True)
class _CachedLexicon:
    mtime_ns: int | None
    data: dict[str, Any]


_CACHE: dict[str, _CachedLexicon] = {}


def lexicon_dir() -> Path:
    override = (os.getenv("COMPANION_LEXICON_DIR") or "").strip()
    if override:
        return Path(override).expanduser()
    return Path(__file__).with_name("data")


def _overlay(defaults: Any, override: Any) -> Any:
    """Nested dicts merge key by key; any other override value replaces the default."""
    if not (isinstance(defaults, dict) and isinstance(override, dict)):
        return copy.deepcopy(override)
    merged = copy.deepcopy(defaults)
    for key, value in override.items():
        merged[key] = _overlay(merged[key], value) if key in merged else copy.deepcopy(value)
    return merged


def _mtime_ns(path: Path) -> int | None:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return None


def _read_override(path: Path) -> dict[str, Any] | None:
    if not path.exists():
        logger.debug("Lexicon JSON not found: %s (using defaults)", path)
        return None
    try:
        payload = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, ValueError) as exc:
        logger.warning("Failed to parse lexicon JSON %s (%s). Using defaults.", path, exc)
        return None
    if not isinstance(payload, dict):
        logger.warning("Lexicon JSON root must be an object: %s (using defaults)", path)
        return None
    return payload


def load_lexicon(filename: str, defaults: dict[str, Any], *, data_dir: Path | None = None) -> dict[str, Any]:
    """Return `defaults` deep-merged with `<lexicon dir>/<filename>` when that file exists.

    Results are cached per path until the file's mtime changes. Callers always
    receive their own copy.
    """
    path = (data_dir or lexicon_dir()) / filename
    key = str(path.resolve())
    mtime_ns = _mtime_ns(path)

    cached = _CACHE.get(key)
    if cached is None or cached.mtime_ns != mtime_ns:
        override = _read_override(path)
        data = copy.deepcopy(defaults) if override is None else _overlay(defaults, override)
        cached = _CACHE[key] = _CachedLexicon(mtime_ns, data)
    return copy.deepcopy(cached.data)


def clear_lexicon_cache() -> None:
    _CACHE.clear()


def freeze_words(values: Any) -> tuple[str, ...]:
    """Lower-cased, de-duplicated, order-preserving tuple from a JSON list."""
    if not isinstance(values, (list, tuple)):
        return ()
    result: list[str] = []
    for value in values:
        word = str(value or "").strip().lower()
        if word and word not in result:
            result.append(word)
    return tuple(result)
