from __future__ import annotations

import json
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Any, Callable

from lyricsync.lrc.postprocess import DEFAULT_FILTER_PATTERNS

logger = logging.getLogger(__name__)

ENV_PREFIX = "LYRICSYNC_"


def _config_dir() -> Path:
    xdg = os.getenv("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "lyricsync"
    return Path.home() / ".config" / "lyricsync"


def _data_dir() -> Path:
    xdg = os.getenv("XDG_DATA_HOME")
    base = Path(xdg) if xdg else Path.home() / ".local" / "share"
    return base / "lyricsync"


@dataclass(frozen=True)
class AppConfig:
    # Storage
    data_dir: Path
    db_path: Path
    config_dir: Path
    save_dir: Path

    # Sources
    sources: tuple[str, ...]
    api_max_retries: int
    api_backoff_base_s: float

    # MPRIS
    preferred_player: str | None
    poll_hz: float
    seek_tolerance_ms: int

    # Lyrics
    load_beside_track: bool
    write_with_translation: bool
    write_automatically: bool
    strict_search: bool
    search_limit: int
    search_timeout_s: float
    safety_recheck_s: float
    global_offset_ms: int
    quit_with_player: bool
    max_workers: int
    filter_patterns: tuple[str, ...]

    # Rendering
    context_lines: int  # lines above/below current
    use_alt_screen: bool


def _to_bool(v: Any) -> bool:
    if isinstance(v, bool):
        return v
    return str(v).strip().lower() not in ("0", "false", "no", "off", "")


def _to_tuple(v: Any) -> tuple[str, ...]:
    if isinstance(v, (list, tuple)):
        items = [str(x) for x in v]
    else:
        items = str(v).split(",")
    return tuple(s.strip() for s in items if s.strip())


def _read_file(config_dir: Path) -> dict[str, Any]:
    cfg_path = config_dir / "config.json"
    if not cfg_path.exists():
        return {}
    try:
        data = json.loads(cfg_path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("Ignoring unreadable %s: %s", cfg_path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring %s: expected a JSON object", cfg_path)
        return {}
    return data


class _Settings:
    """Priority: LYRICSYNC_<KEY> env var -> config.json -> default."""

    def __init__(self, file_data: dict[str, Any]):
        self.file_data = file_data

    def get(self, key: str, default: Any, conv: Callable[[Any], Any]) -> Any:
        env = os.getenv(ENV_PREFIX + key.upper())
        if env is not None and env != "":
            raw: Any = env
        elif key in self.file_data and self.file_data[key] is not None:
            raw = self.file_data[key]
        else:
            return default
        try:
            return conv(raw)
        except (TypeError, ValueError):
            logger.warning("Bad value for %s: %r, using %r", key, raw, default)
            return default


def load_config() -> AppConfig:
    config_dir = _config_dir()
    s = _Settings(_read_file(config_dir))

    data_dir = s.get("data_dir", _data_dir(), lambda v: Path(v).expanduser())
    save_dir = s.get("save_dir", data_dir / "lyrics", lambda v: Path(v).expanduser())

    return AppConfig(
        data_dir=data_dir,
        db_path=data_dir / "lyricsync.sqlite3",
        config_dir=config_dir,
        save_dir=save_dir,
        sources=s.get("sources", ("lrclib",), _to_tuple),
        api_max_retries=s.get("api_max_retries", 3, int),
        api_backoff_base_s=s.get("api_backoff_base_s", 1.0, float),
        preferred_player=s.get("player", None, lambda v: str(v) or None),
        poll_hz=s.get("poll_hz", 10.0, float),
        seek_tolerance_ms=s.get("seek_tolerance_ms", 1500, int),
        load_beside_track=s.get("load_beside_track", True, _to_bool),
        write_with_translation=s.get("write_with_translation", False, _to_bool),
        write_automatically=s.get("write_automatically", False, _to_bool),
        strict_search=s.get("strict_search", False, _to_bool),
        search_limit=s.get("search_limit", 5, int),
        search_timeout_s=s.get("search_timeout_s", 10.0, float),
        safety_recheck_s=s.get("safety_recheck_s", 42.0, float),
        global_offset_ms=s.get("global_offset_ms", 0, int),
        quit_with_player=s.get("quit_with_player", False, _to_bool),
        max_workers=s.get("max_workers", 4, int),
        filter_patterns=s.get("filter_patterns", DEFAULT_FILTER_PATTERNS, _to_tuple),
        context_lines=s.get("context_lines", 1, int),
        use_alt_screen=s.get("alt_screen", True, _to_bool),
    )
