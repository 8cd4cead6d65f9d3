from __future__ import annotations

from dataclasses import dataclass
import enum
from pathlib import Path
from typing import Callable, Protocol

from lyricsync.engine.dispatch import CancelToken


@dataclass(frozen=True, slots=True)
class Track:
    id: str
    # absent metadata is "" rather than None
    title: str = ""
    artist: str = ""
    album: str = ""
    duration_s: float = 0.0
    file_path: Path | None = None

    @property
    def display(self) -> str:
        if self.artist and self.title:
            return f"{self.artist} - {self.title}"
        return self.title or self.artist or "Unknown track"


class PlayerEvent(enum.Enum):
    TRACK_CHANGED = "track_changed"
    PLAYBACK_STATE_CHANGED = "playback_state_changed"
    RUNNING_STATE_CHANGED = "running_state_changed"


class MediaPlayer(Protocol):
    """What the engine needs from a player integration."""

    @property
    def can_write_lyrics(self) -> bool: ...

    def current_track(self) -> Track | None: ...

    def position_ms(self) -> int | None: ...

    def is_running(self) -> bool: ...

    def current_lyrics(self) -> str | None: ...

    def write_lyrics(self, text: str) -> None: ...

    def subscribe(self, handler: Callable[[PlayerEvent], None]) -> CancelToken:
        """Events reach `handler` one at a time, in emission order."""
        ...
