from __future__ import annotations

from dataclasses import dataclass, field
import itertools

_cycle_counter = itertools.count(1)


@dataclass(frozen=True, slots=True)
class SearchRequest:
    """
    Identity of one automatic search. `cycle` is unique per instance, so two
    requests built for different track changes never compare equal even when
    the track is the same.
    """

    title: str
    artist: str
    duration_s: float = 0.0
    limit: int = 5
    timeout_s: float = 10.0
    cycle: int = field(default_factory=lambda: next(_cycle_counter))

    @property
    def display(self) -> str:
        if self.artist and self.title:
            return f"{self.artist} - {self.title}"
        return self.title or self.artist or "Unknown track"


@dataclass(frozen=True, slots=True)
class SearchResult:
    """One provider hit, before its lyrics are parsed."""
    id: int | None
    track_name: str
    artist_name: str
    album_name: str
    duration: float | None
    instrumental: bool
    synced_lyrics_text: str | None = None
    plain_lyrics_text: str | None = None

    @property
    def has_synced_lyrics(self) -> bool:
        return bool(self.synced_lyrics_text)
