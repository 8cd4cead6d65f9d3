from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from lyricsync.sources.types import SearchRequest


TRANSLATION_PREFIX = "tr:"


@dataclass(frozen=True, slots=True)
class LyricsLine:
    position_ms: int
    content: str
    # "tr:<lang>" -> translated text
    attachments: dict[str, str] = field(default_factory=dict)

    def translation(self, lang: str | None = None) -> str | None:
        if lang is not None:
            return self.attachments.get(TRANSLATION_PREFIX + lang)
        for k, v in self.attachments.items():
            if k.startswith(TRANSLATION_PREFIX):
                return v
        return None


@dataclass(slots=True)
class DocumentMetadata:
    title: str = ""
    artist: str = ""
    request: SearchRequest | None = None
    quality: float = 0.0
    dirty: bool = False
    local_path: Path | None = None
    translation_languages: list[str] = field(default_factory=list)
    source: str | None = None
    tags: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class LyricsDocument:
    """
    Timed lines, always sorted by position.

    The offset only moves the comparison point used by `line_at`, lines are
    never re-timed or reordered by it.
    """

    lines: tuple[LyricsLine, ...]
    offset_ms: int = 0
    metadata: DocumentMetadata = field(default_factory=DocumentMetadata)
    _positions: list[int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # stable: lines sharing a timestamp keep their file order
        self.lines = tuple(sorted(self.lines, key=lambda ln: ln.position_ms))
        self._positions = [ln.position_ms for ln in self.lines]

    def __len__(self) -> int:
        return len(self.lines)

    def adjusted_position(self, position_ms: int, correction_ms: int = 0) -> int:
        return position_ms + self.offset_ms + correction_ms

    def line_at(self, adjusted_ms: int) -> tuple[int | None, int | None]:
        """
        (active, next) for an already adjusted position. O(log n) via bisect.
        """
        i = bisect_right(self._positions, adjusted_ms) - 1
        active = i if i >= 0 else None
        nxt = i + 1
        return active, (nxt if nxt < len(self.lines) else None)

    def replace_lines(self, lines: list[LyricsLine] | tuple[LyricsLine, ...]) -> None:
        self.lines = tuple(sorted(lines, key=lambda ln: ln.position_ms))
        self._positions = [ln.position_ms for ln in self.lines]
