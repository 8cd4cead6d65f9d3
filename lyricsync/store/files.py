from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
import logging
import os
from pathlib import Path
from typing import Callable, Iterator, Protocol

from lyricsync.errors import ParseError, ResourceAccessDenied
from lyricsync.lrc.export import export_lrcx
from lyricsync.lrc.model import LyricsDocument
from lyricsync.lrc.parse import parse_lyrics
from lyricsync.player.base import Track

logger = logging.getLogger(__name__)


class ScopedAccess(Protocol):
    def acquire(self, path: Path) -> bool: ...

    def release(self, path: Path) -> None: ...


class DirectoryAccess:
    """
    Grants access to files under `root` while the directory is usable.
    Sandboxed platforms plug in a real grant/revoke pair instead.
    """

    def __init__(self, root: Path):
        self.root = root

    def acquire(self, path: Path) -> bool:
        return self.root.is_dir() and os.access(self.root, os.R_OK | os.X_OK)

    def release(self, path: Path) -> None:
        return None


@contextmanager
def scoped(access: ScopedAccess, path: Path) -> Iterator[None]:
    if not access.acquire(path):
        raise ResourceAccessDenied(f"Access denied: {path}")
    try:
        yield
    finally:
        access.release(path)


@dataclass(frozen=True, slots=True)
class LyricsCandidate:
    path: Path
    scoped: bool
    # a hit here is kept but the provider search still runs
    needs_searching: bool


@dataclass(frozen=True, slots=True)
class LocalHit:
    document: LyricsDocument
    candidate: LyricsCandidate


def _for_filename(s: str) -> str:
    return s.replace("/", "&")


def saved_name(title: str, artist: str) -> str:
    return f"{_for_filename(title)} - {_for_filename(artist)}"


class LyricsFileStore:
    """
    Local lyrics files: probing candidates for a track and persisting the
    current document into the save folder.
    """

    def __init__(
        self,
        save_dir: Path,
        *,
        load_beside_track: bool = True,
        access: ScopedAccess | None = None,
        parser: Callable[[str], LyricsDocument] = parse_lyrics,
    ):
        self.save_dir = save_dir
        self.load_beside_track = load_beside_track
        self.access = access or DirectoryAccess(save_dir)
        self.parser = parser

    def candidates(self, track: Track) -> list[LyricsCandidate]:
        out: list[LyricsCandidate] = []
        if self.load_beside_track and track.file_path is not None:
            stem = track.file_path.with_suffix("")
            out.append(LyricsCandidate(stem.with_name(stem.name + ".lrcx"), scoped=False, needs_searching=False))
            out.append(LyricsCandidate(stem.with_name(stem.name + ".lrc"), scoped=False, needs_searching=False))
        base = self.save_dir / saved_name(track.title, track.artist)
        out.append(LyricsCandidate(base.with_name(base.name + ".lrcx"), scoped=True, needs_searching=False))
        out.append(LyricsCandidate(base.with_name(base.name + ".lrc"), scoped=True, needs_searching=True))
        return out

    def probe(self, track: Track) -> LocalHit | None:
        """First candidate that reads and parses, in priority order."""
        for cand in self.candidates(track):
            try:
                if cand.scoped:
                    with scoped(self.access, cand.path):
                        doc = self._load(cand.path)
                else:
                    doc = self._load(cand.path)
            except ResourceAccessDenied as e:
                logger.debug("%s, skipping", e)
                continue
            if doc is None:
                continue
            doc.metadata.local_path = cand.path
            logger.info("Loaded local lyrics %s", cand.path)
            return LocalHit(document=doc, candidate=cand)
        return None

    def _load(self, path: Path) -> LyricsDocument | None:
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read %s: %s", path, e)
            return None
        try:
            return self.parser(text)
        except ParseError as e:
            logger.info("Skipping unparsable lyrics file %s: %s", path, e)
            return None

    def persist(self, doc: LyricsDocument) -> Path:
        # named after what was searched for, so the next probe of the track finds it
        req = doc.metadata.request
        title, artist = (req.title, req.artist) if req is not None else (doc.metadata.title, doc.metadata.artist)
        path = self.save_dir / (saved_name(title, artist) + ".lrcx")
        self.save_dir.mkdir(parents=True, exist_ok=True)
        with scoped(self.access, path):
            path.write_text(export_lrcx(doc), encoding="utf-8")
        doc.metadata.local_path = path
        doc.metadata.dirty = False
        logger.info("Saved lyrics to %s", path)
        return path
