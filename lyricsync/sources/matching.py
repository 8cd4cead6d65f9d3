from __future__ import annotations

import regex

from lyricsync.lrc.model import LyricsDocument

from .types import SearchRequest

_PUNCT_RE = regex.compile(r"[\p{P}\p{S}]+")
_SPACE_RE = regex.compile(r"\s+")


def normalize(s: str) -> str:
    s = _PUNCT_RE.sub(" ", (s or "").casefold())
    return _SPACE_RE.sub(" ", s).strip()


def _split_artists(artist: str) -> list[str]:
    return [a for a in (normalize(x) for x in regex.split(r"[,&/]|\bfeat\.?", artist or "")) if a]


def score_candidate(
    request: SearchRequest,
    title: str,
    artist: str,
    duration_s: float | None = None,
    synced: bool = True,
) -> float:
    """
    Title/artist/duration agreement between a hit and the request.
    Higher is better; 0 means nothing in common.
    """
    want_title = normalize(request.title)
    want_artist = normalize(request.artist)
    want_artists = _split_artists(request.artist) or ([want_artist] if want_artist else [])
    got_title = normalize(title)
    got_artist = normalize(artist)

    score = 0.0

    if got_title == want_title:
        score += 50
    elif want_title and got_title and (want_title in got_title or got_title in want_title):
        score += 15

    if got_artist == want_artist:
        score += 50
    elif got_artist in want_artists:
        score += 45
    elif got_artist and (
        got_artist in want_artist
        or want_artist in got_artist
        or any(got_artist in a or a in got_artist for a in want_artists)
    ):
        score += 20

    if synced:
        score += 5

    if duration_s and request.duration_s:
        diff = abs(duration_s - request.duration_s)
        if diff <= 2:
            score += 10
        elif diff <= 10:
            score += 10 * (1 - (diff - 2) / 8)

    return score


def is_matched(doc: LyricsDocument) -> bool:
    """Strict match: normalized title and artist equal those requested."""
    req = doc.metadata.request
    if req is None:
        return False
    return (
        normalize(doc.metadata.title) == normalize(req.title)
        and normalize(doc.metadata.artist) == normalize(req.artist)
    )
