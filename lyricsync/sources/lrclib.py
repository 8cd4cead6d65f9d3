from __future__ import annotations

import logging
import time
from typing import Iterator

import requests

from lyricsync.engine.dispatch import CancelToken
from lyricsync.lrc.model import LyricsDocument
from lyricsync.lrc.parse import LrcParseError, parse_lyrics

from .base import LyricsProvider
from .matching import score_candidate
from .types import SearchRequest, SearchResult

logger = logging.getLogger(__name__)

SEARCH_URL = "https://lrclib.net/api/search"


class LrcLibProvider(LyricsProvider):
    name = "lrclib"

    def __init__(
        self,
        *,
        max_retries: int = 3,
        backoff_base_s: float = 0.8,
        session: requests.Session | None = None,
    ):
        self.max_retries = max(1, max_retries)
        self.backoff_base_s = backoff_base_s
        self.session = session or requests.Session()

    def query(
        self,
        *,
        track_name: str,
        artist_name: str | None = None,
        timeout_s: float = 10.0,
        token: CancelToken | None = None,
    ) -> list[SearchResult]:
        """
        lrclib /api/search. An empty list means nothing found or the service
        could not be reached after all retries.
        """
        if not track_name:
            raise ValueError("track_name must be provided")

        params = {"track_name": track_name}
        if artist_name:
            params["artist_name"] = artist_name

        for attempt in range(1, self.max_retries + 1):
            if token is not None and token.cancelled:
                return []
            try:
                r = self.session.get(SEARCH_URL, params=params, timeout=timeout_s)
                r.raise_for_status()
                return [self._to_result(item) for item in r.json()]
            except requests.RequestException as e:
                logger.warning("lrclib error (attempt %s/%s): %s", attempt, self.max_retries, e)
                if attempt == self.max_retries:
                    return []
                time.sleep(self.backoff_base_s * attempt)
        return []

    @staticmethod
    def _to_result(item: dict) -> SearchResult:
        synced = item.get("syncedLyrics")
        plain = item.get("plainLyrics")
        return SearchResult(
            id=item.get("id"),
            track_name=item.get("trackName") or "",
            artist_name=item.get("artistName") or "",
            album_name=item.get("albumName") or "",
            duration=item.get("duration"),
            instrumental=bool(item.get("instrumental", False)),
            synced_lyrics_text=str(synced).rstrip() + "\n" if synced else None,
            plain_lyrics_text=str(plain).rstrip() + "\n" if plain else None,
        )

    def _results_for(self, request: SearchRequest, token: CancelToken) -> list[SearchResult]:
        results = self.query(
            track_name=request.title,
            artist_name=request.artist,
            timeout_s=request.timeout_s,
            token=token,
        )
        # several artists joined by "," are often listed under only one of them
        if not results and "," in request.artist:
            seen: set[int | None] = set()
            for artist in (a.strip() for a in request.artist.split(",")):
                if not artist or token.cancelled:
                    continue
                for r in self.query(
                    track_name=request.title,
                    artist_name=artist,
                    timeout_s=request.timeout_s,
                    token=token,
                ):
                    if r.id not in seen:
                        seen.add(r.id)
                        results.append(r)
        return results

    def search(self, request: SearchRequest, token: CancelToken) -> Iterator[LyricsDocument]:
        if not request.title:
            return
        results = [r for r in self._results_for(request, token) if r.has_synced_lyrics]
        results.sort(
            key=lambda r: score_candidate(request, r.track_name, r.artist_name, r.duration),
            reverse=True,
        )
        for r in results[: request.limit]:
            if token.cancelled:
                return
            try:
                doc = parse_lyrics(r.synced_lyrics_text or "")
            except LrcParseError as e:
                logger.debug("lrclib #%s has unusable synced lyrics: %s", r.id, e)
                continue
            doc.metadata.title = r.track_name
            doc.metadata.artist = r.artist_name
            doc.metadata.request = request
            doc.metadata.source = self.name
            doc.metadata.quality = score_candidate(request, r.track_name, r.artist_name, r.duration)
            yield doc
