from __future__ import annotations

from typing import Iterable

from lyricsync.engine.dispatch import CancelToken
from lyricsync.lrc.model import LyricsDocument

from .types import SearchRequest


class LyricsProvider:
    """
    A ranked lyrics source. `search` runs on a worker thread and yields
    candidates as they become available; it should stop early once `token`
    is cancelled. Every yielded document carries `metadata.request = request`.
    """

    name: str

    def search(self, request: SearchRequest, token: CancelToken) -> Iterable[LyricsDocument]:
        raise NotImplementedError
