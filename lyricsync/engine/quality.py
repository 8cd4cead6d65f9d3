from __future__ import annotations

import logging
from typing import Callable

from lyricsync.errors import CandidateRejected, NotBetter, NotMatched, StaleResult
from lyricsync.lrc.model import LyricsDocument
from lyricsync.lrc.postprocess import PostProcessor
from lyricsync.sources.matching import is_matched
from lyricsync.sources.types import SearchRequest

logger = logging.getLogger(__name__)


def document_quality(doc: LyricsDocument) -> float:
    return doc.metadata.quality


class QualityEvaluator:
    """Decides whether a search candidate replaces the current document."""

    def __init__(
        self,
        install: Callable[[LyricsDocument], None],
        *,
        strict: Callable[[], bool] = lambda: False,
        matched: Callable[[LyricsDocument], bool] = is_matched,
        quality: Callable[[LyricsDocument], float] = document_quality,
        postprocessor: PostProcessor | None = None,
    ):
        self.install = install
        self.strict = strict
        self.matched = matched
        self.quality = quality
        self.postprocessor = postprocessor or PostProcessor()

    def _check(
        self,
        candidate: LyricsDocument,
        current: LyricsDocument | None,
        active_request: SearchRequest | None,
    ) -> None:
        if candidate.metadata.request != active_request:
            raise StaleResult()
        if self.strict() and not self.matched(candidate):
            raise NotMatched()
        if current is not None and self.quality(current) >= self.quality(candidate):
            raise NotBetter()

    def accept(
        self,
        candidate: LyricsDocument,
        current: LyricsDocument | None,
        active_request: SearchRequest | None,
    ) -> bool:
        try:
            self._check(candidate, current, active_request)
        except CandidateRejected as e:
            logger.debug("Dropping candidate from %s: %s", candidate.metadata.source, e.message)
            return False

        self.postprocessor.normalize(candidate)
        candidate.metadata.dirty = True
        self.install(candidate)
        logger.info(
            "Accepted lyrics from %s (quality %.1f)",
            candidate.metadata.source,
            self.quality(candidate),
        )
        return True
