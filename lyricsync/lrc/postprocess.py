from __future__ import annotations

import logging
from typing import Iterable

import regex

from .model import LyricsDocument, TRANSLATION_PREFIX

logger = logging.getLogger(__name__)


# Credit lines providers like to prepend ("作词 : ...", "Lyrics by ...").
DEFAULT_FILTER_PATTERNS: tuple[str, ...] = (
    r"^\s*(作词|作曲|编曲|作詞|編曲|詞|曲)\s*[:：]",
    r"^\s*(lyrics|music|composed|written|arranged)\s+by\b",
    r"^\s*(lyricist|composer|arranger|producer)\s*[:：]",
)


class PostProcessor:
    """
    Normalizes a freshly obtained document before it becomes current:
    drops credit lines and records which translation languages it carries.
    """

    def __init__(self, filter_patterns: Iterable[str] = DEFAULT_FILTER_PATTERNS):
        self._filters = [regex.compile(p, regex.IGNORECASE) for p in filter_patterns]

    def filtrate(self, doc: LyricsDocument) -> None:
        if not self._filters:
            return
        kept = [ln for ln in doc.lines if not any(f.search(ln.content) for f in self._filters)]
        dropped = len(doc.lines) - len(kept)
        if dropped:
            logger.debug("Filtered %s credit line(s)", dropped)
            doc.replace_lines(kept)

    def recognize_language(self, doc: LyricsDocument) -> None:
        languages: list[str] = []
        for ln in doc.lines:
            for key in ln.attachments:
                if key.startswith(TRANSLATION_PREFIX):
                    lang = key[len(TRANSLATION_PREFIX):]
                    if lang and lang not in languages:
                        languages.append(lang)
        doc.metadata.translation_languages = languages

    def normalize(self, doc: LyricsDocument) -> LyricsDocument:
        self.filtrate(doc)
        self.recognize_language(doc)
        return doc
