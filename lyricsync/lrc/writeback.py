from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Callable

import regex

from lyricsync.errors import WriteBackUnsupported

from .model import LyricsDocument

if TYPE_CHECKING:
    from lyricsync.player.base import MediaPlayer

logger = logging.getLogger(__name__)

_BLANK_RUN_RE = regex.compile(r"\n{3,}")


def collapse_newlines(text: str) -> str:
    return _BLANK_RUN_RE.sub("\n\n", text)


def _identity(s: str) -> str:
    return s


def build_writeback_text(
    doc: LyricsDocument,
    *,
    with_translation: bool = False,
    transliterate: Callable[[str], str] = _identity,
) -> str:
    lang = doc.metadata.translation_languages[0] if doc.metadata.translation_languages else None
    parts: list[str] = []
    for line in doc.lines:
        s = transliterate(line.content)
        if with_translation and lang is not None:
            tr = line.translation(lang)
            if tr is not None:
                s += "\n" + transliterate(tr)
        parts.append(s)
    return collapse_newlines("\n".join(parts))


def _ensure_writable(player: MediaPlayer) -> None:
    if not player.can_write_lyrics:
        raise WriteBackUnsupported()


def write_back(
    player: MediaPlayer,
    doc: LyricsDocument,
    *,
    overwrite: bool,
    with_translation: bool = False,
    transliterate: Callable[[str], str] = _identity,
) -> bool:
    """
    Push the plain text of `doc` into the player's lyrics field.
    Returns True when something was written.
    """
    try:
        _ensure_writable(player)
    except WriteBackUnsupported as e:
        logger.debug("%s, skipping write-back", e.message)
        return False
    if not overwrite and player.current_lyrics():
        logger.debug("Player already has lyrics, not overwriting")
        return False
    text = build_writeback_text(doc, with_translation=with_translation, transliterate=transliterate)
    player.write_lyrics(text)
    logger.info("Wrote %d lyric lines back to the player", len(doc))
    return True
