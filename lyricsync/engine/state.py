from __future__ import annotations

import logging
from typing import Callable

from lyricsync.lrc.model import LyricsDocument

logger = logging.getLogger(__name__)

DocumentObserver = Callable[[LyricsDocument | None], None]
LineObserver = Callable[[int | None], None]


class EngineState:
    """
    The current document and active line. Only touched on the dispatcher;
    `install` is the one way to swap documents.
    """

    def __init__(self) -> None:
        self.document: LyricsDocument | None = None
        self.line_index: int | None = None
        self._document_observers: list[DocumentObserver] = []
        self._line_observers: list[LineObserver] = []
        # set by the engine, runs after observers saw the new document
        self.reschedule: Callable[[], None] | None = None
        # set by the engine, runs while the outgoing document is still current
        self.before_replace: Callable[[], None] | None = None

    def add_document_observer(self, fn: DocumentObserver) -> None:
        self._document_observers.append(fn)

    def add_line_observer(self, fn: LineObserver) -> None:
        self._line_observers.append(fn)

    def install(self, doc: LyricsDocument | None) -> None:
        if self.document is not None and doc is not self.document and self.before_replace is not None:
            self.before_replace()
        self.document = doc
        self.line_index = None
        for fn in list(self._document_observers):
            fn(doc)
        if self.reschedule is not None:
            self.reschedule()

    def set_line_index(self, index: int | None) -> bool:
        if index == self.line_index:
            return False
        self.line_index = index
        for fn in list(self._line_observers):
            fn(index)
        return True
