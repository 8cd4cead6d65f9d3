from __future__ import annotations

import logging
from typing import Callable

from lyricsync.errors import SearchTimeout
from lyricsync.lrc.model import LyricsDocument
from lyricsync.sources.service import ProviderManager
from lyricsync.sources.types import SearchRequest

from .dispatch import CancelToken, Dispatcher

logger = logging.getLogger(__name__)

CandidateHandler = Callable[[LyricsDocument], None]
# None on normal completion, SearchTimeout when time ran out
CompletionHandler = Callable[[SearchTimeout | None], None]


class SearchHandle:
    def __init__(self, request: SearchRequest, token: CancelToken):
        self.request = request
        self.token = token
        self.completed = False

    def cancel(self) -> None:
        self.token.cancel()


class SearchOrchestrator:
    """
    Runs one time-bounded provider search. Candidates and the completion
    callback are delivered on the dispatcher and only while the search token
    is live; completion happens exactly once.
    """

    def __init__(self, dispatcher: Dispatcher, providers: ProviderManager):
        self.dispatcher = dispatcher
        self.providers = providers

    def start(
        self,
        request: SearchRequest,
        on_candidate: CandidateHandler,
        on_complete: CompletionHandler,
    ) -> SearchHandle:
        token = CancelToken()
        handle = SearchHandle(request, token)

        def _complete(reason: SearchTimeout | None) -> None:
            if handle.completed:
                return
            handle.completed = True
            if reason is not None:
                logger.info("Search for %s timed out after %.1fs", request.display, request.timeout_s)
            else:
                logger.debug("Search for %s finished", request.display)
            # drops the timeout and anything still queued from providers
            token.cancel()
            on_complete(reason)

        guarded_candidate = token.guard(on_candidate)
        guarded_complete = token.guard(_complete)

        def _deliver(doc: LyricsDocument) -> None:
            self.dispatcher.post(guarded_candidate, doc)

        def _finished() -> None:
            self.dispatcher.post(guarded_complete, None)

        timeout = self.dispatcher.call_later(request.timeout_s, guarded_complete, SearchTimeout())
        token.add_callback(timeout.cancel)

        logger.info("Searching lyrics for %s", request.display)
        self.providers.start(request, token, _deliver, _finished)
        return handle
