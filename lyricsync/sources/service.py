from __future__ import annotations

from concurrent.futures import Executor, Future
import logging
import threading
from typing import Callable, Sequence

from lyricsync.config import AppConfig
from lyricsync.engine.dispatch import CancelToken
from lyricsync.lrc.model import LyricsDocument

from .base import LyricsProvider
from .lrclib import LrcLibProvider
from .types import SearchRequest

logger = logging.getLogger(__name__)


def build_providers(cfg: AppConfig) -> list[LyricsProvider]:
    out: list[LyricsProvider] = []
    for s in cfg.sources:
        name = s.strip().lower()
        if name == "lrclib":
            out.append(
                LrcLibProvider(
                    max_retries=cfg.api_max_retries,
                    backoff_base_s=cfg.api_backoff_base_s,
                )
            )
        else:
            logger.info("Unknown source '%s' in config, skipping", s)
    return out


class ProviderManager:
    """
    Fans one request out to every provider on the worker pool. Candidates
    are handed to `deliver` from worker threads as each provider yields them.
    """

    def __init__(self, providers: Sequence[LyricsProvider], executor: Executor):
        self.providers = list(providers)
        self.executor = executor

    def _run_provider(
        self,
        provider: LyricsProvider,
        request: SearchRequest,
        token: CancelToken,
        deliver: Callable[[LyricsDocument], None],
    ) -> None:
        try:
            for doc in provider.search(request, token):
                if token.cancelled:
                    return
                deliver(doc)
        except Exception:
            logger.exception("Provider %s failed for %s", provider.name, request.display)

    def start(
        self,
        request: SearchRequest,
        token: CancelToken,
        deliver: Callable[[LyricsDocument], None],
        finished: Callable[[], None],
    ) -> list[Future]:
        """
        `finished` runs once, after the last provider returned (or right away
        when there are none). Unstarted work is dropped when `token` is
        cancelled.
        """
        if not self.providers:
            finished()
            return []

        remaining = len(self.providers)
        lock = threading.Lock()

        def _one_done(_fut: Future) -> None:
            nonlocal remaining
            with lock:
                remaining -= 1
                last = remaining == 0
            if last:
                finished()

        futures: list[Future] = []
        for p in self.providers:
            fut = self.executor.submit(self._run_provider, p, request, token, deliver)
            futures.append(fut)

        def _cancel_pending() -> None:
            for f in futures:
                f.cancel()

        token.add_callback(_cancel_pending)
        # attached after every submit so `finished` cannot fire early
        for fut in futures:
            fut.add_done_callback(_one_done)
        return futures

    def search_all(self, request: SearchRequest) -> list[LyricsDocument]:
        """Blocking search over all providers, best quality first."""
        token = CancelToken()
        out: list[LyricsDocument] = []
        lock = threading.Lock()

        def _collect(doc: LyricsDocument) -> None:
            with lock:
                out.append(doc)

        done = threading.Event()
        self.start(request, token, _collect, done.set)
        if not done.wait(request.timeout_s):
            logger.info("Search for %s timed out", request.display)
            token.cancel()
        with lock:
            return sorted(out, key=lambda d: d.metadata.quality, reverse=True)
