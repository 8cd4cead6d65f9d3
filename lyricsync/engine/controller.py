from __future__ import annotations

from concurrent.futures import Executor, Future
import enum
import logging
from typing import Callable, Protocol

from lyricsync.config import AppConfig
from lyricsync.errors import InvalidFormat, LyricsError, NoActiveTrack, ParseError, SearchTimeout
from lyricsync.lrc import writeback
from lyricsync.lrc.model import LyricsDocument
from lyricsync.lrc.parse import parse_lyrics
from lyricsync.lrc.postprocess import PostProcessor
from lyricsync.player.base import MediaPlayer, PlayerEvent, Track
from lyricsync.sources.service import ProviderManager
from lyricsync.sources.types import SearchRequest
from lyricsync.store.files import LocalHit

from .dispatch import CancelToken, CompositeToken, Dispatcher
from .quality import QualityEvaluator
from .scheduler import LineScheduler
from .search import SearchHandle, SearchOrchestrator
from .state import DocumentObserver, EngineState, LineObserver

logger = logging.getLogger(__name__)

# imported lyrics outrank anything a running search can deliver
IMPORTED_QUALITY = float("inf")


class Phase(enum.Enum):
    IDLE = "idle"
    LOCAL_LOOKUP = "local_lookup"
    FOUND = "found"
    SEARCHING = "searching"
    NO_RESULT = "no_result"


class SkipLists(Protocol):
    def contains_track(self, track_id: str) -> bool: ...

    def contains_album(self, album: str) -> bool: ...

    def remove_track(self, track_id: str) -> None: ...

    def remove_album(self, album: str) -> None: ...


class LyricsStore(Protocol):
    def probe(self, track: Track) -> LocalHit | None: ...

    def persist(self, doc: LyricsDocument) -> object: ...


class LyricsEngine:
    """
    Owns the current document for whatever the player is playing.

    All state changes happen on `dispatcher`. Public methods may be called
    from any thread; they hop onto the dispatcher and wait.
    """

    def __init__(
        self,
        cfg: AppConfig,
        player: MediaPlayer,
        dispatcher: Dispatcher,
        *,
        store: LyricsStore,
        skip_lists: SkipLists,
        providers: ProviderManager,
        executor: Executor,
        postprocessor: PostProcessor | None = None,
        on_quit: Callable[[], None] | None = None,
    ):
        self.cfg = cfg
        self.player = player
        self.dispatcher = dispatcher
        self.store = store
        self.skip_lists = skip_lists
        self.executor = executor
        self.postprocessor = postprocessor or PostProcessor(cfg.filter_patterns)
        self.on_quit = on_quit

        self.state = EngineState()
        self.scheduler = LineScheduler(
            self.state,
            dispatcher,
            player.position_ms,
            safety_recheck_s=cfg.safety_recheck_s,
            correction_ms=lambda: self.cfg.global_offset_ms,
        )
        self.state.reschedule = self.scheduler.schedule
        self.state.before_replace = self._persist_current
        self.evaluator = QualityEvaluator(
            self.state.install,
            strict=lambda: self.cfg.strict_search,
            postprocessor=self.postprocessor,
        )
        self.searcher = SearchOrchestrator(dispatcher, providers)

        self.phase = Phase.IDLE
        self.track: Track | None = None
        self.active_request: SearchRequest | None = None
        self._cycle: CompositeToken | None = None
        self._search: SearchHandle | None = None
        self._subscription: CancelToken | None = None

    # -- wiring ---------------------------------------------------------

    def start(self) -> None:
        """Subscribe to the player and load lyrics for the current track."""
        self._subscription = self.player.subscribe(
            lambda event: self.dispatcher.post(self.handle_event, event)
        )
        self.dispatcher.post(self.on_track_changed)

    def close(self) -> None:
        self.dispatcher.call(self._close)

    def _close(self) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        self._cancel_cycle()
        self.scheduler.cancel()
        self._persist_current()

    def add_document_observer(self, fn: DocumentObserver) -> None:
        self.state.add_document_observer(fn)

    def add_line_observer(self, fn: LineObserver) -> None:
        self.state.add_line_observer(fn)

    @property
    def document(self) -> LyricsDocument | None:
        return self.state.document

    @property
    def line_index(self) -> int | None:
        return self.state.line_index

    # -- player events --------------------------------------------------

    def handle_event(self, event: PlayerEvent) -> None:
        if event is PlayerEvent.TRACK_CHANGED:
            self.on_track_changed()
        elif event is PlayerEvent.PLAYBACK_STATE_CHANGED:
            self.scheduler.schedule()
        elif event is PlayerEvent.RUNNING_STATE_CHANGED:
            if not self.player.is_running() and self.cfg.quit_with_player and self.on_quit is not None:
                logger.info("Player quit, quitting too")
                self.on_quit()

    def on_track_changed(self) -> None:
        self.state.install(None)
        self._cancel_cycle()

        track = self.player.current_track()
        self.track = track
        if track is None:
            self.phase = Phase.IDLE
            return
        if self.skip_lists.contains_track(track.id):
            logger.info("%s is in the skip list, not loading lyrics", track.display)
            self.phase = Phase.NO_RESULT
            return

        self.phase = Phase.LOCAL_LOOKUP
        cycle = CompositeToken()
        self._cycle = cycle
        fut = self.executor.submit(self.store.probe, track)
        cycle.add_callback(fut.cancel)
        on_done = cycle.guard(self._on_probe_done)
        fut.add_done_callback(lambda f: self.dispatcher.post(on_done, track, f))

    def _cancel_cycle(self) -> None:
        if self._cycle is not None:
            self._cycle.cancel()
            self._cycle = None
        self._search = None
        self.active_request = None

    def _on_probe_done(self, track: Track, fut: Future) -> None:
        hit: LocalHit | None = None
        if not fut.cancelled():
            try:
                hit = fut.result()
            except Exception:
                logger.exception("Local lyrics lookup failed for %s", track.display)

        if hit is not None:
            doc = hit.document
            doc.metadata.title = track.title
            doc.metadata.artist = track.artist
            doc.metadata.dirty = False
            self.postprocessor.normalize(doc)
            self.state.install(doc)
            if not hit.candidate.needs_searching:
                self.phase = Phase.FOUND
                return

        self._begin_search(track)

    def _begin_search(self, track: Track) -> None:
        if track.album and self.skip_lists.contains_album(track.album):
            logger.info("Album %r is in the skip list, not searching", track.album)
            self.phase = Phase.FOUND if self.state.document is not None else Phase.NO_RESULT
            return

        request = SearchRequest(
            title=track.title,
            artist=track.artist,
            duration_s=track.duration_s,
            limit=self.cfg.search_limit,
            timeout_s=self.cfg.search_timeout_s,
        )
        self.active_request = request
        self.phase = Phase.SEARCHING
        handle = self.searcher.start(request, self._on_candidate, self._on_search_complete)
        self._search = handle
        if self._cycle is not None:
            self._cycle.add(handle.token)

    def _on_candidate(self, doc: LyricsDocument) -> None:
        self.evaluator.accept(doc, self.state.document, self.active_request)

    def _on_search_complete(self, reason: SearchTimeout | None) -> None:
        if self.cfg.write_automatically:
            self._write_back(overwrite=True)
        self.phase = Phase.FOUND if self.state.document is not None else Phase.NO_RESULT

    def _persist_current(self) -> None:
        doc = self.state.document
        if doc is None or not doc.metadata.dirty:
            return
        try:
            self.store.persist(doc)
        except (LyricsError, OSError) as e:
            logger.warning("Could not save lyrics: %s", e)

    # -- user actions ---------------------------------------------------

    @property
    def offset(self) -> int:
        doc = self.state.document
        return doc.offset_ms if doc is not None else 0

    def set_offset(self, value_ms: int) -> None:
        self.dispatcher.call(self._set_offset, value_ms)

    def nudge_offset(self, delta_ms: int) -> None:
        self.dispatcher.call(lambda: self._set_offset(self.offset + delta_ms))

    def _set_offset(self, value_ms: int) -> None:
        doc = self.state.document
        if doc is None:
            return
        doc.offset_ms = value_ms
        doc.metadata.dirty = True
        self.scheduler.schedule()

    def write_back(self, overwrite: bool = False) -> bool:
        return self.dispatcher.call(self._write_back, overwrite)

    def _write_back(self, overwrite: bool) -> bool:
        doc = self.state.document
        if doc is None:
            return False
        return writeback.write_back(
            self.player,
            doc,
            overwrite=overwrite,
            with_translation=self.cfg.write_with_translation,
        )

    def import_lyrics(self, text: str) -> LyricsDocument:
        """
        Make `text` the lyrics of the playing track.
        Raises InvalidFormat or NoActiveTrack.
        """
        return self.dispatcher.call(self._import_lyrics, text)

    def _import_lyrics(self, text: str) -> LyricsDocument:
        try:
            doc = parse_lyrics(text)
        except ParseError as e:
            raise InvalidFormat() from e
        track = self.player.current_track()
        if track is None:
            raise NoActiveTrack()

        doc.metadata.title = track.title
        doc.metadata.artist = track.artist
        doc.metadata.quality = IMPORTED_QUALITY
        self.postprocessor.normalize(doc)
        doc.metadata.dirty = True
        self.track = track
        self.state.install(doc)
        self.phase = Phase.FOUND

        self.skip_lists.remove_track(track.id)
        if track.album:
            self.skip_lists.remove_album(track.album)
        logger.info("Imported lyrics for %s", track.display)
        return doc
