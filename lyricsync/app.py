from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import threading
from typing import Callable

from lyricsync.config import AppConfig
from lyricsync.engine.controller import LyricsEngine, Phase
from lyricsync.engine.dispatch import ThreadDispatcher
from lyricsync.player.mpris import MprisPlayer
from lyricsync.render.ansi import AnsiRenderer, LyricsView
from lyricsync.sources.service import ProviderManager, build_providers
from lyricsync.store.files import LyricsFileStore
from lyricsync.store.sqlite import SkipListStore

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    engine: LyricsEngine
    dispatcher: ThreadDispatcher
    executor: ThreadPoolExecutor
    skip_lists: SkipListStore

    def shutdown(self) -> None:
        try:
            self.engine.close()
        finally:
            self.dispatcher.stop()
            self.executor.shutdown(wait=False, cancel_futures=True)


def build_runtime(
    cfg: AppConfig, player: MprisPlayer, *, on_quit: Callable[[], None] | None = None
) -> Runtime:
    dispatcher = ThreadDispatcher()
    executor = ThreadPoolExecutor(max_workers=max(cfg.max_workers, 1), thread_name_prefix="lyricsync")
    skip_lists = SkipListStore(cfg.db_path)
    engine = LyricsEngine(
        cfg,
        player,
        dispatcher,
        store=LyricsFileStore(cfg.save_dir, load_beside_track=cfg.load_beside_track),
        skip_lists=skip_lists,
        providers=ProviderManager(build_providers(cfg), executor),
        executor=executor,
        on_quit=on_quit,
    )
    dispatcher.start()
    return Runtime(engine=engine, dispatcher=dispatcher, executor=executor, skip_lists=skip_lists)


_PHASE_MESSAGES = {
    Phase.IDLE: "Nothing playing",
    Phase.LOCAL_LOOKUP: "Looking for local lyrics...",
    Phase.SEARCHING: "Searching lyrics...",
    Phase.NO_RESULT: "No lyrics found for the current track",
}


def watch(cfg: AppConfig, *, preferred_player: str | None, show_translation: bool = False) -> int:
    """
    MPRIS poller -> engine (probe, search, line timers) -> renderer on change.
    Returns the process exit code.
    """
    player = MprisPlayer(
        preferred_player,
        poll_hz=cfg.poll_hz,
        seek_tolerance_ms=cfg.seek_tolerance_ms,
    )
    quit_event = threading.Event()
    rt = build_runtime(cfg, player, on_quit=quit_event.set)
    engine = rt.engine

    renderer = AnsiRenderer(use_alt_screen=cfg.use_alt_screen)

    def _title() -> str:
        title = engine.track.display if engine.track is not None else "lyricsync"
        if engine.offset:
            title += f" [{engine.offset:+d}ms]"
        return title

    view = LyricsView(
        renderer,
        context_lines=cfg.context_lines,
        show_translation=show_translation,
        title=_title,
    )
    engine.add_document_observer(view.on_document)
    engine.add_line_observer(view.on_line)

    renderer.enter()
    last_phase: Phase | None = None
    try:
        engine.start()
        player.start()
        while not quit_event.wait(0.25):
            phase = engine.phase
            if phase is not last_phase:
                last_phase = phase
                if engine.document is None and phase in _PHASE_MESSAGES:
                    rt.dispatcher.post(view.show_message, _PHASE_MESSAGES[phase])
    except KeyboardInterrupt:
        pass
    finally:
        player.stop()
        rt.shutdown()
        renderer.exit()
    return 0
