from __future__ import annotations

from pathlib import Path

import pytest

from lyricsync.engine.controller import LyricsEngine, Phase
from lyricsync.errors import InvalidFormat, NoActiveTrack
from lyricsync.player.base import PlayerEvent, Track
from lyricsync.sources.service import ProviderManager
from lyricsync.store.files import LyricsFileStore
from lyricsync.store.sqlite import SkipListStore

from tests.mocks.dispatcher import DeferredExecutor, ImmediateExecutor, ManualDispatcher
from tests.mocks.factories import SIMPLE_LRC, FailingProvider, FakeProvider, make_config
from tests.mocks.player_mock import MockPlayer

BETTER_LRC = "[00:00.00]uno\n[00:01.00]dos\n[00:02.00]tres\n"


class Harness:
    def __init__(
        self,
        tmp_path: Path,
        providers=(),
        *,
        track: Track | None = None,
        provider_executor=None,
        can_write_lyrics: bool = False,
        player_lyrics: str | None = None,
        **cfg,
    ):
        self.tmp_path = tmp_path
        self.cfg = make_config(tmp_path, **cfg)
        self.dispatcher = ManualDispatcher()
        self.music_dir = tmp_path / "music"
        self.music_dir.mkdir()
        self.cfg.save_dir.mkdir(parents=True)
        if track is None:
            track = self.track("Song", "Band", album="Album")
        self.player = MockPlayer(
            self.dispatcher.now, track, can_write_lyrics=can_write_lyrics, lyrics=player_lyrics
        )
        self.skip_lists = SkipListStore(self.cfg.db_path)
        self.store = LyricsFileStore(self.cfg.save_dir, load_beside_track=self.cfg.load_beside_track)
        self.probe_executor = ImmediateExecutor()
        self.provider_executor = provider_executor or ImmediateExecutor()
        self.quits = 0
        self.engine = LyricsEngine(
            self.cfg,
            self.player,
            self.dispatcher,
            store=self.store,
            skip_lists=self.skip_lists,
            providers=ProviderManager(list(providers), self.provider_executor),
            executor=self.probe_executor,
            on_quit=self._quit,
        )

    def _quit(self):
        self.quits += 1

    def track(self, title, artist, album="", tid=None) -> Track:
        return Track(
            id=tid or f"{artist}-{title}",
            title=title,
            artist=artist,
            album=album,
            duration_s=180.0,
            file_path=self.music_dir / f"{title}.flac",
        )

    def beside(self, track: Track, ext: str, text: str = SIMPLE_LRC) -> Path:
        p = track.file_path.with_suffix(ext)
        p.write_text(text, encoding="utf-8")
        return p

    def saved(self, track: Track, ext: str, text: str = SIMPLE_LRC) -> Path:
        p = self.cfg.save_dir / f"{track.title} - {track.artist}{ext}"
        p.write_text(text, encoding="utf-8")
        return p

    def start(self):
        self.engine.start()
        self.dispatcher.drain()


def _provider(quality=50.0, text=BETTER_LRC, name="fake"):
    return FakeProvider(name, [(text, quality, "Song", "Band")])


def test_no_track_is_idle(tmp_path):
    h = Harness(tmp_path)
    h.player.track = None
    h.start()
    assert h.engine.phase is Phase.IDLE
    assert h.probe_executor.submitted == 0


def test_lrcx_beside_track_wins_and_skips_search(tmp_path):
    p = _provider()
    h = Harness(tmp_path, [p])
    track = h.player.track
    path = h.beside(track, ".lrcx")
    h.beside(track, ".lrc", BETTER_LRC)
    h.saved(track, ".lrcx", BETTER_LRC)
    h.start()
    doc = h.engine.document
    assert h.engine.phase is Phase.FOUND
    assert doc.metadata.local_path == path
    assert doc.metadata.title == "Song" and doc.metadata.artist == "Band"
    assert not doc.metadata.dirty
    assert p.requests == []


def test_probe_order_beside_lrc_before_save_folder(tmp_path):
    h = Harness(tmp_path)
    track = h.player.track
    path = h.beside(track, ".lrc")
    h.saved(track, ".lrcx", BETTER_LRC)
    h.start()
    assert h.engine.document.metadata.local_path == path


def test_beside_track_disabled_uses_save_folder(tmp_path):
    h = Harness(tmp_path, load_beside_track=False)
    track = h.player.track
    h.beside(track, ".lrcx")
    path = h.saved(track, ".lrcx", BETTER_LRC)
    h.start()
    assert h.engine.document.metadata.local_path == path
    assert h.engine.phase is Phase.FOUND


def test_unparsable_local_file_is_skipped(tmp_path):
    h = Harness(tmp_path)
    track = h.player.track
    h.beside(track, ".lrcx", "not lyrics at all")
    path = h.beside(track, ".lrc")
    h.start()
    assert h.engine.document.metadata.local_path == path


def test_save_folder_lrc_is_installed_and_search_still_runs(tmp_path):
    p = _provider(quality=50)
    h = Harness(tmp_path, [p])
    h.saved(h.player.track, ".lrc")
    seen = []
    h.engine.add_document_observer(seen.append)
    h.start()
    assert len(p.requests) == 1
    assert seen[-1].metadata.source == "fake"
    assert seen[-2].metadata.local_path is not None
    assert h.engine.phase is Phase.FOUND


def test_search_request_built_from_track_and_config(tmp_path):
    p = _provider()
    h = Harness(tmp_path, [p], search_limit=3, search_timeout_s=4.0)
    h.start()
    req = p.requests[0]
    assert (req.title, req.artist, req.duration_s) == ("Song", "Band", 180.0)
    assert (req.limit, req.timeout_s) == (3, 4.0)


def test_best_candidate_wins(tmp_path):
    low = FakeProvider("low", [(SIMPLE_LRC, 10, "Song", "Band")])
    high = FakeProvider("high", [(BETTER_LRC, 30, "Song", "Band")])
    late_low = FakeProvider("late", [(SIMPLE_LRC, 20, "Song", "Band")])
    h = Harness(tmp_path, [low, high, late_low])
    h.start()
    doc = h.engine.document
    assert doc.metadata.source == "high"
    assert doc.metadata.dirty
    assert h.engine.phase is Phase.FOUND


def test_nothing_found(tmp_path):
    h = Harness(tmp_path, [FakeProvider("empty", [])])
    h.start()
    assert h.engine.document is None
    assert h.engine.phase is Phase.NO_RESULT


def test_failing_provider_is_contained(tmp_path):
    broken = FailingProvider()
    h = Harness(tmp_path, [broken, _provider()])
    h.start()
    assert broken.calls == 1
    assert h.engine.document.metadata.source == "fake"


def test_skip_listed_track_is_left_alone(tmp_path):
    p = _provider()
    h = Harness(tmp_path, [p])
    h.skip_lists.add_track(h.player.track.id)
    h.beside(h.player.track, ".lrcx")
    h.start()
    assert h.engine.phase is Phase.NO_RESULT
    assert h.engine.document is None
    assert h.probe_executor.submitted == 0
    assert p.requests == []


def test_skip_listed_album_suppresses_search(tmp_path):
    p = _provider()
    h = Harness(tmp_path, [p])
    h.skip_lists.add_album("Album")
    h.start()
    assert p.requests == []
    assert h.engine.phase is Phase.NO_RESULT


def test_skip_listed_album_keeps_fallback_file(tmp_path):
    p = _provider()
    h = Harness(tmp_path, [p])
    h.skip_lists.add_album("Album")
    h.saved(h.player.track, ".lrc")
    h.start()
    assert p.requests == []
    assert h.engine.phase is Phase.FOUND
    assert h.engine.document is not None


def test_strict_search_rejects_mismatched_titles(tmp_path):
    p = FakeProvider("x", [(BETTER_LRC, 99, "Song (Remix)", "Band")])
    h = Harness(tmp_path, [p], strict_search=True)
    h.start()
    assert h.engine.document is None


def test_result_for_previous_track_is_dropped(tmp_path):
    slow = _provider()
    provider_exec = DeferredExecutor()
    h = Harness(tmp_path, [slow], provider_executor=provider_exec)
    h.start()
    assert h.engine.phase is Phase.SEARCHING
    # the first search delivers while the track is already changing
    provider_exec.run_all()
    h.player.track = h.track("Other", "Someone")
    h.engine.on_track_changed()
    h.dispatcher.drain()
    assert h.engine.document is None
    assert h.engine.active_request.title == "Other"
    assert h.engine.phase is Phase.SEARCHING


def test_track_change_cancels_pending_search_work(tmp_path):
    provider_exec = DeferredExecutor()
    h = Harness(tmp_path, [_provider()], provider_executor=provider_exec)
    h.start()
    pending = [fut for fut, _fn, _a in provider_exec.pending]
    h.player.change_track(h.track("Other", "Someone"))
    h.dispatcher.drain()
    assert all(f.cancelled() for f in pending)


def test_timeout_ends_search_and_writes_back_once(tmp_path):
    provider_exec = DeferredExecutor()
    h = Harness(
        tmp_path,
        [_provider()],
        provider_executor=provider_exec,
        write_automatically=True,
        can_write_lyrics=True,
        player_lyrics="old",
    )
    h.saved(h.player.track, ".lrc")
    h.start()
    h.dispatcher.advance(9.0)
    assert h.player.written == []
    h.dispatcher.advance(1.0)
    assert h.engine.phase is Phase.FOUND
    assert h.player.written == ["one\ntwo\nthree"]
    provider_exec.run_all()
    h.dispatcher.advance(30.0)
    assert len(h.player.written) == 1


def test_completed_search_writes_back_with_overwrite(tmp_path):
    h = Harness(
        tmp_path,
        [_provider()],
        write_automatically=True,
        can_write_lyrics=True,
        player_lyrics="old",
    )
    h.start()
    assert h.player.written == ["uno\ndos\ntres"]
    h.dispatcher.advance(30.0)
    assert len(h.player.written) == 1


def test_no_write_back_when_disabled(tmp_path):
    h = Harness(tmp_path, [_provider()], can_write_lyrics=True)
    h.start()
    assert h.player.written == []


def test_manual_write_back_respects_existing_lyrics(tmp_path):
    h = Harness(tmp_path, [_provider()], can_write_lyrics=True, player_lyrics="theirs")
    h.start()
    assert not h.engine.write_back()
    assert h.engine.write_back(overwrite=True)


def test_dirty_document_is_saved_on_track_change(tmp_path):
    h = Harness(tmp_path, [_provider()])
    h.start()
    doc = h.engine.document
    assert doc.metadata.dirty
    h.player.change_track(None)
    h.dispatcher.drain()
    saved = h.cfg.save_dir / "Song - Band.lrcx"
    assert saved.exists()
    assert not doc.metadata.dirty
    assert h.engine.phase is Phase.IDLE
    assert h.engine.document is None


def test_saved_search_result_is_found_locally_next_time(tmp_path):
    p = _provider()
    h = Harness(tmp_path, [p])
    track = h.player.track
    h.start()
    h.player.change_track(None)
    h.dispatcher.drain()
    h.player.change_track(track)
    h.dispatcher.drain()
    assert len(p.requests) == 1
    assert h.engine.phase is Phase.FOUND
    assert [ln.content for ln in h.engine.document.lines] == ["uno", "dos", "tres"]


def test_close_saves_dirty_document(tmp_path):
    h = Harness(tmp_path, [_provider()])
    h.start()
    h.engine.close()
    assert (h.cfg.save_dir / "Song - Band.lrcx").exists()


def test_line_index_follows_playback(tmp_path):
    h = Harness(tmp_path)
    h.beside(h.player.track, ".lrcx")
    lines = []
    h.engine.add_line_observer(lines.append)
    h.start()
    h.dispatcher.advance(2.0)
    assert h.engine.line_index == 2
    assert lines == [0, 1, 2]


def test_playback_event_resyncs_after_seek(tmp_path):
    h = Harness(tmp_path)
    h.beside(h.player.track, ".lrcx")
    h.start()
    h.player.seek(2200)
    h.player.emit(PlayerEvent.PLAYBACK_STATE_CHANGED)
    h.dispatcher.drain()
    assert h.engine.line_index == 2


def test_offset_change_rearms_and_marks_dirty(tmp_path):
    h = Harness(tmp_path)
    h.beside(h.player.track, ".lrcx")
    h.start()
    assert h.engine.line_index == 0
    h.engine.set_offset(1000)
    assert h.engine.offset == 1000
    assert h.engine.line_index == 1
    assert h.engine.document.metadata.dirty
    assert h.dispatcher.live_timers() == [1.0, 42.0]
    h.engine.nudge_offset(-500)
    assert h.engine.offset == 500
    assert h.engine.line_index == 0


def test_offset_without_document_is_noop(tmp_path):
    h = Harness(tmp_path, [FakeProvider("empty", [])])
    h.start()
    h.engine.set_offset(300)
    assert h.engine.offset == 0


def test_global_offset_shifts_lines(tmp_path):
    h = Harness(tmp_path, global_offset_ms=1500)
    h.beside(h.player.track, ".lrcx")
    h.start()
    assert h.engine.line_index == 1


def test_import_rejects_bad_text_before_looking_at_track(tmp_path):
    h = Harness(tmp_path)
    h.player.track = None
    with pytest.raises(InvalidFormat) as exc:
        h.engine.import_lyrics("no timestamps here")
    assert exc.value.suggestion == "Please try another one."


def test_import_requires_a_track(tmp_path):
    h = Harness(tmp_path)
    h.player.track = None
    with pytest.raises(NoActiveTrack) as exc:
        h.engine.import_lyrics(SIMPLE_LRC)
    assert exc.value.message == "No music playing"


def test_import_installs_and_clears_skip_lists(tmp_path):
    h = Harness(tmp_path)
    track = h.player.track
    h.skip_lists.add_track(track.id)
    h.skip_lists.add_album("Album")
    h.start()
    doc = h.engine.import_lyrics("[ti:Wrong]\n[00:00.00]作词：X\n" + SIMPLE_LRC)
    assert h.engine.document is doc
    assert doc.metadata.title == "Song"
    assert doc.metadata.dirty
    assert [ln.content for ln in doc.lines] == ["one", "two", "three"]
    assert h.engine.phase is Phase.FOUND
    assert h.skip_lists.track_ids() == []
    assert h.skip_lists.album_names() == []


def test_import_is_not_replaced_by_running_search(tmp_path):
    provider_exec = DeferredExecutor()
    h = Harness(tmp_path, [_provider(quality=99)], provider_executor=provider_exec)
    h.start()
    doc = h.engine.import_lyrics(SIMPLE_LRC)
    provider_exec.run_all()
    h.dispatcher.advance(20.0)
    assert h.engine.document is doc


def test_import_mid_search_is_written_back_when_search_ends(tmp_path):
    provider_exec = DeferredExecutor()
    h = Harness(
        tmp_path,
        [_provider(quality=99)],
        provider_executor=provider_exec,
        write_automatically=True,
        can_write_lyrics=True,
    )
    h.start()
    h.engine.import_lyrics(SIMPLE_LRC)
    assert h.player.written == []
    provider_exec.run_all()
    h.dispatcher.drain()
    assert h.player.written == ["one\ntwo\nthree"]
    assert h.engine.phase is Phase.FOUND


def test_better_candidate_saves_edited_fallback_first(tmp_path):
    provider_exec = DeferredExecutor()
    h = Harness(tmp_path, [_provider(quality=99)], provider_executor=provider_exec)
    h.saved(h.player.track, ".lrc")
    h.start()
    fallback = h.engine.document
    assert h.engine.phase is Phase.SEARCHING
    h.engine.set_offset(700)
    provider_exec.run_all()
    h.dispatcher.drain()
    assert h.engine.document is not fallback
    assert not fallback.metadata.dirty
    saved = (h.cfg.save_dir / "Song - Band.lrcx").read_text(encoding="utf-8")
    assert "[offset:700]" in saved
    assert "[00:00.00]one" in saved


def test_import_saves_dirty_searched_document_first(tmp_path):
    h = Harness(tmp_path, [_provider(quality=99)])
    h.start()
    searched = h.engine.document
    assert searched.metadata.dirty
    doc = h.engine.import_lyrics(SIMPLE_LRC)
    assert h.engine.document is doc
    assert not searched.metadata.dirty
    saved = (h.cfg.save_dir / "Song - Band.lrcx").read_text(encoding="utf-8")
    assert "[00:00.00]uno" in saved


def test_quit_with_player(tmp_path):
    h = Harness(tmp_path, quit_with_player=True)
    h.start()
    h.player.running = False
    h.player.emit(PlayerEvent.RUNNING_STATE_CHANGED)
    h.dispatcher.drain()
    assert h.quits == 1


def test_player_quit_ignored_without_setting(tmp_path):
    h = Harness(tmp_path)
    h.start()
    h.player.running = False
    h.player.emit(PlayerEvent.RUNNING_STATE_CHANGED)
    h.dispatcher.drain()
    assert h.quits == 0
