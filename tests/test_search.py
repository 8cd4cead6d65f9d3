from __future__ import annotations

from lyricsync.engine.search import SearchOrchestrator
from lyricsync.errors import SearchTimeout
from lyricsync.sources.service import ProviderManager
from lyricsync.sources.types import SearchRequest

from tests.mocks.dispatcher import DeferredExecutor, ImmediateExecutor, ManualDispatcher
from tests.mocks.factories import SIMPLE_LRC, FailingProvider, FakeProvider


def _run(providers, executor=None, timeout_s=10.0):
    d = ManualDispatcher()
    executor = executor or ImmediateExecutor()
    orch = SearchOrchestrator(d, ProviderManager(providers, executor))
    got, done = [], []
    req = SearchRequest("Song", "Band", timeout_s=timeout_s)
    handle = orch.start(req, got.append, done.append)
    return d, handle, got, done


def test_candidates_then_single_completion():
    p1 = FakeProvider("a", [(SIMPLE_LRC, 1, "Song", "Band"), (SIMPLE_LRC, 2, "Song", "Band")])
    p2 = FakeProvider("b", [(SIMPLE_LRC, 3, "Song", "Band")])
    d, handle, got, done = _run([p1, p2])
    d.drain()
    assert [c.metadata.quality for c in got] == [1, 2, 3]
    assert done == [None]
    assert handle.completed
    # the timeout was disarmed
    d.advance(60)
    assert done == [None]


def test_every_candidate_carries_the_request():
    d, handle, got, done = _run([FakeProvider("a", [(SIMPLE_LRC, 1, "Song", "Band")])])
    d.drain()
    assert got[0].metadata.request == handle.request


def test_failing_provider_does_not_stop_others():
    broken = FailingProvider()
    d, handle, got, done = _run([broken, FakeProvider("ok", [(SIMPLE_LRC, 1, "Song", "Band")])])
    d.drain()
    assert broken.calls == 1
    assert len(got) == 1
    assert done == [None]


def test_timeout_completes_and_drops_late_results():
    executor = DeferredExecutor()
    d, handle, got, done = _run([FakeProvider("slow", [(SIMPLE_LRC, 1, "Song", "Band")])], executor, 10.0)
    d.advance(9.0)
    assert done == []
    d.advance(1.0)
    assert len(done) == 1 and isinstance(done[0], SearchTimeout)
    assert handle.token.cancelled
    executor.run_all()
    d.drain()
    assert got == []
    assert len(done) == 1


def test_cancel_suppresses_queued_deliveries():
    d, handle, got, done = _run([FakeProvider("a", [(SIMPLE_LRC, 1, "Song", "Band")])])
    # provider already ran and queued its results
    handle.cancel()
    d.advance(60)
    assert got == []
    assert done == []


def test_no_providers_completes_immediately():
    d, handle, got, done = _run([])
    d.drain()
    assert done == [None]
