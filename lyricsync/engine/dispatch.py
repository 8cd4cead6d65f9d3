from __future__ import annotations

from concurrent.futures import Future
import logging
import queue
import threading
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)


class CancelToken:
    """
    Handle of a scheduled timer or an in-flight operation.

    `cancel()` is idempotent. Callbacks wrapped with `guard()` check the token
    when they run on the dispatcher, so after `cancel()` returns there (and
    all engine state lives there) nothing from the operation runs again.
    """

    __slots__ = ("_cancelled", "_callbacks", "_lock")

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for cb in callbacks:
            try:
                cb()
            except Exception:
                logger.exception("Cancel callback failed")

    def add_callback(self, cb: Callable[[], None]) -> None:
        with self._lock:
            if not self._cancelled:
                self._callbacks.append(cb)
                return
        cb()

    def guard(self, fn: Callable[..., Any]) -> Callable[..., None]:
        def _guarded(*args: Any) -> None:
            if self._cancelled:
                return
            fn(*args)

        return _guarded


class CompositeToken(CancelToken):
    __slots__ = ()

    def __init__(self, *children: CancelToken) -> None:
        super().__init__()
        for child in children:
            self.add(child)

    def add(self, child: CancelToken) -> None:
        self.add_callback(child.cancel)


class Dispatcher:
    """
    The single-writer context: everything touching engine state runs here,
    one callable at a time, in submission order.
    """

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        raise NotImplementedError

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> CancelToken:
        raise NotImplementedError

    def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        """Run `fn` on the context and wait for its result (or exception)."""
        raise NotImplementedError

    def now(self) -> float:
        return time.monotonic()


_STOP = object()


class ThreadDispatcher(Dispatcher):
    def __init__(self, name: str = "lyricsync-engine"):
        self._queue: queue.Queue[Any] = queue.Queue()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)
        self._started = False

    def start(self) -> None:
        if not self._started:
            self._started = True
            self._thread.start()

    def stop(self, timeout: float | None = 2.0) -> None:
        if not self._started:
            return
        self._queue.put(_STOP)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def is_current(self) -> bool:
        return threading.current_thread() is self._thread

    def _run(self) -> None:
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            fn, args = item
            try:
                fn(*args)
            except Exception:
                # one bad event must not take the engine down
                logger.exception("Unhandled error in dispatcher callback")

    def post(self, fn: Callable[..., Any], *args: Any) -> None:
        self._queue.put((fn, args))

    def call_later(self, delay_s: float, fn: Callable[..., Any], *args: Any) -> CancelToken:
        token = CancelToken()
        timer = threading.Timer(max(delay_s, 0.0), self.post, args=(token.guard(fn), *args))
        timer.daemon = True
        token.add_callback(timer.cancel)
        timer.start()
        return token

    def call(self, fn: Callable[..., Any], *args: Any) -> Any:
        if self.is_current():
            return fn(*args)
        fut: Future[Any] = Future()

        def _run() -> None:
            if not fut.set_running_or_notify_cancel():
                return
            try:
                fut.set_result(fn(*args))
            except BaseException as e:
                fut.set_exception(e)

        self.post(_run)
        return fut.result()
