from __future__ import annotations

import logging
from typing import Callable

from lyricsync.lrc.model import LyricsDocument

from .dispatch import CancelToken, CompositeToken, Dispatcher
from .state import EngineState

logger = logging.getLogger(__name__)

DEFAULT_SAFETY_RECHECK_S = 42.0


def recompute(
    doc: LyricsDocument, position_ms: int, correction_ms: int = 0
) -> tuple[int | None, int | None]:
    """
    (active, next) line indices at a playback position. The document's own
    offset is applied here, callers pass the raw player position.
    """
    return doc.line_at(doc.adjusted_position(position_ms, correction_ms))


class LineScheduler:
    """
    Keeps `state.line_index` in step with playback using one-shot timers:
    one for the next line boundary and a slow safety re-check. Each
    `schedule()` throws away whatever the previous call armed.
    """

    def __init__(
        self,
        state: EngineState,
        dispatcher: Dispatcher,
        position: Callable[[], int | None],
        *,
        safety_recheck_s: float = DEFAULT_SAFETY_RECHECK_S,
        correction_ms: Callable[[], int] = lambda: 0,
    ):
        self.state = state
        self.dispatcher = dispatcher
        self.position = position
        self.safety_recheck_s = safety_recheck_s
        self.correction_ms = correction_ms
        self._pending: CancelToken | None = None

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None

    def schedule(self) -> None:
        self.cancel()

        doc = self.state.document
        if doc is None:
            return
        pos = self.position()
        if pos is None:
            return

        correction = self.correction_ms()
        active, nxt = recompute(doc, pos, correction)
        self.state.set_line_index(active)

        token = CompositeToken()
        if nxt is not None:
            adjusted = doc.adjusted_position(pos, correction)
            delay_s = max(0, doc.lines[nxt].position_ms - adjusted) / 1000
            token.add(self.dispatcher.call_later(delay_s, self._fire, token))
        # no tolerance added: a late fire just recomputes from the live position
        token.add(self.dispatcher.call_later(self.safety_recheck_s, self._fire, token))
        self._pending = token

    def _fire(self, token: CancelToken) -> None:
        if token is not self._pending:
            return
        self.schedule()
