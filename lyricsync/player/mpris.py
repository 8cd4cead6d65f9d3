from __future__ import annotations

from dataclasses import dataclass
import logging
import threading
import time
from pathlib import Path
from typing import Any, Callable
from urllib.parse import unquote, urlparse

import dbus

from lyricsync.engine.dispatch import CancelToken

from .base import PlayerEvent, Track
from .errors import MprisError, NoPlayersFound, PlayerUnavailable

logger = logging.getLogger(__name__)

PLAYER_IFACE = "org.mpris.MediaPlayer2.Player"


def _to_str(value: Any) -> str:
    try:
        return str(value)
    except Exception:
        return ""


def _join_artist(value: Any) -> str:
    if isinstance(value, (list, tuple, dbus.Array)):
        return ", ".join(_to_str(x) for x in value if _to_str(x))
    return _to_str(value)


def _file_path(url: str) -> Path | None:
    if not url.startswith("file://"):
        return None
    return Path(unquote(urlparse(url).path))


def track_from_metadata(md: dict[str, Any]) -> Track | None:
    """None when the player exposes nothing to identify a track by."""
    title = _to_str(md.get("xesam:title", "")) or ""
    artist = _join_artist(md.get("xesam:artist", [])) or ""
    album = _to_str(md.get("xesam:album", "")) or ""
    url = _to_str(md.get("xesam:url", "")) or ""
    track_id = _to_str(md.get("mpris:trackid", "")) or ""
    length_us = md.get("mpris:length")
    if not (title or url or track_id):
        return None
    # some players reuse one trackid for everything, so fold in the tags
    key = " | ".join(x for x in (artist, title, album, url, track_id) if x)
    try:
        duration_s = int(length_us) / 1_000_000 if length_us is not None else 0.0
    except (TypeError, ValueError):
        duration_s = 0.0
    return Track(
        id=key,
        title=title,
        artist=artist,
        album=album,
        duration_s=duration_s,
        file_path=_file_path(url),
    )


class MprisClient:
    def __init__(self, service_name: str):
        self.service_name = service_name
        self._bus = dbus.SessionBus()
        self._obj = self._bus.get_object(service_name, "/org/mpris/MediaPlayer2")
        self._props = dbus.Interface(self._obj, "org.freedesktop.DBus.Properties")

    @staticmethod
    def list_players() -> list[str]:
        try:
            bus = dbus.SessionBus()
            return [s for s in bus.list_names() if s.startswith("org.mpris.MediaPlayer2.")]
        except dbus.DBusException as e:
            # In restricted environments (tests/sandbox/CI), connecting to the
            # session bus can fail (e.g. AccessDenied). Treat as "no players".
            logger.debug("Unable to connect to D-Bus session bus: %s", e)
            return []

    @staticmethod
    def pick_player(preferred: str | None = None) -> "MprisClient":
        players = MprisClient.list_players()
        if not players:
            raise NoPlayersFound("No active MPRIS players")

        if preferred:
            # allow passing short name like "vlc"
            for s in players:
                if s == preferred or s.endswith("." + preferred):
                    return MprisClient(s)
            logger.warning("Preferred player '%s' not found, falling back", preferred)

        # prefer Playing
        for s in players:
            try:
                c = MprisClient(s)
                if c.playback_status().lower() == "playing":
                    return c
            except (dbus.DBusException, MprisError):
                continue

        return MprisClient(players[0])

    def _get(self, prop: str) -> Any:
        try:
            return self._props.Get(PLAYER_IFACE, prop)
        except dbus.DBusException as e:
            raise PlayerUnavailable(str(e)) from e

    def playback_status(self) -> str:
        return _to_str(self._get("PlaybackStatus"))

    def metadata(self) -> dict[str, Any]:
        # dbus.Dictionary acts like dict
        return dict(self._get("Metadata"))

    def position_ms(self) -> int:
        """
        MPRIS Position is microseconds.
        """
        return int(self._get("Position")) // 1000

    def track(self) -> Track | None:
        return track_from_metadata(self.metadata())


@dataclass(frozen=True, slots=True)
class _Snapshot:
    running: bool = False
    track: Track | None = None
    status: str = "Stopped"
    position_ms: int | None = None
    taken_at: float = 0.0


class MprisPlayer:
    """
    MediaPlayer on top of MPRIS. D-Bus offers no lyrics setter and this
    client does not listen for signals, so state is polled on a background
    thread and turned into PlayerEvents.
    """

    can_write_lyrics = False

    def __init__(
        self,
        preferred: str | None = None,
        *,
        poll_hz: float = 10.0,
        seek_tolerance_ms: int = 1500,
        connect: Callable[[str | None], Any] = MprisClient.pick_player,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.preferred = preferred
        self.interval_s = 1.0 / max(poll_hz, 0.5)
        self.seek_tolerance_ms = seek_tolerance_ms
        self._connect = connect
        self._clock = clock
        self._client: Any = None
        self._snap = _Snapshot()
        self._lock = threading.Lock()
        self._handlers: list[Callable[[PlayerEvent], None]] = []
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    # -- MediaPlayer ----------------------------------------------------

    def current_track(self) -> Track | None:
        with self._lock:
            return self._snap.track

    def position_ms(self) -> int | None:
        """Last polled position, advanced by the time since while playing."""
        with self._lock:
            snap = self._snap
        if snap.position_ms is None:
            return None
        if snap.status.lower() != "playing":
            return snap.position_ms
        return snap.position_ms + int((self._clock() - snap.taken_at) * 1000)

    def is_running(self) -> bool:
        with self._lock:
            return self._snap.running

    def current_lyrics(self) -> str | None:
        return None

    def write_lyrics(self, text: str) -> None:
        logger.debug("MPRIS players cannot store lyrics, dropping %d chars", len(text))

    def subscribe(self, handler: Callable[[PlayerEvent], None]) -> CancelToken:
        with self._lock:
            self._handlers.append(handler)
        token = CancelToken()

        def _unsubscribe() -> None:
            with self._lock:
                if handler in self._handlers:
                    self._handlers.remove(handler)

        token.add_callback(_unsubscribe)
        return token

    # -- polling --------------------------------------------------------

    def _read(self) -> _Snapshot:
        if self._client is None:
            try:
                self._client = self._connect(self.preferred)
            except NoPlayersFound:
                return _Snapshot(taken_at=self._clock())
        try:
            track = self._client.track()
            status = self._client.playback_status()
            pos = self._client.position_ms()
        except PlayerUnavailable as e:
            logger.debug("Player %s went away: %s", getattr(self._client, "service_name", "?"), e)
            self._client = None
            return _Snapshot(taken_at=self._clock())
        return _Snapshot(running=True, track=track, status=status, position_ms=pos, taken_at=self._clock())

    def poll(self) -> list[PlayerEvent]:
        """Read the player once and emit whatever changed since the last poll."""
        new = self._read()
        with self._lock:
            old = self._snap
            self._snap = new
            handlers = list(self._handlers)

        events: list[PlayerEvent] = []
        if new.running != old.running:
            events.append(PlayerEvent.RUNNING_STATE_CHANGED)
        if (new.track.id if new.track else None) != (old.track.id if old.track else None):
            events.append(PlayerEvent.TRACK_CHANGED)
        elif new.status != old.status or self._jumped(old, new):
            events.append(PlayerEvent.PLAYBACK_STATE_CHANGED)

        for ev in events:
            for h in handlers:
                try:
                    h(ev)
                except Exception:
                    logger.exception("Player event handler failed for %s", ev.value)
        return events

    def _jumped(self, old: _Snapshot, new: _Snapshot) -> bool:
        if old.position_ms is None or new.position_ms is None:
            return False
        expected = old.position_ms
        if old.status.lower() == "playing":
            expected += int((new.taken_at - old.taken_at) * 1000)
        return abs(new.position_ms - expected) > self.seek_tolerance_ms

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="lyricsync-mpris", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(2.0)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.is_set():
            self.poll()
            self._stop.wait(self.interval_s)
