from __future__ import annotations

import logging
import sqlite3
import time
from pathlib import Path

logger = logging.getLogger(__name__)


class SkipListStore:
    """
    Track ids and album names the user excluded from automatic searching.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        con = sqlite3.connect(self.db_path)
        con.row_factory = sqlite3.Row
        return con

    def _init_db(self) -> None:
        with self._connect() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS skip_list (
                    kind  TEXT NOT NULL,
                    value TEXT NOT NULL,
                    added_at INTEGER NOT NULL,
                    PRIMARY KEY (kind, value)
                );
                """
            )

    def _contains(self, kind: str, value: str) -> bool:
        with self._connect() as con:
            row = con.execute(
                "SELECT 1 FROM skip_list WHERE kind=? AND value=?",
                (kind, value),
            ).fetchone()
            return row is not None

    def _add(self, kind: str, value: str) -> None:
        with self._connect() as con:
            con.execute(
                "INSERT OR IGNORE INTO skip_list(kind, value, added_at) VALUES (?, ?, ?)",
                (kind, value, int(time.time())),
            )

    def _remove(self, kind: str, value: str) -> None:
        with self._connect() as con:
            con.execute("DELETE FROM skip_list WHERE kind=? AND value=?", (kind, value))

    def _values(self, kind: str) -> list[str]:
        with self._connect() as con:
            rows = con.execute(
                "SELECT value FROM skip_list WHERE kind=? ORDER BY added_at, value", (kind,)
            ).fetchall()
            return [r["value"] for r in rows]

    def contains_track(self, track_id: str) -> bool:
        return self._contains("track", track_id)

    def contains_album(self, album: str) -> bool:
        return self._contains("album", album)

    def add_track(self, track_id: str) -> None:
        self._add("track", track_id)

    def add_album(self, album: str) -> None:
        self._add("album", album)

    def remove_track(self, track_id: str) -> None:
        self._remove("track", track_id)

    def remove_album(self, album: str) -> None:
        self._remove("album", album)

    def track_ids(self) -> list[str]:
        return self._values("track")

    def album_names(self) -> list[str]:
        return self._values("album")

    def clear(self) -> None:
        with self._connect() as con:
            con.execute("DELETE FROM skip_list")
