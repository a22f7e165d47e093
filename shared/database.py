"""
SQLite metadata store for Tuneshift.
Resolves track ids to storage keys for streaming and keeps per-owner playlists.
"""

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from shared.constants import DEFAULT_DATABASE_PATH, DEFAULT_PAGE_SIZE
from shared.models import Playlist, Track, utc_now

logger = logging.getLogger(__name__)

TRACK_COLUMNS = (
    "id", "owner", "name", "artist", "album", "duration_ms", "storage_key",
    "original_key", "file_size", "pitch_factor", "year", "cover_key", "uploaded_at",
)


class TrackDatabase:
    """
    Track and playlist records keyed by owner.

    Every operation acquires its own connection and releases it before
    returning, so one instance can be shared by concurrent requests.
    """

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = Path(db_path or DEFAULT_DATABASE_PATH).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=20)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _init_db(self):
        """Initialize the database schema."""
        with self._connection() as conn:
            # WAL lets streaming reads proceed while uploads write
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tracks (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    name TEXT NOT NULL,
                    artist TEXT,
                    album TEXT,
                    duration_ms INTEGER,
                    storage_key TEXT NOT NULL,
                    original_key TEXT NOT NULL,
                    file_size INTEGER,
                    pitch_factor REAL,
                    year INTEGER,
                    cover_key TEXT,
                    uploaded_at TEXT NOT NULL
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_tracks_owner ON tracks(owner, uploaded_at)")
            conn.execute("""
                CREATE TABLE IF NOT EXISTS playlists (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    name TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS playlist_tracks (
                    playlist_id TEXT NOT NULL REFERENCES playlists(id) ON DELETE CASCADE,
                    track_id TEXT NOT NULL REFERENCES tracks(id) ON DELETE CASCADE,
                    position INTEGER NOT NULL,
                    PRIMARY KEY (playlist_id, track_id)
                )
            """)

    # --- Tracks ---

    def add_track(self, track: Track) -> Track:
        data = track.to_dict()
        placeholders = ", ".join("?" for _ in TRACK_COLUMNS)
        with self._connection() as conn:
            conn.execute(
                f"INSERT INTO tracks ({', '.join(TRACK_COLUMNS)}) VALUES ({placeholders})",
                tuple(data[c] for c in TRACK_COLUMNS),
            )
        logger.info(f"Recorded track {track.id} ({track.name!r}) for {track.owner}")
        return track

    def get_track(self, track_id: str, owner: Optional[str] = None) -> Optional[Track]:
        """Fetch a track; when ``owner`` is given, other owners' tracks are invisible."""
        query = "SELECT * FROM tracks WHERE id = ?"
        params: Tuple = (track_id,)
        if owner is not None:
            query += " AND owner = ?"
            params += (owner,)
        with self._connection() as conn:
            row = conn.execute(query, params).fetchone()
        return self._row_to_track(row) if row else None

    def list_tracks(self, owner: str, page: int = 0,
                    page_size: int = DEFAULT_PAGE_SIZE) -> List[Track]:
        """One page of an owner's tracks, newest first."""
        if page < 0 or page_size <= 0:
            raise ValueError("page must be >= 0 and page_size > 0")
        with self._connection() as conn:
            rows = conn.execute("""
                SELECT * FROM tracks WHERE owner = ?
                ORDER BY uploaded_at DESC, id
                LIMIT ? OFFSET ?
            """, (owner, page_size, page * page_size)).fetchall()
        return [self._row_to_track(row) for row in rows]

    def count_tracks(self, owner: str) -> int:
        with self._connection() as conn:
            return conn.execute("SELECT COUNT(*) FROM tracks WHERE owner = ?", (owner,)).fetchone()[0]

    def delete_track(self, track_id: str, owner: str) -> bool:
        """
        Remove a track record (and its playlist entries).

        Returns:
            True if a record was removed, False if not found
        """
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM tracks WHERE id = ? AND owner = ?", (track_id, owner))
            return cursor.rowcount > 0

    def _row_to_track(self, row: sqlite3.Row) -> Track:
        return Track.from_dict(dict(row))

    # --- Playlists ---

    def create_playlist(self, owner: str, name: str) -> Playlist:
        playlist = Playlist(id=Playlist.generate_id(), owner=owner, name=name, created_at=utc_now())
        with self._connection() as conn:
            conn.execute(
                "INSERT INTO playlists (id, owner, name, created_at) VALUES (?, ?, ?, ?)",
                (playlist.id, playlist.owner, playlist.name, playlist.created_at),
            )
        return playlist

    def get_playlist(self, playlist_id: str, owner: str) -> Optional[Playlist]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM playlists WHERE id = ? AND owner = ?", (playlist_id, owner)
            ).fetchone()
            if not row:
                return None
            track_ids = [r["track_id"] for r in conn.execute(
                "SELECT track_id FROM playlist_tracks WHERE playlist_id = ? ORDER BY position",
                (playlist_id,),
            )]
        return Playlist(id=row["id"], owner=row["owner"], name=row["name"],
                        track_ids=track_ids, created_at=row["created_at"])

    def list_playlists(self, owner: str) -> List[Playlist]:
        with self._connection() as conn:
            ids = [r["id"] for r in conn.execute(
                "SELECT id FROM playlists WHERE owner = ? ORDER BY created_at, id", (owner,)
            )]
        return [p for p in (self.get_playlist(pid, owner) for pid in ids) if p]

    def add_to_playlist(self, playlist_id: str, track_id: str, owner: str) -> bool:
        """
        Append a track to a playlist. Adding a track already present is a no-op.

        Returns:
            False if the playlist or the track does not belong to ``owner``
        """
        with self._connection() as conn:
            playlist = conn.execute(
                "SELECT 1 FROM playlists WHERE id = ? AND owner = ?", (playlist_id, owner)
            ).fetchone()
            track = conn.execute(
                "SELECT 1 FROM tracks WHERE id = ? AND owner = ?", (track_id, owner)
            ).fetchone()
            if not playlist or not track:
                return False
            next_pos = conn.execute(
                "SELECT COALESCE(MAX(position), -1) + 1 FROM playlist_tracks WHERE playlist_id = ?",
                (playlist_id,),
            ).fetchone()[0]
            conn.execute(
                "INSERT OR IGNORE INTO playlist_tracks (playlist_id, track_id, position) VALUES (?, ?, ?)",
                (playlist_id, track_id, next_pos),
            )
        return True

    def remove_from_playlist(self, playlist_id: str, track_id: str, owner: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute("""
                DELETE FROM playlist_tracks
                WHERE playlist_id = ? AND track_id = ?
                  AND playlist_id IN (SELECT id FROM playlists WHERE owner = ?)
            """, (playlist_id, track_id, owner))
            return cursor.rowcount > 0

    def delete_playlist(self, playlist_id: str, owner: str) -> bool:
        with self._connection() as conn:
            cursor = conn.execute("DELETE FROM playlists WHERE id = ? AND owner = ?", (playlist_id, owner))
            return cursor.rowcount > 0
