"""Game library — JSON state store for games, locations, snapshots and event logs."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

from loguru import logger

from gamesaver.models.game import Game, GameStatus, SaveLocation, SaveLocationType
from gamesaver.models.snapshot import EventLog, EventType, Snapshot, SnapshotFile, SnapshotReason

SCHEMA_VERSION = 2

T = TypeVar("T")


class PersistenceError(Exception):
    """Raised when the state file cannot be written."""


def _bool_like(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    return bool(value)


def _pick(cls: type, data: dict[str, Any]) -> dict[str, Any]:
    """Keep only the keys that are dataclass fields of *cls*."""
    names = {f.name for f in fields(cls)}
    return {k: v for k, v in data.items() if k in names}


def _require_str(data: dict[str, Any], *keys: str) -> None:
    for key in keys:
        if not isinstance(data.get(key), str):
            raise TypeError(f"'{key}' must be a string")


def _game_from_dict(data: dict[str, Any]) -> Game:
    _require_str(data, "id", "name", "install_path", "exe_path", "created_at", "folder_name")
    game = Game(**_pick(Game, data))
    game.status = GameStatus(game.status)
    if game.last_seen_at is not None and not isinstance(game.last_seen_at, str):
        raise TypeError("'last_seen_at' must be a string or null")
    return game


def _location_from_dict(data: dict[str, Any]) -> SaveLocation:
    _require_str(data, "id", "game_id", "path")
    if "auto_detected" not in data or "enabled" not in data:
        raise KeyError("auto_detected/enabled")
    location = SaveLocation(**_pick(SaveLocation, data))
    location.type = SaveLocationType(location.type)
    location.auto_detected = _bool_like(location.auto_detected)
    location.enabled = _bool_like(location.enabled)
    return location


def _snapshot_from_dict(data: dict[str, Any]) -> Snapshot:
    _require_str(data, "id", "game_id", "created_at", "checksum", "storage_path")
    snapshot = Snapshot(**_pick(Snapshot, data))
    snapshot.reason = SnapshotReason(snapshot.reason)
    if not isinstance(snapshot.size_bytes, int):
        raise TypeError("'size_bytes' must be an integer")
    return snapshot


def _snapshot_file_from_dict(data: dict[str, Any]) -> SnapshotFile:
    _require_str(data, "id", "snapshot_id", "location_id", "relative_path", "checksum")
    entry = SnapshotFile(**_pick(SnapshotFile, data))
    if not isinstance(entry.size_bytes, int):
        raise TypeError("'size_bytes' must be an integer")
    return entry


def _event_from_dict(data: dict[str, Any]) -> EventLog:
    _require_str(data, "id", "message", "created_at")
    event = EventLog(**_pick(EventLog, data))
    event.type = EventType(event.type)
    if event.game_id is not None and not isinstance(event.game_id, str):
        raise TypeError("'game_id' must be a string or null")
    return event


def _load_rows(table: str, raw: Any, parse: Callable[[dict[str, Any]], T]) -> list[T]:
    """Parse one table, dropping malformed rows."""
    if not isinstance(raw, list):
        return []
    rows: list[T] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        try:
            rows.append(parse(item))
        except (TypeError, ValueError, KeyError) as e:
            logger.warning(f"Skipping malformed {table} row: {e}")
    return rows


class Library:
    """
    State store — reads/writes ``library.json``.

    Every mutation persists immediately unless made inside
    :meth:`batch_update`. All access goes through one re-entrant lock,
    which makes the store the single writer for the whole process.
    A ``Library(None)`` keeps everything in memory.
    """

    def __init__(self, path: Path | None) -> None:
        self._path = path
        self._lock = threading.RLock()
        self._defer_depth = 0
        self._games: list[Game] = []
        self._locations: list[SaveLocation] = []
        self._snapshots: list[Snapshot] = []
        self._snapshot_files: list[SnapshotFile] = []
        self._events: list[EventLog] = []

    @property
    def path(self) -> Path | None:
        return self._path

    # ── Persistence ──

    def load(self) -> None:
        """Load state from disk. An unreadable file yields an empty library."""
        with self._lock:
            self._games, self._locations = [], []
            self._snapshots, self._snapshot_files, self._events = [], [], []
            if self._path is None or not self._path.exists():
                return
            try:
                with open(self._path, encoding="utf-8") as f:
                    data = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.error(f"Failed to load library, starting empty: {e}")
                return
            if not isinstance(data, dict):
                logger.error("Library file is not a JSON object, starting empty")
                return
            self._games = _load_rows("game", data.get("games"), _game_from_dict)
            self._locations = _load_rows("save location", data.get("saveLocations"), _location_from_dict)
            self._snapshots = _load_rows("snapshot", data.get("snapshots"), _snapshot_from_dict)
            self._snapshot_files = _load_rows(
                "snapshot file", data.get("snapshotFiles"), _snapshot_file_from_dict
            )
            self._events = _load_rows("event log", data.get("eventLogs"), _event_from_dict)

    def persist(self) -> None:
        """Flush the full state to disk (atomic replace)."""
        with self._lock:
            if self._path is None:
                return
            data = {
                "schemaVersion": SCHEMA_VERSION,
                "games": [asdict(g) for g in self._games],
                "saveLocations": [asdict(loc) for loc in self._locations],
                "snapshots": [asdict(s) for s in self._snapshots],
                "snapshotFiles": [asdict(f) for f in self._snapshot_files],
                "eventLogs": [asdict(e) for e in self._events],
            }
            tmp = self._path.with_suffix(".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                with open(tmp, "w", encoding="utf-8") as f:
                    json.dump(data, f, ensure_ascii=False, indent=2)
                tmp.replace(self._path)
            except OSError as e:
                logger.error(f"Failed to save library: {e}")
                if tmp.exists():
                    tmp.unlink(missing_ok=True)
                raise PersistenceError(f"Failed to save library: {e}") from e

    def _commit(self) -> None:
        if self._defer_depth == 0:
            self.persist()

    @contextmanager
    def batch_update(self) -> Iterator[None]:
        """Hold the write lock and defer persistence until the block exits."""
        with self._lock:
            self._defer_depth += 1
            try:
                yield
            finally:
                self._defer_depth -= 1
            if self._defer_depth == 0:
                self.persist()

    # ── Games ──

    def games(self) -> list[Game]:
        with self._lock:
            return list(self._games)

    def get_game(self, game_id: str) -> Game | None:
        with self._lock:
            return next((g for g in self._games if g.id == game_id), None)

    def upsert_game(self, game: Game) -> None:
        with self._lock:
            self._replace_or_append(self._games, game)
            self._commit()

    def delete_game(self, game_id: str) -> None:
        """Delete a game and every row that depends on it."""
        with self._lock:
            snapshot_ids = {s.id for s in self._snapshots if s.game_id == game_id}
            self._games = [g for g in self._games if g.id != game_id]
            self._locations = [loc for loc in self._locations if loc.game_id != game_id]
            self._snapshots = [s for s in self._snapshots if s.game_id != game_id]
            self._snapshot_files = [f for f in self._snapshot_files if f.snapshot_id not in snapshot_ids]
            self._events = [e for e in self._events if e.game_id != game_id]
            self._commit()

    # ── Save locations ──

    def save_locations(self, game_id: str | None = None) -> list[SaveLocation]:
        with self._lock:
            return [loc for loc in self._locations if game_id is None or loc.game_id == game_id]

    def get_save_location(self, location_id: str) -> SaveLocation | None:
        with self._lock:
            return next((loc for loc in self._locations if loc.id == location_id), None)

    def upsert_save_location(self, location: SaveLocation) -> None:
        with self._lock:
            self._replace_or_append(self._locations, location)
            self._commit()

    def delete_save_location(self, location_id: str) -> bool:
        with self._lock:
            before = len(self._locations)
            self._locations = [loc for loc in self._locations if loc.id != location_id]
            if len(self._locations) == before:
                return False
            self._commit()
            return True

    # ── Snapshots ──

    def snapshots(self, game_id: str | None = None) -> list[Snapshot]:
        """Snapshots, newest first. Equal timestamps keep the latest insert first."""
        with self._lock:
            rows = [s for s in reversed(self._snapshots) if game_id is None or s.game_id == game_id]
        return sorted(rows, key=lambda s: s.created_at, reverse=True)

    def get_snapshot(self, snapshot_id: str) -> Snapshot | None:
        with self._lock:
            return next((s for s in self._snapshots if s.id == snapshot_id), None)

    def snapshot_files(self, snapshot_id: str) -> list[SnapshotFile]:
        with self._lock:
            return [f for f in self._snapshot_files if f.snapshot_id == snapshot_id]

    def upsert_snapshot(self, snapshot: Snapshot) -> None:
        with self._lock:
            self._replace_or_append(self._snapshots, snapshot)
            self._commit()

    def upsert_snapshot_file(self, entry: SnapshotFile) -> None:
        with self._lock:
            self._replace_or_append(self._snapshot_files, entry)
            self._commit()

    def add_snapshot(self, snapshot: Snapshot, files: list[SnapshotFile]) -> None:
        """Insert a snapshot and its files as one unit.

        If persisting fails the rows are withdrawn again, so a failed
        write never leaves a partial snapshot visible.

        A snapshot id that is already recorded is rejected.
        """
        with self._lock:
            if any(s.id == snapshot.id for s in self._snapshots):
                raise ValueError(f"Snapshot {snapshot.id} already exists")
            self._snapshots.append(snapshot)
            self._snapshot_files.extend(files)
            try:
                self._commit()
            except PersistenceError:
                file_ids = {f.id for f in files}
                self._snapshots = [s for s in self._snapshots if s.id != snapshot.id]
                self._snapshot_files = [f for f in self._snapshot_files if f.id not in file_ids]
                raise

    def delete_snapshot(self, snapshot_id: str) -> int:
        """Delete a snapshot row and its files. Returns the number of file rows removed."""
        with self._lock:
            before = len(self._snapshot_files)
            self._snapshots = [s for s in self._snapshots if s.id != snapshot_id]
            self._snapshot_files = [f for f in self._snapshot_files if f.snapshot_id != snapshot_id]
            removed = before - len(self._snapshot_files)
            self._commit()
            return removed

    # ── Event logs ──

    def event_logs(self, game_id: str | None = None) -> list[EventLog]:
        with self._lock:
            return [e for e in self._events if game_id is None or e.game_id == game_id]

    def append_event(self, event: EventLog) -> None:
        with self._lock:
            self._events.append(event)
            self._commit()

    # ── Helpers ──

    @staticmethod
    def _replace_or_append(rows: list, item: Any) -> None:
        for i, row in enumerate(rows):
            if row.id == item.id:
                rows[i] = item
                return
        rows.append(item)
