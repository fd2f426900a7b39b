"""Backup service — the engine surface used by the CLI and other front ends."""

from __future__ import annotations

import threading
from contextlib import ExitStack, contextmanager
from typing import TYPE_CHECKING, Callable, Iterator

from gamesaver.core.backup import SnapshotBuilder
from gamesaver.core.errors import SnapshotNotFoundError
from gamesaver.core.progress import ProgressHub
from gamesaver.core.restore import SnapshotRestorer
from gamesaver.core.retention import RetentionEnforcer
from gamesaver.core.scan import DiskReconciler
from gamesaver.core.verify import SnapshotVerifier
from gamesaver.models.snapshot import SnapshotReason

if TYPE_CHECKING:
    from gamesaver.config import Config
    from gamesaver.core.games import GameService
    from gamesaver.core.progress import ProgressListener
    from gamesaver.data.library import Library
    from gamesaver.models.snapshot import RestoreResult, ScanResult, Snapshot, VerifyResult


class BackupService:
    """
    Backup, restore, verify, delete and scan.

    Operations on the same game are serialized by a per-game re-entrant
    lock; different games may run concurrently on separate threads.
    A scan first takes the lock of every known game, then holds the library
    write lock for its whole run, so it never sees a half-written snapshot.
    """

    def __init__(self, library: Library, config: Config, games: GameService) -> None:
        self._library = library
        self._progress = ProgressHub()
        self._retention = RetentionEnforcer(library)
        self._builder = SnapshotBuilder(library, config, games, self._progress, self._retention)
        self._restorer = SnapshotRestorer(library, config, self._builder)
        self._verifier = SnapshotVerifier(library)
        self._reconciler = DiskReconciler(library, config)
        self._locks: dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _game_lock(self, game_id: str) -> Iterator[None]:
        with self._locks_guard:
            lock = self._locks.setdefault(game_id, threading.RLock())
        with lock:
            yield

    def _snapshot_game_id(self, snapshot_id: str) -> str:
        snapshot = self._library.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        return snapshot.game_id

    def on_backup_progress(self, listener: ProgressListener) -> Callable[[], None]:
        """Subscribe to backup progress; returns an unsubscribe callable."""
        return self._progress.subscribe(listener)

    def backup_game(self, game_id: str, reason: SnapshotReason = SnapshotReason.MANUAL) -> Snapshot | None:
        with self._game_lock(game_id):
            return self._builder.create_snapshot(game_id, SnapshotReason(reason))

    def restore_snapshot(self, snapshot_id: str) -> RestoreResult:
        with self._game_lock(self._snapshot_game_id(snapshot_id)):
            return self._restorer.restore(snapshot_id)

    def verify_snapshot(self, snapshot_id: str) -> VerifyResult:
        with self._game_lock(self._snapshot_game_id(snapshot_id)):
            return self._verifier.verify(snapshot_id)

    def delete_snapshot(self, snapshot_id: str) -> None:
        with self._game_lock(self._snapshot_game_id(snapshot_id)):
            self._retention.delete_snapshot(snapshot_id)

    def scan_snapshots_from_disk(self) -> ScanResult:
        with ExitStack() as stack:
            for game_id in sorted(g.id for g in self._library.games()):
                stack.enter_context(self._game_lock(game_id))
            return self._reconciler.scan()
