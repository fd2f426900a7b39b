"""Snapshot deletion and retention policy."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from loguru import logger

from gamesaver.core.errors import SnapshotNotFoundError
from gamesaver.core.file_ops import remove_dir

if TYPE_CHECKING:
    from gamesaver.data.library import Library
    from gamesaver.models.snapshot import Snapshot


class RetentionEnforcer:
    """Deletes snapshots, either on request or when a game exceeds its retention count."""

    def __init__(self, library: Library) -> None:
        self._library = library

    def delete_snapshot(self, snapshot_id: str) -> None:
        """
        Remove a snapshot directory, then its rows.

        If the directory cannot be removed the error propagates and the
        rows stay, so the library never forgets files that still exist.
        """
        snapshot = self._library.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)
        remove_dir(Path(snapshot.storage_path))
        removed_files = self._library.delete_snapshot(snapshot_id)
        logger.debug(f"Deleted snapshot {snapshot_id} ({removed_files} files)")

    def prune(
        self,
        snapshots: list[Snapshot],
        keep: int,
        protected_ids: Iterable[str] = (),
    ) -> list[str]:
        """
        Delete all but the *keep* newest of *snapshots* (given newest first).

        Snapshots in *protected_ids* are never deleted. Returns the ids
        that were removed; failures are logged and skipped.
        """
        protected = set(protected_ids)
        removed: list[str] = []
        for snapshot in snapshots[max(keep, 0):]:
            if snapshot.id in protected:
                continue
            try:
                self.delete_snapshot(snapshot.id)
                removed.append(snapshot.id)
            except OSError as e:
                logger.warning(f"Failed to rotate snapshot {snapshot.id}: {e}")
        return removed

    def enforce(self, game_id: str, keep: int, protected_ids: Iterable[str] = ()) -> list[str]:
        """Apply retention to every snapshot of one game."""
        removed = self.prune(self._library.snapshots(game_id), keep, protected_ids)
        if removed:
            logger.info(f"Rotated {len(removed)} old snapshot(s) for game {game_id}")
        return removed
