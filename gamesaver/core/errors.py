"""Backup engine exceptions."""

from __future__ import annotations


class BackupError(Exception):
    """Base class for engine failures surfaced to callers."""


class GameNotFoundError(BackupError):
    def __init__(self, game_id: str) -> None:
        super().__init__(f"Game not found: {game_id}")
        self.game_id = game_id


class SnapshotNotFoundError(BackupError):
    def __init__(self, snapshot_id: str) -> None:
        super().__init__(f"Snapshot not found: {snapshot_id}")
        self.snapshot_id = snapshot_id


class ManifestError(BackupError):
    """The snapshot manifest is absent or cannot be parsed."""

    def __init__(self, detail: str = "") -> None:
        super().__init__("Snapshot manifest is missing or invalid.")
        self.detail = detail


class PathEscapeError(BackupError):
    """A stored path would resolve outside the snapshot root."""

    def __init__(self, path: str = "") -> None:
        super().__init__("Snapshot file path resolves outside its allowed root.")
        self.path = path


class RestoreError(BackupError):
    """Restore could not place any file."""
