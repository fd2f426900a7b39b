"""Snapshot, snapshot file and event log models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class SnapshotReason(StrEnum):
    """Why a snapshot was taken."""

    AUTO = "auto"
    MANUAL = "manual"
    PRE_RESTORE = "pre-restore"


class EventType(StrEnum):
    """Audit trail entry category."""

    BACKUP = "backup"
    RESTORE = "restore"
    ERROR = "error"


@dataclass
class Snapshot:
    """One point-in-time backup of all enabled save locations of a game.

    ``checksum`` is an integrity tag over the manifest-derived file summary,
    not a hash of the combined file contents.
    """

    id: str
    game_id: str
    created_at: str  # ISO datetime
    size_bytes: int
    checksum: str
    storage_path: str  # Absolute snapshot root directory
    reason: SnapshotReason = SnapshotReason.MANUAL


@dataclass
class SnapshotFile:
    """A single file captured in a snapshot."""

    id: str
    snapshot_id: str
    location_id: str  # Soft reference; the location may no longer exist
    relative_path: str  # Posix path inside the location's storage folder
    size_bytes: int
    checksum: str


@dataclass
class EventLog:
    """Append-only audit trail entry."""

    id: str
    game_id: str | None
    type: EventType
    message: str
    created_at: str


@dataclass
class VerifyResult:
    """Outcome of a snapshot integrity check."""

    ok: bool
    issues: int = 0
    problems: list[str] = field(default_factory=list)


@dataclass
class RestoreResult:
    """Result of a restore operation."""

    restored: int = 0
    failed: int = 0
    safety_snapshot_id: str | None = None
    warnings: list[str] = field(default_factory=list)


@dataclass
class ScanResult:
    """Counts reported by a storage-root reconciliation."""

    added_snapshots: int = 0
    removed_snapshots: int = 0
    removed_snapshot_files: int = 0
    skipped_unknown_games: int = 0
    skipped_invalid_snapshots: int = 0
    relocated_snapshots: int = 0
