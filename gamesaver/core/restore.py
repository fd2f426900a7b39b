"""Restore manager — copy a snapshot back onto the live save locations."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from gamesaver.core.errors import BackupError, RestoreError, SnapshotNotFoundError
from gamesaver.core.events import log_event
from gamesaver.core.file_ops import copy_file_with_retries, safe_join
from gamesaver.core.manifest import read_manifest
from gamesaver.data.library import PersistenceError
from gamesaver.models.game import SaveLocationType
from gamesaver.models.snapshot import EventType, RestoreResult, SnapshotReason

if TYPE_CHECKING:
    from gamesaver.config import Config
    from gamesaver.core.backup import SnapshotBuilder
    from gamesaver.core.manifest import SnapshotManifest
    from gamesaver.data.library import Library
    from gamesaver.models.game import SaveLocation
    from gamesaver.models.snapshot import Snapshot, SnapshotFile

NO_FILES_RESTORED = "Restore failed: no files could be restored to destination paths."


def _target(base: str, location_type: SaveLocationType, relative_path: str) -> Path:
    if location_type == SaveLocationType.FILE:
        return Path(base)
    return safe_join(Path(base), relative_path)


def resolve_destination(
    entry: SnapshotFile,
    manifest: SnapshotManifest,
    locations: list[SaveLocation],
) -> Path | None:
    """
    Where a snapshot file goes back to.

    1. The current location with the same id, if its type still matches
       what the manifest recorded.
    2. The only enabled location of the game, when there is exactly one.
    3. The path the manifest recorded for the location.
    """
    recorded = manifest.locations.get(entry.location_id)
    current = next((loc for loc in locations if loc.id == entry.location_id), None)
    if current is not None and (recorded is None or current.type == recorded.type):
        return _target(current.path, current.type, entry.relative_path)

    enabled = [loc for loc in locations if loc.enabled]
    if len(enabled) == 1:
        return _target(enabled[0].path, enabled[0].type, entry.relative_path)

    if recorded is not None:
        return _target(recorded.path, recorded.type, entry.relative_path)
    return None


class SnapshotRestorer:
    """Restore snapshots with a best-effort pre-restore safety snapshot."""

    def __init__(self, library: Library, config: Config, builder: SnapshotBuilder) -> None:
        self._library = library
        self._config = config
        self._builder = builder

    def restore(self, snapshot_id: str) -> RestoreResult:
        """
        Restore every file of a snapshot.

        Path checks happen before anything is written. Individual copy
        failures are counted; RestoreError is raised only when nothing
        could be restored.
        """
        snapshot = self._library.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)

        snapshot_root = Path(snapshot.storage_path)
        manifest = read_manifest(snapshot_root)
        manifest.check_paths(snapshot_root)

        locations = self._library.save_locations(snapshot.game_id)
        plan: list[tuple[SnapshotFile, Path, Path | None]] = []
        for entry in self._library.snapshot_files(snapshot_id):
            source = safe_join(snapshot_root, manifest.storage_folder_for(entry.location_id), entry.relative_path)
            plan.append((entry, source, resolve_destination(entry, manifest, locations)))

        result = RestoreResult()
        result.safety_snapshot_id = self._safety_snapshot(snapshot)

        retries = self._config.copy_retries
        written: set[Path] = set()
        for entry, source, dest in plan:
            if dest is None:
                result.failed += 1
                result.warnings.append(f"No destination for {entry.relative_path}")
                logger.warning(f"No restore destination for {entry.relative_path} (location {entry.location_id})")
                continue
            if dest in written:
                # Several files mapped onto one single-file location
                result.failed += 1
                result.warnings.append(f"Skipped {entry.relative_path}: {dest} already restored")
                logger.warning(f"Skipping {entry.relative_path}, restore destination {dest} already written")
                continue
            try:
                copy_file_with_retries(source, dest, retries)
                result.restored += 1
                written.add(dest)
            except OSError as e:
                result.failed += 1
                result.warnings.append(f"Failed to restore {entry.relative_path}: {e}")
                logger.error(f"Restore error for {dest}: {e}")

        if result.restored == 0:
            log_event(self._library, snapshot.game_id, EventType.ERROR, NO_FILES_RESTORED)
            raise RestoreError(NO_FILES_RESTORED)

        log_event(
            self._library,
            snapshot.game_id,
            EventType.RESTORE,
            f"Snapshot restored ({result.restored} files restored, {result.failed} failed).",
        )
        logger.info(
            f"Restored {result.restored} files from {snapshot_root.name}, {result.failed} failed"
        )
        return result

    def _safety_snapshot(self, snapshot: Snapshot) -> str | None:
        """Snapshot the current saves before overwriting them. Never fatal."""
        try:
            safety = self._builder.create_snapshot(
                snapshot.game_id,
                SnapshotReason.PRE_RESTORE,
                protected_ids=[snapshot.id],
            )
        except (BackupError, PersistenceError, OSError) as e:
            message = f"Pre-restore safety snapshot failed: {e}. Proceeding with restore without safety backup."
        else:
            if safety is not None:
                return safety.id
            message = "Pre-restore safety snapshot was not created. Proceeding with restore without safety backup."
        logger.warning(message)
        log_event(self._library, snapshot.game_id, EventType.ERROR, message)
        return None
