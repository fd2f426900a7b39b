"""Snapshot builder — copies save locations into a timestamped snapshot with a manifest."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterable
from uuid import uuid4

from loguru import logger

from gamesaver.core.errors import GameNotFoundError
from gamesaver.core.events import log_event
from gamesaver.core.file_ops import copy_file_with_retries, remove_dir, split_stored_path, walk_files
from gamesaver.core.hashing import hash_file
from gamesaver.core.manifest import (
    MANIFEST_NAME,
    ManifestLocation,
    SnapshotManifest,
    snapshot_checksum,
    write_manifest,
)
from gamesaver.core.progress import BackupProgress, ProgressStage
from gamesaver.core.storage import snapshots_dir
from gamesaver.data.library import PersistenceError
from gamesaver.models.game import GameStatus, SaveLocationType
from gamesaver.models.snapshot import EventType, Snapshot, SnapshotFile, SnapshotReason
from gamesaver.utils import format_size, sanitize_folder_name, to_iso, utc_now

if TYPE_CHECKING:
    from gamesaver.config import Config
    from gamesaver.core.games import GameService
    from gamesaver.core.progress import ProgressHub
    from gamesaver.core.retention import RetentionEnforcer
    from gamesaver.data.library import Library
    from gamesaver.models.game import Game, SaveLocation


@dataclass
class PlannedFile:
    """A source file scheduled for copying."""

    location_id: str
    source: Path
    relative_path: str  # Posix, relative to the location's storage folder
    size: int


def snapshot_folder_name(moment: datetime) -> str:
    """``YYYY-MM-DD_HH-MM-SS-mmm`` in UTC."""
    return moment.strftime("%Y-%m-%d_%H-%M-%S-") + f"{moment.microsecond // 1000:03d}"


def assign_storage_folders(locations: list[SaveLocation]) -> dict[str, str]:
    """
    Pick a unique, readable subfolder name for each location.

    Folder locations use their own basename, file locations the basename
    of their parent directory; clashes get ``_2``, ``_3`` … suffixes.
    """
    used = {MANIFEST_NAME.lower()}
    result: dict[str, str] = {}
    for location in locations:
        parts = split_stored_path(location.path)
        if location.type == SaveLocationType.FILE:
            parts = parts[:-1]
        base = sanitize_folder_name(parts[-1] if parts else "", fallback=location.id)
        name = base
        suffix = 2
        while name.lower() in used:
            name = f"{base}_{suffix}"
            suffix += 1
        used.add(name.lower())
        result[location.id] = name
    return result


class SnapshotBuilder:
    """Creates snapshots for one game at a time. Callers serialize per game."""

    def __init__(
        self,
        library: Library,
        config: Config,
        games: GameService,
        progress: ProgressHub,
        retention: RetentionEnforcer,
    ) -> None:
        self._library = library
        self._config = config
        self._games = games
        self._progress = progress
        self._retention = retention

    def create_snapshot(
        self,
        game_id: str,
        reason: SnapshotReason,
        protected_ids: Iterable[str] = (),
    ) -> Snapshot | None:
        """
        Back up every enabled save location of a game.

        Returns None (and marks the game ``warning``) when there is nothing
        to back up or no file could be copied. Manifest or library write
        failures delete the snapshot directory and propagate.
        """
        game = self._library.get_game(game_id)
        if game is None:
            raise GameNotFoundError(game_id)

        now = utc_now()
        snaps_root = snapshots_dir(self._config.storage_root, game.folder_name)

        locations = [loc for loc in self._library.save_locations(game_id) if loc.enabled]
        if not locations:
            self._skip(game, "Backup skipped: no enabled save locations.")
            return None

        storage_folders = assign_storage_folders(locations)
        plan = self._plan_files(locations)
        if not plan:
            self._skip(game, "Backup skipped: no files found in enabled save locations.")
            return None

        snapshot_root = self._make_snapshot_dir(snaps_root, snapshot_folder_name(now))
        snapshot_id = str(uuid4())
        state = BackupProgress(
            stage=ProgressStage.STARTED,
            game_id=game_id,
            reason=str(reason),
            total_files=len(plan),
            completed_files=0,
            total_bytes=sum(item.size for item in plan),
            copied_bytes=0,
        )
        self._progress.emit(state)

        try:
            copied, skipped, state = self._copy_files(game, plan, snapshot_root, storage_folders, state)
            if not copied:
                remove_dir(snapshot_root)
                self._skip(game, "Backup skipped: failed to copy files from enabled save locations.")
                self._progress.emit(replace(state, stage=ProgressStage.FAILED, error="no files copied"))
                return None

            files = self._checksum_files(snapshot_id, copied, snapshot_root, storage_folders)
            manifest = SnapshotManifest(
                snapshot_id=snapshot_id,
                created_at=to_iso(now),
                reason=reason,
                locations={
                    loc.id: ManifestLocation(
                        path=loc.path,
                        type=loc.type,
                        auto_detected=loc.auto_detected,
                        enabled=loc.enabled,
                        storage_folder=storage_folders[loc.id],
                    )
                    for loc in locations
                },
            )
            write_manifest(snapshot_root, manifest)

            snapshot = Snapshot(
                id=snapshot_id,
                game_id=game_id,
                created_at=manifest.created_at,
                size_bytes=sum(f.size_bytes for f in files),
                checksum=snapshot_checksum(manifest, files),
                storage_path=str(snapshot_root),
                reason=reason,
            )
            self._library.add_snapshot(snapshot, files)
        except Exception as e:
            self._rollback(game, snapshot_root, e)
            self._progress.emit(replace(state, stage=ProgressStage.FAILED, error=str(e)))
            raise

        self._games.set_status(game_id, GameStatus.WARNING if skipped else GameStatus.PROTECTED)
        log_event(
            self._library,
            game_id,
            EventType.BACKUP,
            f"Snapshot created ({len(files)} files, {format_size(snapshot.size_bytes)}).",
        )
        logger.info(
            f"Created snapshot {snapshot_root.name} for {game.name}: "
            f"{len(files)} files, {len(skipped)} skipped"
        )
        self._retention.enforce(game_id, self._config.retention_count, protected_ids)
        self._progress.emit(
            replace(
                state,
                stage=ProgressStage.COMPLETED,
                completed_files=state.total_files,
                copied_bytes=state.total_bytes,
                snapshot_id=snapshot.id,
            )
        )
        return snapshot

    # ── Steps ──

    def _plan_files(self, locations: list[SaveLocation]) -> list[PlannedFile]:
        """Enumerate source files with their sizes, skipping missing locations."""
        plan: list[PlannedFile] = []
        for location in locations:
            root = Path(location.path)
            if location.type == SaveLocationType.FILE:
                if not root.is_file():
                    logger.warning(f"Save file missing, skipping: {root}")
                    continue
                sources = [(root, root.name)]
            else:
                if not root.is_dir():
                    logger.warning(f"Save folder missing, skipping: {root}")
                    continue
                try:
                    sources = [(f, f.relative_to(root).as_posix()) for f in walk_files(root)]
                except OSError as e:
                    logger.warning(f"Cannot read save folder {root}: {e}")
                    continue

            for source, relative in sources:
                try:
                    size = source.stat().st_size
                except OSError as e:
                    logger.warning(f"Cannot stat {source}, skipping: {e}")
                    continue
                plan.append(PlannedFile(location.id, source, relative, size))
        return plan

    def _make_snapshot_dir(self, snaps_root: Path, base_name: str) -> Path:
        """Create the snapshot directory, suffixing ``_N`` on a same-millisecond clash."""
        snaps_root.mkdir(parents=True, exist_ok=True)
        candidate = snaps_root / base_name
        suffix = 1
        while True:
            try:
                candidate.mkdir()
                return candidate
            except FileExistsError:
                candidate = snaps_root / f"{base_name}_{suffix}"
                suffix += 1

    def _copy_files(
        self,
        game: Game,
        plan: list[PlannedFile],
        snapshot_root: Path,
        storage_folders: dict[str, str],
        state: BackupProgress,
    ) -> tuple[list[PlannedFile], list[PlannedFile], BackupProgress]:
        copied: list[PlannedFile] = []
        skipped: list[PlannedFile] = []
        retries = self._config.copy_retries
        for item in plan:
            dest = snapshot_root / storage_folders[item.location_id] / item.relative_path
            try:
                copy_file_with_retries(item.source, dest, retries)
                copied.append(item)
            except OSError as e:
                skipped.append(item)
                logger.warning(f"Skipping {item.source}: {e}")
                log_event(
                    self._library,
                    game.id,
                    EventType.ERROR,
                    f'Backup skipped file "{item.source.name}": {e}',
                )
            state = replace(
                state,
                stage=ProgressStage.PROGRESS,
                completed_files=state.completed_files + 1,
                copied_bytes=state.copied_bytes + item.size,
            )
            self._progress.emit(state)
        return copied, skipped, state

    def _checksum_files(
        self,
        snapshot_id: str,
        copied: list[PlannedFile],
        snapshot_root: Path,
        storage_folders: dict[str, str],
    ) -> list[SnapshotFile]:
        files: list[SnapshotFile] = []
        for item in copied:
            stored = snapshot_root / storage_folders[item.location_id] / item.relative_path
            files.append(
                SnapshotFile(
                    id=str(uuid4()),
                    snapshot_id=snapshot_id,
                    location_id=item.location_id,
                    relative_path=item.relative_path,
                    size_bytes=stored.stat().st_size,
                    checksum=hash_file(stored),
                )
            )
        return files

    def _skip(self, game: Game, message: str) -> None:
        logger.warning(f"{game.name}: {message}")
        self._games.set_status(game.id, GameStatus.WARNING)
        log_event(self._library, game.id, EventType.ERROR, message)

    def _rollback(self, game: Game, snapshot_root: Path, error: Exception) -> None:
        logger.error(f"Backup of {game.name} failed, rolling back {snapshot_root.name}: {error}")
        try:
            remove_dir(snapshot_root)
        except OSError as e:
            logger.error(f"Failed to remove partial snapshot {snapshot_root}: {e}")
        try:
            self._games.set_status(game.id, GameStatus.ERROR)
            log_event(self._library, game.id, EventType.ERROR, f"Backup failed: {error}")
        except PersistenceError as e:
            logger.error(f"Could not record backup failure for {game.name}: {e}")
