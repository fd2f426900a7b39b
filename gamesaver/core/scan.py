"""Disk reconciler — resynchronize library rows with the snapshot folders on disk."""

from __future__ import annotations

import os
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

from loguru import logger

from gamesaver.core.errors import ManifestError, PathEscapeError
from gamesaver.core.file_ops import safe_join, walk_files
from gamesaver.core.hashing import hash_file
from gamesaver.core.manifest import read_manifest, snapshot_checksum
from gamesaver.core.storage import SNAPSHOTS_DIR, read_game_metadata
from gamesaver.models.game import Game, GameStatus, SaveLocation
from gamesaver.models.snapshot import ScanResult, Snapshot, SnapshotFile

if TYPE_CHECKING:
    from gamesaver.config import Config
    from gamesaver.core.manifest import SnapshotManifest
    from gamesaver.data.library import Library


def _path_key(path: str | Path) -> str:
    return os.path.normcase(os.path.abspath(path))


class DiskReconciler:
    """
    Storage-root scan used for disaster recovery and drift repair.

    Snapshot folders found on disk but unknown to the library are imported
    from their manifests; library snapshots whose folder is gone are
    dropped. A known snapshot found under a new folder is repointed there
    instead of being dropped. Unknown game folders and unreadable manifests
    are counted and left untouched. Running it twice in a row changes nothing
    the second time.
    """

    def __init__(self, library: Library, config: Config) -> None:
        self._library = library
        self._config = config

    def scan(self) -> ScanResult:
        result = ScanResult()
        root = self._config.storage_root
        if not root.is_dir():
            # An unplugged backup drive must not wipe the library
            logger.warning(f"Storage root {root} does not exist, nothing to reconcile")
            return result

        with self._library.batch_update():
            for game_dir in sorted(p for p in root.iterdir() if p.is_dir()):
                game = self._resolve_game(game_dir)
                if game is None:
                    result.skipped_unknown_games += 1
                    logger.warning(f"Skipping unknown game folder: {game_dir.name}")
                    continue
                self._import_snapshots(game, game_dir, result)
            self._drop_missing(result)

        logger.info(
            f"Scan finished: +{result.added_snapshots} snapshots, "
            f"-{result.removed_snapshots} snapshots ({result.removed_snapshot_files} files), "
            f"{result.skipped_unknown_games} unknown games, "
            f"{result.skipped_invalid_snapshots} invalid snapshots"
        )
        return result

    # ── Games ──

    def _resolve_game(self, game_dir: Path) -> Game | None:
        """Match a folder to a known game, or recover the game from its metadata.json."""
        folder = game_dir.name
        games = self._library.games()
        for game in games:
            if game.folder_name.lower() == folder.lower() or game.id == folder:
                return game

        metadata = read_game_metadata(game_dir)
        if metadata is None:
            return None

        existing = self._library.get_game(metadata["id"])
        if existing is not None:
            return existing

        name = metadata["name"].strip()
        if any(g.name.lower() == name.lower() for g in games):
            logger.warning(f"Cannot recover {folder}: a game named '{name}' already exists")
            return None

        game = Game(
            id=metadata["id"],
            name=name,
            install_path=metadata["install_path"],
            exe_path=metadata["exe_path"],
            created_at=metadata["created_at"],
            folder_name=folder,
            status=GameStatus.PROTECTED,
        )
        self._library.upsert_game(game)
        logger.info(f"Recovered game '{name}' from {folder}/metadata.json")
        return game

    # ── Snapshots ──

    def _import_snapshots(self, game: Game, game_dir: Path, result: ScanResult) -> None:
        snaps_root = game_dir / SNAPSHOTS_DIR
        if not snaps_root.is_dir():
            return

        known_ids = {s.id for s in self._library.snapshots()}
        known_paths = {_path_key(s.storage_path) for s in self._library.snapshots()}

        for snap_dir in sorted(p for p in snaps_root.iterdir() if p.is_dir()):
            if _path_key(snap_dir) in known_paths:
                continue
            try:
                manifest = read_manifest(snap_dir)
                manifest.check_paths(snap_dir)
            except (ManifestError, PathEscapeError) as e:
                result.skipped_invalid_snapshots += 1
                logger.warning(f"Skipping snapshot folder {snap_dir}: {e}")
                continue
            if manifest.snapshot_id in known_ids:
                if self._relocate(manifest.snapshot_id, snap_dir):
                    known_paths.add(_path_key(snap_dir))
                    result.relocated_snapshots += 1
                continue

            try:
                files = self._collect_files(snap_dir, manifest)
            except OSError as e:
                result.skipped_invalid_snapshots += 1
                logger.warning(f"Cannot read snapshot folder {snap_dir}: {e}")
                continue

            self._ensure_locations(game, manifest)
            snapshot = Snapshot(
                id=manifest.snapshot_id,
                game_id=game.id,
                created_at=manifest.created_at,
                size_bytes=sum(f.size_bytes for f in files),
                checksum=snapshot_checksum(manifest, files),
                storage_path=str(snap_dir),
                reason=manifest.reason,
            )
            self._library.add_snapshot(snapshot, files)
            known_ids.add(snapshot.id)
            result.added_snapshots += 1
            logger.info(f"Imported snapshot {snap_dir.name} for {game.name} ({len(files)} files)")

    def _relocate(self, snapshot_id: str, snap_dir: Path) -> bool:
        """Point a known snapshot whose recorded folder is gone at the folder found on disk."""
        existing = self._library.get_snapshot(snapshot_id)
        if existing is None or Path(existing.storage_path).is_dir():
            return False
        self._library.upsert_snapshot(replace(existing, storage_path=str(snap_dir)))
        logger.info(f"Snapshot {snapshot_id} moved from {existing.storage_path} to {snap_dir}")
        return True

    def _collect_files(self, snap_dir: Path, manifest: SnapshotManifest) -> list[SnapshotFile]:
        files: list[SnapshotFile] = []
        for loc_id, location in manifest.locations.items():
            folder = safe_join(snap_dir, location.storage_folder)
            if not folder.is_dir():
                continue
            for stored in walk_files(folder):
                files.append(
                    SnapshotFile(
                        id=str(uuid4()),
                        snapshot_id=manifest.snapshot_id,
                        location_id=loc_id,
                        relative_path=stored.relative_to(folder).as_posix(),
                        size_bytes=stored.stat().st_size,
                        checksum=hash_file(stored),
                    )
                )
        return files

    def _ensure_locations(self, game: Game, manifest: SnapshotManifest) -> None:
        """Create the save locations a manifest references that the library lacks."""
        for loc_id, location in manifest.locations.items():
            if self._library.get_save_location(loc_id) is not None:
                continue
            current = self._library.save_locations(game.id)
            if any(loc.path.lower() == location.path.lower() for loc in current):
                continue
            self._library.upsert_save_location(
                SaveLocation(
                    id=loc_id,
                    game_id=game.id,
                    path=location.path,
                    type=location.type,
                    auto_detected=location.auto_detected,
                    enabled=location.enabled,
                )
            )
            logger.debug(f"Recreated save location {location.path} for {game.name}")

    def _drop_missing(self, result: ScanResult) -> None:
        for snapshot in self._library.snapshots():
            if Path(snapshot.storage_path).is_dir():
                continue
            result.removed_snapshot_files += self._library.delete_snapshot(snapshot.id)
            result.removed_snapshots += 1
            logger.info(f"Dropped snapshot {snapshot.id}: {snapshot.storage_path} no longer exists")
