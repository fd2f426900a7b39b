"""Snapshot verifier — recompute file checksums against the library rows."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from gamesaver.core.errors import SnapshotNotFoundError
from gamesaver.core.file_ops import safe_join
from gamesaver.core.hashing import hash_file
from gamesaver.core.manifest import read_manifest
from gamesaver.models.snapshot import VerifyResult

if TYPE_CHECKING:
    from gamesaver.data.library import Library


class SnapshotVerifier:
    def __init__(self, library: Library) -> None:
        self._library = library

    def verify(self, snapshot_id: str) -> VerifyResult:
        """
        Check every file a snapshot owns.

        A missing or malformed manifest raises ManifestError and a path
        leaving the snapshot root raises PathEscapeError; missing or
        changed files are counted as issues.
        """
        snapshot = self._library.get_snapshot(snapshot_id)
        if snapshot is None:
            raise SnapshotNotFoundError(snapshot_id)

        snapshot_root = Path(snapshot.storage_path)
        manifest = read_manifest(snapshot_root)
        manifest.check_paths(snapshot_root)

        problems: list[str] = []
        for entry in self._library.snapshot_files(snapshot_id):
            stored = safe_join(snapshot_root, manifest.storage_folder_for(entry.location_id), entry.relative_path)
            if not stored.is_file():
                problems.append(f"missing: {entry.relative_path}")
                continue
            try:
                actual = hash_file(stored)
            except OSError as e:
                problems.append(f"unreadable: {entry.relative_path} ({e})")
                continue
            if actual != entry.checksum:
                problems.append(f"checksum mismatch: {entry.relative_path}")

        for problem in problems:
            logger.warning(f"Snapshot {snapshot_id}: {problem}")
        if not problems:
            logger.info(f"Snapshot {snapshot_id} verified OK")
        return VerifyResult(ok=not problems, issues=len(problems), problems=problems)
