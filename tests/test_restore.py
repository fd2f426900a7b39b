"""Tests for SnapshotRestorer and destination resolution."""

from __future__ import annotations

import errno
from pathlib import Path

import pytest

from conftest import make_game, make_location, write_manifest_json
from gamesaver.core import backup as backup_module
from gamesaver.core.errors import ManifestError, PathEscapeError, RestoreError
from gamesaver.core.manifest import ManifestLocation, SnapshotManifest
from gamesaver.core.restore import NO_FILES_RESTORED, resolve_destination
from gamesaver.core.service import BackupService
from gamesaver.data.library import Library
from gamesaver.models.game import SaveLocation, SaveLocationType
from gamesaver.models.snapshot import EventType, Snapshot, SnapshotFile, SnapshotReason


@pytest.fixture
def save_dir(tmp_path: Path) -> Path:
    d = tmp_path / "live" / "Saves"
    d.mkdir(parents=True)
    (d / "slot1.sav").write_text("level 3", encoding="utf-8")
    (d / "slot2.sav").write_text("level 7", encoding="utf-8")
    return d


def _add_disk_snapshot(
    library: Library,
    storage_root: Path,
    relative_path: str,
    location_path: Path,
    snapshot_id: str = "snap-1",
) -> Path:
    """Build a one-file snapshot by hand, the way a backup would have left it."""
    snapshot_root = storage_root / "game-1" / "Snapshots" / "2026-02-07_10-11-12-123"
    write_manifest_json(
        snapshot_root,
        snapshot_id,
        {
            "loc-1": {
                "path": str(location_path),
                "type": "folder",
                "auto_detected": False,
                "enabled": True,
                "storage_folder": "Saves",
            }
        },
    )
    stored = snapshot_root / "Saves" / "slot1.sav"
    stored.parent.mkdir(parents=True, exist_ok=True)
    stored.write_text("from snapshot", encoding="utf-8")
    library.add_snapshot(
        Snapshot(
            id=snapshot_id,
            game_id="game-1",
            created_at="2026-02-07T10:11:12.123Z",
            size_bytes=13,
            checksum="x",
            storage_path=str(snapshot_root),
        ),
        [
            SnapshotFile(
                id="file-1",
                snapshot_id=snapshot_id,
                location_id="loc-1",
                relative_path=relative_path,
                size_bytes=13,
                checksum="y",
            )
        ],
    )
    return snapshot_root


class TestRestore:
    def test_round_trip(self, service: BackupService, library: Library, save_dir: Path) -> None:
        make_game(library)
        make_location(library, save_dir)
        snapshot = service.backup_game("game-1")
        (save_dir / "slot1.sav").write_text("corrupted", encoding="utf-8")
        (save_dir / "slot2.sav").unlink()

        result = service.restore_snapshot(snapshot.id)

        assert result.restored == 2
        assert result.failed == 0
        assert (save_dir / "slot1.sav").read_text(encoding="utf-8") == "level 3"
        assert (save_dir / "slot2.sav").read_text(encoding="utf-8") == "level 7"
        assert result.safety_snapshot_id is not None
        safety = library.get_snapshot(result.safety_snapshot_id)
        assert safety.reason == SnapshotReason.PRE_RESTORE
        assert library.event_logs("game-1")[-1].message == "Snapshot restored (2 files restored, 0 failed)."

    def test_safety_snapshot_failure_is_not_fatal(
        self, service: BackupService, library: Library, save_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        make_game(library)
        make_location(library, save_dir)
        snapshot = service.backup_game("game-1")
        (save_dir / "slot1.sav").write_text("corrupted", encoding="utf-8")

        def fail_write(*args, **kwargs):
            raise OSError(errno.ENOSPC, "disk full")

        monkeypatch.setattr(backup_module, "write_manifest", fail_write)

        result = service.restore_snapshot(snapshot.id)

        assert result.restored == 2
        assert result.safety_snapshot_id is None
        assert (save_dir / "slot1.sav").read_text(encoding="utf-8") == "level 3"
        messages = [e.message for e in library.event_logs("game-1") if e.type == EventType.ERROR]
        assert any("Proceeding with restore without safety backup" in m for m in messages)

    def test_restored_snapshot_survives_retention(
        self, service: BackupService, library: Library, save_dir: Path, tmp_config
    ) -> None:
        tmp_config.retention_count = 1
        make_game(library)
        make_location(library, save_dir)
        snapshot = service.backup_game("game-1")

        result = service.restore_snapshot(snapshot.id)

        ids = {s.id for s in library.snapshots("game-1")}
        assert snapshot.id in ids
        assert result.safety_snapshot_id in ids
        assert Path(snapshot.storage_path).is_dir()

    def test_falls_back_to_manifest_path(
        self, service: BackupService, library: Library, tmp_path: Path, tmp_config
    ) -> None:
        make_game(library)
        target = tmp_path / "recorded" / "Saves"
        _add_disk_snapshot(library, tmp_config.storage_root, "slot1.sav", target)

        result = service.restore_snapshot("snap-1")

        assert result.restored == 1
        assert (target / "slot1.sav").read_text(encoding="utf-8") == "from snapshot"

    def test_prefers_single_current_location(
        self, service: BackupService, library: Library, tmp_path: Path, tmp_config
    ) -> None:
        make_game(library)
        recorded = tmp_path / "old" / "Saves"
        moved = tmp_path / "new" / "Saves"
        moved.mkdir(parents=True)
        make_location(library, moved, location_id="loc-new")
        _add_disk_snapshot(library, tmp_config.storage_root, "slot1.sav", recorded)

        service.restore_snapshot("snap-1")

        assert (moved / "slot1.sav").read_text(encoding="utf-8") == "from snapshot"
        assert not (recorded / "slot1.sav").exists()

    def test_single_file_location_receives_one_file(
        self, service: BackupService, library: Library, save_dir: Path, tmp_path: Path
    ) -> None:
        make_game(library)
        make_location(library, save_dir)
        snapshot = service.backup_game("game-1")
        library.delete_save_location("loc-1")
        profile = tmp_path / "live" / "profile.sav"
        profile.write_text("current", encoding="utf-8")
        make_location(library, profile, location_id="loc-file")

        result = service.restore_snapshot(snapshot.id)

        assert result.restored == 1
        assert result.failed == 1
        assert any("already restored" in w for w in result.warnings)
        assert profile.read_text(encoding="utf-8") in ("level 3", "level 7")
        assert library.event_logs("game-1")[-1].message == "Snapshot restored (1 files restored, 1 failed)."

    def test_nothing_restored_raises(
        self, service: BackupService, library: Library, save_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        make_game(library)
        make_location(library, save_dir)
        snapshot = service.backup_game("game-1")

        def broken_copy(src, dest, *args, **kwargs):
            raise OSError(errno.EINVAL, "Invalid argument")

        monkeypatch.setattr("gamesaver.core.file_ops.shutil.copy2", broken_copy)

        with pytest.raises(RestoreError, match="no files could be restored"):
            service.restore_snapshot(snapshot.id)
        assert library.event_logs("game-1")[-1].message == NO_FILES_RESTORED

    def test_missing_manifest_raises(self, service: BackupService, library: Library, save_dir: Path) -> None:
        make_game(library)
        make_location(library, save_dir)
        snapshot = service.backup_game("game-1")
        (Path(snapshot.storage_path) / "snapshot.manifest.json").unlink()

        with pytest.raises(ManifestError):
            service.restore_snapshot(snapshot.id)

    @pytest.mark.parametrize("relative_path", ["../../../escape.sav", "..\\..\\..\\escape.sav"])
    def test_traversal_rejected_before_writing(
        self, service: BackupService, library: Library, tmp_path: Path, tmp_config, relative_path: str
    ) -> None:
        make_game(library)
        target = tmp_path / "recorded" / "Saves"
        _add_disk_snapshot(library, tmp_config.storage_root, relative_path, target)

        with pytest.raises(PathEscapeError):
            service.restore_snapshot("snap-1")

        assert [s.id for s in library.snapshots("game-1")] == ["snap-1"]
        assert not target.exists()


class TestResolveDestination:
    @staticmethod
    def _manifest(path: str, location_type: SaveLocationType = SaveLocationType.FOLDER) -> SnapshotManifest:
        return SnapshotManifest(
            snapshot_id="snap-1",
            created_at="2026-02-07T10:11:12.123Z",
            reason=SnapshotReason.MANUAL,
            locations={
                "loc-1": ManifestLocation(
                    path=path, type=location_type, auto_detected=False, enabled=True, storage_folder="Saves"
                )
            },
        )

    @staticmethod
    def _entry(relative_path: str = "sub/slot.sav") -> SnapshotFile:
        return SnapshotFile("f-1", "snap-1", "loc-1", relative_path, 1, "c")

    def test_same_id_and_type(self, tmp_path: Path) -> None:
        current = SaveLocation("loc-1", "game-1", str(tmp_path / "now"))
        dest = resolve_destination(self._entry(), self._manifest(str(tmp_path / "then")), [current])
        assert dest == tmp_path / "now" / "sub" / "slot.sav"

    def test_type_mismatch_uses_manifest_path(self, tmp_path: Path) -> None:
        current = SaveLocation("loc-1", "game-1", str(tmp_path / "now.sav"), type=SaveLocationType.FILE)
        other = SaveLocation("loc-2", "game-1", str(tmp_path / "other"))
        dest = resolve_destination(self._entry(), self._manifest(str(tmp_path / "then")), [current, other])
        assert dest == tmp_path / "then" / "sub" / "slot.sav"

    def test_file_location_restores_to_its_path(self, tmp_path: Path) -> None:
        manifest = self._manifest(str(tmp_path / "save.pts"), SaveLocationType.FILE)
        dest = resolve_destination(self._entry("save.pts"), manifest, [])
        assert dest == tmp_path / "save.pts"

    def test_unknown_location_without_candidates(self, tmp_path: Path) -> None:
        entry = SnapshotFile("f-1", "snap-1", "loc-gone", "slot.sav", 1, "c")
        assert resolve_destination(entry, self._manifest(str(tmp_path)), []) is None
