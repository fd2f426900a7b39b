"""Tests for snapshot deletion and retention."""

from __future__ import annotations

import shutil
from pathlib import Path

import pytest

from conftest import make_game
from gamesaver.core import retention as retention_module
from gamesaver.core.errors import SnapshotNotFoundError
from gamesaver.core.retention import RetentionEnforcer
from gamesaver.data.library import Library
from gamesaver.models.snapshot import Snapshot, SnapshotFile


def _seed(library: Library, storage_root: Path, count: int) -> list[Snapshot]:
    """Create *count* on-disk snapshots, oldest first."""
    snapshots = []
    for i in range(count):
        root = storage_root / "game-1" / "Snapshots" / f"2026-01-{i + 1:02d}_00-00-00-000"
        root.mkdir(parents=True)
        (root / "slot.sav").write_bytes(b"x")
        snapshot = Snapshot(
            id=f"snap-{i:02d}",
            game_id="game-1",
            created_at=f"2026-01-{i + 1:02d}T00:00:00.000Z",
            size_bytes=1,
            checksum="c",
            storage_path=str(root),
        )
        library.add_snapshot(snapshot, [SnapshotFile(f"file-{i}", snapshot.id, "loc-1", "slot.sav", 1, "h")])
        snapshots.append(snapshot)
    return snapshots


@pytest.fixture
def enforcer(library: Library) -> RetentionEnforcer:
    make_game(library)
    return RetentionEnforcer(library)


class TestRetention:
    def test_keeps_newest(self, enforcer: RetentionEnforcer, library: Library, tmp_config) -> None:
        seeded = _seed(library, tmp_config.storage_root, 12)

        removed = enforcer.enforce("game-1", 10)

        assert sorted(removed) == ["snap-00", "snap-01"]
        assert len(library.snapshots("game-1")) == 10
        assert not Path(seeded[0].storage_path).exists()
        assert not Path(seeded[1].storage_path).exists()
        assert Path(seeded[2].storage_path).exists()
        assert library.snapshot_files("snap-00") == []

    def test_protected_ids_survive(self, enforcer: RetentionEnforcer, library: Library, tmp_config) -> None:
        _seed(library, tmp_config.storage_root, 4)

        removed = enforcer.enforce("game-1", 1, protected_ids=["snap-00"])

        assert sorted(removed) == ["snap-01", "snap-02"]
        assert {s.id for s in library.snapshots("game-1")} == {"snap-03", "snap-00"}

    def test_failed_delete_keeps_rows(
        self, enforcer: RetentionEnforcer, library: Library, tmp_config, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _seed(library, tmp_config.storage_root, 3)

        def locked(path: Path) -> None:
            raise OSError("locked")

        monkeypatch.setattr(retention_module, "remove_dir", locked)

        assert enforcer.enforce("game-1", 1) == []
        assert len(library.snapshots("game-1")) == 3
        assert len(library.snapshot_files("snap-00")) == 1


class TestDeleteSnapshot:
    def test_delete_removes_folder_and_rows(self, enforcer: RetentionEnforcer, library: Library, tmp_config) -> None:
        (snapshot,) = _seed(library, tmp_config.storage_root, 1)

        enforcer.delete_snapshot(snapshot.id)

        assert library.get_snapshot(snapshot.id) is None
        assert not Path(snapshot.storage_path).exists()

    def test_delete_error_propagates(
        self, enforcer: RetentionEnforcer, library: Library, tmp_config, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (snapshot,) = _seed(library, tmp_config.storage_root, 1)

        def locked(path: Path) -> None:
            raise OSError("locked")

        monkeypatch.setattr(retention_module, "remove_dir", locked)

        with pytest.raises(OSError, match="locked"):
            enforcer.delete_snapshot(snapshot.id)
        assert library.get_snapshot(snapshot.id) is not None

    def test_delete_already_gone_folder(self, enforcer: RetentionEnforcer, library: Library, tmp_config) -> None:
        (snapshot,) = _seed(library, tmp_config.storage_root, 1)
        shutil.rmtree(snapshot.storage_path)

        enforcer.delete_snapshot(snapshot.id)
        assert library.get_snapshot(snapshot.id) is None

    def test_unknown_snapshot(self, enforcer: RetentionEnforcer) -> None:
        with pytest.raises(SnapshotNotFoundError):
            enforcer.delete_snapshot("missing")
