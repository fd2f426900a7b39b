"""Tests for the snapshot manifest codec."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from conftest import write_manifest_json
from gamesaver.core.errors import ManifestError, PathEscapeError
from gamesaver.core.manifest import (
    ManifestLocation,
    SnapshotManifest,
    manifest_from_dict,
    read_manifest,
    snapshot_checksum,
    write_manifest,
)
from gamesaver.models.game import SaveLocationType
from gamesaver.models.snapshot import SnapshotFile, SnapshotReason


@pytest.fixture
def manifest() -> SnapshotManifest:
    return SnapshotManifest(
        snapshot_id="snap-1",
        created_at="2026-02-07T10:11:12.123Z",
        reason=SnapshotReason.PRE_RESTORE,
        locations={
            "loc-1": ManifestLocation(
                path="C:\\Users\\Player\\Documents\\My Games\\Portal",
                type=SaveLocationType.FOLDER,
                auto_detected=True,
                enabled=True,
                storage_folder="Portal",
            )
        },
    )


class TestManifestCodec:
    def test_write_then_read(self, tmp_path: Path, manifest: SnapshotManifest) -> None:
        write_manifest(tmp_path, manifest)
        raw = json.loads((tmp_path / "snapshot.manifest.json").read_text(encoding="utf-8"))
        assert raw["reason"] == "pre-restore"
        assert raw["locations"]["loc-1"]["type"] == "folder"
        assert read_manifest(tmp_path) == manifest

    def test_missing_manifest(self, tmp_path: Path) -> None:
        with pytest.raises(ManifestError, match="missing or invalid"):
            read_manifest(tmp_path)

    def test_not_json(self, tmp_path: Path) -> None:
        (tmp_path / "snapshot.manifest.json").write_text("{broken", encoding="utf-8")
        with pytest.raises(ManifestError):
            read_manifest(tmp_path)

    @pytest.mark.parametrize(
        "data",
        [
            [],
            {"snapshot_id": "s", "created_at": "t", "reason": "manual"},
            {"version": 2, "created_at": "t", "reason": "manual"},
            {"version": 2, "snapshot_id": "s", "created_at": "t", "reason": "nightly"},
            {"version": 2, "snapshot_id": "s", "created_at": "t", "reason": "manual", "locations": []},
            {
                "version": 2,
                "snapshot_id": "s",
                "created_at": "t",
                "reason": "manual",
                "locations": {"loc-1": {"path": "C:\\x", "type": "symlink"}},
            },
        ],
    )
    def test_invalid_documents(self, data) -> None:
        with pytest.raises(ManifestError):
            manifest_from_dict(data)

    def test_legacy_storage_folder_defaults_to_location_id(self, tmp_path: Path) -> None:
        write_manifest_json(tmp_path, "snap-1", {"loc-1": {"path": "C:\\Saves", "type": "folder"}}, reason="auto")
        loaded = read_manifest(tmp_path)
        assert loaded.storage_folder_for("loc-1") == "loc-1"
        assert loaded.storage_folder_for("unknown") == "unknown"
        assert loaded.locations["loc-1"].enabled is True

    def test_check_paths_rejects_escape(self, tmp_path: Path, manifest: SnapshotManifest) -> None:
        manifest.locations["loc-1"].storage_folder = "..\\..\\outside"
        with pytest.raises(PathEscapeError):
            manifest.check_paths(tmp_path)


class TestSnapshotChecksum:
    def test_depends_on_file_rows(self, manifest: SnapshotManifest) -> None:
        files = [SnapshotFile("f-1", "snap-1", "loc-1", "a.sav", 3, "aaa")]
        changed = [SnapshotFile("f-1", "snap-1", "loc-1", "a.sav", 3, "bbb")]
        assert snapshot_checksum(manifest, files) == snapshot_checksum(manifest, list(files))
        assert snapshot_checksum(manifest, files) != snapshot_checksum(manifest, changed)

    def test_independent_of_row_order(self, manifest: SnapshotManifest) -> None:
        a = SnapshotFile("f-1", "snap-1", "loc-1", "a.sav", 3, "aaa")
        b = SnapshotFile("f-2", "snap-1", "loc-1", "b.sav", 4, "bbb")
        assert snapshot_checksum(manifest, [a, b]) == snapshot_checksum(manifest, [b, a])
