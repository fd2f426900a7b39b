"""Snapshot manifest — the on-disk record of what a snapshot contains.

The manifest lives next to the copied files and is the durable source of
truth: the library rows can be rebuilt from it, and restore uses the
location metadata it records when the live save locations have changed.

Layout (version 2)::

    {
      "version": 2,
      "snapshot_id": "...",
      "created_at": "2026-02-07T10:11:12.123Z",
      "reason": "manual",
      "locations": {
        "<location_id>": {
          "path": "C:\\Users\\Player\\Documents\\My Games\\Portal",
          "type": "folder",
          "auto_detected": true,
          "enabled": true,
          "storage_folder": "Portal"
        }
      }
    }
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from gamesaver.core.errors import ManifestError
from gamesaver.core.file_ops import safe_join
from gamesaver.core.hashing import hash_text
from gamesaver.models.game import SaveLocationType
from gamesaver.models.snapshot import SnapshotReason

if TYPE_CHECKING:
    from gamesaver.models.snapshot import SnapshotFile

MANIFEST_NAME = "snapshot.manifest.json"
MANIFEST_VERSION = 2


@dataclass
class ManifestLocation:
    """Save location metadata as it was when the snapshot was taken."""

    path: str
    type: SaveLocationType
    auto_detected: bool
    enabled: bool
    storage_folder: str  # Subfolder of the snapshot root holding this location's files


@dataclass
class SnapshotManifest:
    snapshot_id: str
    created_at: str
    reason: SnapshotReason
    locations: dict[str, ManifestLocation] = field(default_factory=dict)
    version: int = MANIFEST_VERSION

    def storage_folder_for(self, location_id: str) -> str:
        """Storage subfolder of a location; legacy snapshots used the id itself."""
        location = self.locations.get(location_id)
        return location.storage_folder if location else location_id

    def check_paths(self, snapshot_root: Path) -> None:
        """Raise PathEscapeError if any storage folder points outside *snapshot_root*."""
        for location in self.locations.values():
            safe_join(snapshot_root, location.storage_folder)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "snapshot_id": self.snapshot_id,
            "created_at": self.created_at,
            "reason": str(self.reason),
            "locations": {loc_id: asdict(loc) for loc_id, loc in self.locations.items()},
        }


def manifest_path(snapshot_root: Path) -> Path:
    return snapshot_root / MANIFEST_NAME


def manifest_from_dict(data: Any) -> SnapshotManifest:
    """Validate and decode a manifest document. Raises ManifestError."""
    if not isinstance(data, dict):
        raise ManifestError("manifest is not an object")
    version = data.get("version")
    if not isinstance(version, int) or isinstance(version, bool) or version < 1:
        raise ManifestError(f"bad version: {version!r}")
    snapshot_id = data.get("snapshot_id")
    created_at = data.get("created_at")
    if not isinstance(snapshot_id, str) or not snapshot_id:
        raise ManifestError("missing snapshot_id")
    if not isinstance(created_at, str) or not created_at:
        raise ManifestError("missing created_at")
    try:
        reason = SnapshotReason(data.get("reason"))
    except ValueError as e:
        raise ManifestError(str(e)) from e

    raw_locations = data.get("locations", {})
    if not isinstance(raw_locations, dict):
        raise ManifestError("locations is not an object")

    locations: dict[str, ManifestLocation] = {}
    for loc_id, raw in raw_locations.items():
        if not isinstance(raw, dict):
            raise ManifestError(f"location {loc_id} is not an object")
        path = raw.get("path")
        storage_folder = raw.get("storage_folder", loc_id)
        if not isinstance(path, str) or not isinstance(storage_folder, str) or not storage_folder:
            raise ManifestError(f"location {loc_id} is incomplete")
        try:
            loc_type = SaveLocationType(raw.get("type"))
        except ValueError as e:
            raise ManifestError(str(e)) from e
        locations[loc_id] = ManifestLocation(
            path=path,
            type=loc_type,
            auto_detected=bool(raw.get("auto_detected", False)),
            enabled=bool(raw.get("enabled", True)),
            storage_folder=storage_folder,
        )

    return SnapshotManifest(
        snapshot_id=snapshot_id,
        created_at=created_at,
        reason=reason,
        locations=locations,
        version=version,
    )


def read_manifest(snapshot_root: Path) -> SnapshotManifest:
    """Read and validate the manifest of a snapshot directory."""
    path = manifest_path(snapshot_root)
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError as e:
        raise ManifestError(f"{path} not found") from e
    except (json.JSONDecodeError, UnicodeDecodeError, OSError) as e:
        raise ManifestError(f"{path}: {e}") from e
    return manifest_from_dict(data)


def write_manifest(snapshot_root: Path, manifest: SnapshotManifest) -> None:
    with open(manifest_path(snapshot_root), "w", encoding="utf-8") as f:
        json.dump(manifest.to_dict(), f, ensure_ascii=False, indent=2)


def snapshot_checksum(manifest: SnapshotManifest, files: list[SnapshotFile]) -> str:
    """
    Integrity tag for a snapshot's manifest and file rows.

    Hashes a deterministic text summary (ids, storage folders, relative
    paths, sizes and per-file checksums). It is not a hash of the file
    contents taken together.
    """
    lines = [f"snapshot:{manifest.snapshot_id}|{manifest.created_at}|{manifest.reason}"]
    for loc_id in sorted(manifest.locations):
        loc = manifest.locations[loc_id]
        lines.append(f"location:{loc_id}|{loc.storage_folder}|{loc.type}|{loc.path}")
    for entry in sorted(files, key=lambda f: (f.location_id, f.relative_path)):
        lines.append(f"file:{entry.location_id}|{entry.relative_path}|{entry.size_bytes}|{entry.checksum}")
    return hash_text("\n".join(lines))
