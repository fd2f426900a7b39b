"""Backup storage layout.

    {storage_root}/{game_folder}/metadata.json
    {storage_root}/{game_folder}/Snapshots/{timestamp}/snapshot.manifest.json
    {storage_root}/{game_folder}/Snapshots/{timestamp}/{storage_folder}/...
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from gamesaver.models.game import Game

SNAPSHOTS_DIR = "Snapshots"
METADATA_NAME = "metadata.json"

_METADATA_KEYS = ("id", "name", "install_path", "exe_path", "created_at")


def game_root(storage_root: Path, folder_name: str) -> Path:
    return storage_root / folder_name


def snapshots_dir(storage_root: Path, folder_name: str) -> Path:
    return storage_root / folder_name / SNAPSHOTS_DIR


def metadata_path(storage_root: Path, folder_name: str) -> Path:
    return storage_root / folder_name / METADATA_NAME


def write_game_metadata(storage_root: Path, game: Game) -> None:
    """Write the per-game ``metadata.json`` used to recover the game after library loss."""
    root = game_root(storage_root, game.folder_name)
    root.mkdir(parents=True, exist_ok=True)
    data = {key: getattr(game, key) for key in _METADATA_KEYS}
    with open(metadata_path(storage_root, game.folder_name), "w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def read_game_metadata(game_dir: Path) -> dict[str, Any] | None:
    """Return the metadata of a game folder, or None if absent or malformed."""
    path = game_dir / METADATA_NAME
    if not path.is_file():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError, OSError):
        return None
    if not isinstance(data, dict):
        return None
    if not all(isinstance(data.get(key), str) for key in _METADATA_KEYS):
        return None
    if not data["id"] or not data["name"].strip():
        return None
    return data
