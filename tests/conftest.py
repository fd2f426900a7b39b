"""Shared fixtures for the engine tests."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from gamesaver.core import file_ops
from gamesaver.core.games import GameService
from gamesaver.core.save_locations import SaveLocationService
from gamesaver.core.service import BackupService
from gamesaver.data.library import Library
from gamesaver.models.game import Game, SaveLocation, SaveLocationType


@pytest.fixture(autouse=True)
def _no_backoff(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(file_ops.time, "sleep", lambda _delay: None)


@pytest.fixture
def tmp_config(tmp_path: Path):
    """Create a mock Config pointing to a temp directory."""
    config = MagicMock()
    config.data_dir = tmp_path
    config.storage_root = tmp_path / "Backups"
    config.retention_count = 10
    config.copy_retries = 3
    config.storage_root.mkdir()
    return config


@pytest.fixture
def library() -> Library:
    return Library(None)


@pytest.fixture
def locations(library: Library) -> SaveLocationService:
    return SaveLocationService(library)


@pytest.fixture
def games(library: Library, tmp_config, locations: SaveLocationService) -> GameService:
    return GameService(library, tmp_config, locations)


@pytest.fixture
def service(library: Library, tmp_config, games: GameService) -> BackupService:
    return BackupService(library, tmp_config, games)


def make_game(library: Library, game_id: str = "game-1", name: str = "Game One", folder: str | None = None) -> Game:
    game = Game(
        id=game_id,
        name=name,
        install_path="C:\\Games\\One",
        exe_path="C:\\Games\\One\\one.exe",
        created_at="2026-01-01T00:00:00.000Z",
        folder_name=folder or game_id,
    )
    library.upsert_game(game)
    return game


def make_location(
    library: Library,
    path: Path,
    game_id: str = "game-1",
    location_id: str = "loc-1",
    enabled: bool = True,
) -> SaveLocation:
    location = SaveLocation(
        id=location_id,
        game_id=game_id,
        path=str(path),
        type=SaveLocationType.FILE if path.is_file() else SaveLocationType.FOLDER,
        enabled=enabled,
    )
    library.upsert_save_location(location)
    return location


def write_manifest_json(snapshot_root: Path, snapshot_id: str, locations: dict, reason: str = "manual") -> None:
    snapshot_root.mkdir(parents=True, exist_ok=True)
    data = {
        "version": 2,
        "snapshot_id": snapshot_id,
        "created_at": "2026-02-07T10:11:12.123Z",
        "reason": reason,
        "locations": locations,
    }
    (snapshot_root / "snapshot.manifest.json").write_text(json.dumps(data, indent=2), encoding="utf-8")
