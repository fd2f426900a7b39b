"""Game registry — add/remove games and track their protection status."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

from loguru import logger

from gamesaver.core.events import log_event
from gamesaver.core.save_locations import detect_save_locations
from gamesaver.core.storage import game_root, write_game_metadata
from gamesaver.models.game import Game, GameStatus
from gamesaver.models.snapshot import EventType
from gamesaver.utils import sanitize_folder_name, utc_now_iso

if TYPE_CHECKING:
    from gamesaver.config import Config
    from gamesaver.core.save_locations import SaveLocationService
    from gamesaver.data.library import Library


class GameService:
    """Game CRUD on top of the library and the backup storage root."""

    def __init__(self, library: Library, config: Config, locations: SaveLocationService) -> None:
        self._library = library
        self._config = config
        self._locations = locations

    def list_games(self) -> list[Game]:
        return sorted(self._library.games(), key=lambda g: g.name.casefold())

    def get_game(self, game_id: str) -> Game | None:
        return self._library.get_game(game_id)

    def add_game(self, name: str, exe_path: str = "", install_path: str = "") -> Game:
        """
        Register a game, create its backup folder with ``metadata.json``
        and attach any auto-detected save locations that exist.
        """
        name = name.strip()
        if not name:
            raise ValueError("Game name is required")

        games = self._library.games()
        if any(g.name.lower() == name.lower() for g in games):
            raise ValueError("A game with this name already exists.")

        folder_name = sanitize_folder_name(name)
        if any(g.folder_name.lower() == folder_name.lower() for g in games):
            raise ValueError("A game folder with this name already exists.")

        storage_root = self._config.storage_root
        if game_root(storage_root, folder_name).exists():
            raise ValueError("A folder with this game name already exists in Backups.")

        game = Game(
            id=str(uuid4()),
            name=name,
            install_path=install_path,
            exe_path=exe_path,
            created_at=utc_now_iso(),
            folder_name=folder_name,
        )
        self._library.upsert_game(game)

        for candidate in detect_save_locations(game.name, game.install_path):
            if Path(candidate).exists():
                self._locations.add_location(game.id, candidate, auto_detected=True)

        write_game_metadata(storage_root, game)
        log_event(self._library, game.id, EventType.BACKUP, "Game added and initial protection enabled.")
        logger.info(f"Added game {game.name} ({game.folder_name})")
        return game

    def remove_game(self, game_id: str) -> None:
        """Delete a game, its rows and its backup folder."""
        game = self._library.get_game(game_id)
        if game is None:
            return
        self._library.delete_game(game_id)
        root = game_root(self._config.storage_root, game.folder_name)
        if root.exists():
            shutil.rmtree(root)
        logger.info(f"Removed game {game.name}")

    def set_status(self, game_id: str, status: GameStatus) -> None:
        game = self._library.get_game(game_id)
        if game is None or game.status == status:
            return
        game.status = status
        self._library.upsert_game(game)

    def set_last_seen(self, game_id: str, last_seen_at: str | None) -> None:
        game = self._library.get_game(game_id)
        if game is None:
            return
        game.last_seen_at = last_seen_at
        self._library.upsert_game(game)
