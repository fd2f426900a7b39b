"""Game and save location models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class GameStatus(StrEnum):
    """Protection status shown for a game."""

    PROTECTED = "protected"
    WARNING = "warning"
    ERROR = "error"


class SaveLocationType(StrEnum):
    """Kind of path a save location points at."""

    FOLDER = "folder"
    FILE = "file"


@dataclass
class Game:
    """A registered standalone game."""

    id: str
    name: str
    install_path: str
    exe_path: str
    created_at: str  # ISO datetime
    folder_name: str  # Directory name under the storage root
    last_seen_at: str | None = None
    status: GameStatus = GameStatus.PROTECTED


@dataclass
class SaveLocation:
    """A user-designated save file or folder for one game."""

    id: str
    game_id: str
    path: str
    type: SaveLocationType = SaveLocationType.FOLDER
    auto_detected: bool = False
    enabled: bool = True

    @property
    def exists(self) -> bool:
        return Path(self.path).exists()
