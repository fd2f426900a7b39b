"""Application context — service container for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gamesaver.config import Config
    from gamesaver.core.games import GameService
    from gamesaver.core.save_locations import SaveLocationService
    from gamesaver.core.service import BackupService
    from gamesaver.data.library import Library


@dataclass
class AppContext:
    """
    Central service container.

    Front ends receive this at construction time; nothing in the engine
    reaches for a global library handle.
    """

    config: Config
    library: Library

    games: GameService
    locations: SaveLocationService
    backups: BackupService
