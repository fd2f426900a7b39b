"""Save location registry and auto-detection of likely save folders."""

from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING
from uuid import uuid4

from loguru import logger

from gamesaver.models.game import SaveLocation, SaveLocationType
from gamesaver.utils import ILLEGAL_FILENAME_CHARS

if TYPE_CHECKING:
    from gamesaver.data.library import Library


def normalize_location_path(path: str) -> str:
    return os.path.normpath(path.strip()) if path.strip() else ""


def resolve_location_type(path: str) -> SaveLocationType:
    """``file`` for an existing regular file, otherwise ``folder``."""
    return SaveLocationType.FILE if Path(path).is_file() else SaveLocationType.FOLDER


def detect_save_locations(name: str, install_path: str) -> list[str]:
    """Candidate save folders for a game, in the usual Windows places and under its install dir."""
    game_name = name.strip()
    for ch in ILLEGAL_FILENAME_CHARS:
        game_name = game_name.replace(ch, "")

    candidates: list[str] = []
    user_profile = os.environ.get("USERPROFILE", "")
    if user_profile:
        candidates.append(os.path.join(user_profile, "Documents", "My Games", game_name))
    for var in ("APPDATA", "LOCALAPPDATA", "PROGRAMDATA"):
        base = os.environ.get(var, "")
        if base:
            candidates.append(os.path.join(base, game_name))
    if install_path:
        for sub in ("Save", "Saves", "Profiles"):
            candidates.append(os.path.join(install_path, sub))

    return list(dict.fromkeys(candidates))


class SaveLocationService:
    """Add, toggle and remove the save locations of a game."""

    def __init__(self, library: Library) -> None:
        self._library = library

    def list_locations(self, game_id: str) -> list[SaveLocation]:
        return sorted(self._library.save_locations(game_id), key=lambda loc: loc.path)

    def add_location(self, game_id: str, path: str, auto_detected: bool = False) -> SaveLocation:
        normalized = normalize_location_path(path)
        if not normalized:
            raise ValueError("Save location path is required")

        for existing in self._library.save_locations(game_id):
            if existing.path.lower() == normalized.lower():
                return existing

        location = SaveLocation(
            id=str(uuid4()),
            game_id=game_id,
            path=normalized,
            type=resolve_location_type(normalized),
            auto_detected=auto_detected,
            enabled=True,
        )
        self._library.upsert_save_location(location)
        logger.info(f"Added save location {normalized} ({location.type})")
        return location

    def toggle_location(self, location_id: str, enabled: bool) -> None:
        location = self._library.get_save_location(location_id)
        if location is None:
            return
        location.enabled = enabled
        self._library.upsert_save_location(location)

    def remove_location(self, location_id: str) -> None:
        if self._library.delete_save_location(location_id):
            logger.info(f"Removed save location {location_id}")
