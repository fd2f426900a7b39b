"""Event log — append-only audit trail shown to the user."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import uuid4

from gamesaver.models.snapshot import EventLog, EventType
from gamesaver.utils import utc_now_iso

if TYPE_CHECKING:
    from gamesaver.data.library import Library


def log_event(library: Library, game_id: str | None, event_type: EventType, message: str) -> EventLog:
    event = EventLog(
        id=str(uuid4()),
        game_id=game_id,
        type=event_type,
        message=message,
        created_at=utc_now_iso(),
    )
    library.append_event(event)
    return event
