"""Wire payload shaping for outbound events.

Every event goes out as {"type": "<event-name>", **fields} with camelCase
field names.
"""

from __future__ import annotations

from typing import Any

from game.logic.events import GameEvent, GameOverEvent, ServiceEvent


def event_payload(data: GameEvent) -> dict[str, Any]:
    """Return the wire-format dict for a domain event.

    None fields are dropped, except winnerId on game-over, which is an
    explicit null for a draw.
    """
    payload = data.model_dump(by_alias=True, exclude_none=True, mode="json")
    if isinstance(data, GameOverEvent):
        payload.setdefault("winnerId", None)
    return payload


def service_event_payload(event: ServiceEvent) -> dict[str, Any]:
    return event_payload(event.data)
