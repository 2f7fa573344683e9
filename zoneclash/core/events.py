"""
Outbound domain events and the EventSink contract.

The core publishes one event per committed transition, synchronously and
only after the commit. Sinks belong to the notification/analytics side: a
sink that fails is logged and ignored, the committed state stands.
"""
from datetime import datetime
from typing import Annotated, Iterable, List, Literal, Optional, Protocol, Union
import logging

from pydantic import BaseModel, Field, TypeAdapter

from zoneclash.timeutils import utcnow

logger = logging.getLogger(__name__)


class _Event(BaseModel):
    occurred_at: datetime = Field(default_factory=utcnow)


class ZoneClaimed(_Event):
    type: Literal["zone_claimed"] = "zone_claimed"
    zone_id: str
    actor_id: str
    zone_level: int
    xp_gained: int
    expires_at: datetime


class ZoneAttacked(_Event):
    type: Literal["zone_attacked"] = "zone_attacked"
    zone_id: str
    attacker_id: str
    defender_id: Optional[str] = None
    attack_id: int


class BattleResult(_Event):
    type: Literal["battle_result"] = "battle_result"
    zone_id: str
    attack_id: int
    attacker_id: str
    defender_id: Optional[str] = None
    result: Literal["success", "failed"]
    success_probability: float
    xp_gained: int


class LevelUp(_Event):
    type: Literal["level_up"] = "level_up"
    actor_id: str
    old_level: int
    new_level: int
    new_attack_power: int
    total_xp: int


GameEvent = Annotated[
    Union[ZoneClaimed, ZoneAttacked, BattleResult, LevelUp],
    Field(discriminator="type"),
]

_event_adapter = TypeAdapter(GameEvent)


def level_up_event(change) -> Optional[LevelUp]:
    """LevelUp for a progression LevelChange, or None if the level held."""
    if not change.leveled_up:
        return None
    return LevelUp(
        actor_id=change.actor_id,
        old_level=change.old_level,
        new_level=change.new_level,
        new_attack_power=change.attack_power,
        total_xp=change.total_xp,
    )


def parse_event(data: dict):
    """Rebuild a typed event from its wire form."""
    return _event_adapter.validate_python(data)


class EventSink(Protocol):
    def publish(self, event) -> None: ...


class LoggingEventSink:
    """Default sink: writes every event to the log."""

    def publish(self, event) -> None:
        logger.info(f"event {event.type}: {event.model_dump_json()}")


class InMemoryEventSink:
    """Collects events in order; handy for tests and local tooling."""

    def __init__(self):
        self.events: List = []

    def publish(self, event) -> None:
        self.events.append(event)

    def of_type(self, event_type: str) -> List:
        return [e for e in self.events if e.type == event_type]

    def types(self) -> List[str]:
        return [e.type for e in self.events]


class FanOutEventSink:
    """Publishes to several sinks; one failing sink does not starve the others."""

    def __init__(self, sinks: Iterable[EventSink]):
        self.sinks = list(sinks)

    def publish(self, event) -> None:
        for sink in self.sinks:
            safe_publish(sink, event)


def safe_publish(sink: EventSink, event) -> bool:
    """
    Fire-and-forget delivery.

    Returns:
        True if the sink accepted the event, False if it raised
    """
    try:
        sink.publish(event)
        return True
    except Exception as e:
        logger.warning(
            f"Event sink {type(sink).__name__} failed on {event.type}: {e}",
            exc_info=True
        )
        return False
