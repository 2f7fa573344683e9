import logging
from datetime import datetime

import pytest
from pydantic import ValidationError

from conftest import ExplodingSink
from zoneclash.core.events import (
    BattleResult,
    FanOutEventSink,
    InMemoryEventSink,
    LevelUp,
    LoggingEventSink,
    ZoneClaimed,
    level_up_event,
    parse_event,
    safe_publish,
)
from zoneclash.services.progression import LevelChange


def _claimed():
    return ZoneClaimed(
        zone_id="zone_4000000_-7300000",
        actor_id="alice",
        zone_level=1,
        xp_gained=10,
        expires_at=datetime(2024, 6, 2, 12, 0, 0),
    )


def test_parse_event_picks_type_from_discriminator():
    event = parse_event(_claimed().model_dump())
    assert isinstance(event, ZoneClaimed)
    assert event.actor_id == "alice"

    battle = parse_event({
        "type": "battle_result",
        "zone_id": "zone_1_1",
        "attack_id": 7,
        "attacker_id": "bob",
        "defender_id": "alice",
        "result": "failed",
        "success_probability": 0.3,
        "xp_gained": 5,
    })
    assert isinstance(battle, BattleResult)
    assert battle.result == "failed"


def test_parse_event_rejects_unknown_type():
    with pytest.raises(ValidationError):
        parse_event({"type": "zone_exploded", "zone_id": "zone_1_1"})


def test_level_up_event_only_on_level_change():
    same = LevelChange(actor_id="a", old_level=2, new_level=2, total_xp=1500, attack_power=15)
    assert level_up_event(same) is None

    up = LevelChange(actor_id="a", old_level=2, new_level=3, total_xp=2000, attack_power=20)
    event = level_up_event(up)
    assert isinstance(event, LevelUp)
    assert (event.old_level, event.new_level, event.new_attack_power) == (2, 3, 20)


def test_safe_publish_swallows_sink_errors():
    sink = ExplodingSink()
    assert safe_publish(sink, _claimed()) is False
    assert sink.attempts == 1


def test_fan_out_keeps_delivering_after_a_failure():
    collected = InMemoryEventSink()
    fan_out = FanOutEventSink([ExplodingSink(), collected])

    fan_out.publish(_claimed())

    assert collected.types() == ["zone_claimed"]


def test_logging_sink_writes_event(caplog):
    with caplog.at_level(logging.INFO, logger="zoneclash.core.events"):
        LoggingEventSink().publish(_claimed())

    assert "zone_claimed" in caplog.text
    assert "alice" in caplog.text
