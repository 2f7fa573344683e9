import pytest

from zoneclash.core.exceptions import InvalidXpAmount
from zoneclash.models import Actor
from zoneclash.services.progression import ProgressionEngine


@pytest.fixture()
def engine_():
    return ProgressionEngine(xp_per_level=1000)


def test_level_for_xp(engine_):
    assert engine_.level_for_xp(0) == 1
    assert engine_.level_for_xp(999) == 1
    assert engine_.level_for_xp(1000) == 2
    assert engine_.level_for_xp(5500) == 6


def test_level_has_no_cap_by_default(engine_, db):
    assert engine_.level_for_xp(10 ** 9) == 10 ** 6 + 1

    change = engine_.apply_xp(db, "grinder", 150000)
    assert change.new_level == 151
    assert db.get(Actor, "grinder").level == 151


def test_level_cap_is_opt_in():
    capped = ProgressionEngine(xp_per_level=1000, max_level=100)
    assert capped.level_for_xp(99000) == 100
    assert capped.level_for_xp(10 ** 9) == 100


def test_attack_power_is_non_decreasing(engine_):
    powers = [engine_.attack_power_for_level(level) for level in range(1, 101)]
    assert powers == sorted(powers)
    assert powers[0] == 10
    assert max(powers) == 100


def test_apply_xp_is_additive(engine_, db):
    engine_.apply_xp(db, "alice", 400)
    change = engine_.apply_xp(db, "alice", 700)
    db.commit()

    assert change.total_xp == 1100
    assert change.new_level == 1100 // 1000 + 1
    assert db.get(Actor, "alice").xp == 1100


def test_apply_xp_reports_level_up(engine_, db):
    first = engine_.apply_xp(db, "bob", 900)
    second = engine_.apply_xp(db, "bob", 200)

    assert not first.leveled_up
    assert second.leveled_up
    assert (second.old_level, second.new_level) == (1, 2)
    assert second.attack_power == engine_.attack_power_for_level(2)

    actor = db.get(Actor, "bob")
    assert actor.level == 2
    assert actor.attack_power == second.attack_power


def test_apply_zero_xp_is_a_no_op(engine_, db):
    change = engine_.apply_xp(db, "carol", 0)
    assert change.total_xp == 0
    assert not change.leveled_up


@pytest.mark.parametrize("amount", [-1, 1.5, "10", True])
def test_apply_xp_rejects_bad_amounts(engine_, db, amount):
    with pytest.raises(InvalidXpAmount):
        engine_.apply_xp(db, "dave", amount)


def test_ensure_actor_is_idempotent(engine_, db):
    engine_.ensure_actor(db, "erin")
    engine_.ensure_actor(db, "erin")
    assert db.query(Actor).filter(Actor.id == "erin").count() == 1
