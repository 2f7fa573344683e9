"""
Progression service: XP and level bookkeeping.

Level and attack power are pure functions of an actor's running XP total;
nothing else about an actor is tracked here.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from zoneclash.core.exceptions import InvalidXpAmount
from zoneclash.models import Actor


@dataclass(frozen=True)
class LevelChange:
    actor_id: str
    old_level: int
    new_level: int
    total_xp: int
    attack_power: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


class ProgressionEngine:
    def __init__(
        self,
        xp_per_level: int = 1000,
        max_level: Optional[int] = None,
        base_attack_power: int = 10,
        attack_power_per_level: int = 5,
        max_attack_power: int = 100,
    ):
        self.xp_per_level = xp_per_level
        self.max_level = max_level
        self.base_attack_power = base_attack_power
        self.attack_power_per_level = attack_power_per_level
        self.max_attack_power = max_attack_power

    @classmethod
    def from_settings(cls, settings) -> "ProgressionEngine":
        return cls(
            xp_per_level=settings.xp_per_level,
            max_level=settings.max_level,
            base_attack_power=settings.base_attack_power,
            attack_power_per_level=settings.attack_power_per_level,
            max_attack_power=settings.max_attack_power,
        )

    def level_for_xp(self, xp: int) -> int:
        """floor(xp / xp_per_level) + 1, capped only when max_level is set."""
        level = xp // self.xp_per_level + 1
        if self.max_level is not None:
            level = min(self.max_level, level)
        return level

    def attack_power_for_level(self, level: int) -> int:
        """Non-decreasing in level, capped at max_attack_power."""
        return min(
            self.max_attack_power,
            self.base_attack_power + (level - 1) * self.attack_power_per_level,
        )

    def _new_actor(self, actor_id: str) -> Actor:
        return Actor(
            id=actor_id,
            xp=0,
            level=1,
            attack_power=self.attack_power_for_level(1),
        )

    def ensure_actor(self, db: Session, actor_id: str) -> None:
        """
        Make sure an actor row exists, in its own short transaction.

        Called before a zone transaction starts, so a concurrent first
        insert of the same actor only costs a rollback of this insert.
        Always ends the session's transaction: the zone lock must never be
        awaited while this session holds database locks.
        """
        if db.get(Actor, actor_id) is not None:
            db.commit()
            return

        db.add(self._new_actor(actor_id))
        try:
            db.commit()
        except IntegrityError:
            # another request created it first
            db.rollback()

    def get_or_create_actor(self, db: Session, actor_id: str) -> Actor:
        """Load an actor, adding a zero-XP record to the session on first sight."""
        actor = db.get(Actor, actor_id)
        if actor is None:
            actor = self._new_actor(actor_id)
            db.add(actor)
            db.flush()
        return actor

    def apply_xp(self, db: Session, actor_id: str, amount: int) -> LevelChange:
        """
        Add XP to an actor and re-derive level and attack power.

        Flow:
        1. Validate the amount
        2. Atomic SQL increment (no lost updates across zone transactions)
        3. Re-read the total and derive the new level

        Args:
            db: SQLAlchemy Session (the caller's zone transaction)
            actor_id: actor to credit
            amount: XP to add, >= 0

        Returns:
            LevelChange with old/new level; the caller emits level_up

        Raises:
            InvalidXpAmount: negative or non-integer amount
        """
        # 1. Validate
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise InvalidXpAmount(amount)

        self.get_or_create_actor(db, actor_id)

        # 2. Increment in SQL
        db.execute(
            update(Actor)
            .where(Actor.id == actor_id)
            .values(xp=Actor.xp + amount)
            .execution_options(synchronize_session=False)
        )

        # 3. Derive
        total_xp = db.execute(select(Actor.xp).where(Actor.id == actor_id)).scalar_one()
        old_level = self.level_for_xp(total_xp - amount)
        new_level = self.level_for_xp(total_xp)
        attack_power = self.attack_power_for_level(new_level)

        db.execute(
            update(Actor)
            .where(Actor.id == actor_id)
            .values(level=new_level, attack_power=attack_power)
            .execution_options(synchronize_session=False)
        )
        actor = db.get(Actor, actor_id)
        db.refresh(actor)

        return LevelChange(
            actor_id=actor_id,
            old_level=old_level,
            new_level=new_level,
            total_xp=total_xp,
            attack_power=attack_power,
        )

    def level_of(self, db: Session, actor_id: str) -> int:
        actor = db.get(Actor, actor_id)
        if actor is None:
            return 1
        return self.level_for_xp(actor.xp)
