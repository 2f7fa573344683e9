"""
SQLAlchemy models.

Persisted layout:
- zones: one row per grid cell that has ever been touched by a transaction
- zone_cooldowns: per-(actor, zone) attack cooldowns
- actors: XP bookkeeping for actors owned by the identity provider
- attacks / checkins: append-only ledgers
- idempotency_keys: outcomes of keyed mutations, for safe retries
"""
import enum

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship, validates

from zoneclash.database import Base
from zoneclash.services.zone_status import zone_level
from zoneclash.timeutils import utcnow


class AttackOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


class Zone(Base):
    __tablename__ = "zones"

    id = Column(String(64), primary_key=True)
    center_lat = Column(Float, nullable=False)
    center_lng = Column(Float, nullable=False)
    level = Column(Integer, nullable=False, default=1)
    defense_points = Column(Integer, nullable=False, default=0)
    is_claimed = Column(Boolean, nullable=False, default=False)
    owner_id = Column(String(64), nullable=True, index=True)
    claimed_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    cooldowns = relationship(
        "ZoneCooldown",
        back_populates="zone",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Optimistic CAS: every UPDATE is guarded by the version we read
    __mapper_args__ = {"version_id_col": version}

    @validates("defense_points")
    def _derive_level(self, key, value):
        # level is never assigned directly, it follows defense
        if isinstance(value, int):
            self.level = zone_level(value)
        return value

    def cooldown_for(self, actor_id: str):
        for cooldown in self.cooldowns:
            if cooldown.actor_id == actor_id:
                return cooldown
        return None


class ZoneCooldown(Base):
    __tablename__ = "zone_cooldowns"
    __table_args__ = (UniqueConstraint("zone_id", "actor_id", name="uq_zone_cooldown_actor"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    zone_id = Column(String(64), ForeignKey("zones.id"), nullable=False, index=True)
    actor_id = Column(String(64), nullable=False, index=True)
    cooldown_until = Column(DateTime, nullable=False)

    zone = relationship("Zone", back_populates="cooldowns")


class Actor(Base):
    __tablename__ = "actors"

    id = Column(String(64), primary_key=True)
    xp = Column(Integer, nullable=False, default=0)
    level = Column(Integer, nullable=False, default=1)
    attack_power = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class AttackRecord(Base):
    __tablename__ = "attacks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    zone_id = Column(String(64), nullable=False, index=True)
    attacker_id = Column(String(64), nullable=False, index=True)
    defender_id = Column(String(64), nullable=True, index=True)
    attacker_power = Column(Integer, nullable=False)
    defender_power = Column(Integer, nullable=False)
    success_probability = Column(Float, nullable=False)
    outcome = Column(Enum(AttackOutcome), nullable=False)
    xp_gained = Column(Integer, nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)

    @property
    def success(self) -> bool:
        return self.outcome == AttackOutcome.SUCCESS


class CheckInRecord(Base):
    __tablename__ = "checkins"

    id = Column(Integer, primary_key=True, autoincrement=True)
    zone_id = Column(String(64), nullable=False, index=True)
    actor_id = Column(String(64), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    success = Column(Boolean, nullable=False)
    timestamp = Column(DateTime, nullable=False, default=utcnow)


class IdempotencyRecord(Base):
    __tablename__ = "idempotency_keys"
    __table_args__ = (UniqueConstraint("actor_id", "key", name="uq_idempotency_actor_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(String(64), nullable=False)
    key = Column(String(128), nullable=False)
    operation = Column(String(32), nullable=False)
    zone_id = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
