"""
History service.

Read-only queries over the append-only ledgers, so clients can render
attack logs, check-in logs and counters straight from the server.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from zoneclash.models import Actor, AttackOutcome, AttackRecord, CheckInRecord, Zone
from zoneclash.schemas import AttackRecordView, AttackStats, CheckInView, GameCounters
from zoneclash.timeutils import utcnow

DEFAULT_HISTORY_LIMIT = 50


def get_attack_history(db: Session, actor_id: str, kind: str = "made", limit: int = DEFAULT_HISTORY_LIMIT) -> List[AttackRecordView]:
    """
    Most recent attacks made by, or received by, an actor.

    Args:
        kind: "made" (actor attacked) or "received" (actor defended)
    """
    query = db.query(AttackRecord)
    if kind == "received":
        query = query.filter(AttackRecord.defender_id == actor_id)
    else:
        query = query.filter(AttackRecord.attacker_id == actor_id)

    rows = query.order_by(AttackRecord.timestamp.desc(), AttackRecord.id.desc()).limit(limit).all()
    return [AttackRecordView.model_validate(row) for row in rows]


def get_zone_attacks(db: Session, zone_id: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[AttackRecordView]:
    rows = (
        db.query(AttackRecord)
        .filter(AttackRecord.zone_id == zone_id)
        .order_by(AttackRecord.timestamp.desc(), AttackRecord.id.desc())
        .limit(limit)
        .all()
    )
    return [AttackRecordView.model_validate(row) for row in rows]


def get_checkin_history(
    db: Session,
    actor_id: Optional[str] = None,
    zone_id: Optional[str] = None,
    limit: int = DEFAULT_HISTORY_LIMIT,
) -> List[CheckInView]:
    query = db.query(CheckInRecord)
    if actor_id is not None:
        query = query.filter(CheckInRecord.actor_id == actor_id)
    if zone_id is not None:
        query = query.filter(CheckInRecord.zone_id == zone_id)

    rows = query.order_by(CheckInRecord.timestamp.desc(), CheckInRecord.id.desc()).limit(limit).all()
    return [CheckInView.model_validate(row) for row in rows]


def _rate(won: int, total: int) -> float:
    return round(won / total, 4) if total else 0.0


def get_attack_stats(db: Session, actor_id: str) -> AttackStats:
    """
    Attack and defense counters for one actor.

    A defense is "successful" when an attack against the actor failed.
    """
    made = db.query(AttackRecord).filter(AttackRecord.attacker_id == actor_id)
    attacks_made = made.count()
    attacks_won = made.filter(AttackRecord.outcome == AttackOutcome.SUCCESS).count()

    received = db.query(AttackRecord).filter(AttackRecord.defender_id == actor_id)
    defenses = received.count()
    defenses_failed = received.filter(AttackRecord.outcome == AttackOutcome.SUCCESS).count()
    defenses_successful = defenses - defenses_failed

    total_xp = db.query(func.coalesce(func.sum(AttackRecord.xp_gained), 0)).filter(
        AttackRecord.attacker_id == actor_id
    ).scalar()

    return AttackStats(
        attacks_made=attacks_made,
        attacks_won=attacks_won,
        attacks_lost=attacks_made - attacks_won,
        defenses_successful=defenses_successful,
        defenses_failed=defenses_failed,
        attack_success_rate=_rate(attacks_won, attacks_made),
        defense_success_rate=_rate(defenses_successful, defenses),
        total_xp_gained=int(total_xp),
    )


def get_game_counters(db: Session, now: Optional[datetime] = None) -> GameCounters:
    """Raw global counters; aggregation is left to analytics."""
    now = now or utcnow()
    return GameCounters(
        total_actors=db.query(Actor).count(),
        total_zones=db.query(Zone).count(),
        claimed_zones=db.query(Zone).filter(
            Zone.is_claimed == True,  # noqa: E712
            Zone.expires_at > now
        ).count(),
        total_attacks=db.query(AttackRecord).count(),
        successful_attacks=db.query(AttackRecord).filter(
            AttackRecord.outcome == AttackOutcome.SUCCESS
        ).count(),
        total_checkins=db.query(CheckInRecord).count(),
    )
