"""
Idempotency keys for zone mutations.

A client retrying a claim, check-in or attack after a dropped response sends
the same key again. Lookups happen inside the zone transaction, under the
zone lock, so a retry can never race its original.
"""
from typing import Optional

from sqlalchemy.orm import Session

from zoneclash.core.exceptions import IdempotencyKeyReused
from zoneclash.models import IdempotencyRecord


def find_replay(db: Session, actor_id: str, key: Optional[str], operation: str, zone_id: str) -> Optional[dict]:
    """
    Return the stored outcome for this key, or None if it is unused.

    Raises:
        IdempotencyKeyReused: the key belongs to another operation or zone
    """
    if not key:
        return None

    record = db.query(IdempotencyRecord).filter(
        IdempotencyRecord.actor_id == actor_id,
        IdempotencyRecord.key == key
    ).first()
    if record is None:
        return None

    if record.operation != operation or record.zone_id != zone_id:
        raise IdempotencyKeyReused(key)
    return record.payload


def remember(db: Session, actor_id: str, key: Optional[str], operation: str, zone_id: str, payload: dict) -> None:
    if not key:
        return
    db.add(IdempotencyRecord(
        actor_id=actor_id,
        key=key,
        operation=operation,
        zone_id=zone_id,
        payload=payload
    ))
