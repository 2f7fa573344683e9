"""
Attack API Endpoints

Responsibilities:
1. Attack a zone (delegated to CombatResolver; the draw happens here, on
   the server, never on the client)
2. Attack history and per-actor attack stats
"""
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from zoneclash.api.deps import get_actor_id, get_core, get_idempotency_key
from zoneclash.api.errors import to_http_exception
from zoneclash.core.exceptions import ZoneClashException
from zoneclash.core.game import GameCore
from zoneclash.database import get_db
from zoneclash.schemas import (
    AttackHistoryResponse,
    AttackStats,
    AttackZoneRequest,
    AttackZoneResponse,
)
from zoneclash.services.history_service import get_attack_history, get_attack_stats

router = APIRouter(prefix="/api/attacks", tags=["attacks"])
logger = logging.getLogger(__name__)


@router.post("", response_model=AttackZoneResponse)
def attack_zone(
    body: AttackZoneRequest,
    actor_id: str = Depends(get_actor_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    core: GameCore = Depends(get_core),
    db: Session = Depends(get_db)
):
    """
    Attack a zone owned by another actor.

    Preconditions (checked in this order):
    1. zone claimed            -> 409 zone_unclaimed
    2. caller is not the owner -> 409 self_attack
    3. caller within radius    -> 403 too_far_away
    4. no active cooldown      -> 429 on_cooldown (Retry-After set)

    Returns:
        - attack_record: the ledger entry
        - zone_captured: whether ownership moved to the caller
        - zone: the zone after the attack
    """
    try:
        result = core.resolver.attack(
            db,
            actor_id,
            body.zone_id,
            (body.latitude, body.longitude),
            idempotency_key=idempotency_key
        )
        if result.zone_captured:
            message = f"Victory! You captured zone {body.zone_id}"
        else:
            message = f"Attack on zone {body.zone_id} failed"

        return AttackZoneResponse(
            message=message,
            attack_record=result.attack_record,
            zone_captured=result.zone_captured,
            zone=result.zone
        )

    except ZoneClashException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to attack zone {body.zone_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("", response_model=AttackHistoryResponse)
def attack_history(
    type: Literal["made", "received"] = Query("made"),
    limit: int = Query(50, ge=1, le=200),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db)
):
    """Attacks the caller made, or received as a defender."""
    try:
        attacks = get_attack_history(db, actor_id, kind=type, limit=limit)
        return AttackHistoryResponse(attacks=attacks, count=len(attacks))

    except Exception as e:
        logger.error(f"Failed to get attack history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/stats", response_model=AttackStats)
def attack_stats(
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db)
):
    try:
        return get_attack_stats(db, actor_id)

    except Exception as e:
        logger.error(f"Failed to get attack stats: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
