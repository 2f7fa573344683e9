"""
Actor and counter endpoints.

The identity provider owns actors; this only exposes the progression fields
the core maintains, plus raw game counters for analytics collaborators.
"""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
import logging

from zoneclash.api.deps import get_actor_id, get_core
from zoneclash.core.game import GameCore
from zoneclash.database import get_db
from zoneclash.models import Actor
from zoneclash.schemas import ActorView, GameCounters
from zoneclash.services.history_service import get_game_counters

router = APIRouter(prefix="/api", tags=["actors"])
logger = logging.getLogger(__name__)


@router.get("/actors/me", response_model=ActorView)
def get_me(
    actor_id: str = Depends(get_actor_id),
    core: GameCore = Depends(get_core),
    db: Session = Depends(get_db)
):
    """
    The caller's progression.

    Actors the core has never seen read as level 1 with zero XP.
    """
    try:
        actor = db.get(Actor, actor_id)
        xp = actor.xp if actor else 0
        level = core.progression.level_for_xp(xp)
        return ActorView(
            id=actor_id,
            xp=xp,
            level=level,
            attack_power=core.progression.attack_power_for_level(level),
            zones_owned=core.registry.count_owned(db, actor_id)
        )

    except Exception as e:
        logger.error(f"Failed to get actor {actor_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/stats", response_model=GameCounters)
def game_counters(
    core: GameCore = Depends(get_core),
    db: Session = Depends(get_db)
):
    try:
        return get_game_counters(db, now=core.registry.clock())

    except Exception as e:
        logger.error(f"Failed to get game counters: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
