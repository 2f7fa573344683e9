"""
Zone API Endpoints

Responsibilities:
1. Nearby zones around the caller
2. Zone detail, owned zones, check-in history
3. Claim and check-in (delegated to ClaimArbiter)
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from zoneclash.api.deps import get_actor_id, get_core, get_idempotency_key, get_optional_actor_id
from zoneclash.api.errors import to_http_exception
from zoneclash.core.exceptions import ZoneClashException
from zoneclash.core.game import GameCore
from zoneclash.database import get_db
from zoneclash.schemas import (
    CheckInHistoryResponse,
    CheckInResponse,
    ClaimZoneResponse,
    LocationBody,
    NearbyZonesResponse,
    UserLocation,
    ZoneDetailResponse,
    ZoneListResponse,
)
from zoneclash.services.history_service import get_checkin_history, get_zone_attacks
from zoneclash.services.zone_status import zone_status

router = APIRouter(prefix="/api/zones", tags=["zones"])
logger = logging.getLogger(__name__)

MAX_NEARBY_RADIUS_M = 5000


@router.get("/nearby", response_model=NearbyZonesResponse)
def nearby_zones(
    lat: float = Query(..., ge=-90, le=90),
    lng: float = Query(..., ge=-180, le=180),
    radius: Optional[float] = Query(None, gt=0, le=MAX_NEARBY_RADIUS_M),
    viewer_id: Optional[str] = Depends(get_optional_actor_id),
    core: GameCore = Depends(get_core),
    db: Session = Depends(get_db)
):
    """
    Zones around a point, nearest first.

    Returns:
        - zones: id, center, level, defense_points, is_claimed, owner_id,
          status relative to the caller, distance
        - count
        - user_location: the point that was queried
    """
    try:
        radius = radius or core.settings.default_nearby_radius_m
        zones = core.registry.nearby(db, lat, lng, radius, viewer_id=viewer_id)
        return NearbyZonesResponse(
            zones=zones,
            count=len(zones),
            user_location=UserLocation(latitude=lat, longitude=lng)
        )

    except ZoneClashException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to list nearby zones: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/mine", response_model=ZoneListResponse)
def my_zones(
    actor_id: str = Depends(get_actor_id),
    core: GameCore = Depends(get_core),
    db: Session = Depends(get_db)
):
    """Zones the caller currently holds."""
    try:
        zones = core.registry.zones_owned_by(db, actor_id)
        return ZoneListResponse(zones=zones, count=len(zones))

    except Exception as e:
        logger.error(f"Failed to list owned zones: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/checkin-history", response_model=CheckInHistoryResponse)
def checkin_history(
    limit: int = Query(50, ge=1, le=200),
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db)
):
    """The caller's check-ins, most recent first (failed ones included)."""
    try:
        checkins = get_checkin_history(db, actor_id=actor_id, limit=limit)
        return CheckInHistoryResponse(checkins=checkins, count=len(checkins))

    except Exception as e:
        logger.error(f"Failed to get check-in history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{zone_id}", response_model=ZoneDetailResponse)
def zone_detail(
    zone_id: str,
    viewer_id: Optional[str] = Depends(get_optional_actor_id),
    core: GameCore = Depends(get_core),
    db: Session = Depends(get_db)
):
    """
    One zone with its recent ledger entries.

    Unknown but valid grid ids return the default unclaimed zone.
    """
    try:
        zone = core.registry.get(db, zone_id)
        return ZoneDetailResponse(
            zone=zone,
            status=zone_status(zone.is_claimed, zone.owner_id, viewer_id),
            checkin_history=get_checkin_history(db, zone_id=zone_id, limit=20),
            attack_history=get_zone_attacks(db, zone_id, limit=20)
        )

    except ZoneClashException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to get zone {zone_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{zone_id}/claim", response_model=ClaimZoneResponse)
def claim_zone(
    zone_id: str,
    body: LocationBody,
    actor_id: str = Depends(get_actor_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    core: GameCore = Depends(get_core),
    db: Session = Depends(get_db)
):
    """
    Claim an unclaimed zone.

    Preconditions:
    - caller within the capture radius of the zone center
    - zone unclaimed

    Errors:
        403 too_far_away, 409 zone_already_claimed, 503 zone_busy (retry)
    """
    try:
        result = core.arbiter.claim(
            db,
            actor_id,
            zone_id,
            (body.latitude, body.longitude),
            idempotency_key=idempotency_key
        )
        return ClaimZoneResponse(
            message=f"Zone {zone_id} claimed",
            zone=result.zone,
            xp_gained=result.xp_gained
        )

    except ZoneClashException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to claim zone {zone_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{zone_id}/checkin", response_model=CheckInResponse)
def check_in(
    zone_id: str,
    body: LocationBody,
    actor_id: str = Depends(get_actor_id),
    idempotency_key: Optional[str] = Depends(get_idempotency_key),
    core: GameCore = Depends(get_core),
    db: Session = Depends(get_db)
):
    """
    Owner check-in: refreshes the claim and restores defense.

    Errors:
        409 not_owner, 403 too_far_away, 503 zone_busy (retry)
    """
    try:
        result = core.arbiter.check_in(
            db,
            actor_id,
            zone_id,
            (body.latitude, body.longitude),
            idempotency_key=idempotency_key
        )
        return CheckInResponse(
            message=f"Checked in at zone {zone_id}",
            xp_gained=result.xp_gained,
            checkin=result.checkin,
            zone=result.zone
        )

    except ZoneClashException as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.error(f"Failed to check in at zone {zone_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
