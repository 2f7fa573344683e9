"""
Pydantic schemas: request bodies, response payloads and operation results.

Core operations build these inside the committing transaction, so a payload
always reflects committed state.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from zoneclash.models import AttackOutcome
from zoneclash.services.zone_status import ZoneStatus


# ============ Requests ============

class LocationBody(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class AttackZoneRequest(LocationBody):
    zone_id: str


# ============ Views ============

class ZoneView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    center_lat: float
    center_lng: float
    level: int
    defense_points: int
    is_claimed: bool
    owner_id: Optional[str] = None
    claimed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None


class NearbyZoneView(ZoneView):
    status: ZoneStatus
    distance_m: float


class AttackRecordView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    zone_id: str
    attacker_id: str
    defender_id: Optional[str] = None
    attacker_power: int
    defender_power: int
    success_probability: float
    outcome: AttackOutcome
    success: bool
    xp_gained: int
    latitude: float
    longitude: float
    timestamp: datetime


class CheckInView(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    zone_id: str
    actor_id: str
    latitude: float
    longitude: float
    success: bool
    timestamp: datetime


class ActorView(BaseModel):
    id: str
    xp: int
    level: int
    attack_power: int
    zones_owned: int


# ============ Operation results ============

class ClaimResult(BaseModel):
    zone: ZoneView
    xp_gained: int


class CheckInResult(BaseModel):
    xp_gained: int
    checkin: CheckInView
    zone: ZoneView


class AttackResult(BaseModel):
    attack_record: AttackRecordView
    zone_captured: bool
    zone: Optional[ZoneView] = None


# ============ Responses ============

class UserLocation(BaseModel):
    latitude: float
    longitude: float


class NearbyZonesResponse(BaseModel):
    zones: List[NearbyZoneView]
    count: int
    user_location: UserLocation


class ZoneListResponse(BaseModel):
    zones: List[ZoneView]
    count: int


class ZoneDetailResponse(BaseModel):
    zone: ZoneView
    status: ZoneStatus
    checkin_history: List[CheckInView]
    attack_history: List[AttackRecordView]


class ClaimZoneResponse(ClaimResult):
    message: str


class CheckInResponse(CheckInResult):
    message: str


class AttackZoneResponse(AttackResult):
    message: str


class CheckInHistoryResponse(BaseModel):
    checkins: List[CheckInView]
    count: int


class AttackHistoryResponse(BaseModel):
    attacks: List[AttackRecordView]
    count: int


class AttackStats(BaseModel):
    attacks_made: int
    attacks_won: int
    attacks_lost: int
    defenses_successful: int
    defenses_failed: int
    attack_success_rate: float
    defense_success_rate: float
    total_xp_gained: int


class GameCounters(BaseModel):
    total_actors: int
    total_zones: int
    claimed_zones: int
    total_attacks: int
    successful_attacks: int
    total_checkins: int
