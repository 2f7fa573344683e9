"""
ClaimArbiter: claims and check-ins.

Claim rules:
- the actor must stand within the capture radius of the zone center
- the zone must be unclaimed (lapsed claims count as unclaimed)
- of concurrent claims on the same zone exactly one commits; the rest see
  ZoneAlreadyClaimed against the committed winner

Check-in rules:
- only the current owner, within the capture radius
- refreshes the claim's expiry and restores defense toward a cap
- rejected check-ins are still written to the check-in ledger
"""
from datetime import timedelta
from typing import Optional, Tuple
import logging

from sqlalchemy.orm import Session

from zoneclash.core.events import ZoneClaimed, level_up_event
from zoneclash.core.exceptions import NotOwner, TooFarAway, ZoneAlreadyClaimed
from zoneclash.core.idempotency import find_replay, remember
from zoneclash.core.zone_registry import ZoneRegistry, ZoneTransaction
from zoneclash.models import CheckInRecord
from zoneclash.schemas import CheckInResult, CheckInView, ClaimResult
from zoneclash.services.geo_grid import distance_meters, validate_point, within_radius
from zoneclash.services.progression import ProgressionEngine

logger = logging.getLogger(__name__)


class ClaimArbiter:
    def __init__(self, registry: ZoneRegistry, progression: ProgressionEngine, settings):
        self.registry = registry
        self.progression = progression
        self.settings = settings

    @staticmethod
    def _center(tx: ZoneTransaction):
        return (tx.zone.center_lat, tx.zone.center_lng)

    def claim(
        self,
        db: Session,
        actor_id: str,
        zone_id: str,
        location: Tuple[float, float],
        idempotency_key: Optional[str] = None,
    ) -> ClaimResult:
        """
        Take ownership of an unclaimed zone.

        Flow:
        1. Range check against the zone center
        2. Exclusivity check (zone must be unclaimed)
        3. Set owner, claim window and base defense
        4. Grant XP = zone.level * xp_per_claim
        5. Emit zone_claimed (and level_up if the actor leveled)

        Args:
            db: SQLAlchemy Session
            actor_id: claiming actor
            zone_id: zone grid key
            location: (lat, lng) reported by the actor for this request
            idempotency_key: optional client retry key

        Returns:
            ClaimResult(zone, xp_gained)

        Raises:
            InvalidCoordinates, ZoneNotFound, TooFarAway, ZoneAlreadyClaimed, ZoneBusy
        """
        point = validate_point(*location)
        radius = self.settings.capture_radius_m
        self.progression.ensure_actor(db, actor_id)

        def mutation(tx: ZoneTransaction) -> ClaimResult:
            zone = tx.zone

            replay = find_replay(tx.db, actor_id, idempotency_key, "claim", zone_id)
            if replay is not None:
                logger.info(f"Replaying claim of zone {zone_id} for actor {actor_id}")
                return ClaimResult(zone=self.registry.view(zone), xp_gained=replay["xp_gained"])

            # 1. Range
            if not within_radius(point, self._center(tx), radius):
                raise TooFarAway(distance_meters(point, self._center(tx)), radius)

            # 2. Exclusivity
            if zone.is_claimed:
                raise ZoneAlreadyClaimed(zone_id, zone.owner_id)

            # 3. Ownership
            zone.owner_id = actor_id
            zone.is_claimed = True
            zone.claimed_at = tx.now
            zone.expires_at = tx.now + timedelta(hours=self.settings.zone_expiry_hours)
            zone.defense_points = self.settings.base_defense

            # 4. XP
            xp_gained = zone.level * self.settings.xp_per_claim
            change = self.progression.apply_xp(tx.db, actor_id, xp_gained)

            # 5. Events
            tx.emit(ZoneClaimed(
                zone_id=zone_id,
                actor_id=actor_id,
                zone_level=zone.level,
                xp_gained=xp_gained,
                expires_at=zone.expires_at,
            ))
            level_up = level_up_event(change)
            if level_up is not None:
                tx.emit(level_up)

            remember(tx.db, actor_id, idempotency_key, "claim", zone_id, {"xp_gained": xp_gained})
            logger.info(f"Actor {actor_id} claimed zone {zone_id} (+{xp_gained} XP)")
            return ClaimResult(zone=self.registry.view(zone), xp_gained=xp_gained)

        return self.registry.commit(db, zone_id, mutation)

    def check_in(
        self,
        db: Session,
        actor_id: str,
        zone_id: str,
        location: Tuple[float, float],
        idempotency_key: Optional[str] = None,
    ) -> CheckInResult:
        """
        Owner check-in: refresh the claim and shore up defense.

        Flow:
        1. Ownership check, then range check (rejections are ledgered)
        2. Push expires_at to now + zone_expiry_hours
        3. Raise defense by checkin_defense_restore, up to checkin_defense_cap
        4. Grant XP = zone.level * xp_per_checkin

        Returns:
            CheckInResult(xp_gained, checkin, zone)

        Raises:
            InvalidCoordinates, ZoneNotFound, NotOwner, TooFarAway, ZoneBusy
        """
        point = validate_point(*location)
        radius = self.settings.capture_radius_m
        self.progression.ensure_actor(db, actor_id)

        def ledger(tx: ZoneTransaction, success: bool) -> CheckInRecord:
            record = CheckInRecord(
                zone_id=zone_id,
                actor_id=actor_id,
                latitude=point.lat,
                longitude=point.lng,
                success=success,
                timestamp=tx.now,
            )
            tx.db.add(record)
            tx.db.flush()
            return record

        def mutation(tx: ZoneTransaction) -> Optional[CheckInResult]:
            zone = tx.zone

            replay = find_replay(tx.db, actor_id, idempotency_key, "checkin", zone_id)
            if replay is not None:
                logger.info(f"Replaying check-in on zone {zone_id} for actor {actor_id}")
                record = tx.db.get(CheckInRecord, replay["checkin_id"])
                return CheckInResult(
                    xp_gained=replay["xp_gained"],
                    checkin=CheckInView.model_validate(record),
                    zone=self.registry.view(zone),
                )

            # 1. Owner + range
            if not zone.is_claimed or zone.owner_id != actor_id:
                ledger(tx, success=False)
                tx.fail(NotOwner(zone_id, actor_id))
                return None

            if not within_radius(point, self._center(tx), radius):
                ledger(tx, success=False)
                tx.fail(TooFarAway(distance_meters(point, self._center(tx)), radius))
                return None

            # 2. Refresh the claim window
            zone.expires_at = tx.now + timedelta(hours=self.settings.zone_expiry_hours)

            # 3. Restore defense toward the cap, never lowering it
            cap = min(self.settings.checkin_defense_cap, self.settings.max_defense)
            restored = min(cap, zone.defense_points + self.settings.checkin_defense_restore)
            zone.defense_points = max(zone.defense_points, restored)

            # 4. XP
            xp_gained = zone.level * self.settings.xp_per_checkin
            change = self.progression.apply_xp(tx.db, actor_id, xp_gained)
            level_up = level_up_event(change)
            if level_up is not None:
                tx.emit(level_up)

            record = ledger(tx, success=True)
            remember(
                tx.db, actor_id, idempotency_key, "checkin", zone_id,
                {"xp_gained": xp_gained, "checkin_id": record.id}
            )
            logger.info(f"Actor {actor_id} checked in at zone {zone_id} (+{xp_gained} XP)")
            return CheckInResult(
                xp_gained=xp_gained,
                checkin=CheckInView.model_validate(record),
                zone=self.registry.view(zone),
            )

        return self.registry.commit(db, zone_id, mutation)
