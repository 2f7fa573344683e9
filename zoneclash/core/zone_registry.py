"""
ZoneRegistry: the authoritative store of per-zone state.

Responsibilities:
1. Read a zone (stored, or a synthesized unclaimed default)
2. Commit a zone change: the ONLY write path for zone state
3. Enforce zone invariants on every commit
4. Publish queued events once a commit has landed

Every commit is a read-check-mutate cycle on exactly one zone, serialized
per zone id. Different zones never wait on each other.
"""
from datetime import datetime
from typing import Callable, List, Optional
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from zoneclash.core.events import EventSink, LoggingEventSink, safe_publish
from zoneclash.core.exceptions import ZoneBusy, ZoneInvariantViolation
from zoneclash.core.locks import ZoneLockTable, with_zone_lock
from zoneclash.database import transactional
from zoneclash.models import Zone
from zoneclash.schemas import NearbyZoneView, ZoneView
from zoneclash.services.geo_grid import GeoGrid, GeoPoint
from zoneclash.services.zone_status import zone_level, zone_status
from zoneclash.timeutils import utcnow

logger = logging.getLogger(__name__)


class ZoneTransaction:
    """
    Handle passed to a mutation while it holds the zone.

    Attributes:
        db: the Session of the committing transaction
        zone: the locked Zone row (expiry already applied)
        now: transaction timestamp, the same for every write in it
    """

    def __init__(self, db: Session, zone: Zone, now: datetime):
        self.db = db
        self.zone = zone
        self.now = now
        self.events: List = []
        self.failure: Optional[Exception] = None
        self.result = None

    def emit(self, event) -> None:
        """Queue an event; it is published only if the commit succeeds."""
        self.events.append(event)

    def fail(self, error: Exception) -> None:
        """
        Reject the request but still commit ledger writes made so far
        (e.g. a failed check-in record). The zone itself must be untouched.
        """
        self.failure = error


class ZoneRegistry:
    def __init__(
        self,
        grid: GeoGrid,
        settings,
        sink: Optional[EventSink] = None,
        locks: Optional[ZoneLockTable] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.grid = grid
        self.settings = settings
        self.sink = sink or LoggingEventSink()
        self.locks = locks or ZoneLockTable()
        self.clock = clock

    # ============ Reads ============

    def get(self, db: Session, zone_id: str) -> ZoneView:
        """
        Read a zone's committed state.

        Unknown zones come back as the default unclaimed zone of that grid
        cell; nothing is written. A lapsed claim reads as unclaimed.

        Raises:
            ZoneNotFound: zone_id is not a key of this grid
        """
        center = self.grid.zone_center(zone_id)
        zone = db.query(Zone).filter(Zone.id == zone_id).populate_existing().first()
        if zone is None:
            return self._default_view(zone_id, center)
        return self.view(zone, now=self.clock())

    def view(self, zone: Zone, now: Optional[datetime] = None) -> ZoneView:
        view = ZoneView.model_validate(zone)
        if now is not None and self._is_expired(zone, now):
            view = view.model_copy(update={
                "is_claimed": False,
                "owner_id": None,
                "claimed_at": None,
                "expires_at": None,
            })
        return view

    def nearby(self, db: Session, lat: float, lng: float, radius: float, viewer_id: Optional[str] = None) -> List[NearbyZoneView]:
        """
        Zones whose centers are within `radius` meters, nearest first.

        Grid cells nobody has touched yet are included as default zones, so
        the caller sees the full map around the point.
        """
        cells = self.grid.cells_within(lat, lng, radius, limit=self.settings.max_nearby_zones)
        if not cells:
            return []

        ids = [zone_id for zone_id, _, _ in cells]
        stored = {
            zone.id: zone
            for zone in db.query(Zone).filter(Zone.id.in_(ids)).all()
        }

        now = self.clock()
        result = []
        for zone_id, center, distance in cells:
            zone = stored.get(zone_id)
            if zone is None:
                view = self._default_view(zone_id, center)
            else:
                view = self.view(zone, now=now)
            result.append(NearbyZoneView(
                **view.model_dump(),
                status=zone_status(view.is_claimed, view.owner_id, viewer_id),
                distance_m=round(distance, 2),
            ))
        return result

    def zones_owned_by(self, db: Session, actor_id: str) -> List[ZoneView]:
        now = self.clock()
        zones = db.query(Zone).filter(
            Zone.owner_id == actor_id,
            Zone.is_claimed == True,  # noqa: E712
            Zone.expires_at > now
        ).order_by(Zone.claimed_at.desc()).all()
        return [self.view(zone) for zone in zones]

    def count_owned(self, db: Session, actor_id: str) -> int:
        return db.query(Zone).filter(
            Zone.owner_id == actor_id,
            Zone.is_claimed == True,  # noqa: E712
            Zone.expires_at > self.clock()
        ).count()

    # ============ Writes ============

    def commit(self, db: Session, zone_id: str, mutation: Callable[[ZoneTransaction], object]):
        """
        Apply `mutation` to one zone atomically.

        Flow:
        1. Validate the zone id and take the zone's lock (bounded wait)
        2. Load the row FOR UPDATE, creating the default zone if missing
        3. Clear a lapsed claim (soft expiry)
        4. Run the mutation, check invariants, commit
        5. Release the lock, then publish the queued events

        Args:
            db: SQLAlchemy Session
            zone_id: zone grid key
            mutation: callable(ZoneTransaction) -> result

        Returns:
            whatever the mutation returned

        Raises:
            ZoneNotFound: zone_id is not a key of this grid
            ZoneBusy: lock wait timed out, or another process won the CAS
            ZoneInvariantViolation: the mutation left the zone invalid
            anything the mutation raises (after rollback)
        """
        # 1. Validate + lock
        center = self.grid.zone_center(zone_id)
        with self.locks.hold(zone_id, timeout=self.settings.zone_lock_timeout_sec):
            try:
                tx = self._apply(db, zone_id, center, mutation)
            except (StaleDataError, IntegrityError) as e:
                logger.warning(f"Concurrent write on zone {zone_id} lost the race: {e}")
                raise ZoneBusy(zone_id)

        # 5. Publish after commit; sink failures never reach the caller
        for event in tx.events:
            safe_publish(self.sink, event)

        if tx.failure is not None:
            raise tx.failure
        return tx.result

    @transactional
    def _apply(self, db: Session, zone_id: str, center: GeoPoint, mutation) -> ZoneTransaction:
        now = self.clock()

        # 2. Load or create
        zone = with_zone_lock(zone_id, db).populate_existing().first()
        if zone is None:
            zone = self._new_zone(zone_id, center, now)
            db.add(zone)

        # 3. Soft expiry
        if self._is_expired(zone, now):
            logger.info(f"Zone {zone_id} claim by {zone.owner_id} expired at {zone.expires_at}")
            self._clear_claim(zone)

        # 4. Mutate + validate
        tx = ZoneTransaction(db, zone, now)
        tx.result = mutation(tx)
        self._check_invariants(zone)
        db.flush()
        return tx

    def _new_zone(self, zone_id: str, center: GeoPoint, now: datetime) -> Zone:
        return Zone(
            id=zone_id,
            center_lat=center.lat,
            center_lng=center.lng,
            defense_points=self.settings.min_defense,
            is_claimed=False,
            owner_id=None,
            claimed_at=None,
            expires_at=None,
            created_at=now,
        )

    def _default_view(self, zone_id: str, center: GeoPoint) -> ZoneView:
        return ZoneView(
            id=zone_id,
            center_lat=center.lat,
            center_lng=center.lng,
            level=zone_level(self.settings.min_defense),
            defense_points=self.settings.min_defense,
            is_claimed=False,
        )

    @staticmethod
    def _is_expired(zone: Zone, now: datetime) -> bool:
        return bool(zone.is_claimed and zone.expires_at is not None and zone.expires_at <= now)

    @staticmethod
    def _clear_claim(zone: Zone) -> None:
        zone.is_claimed = False
        zone.owner_id = None
        zone.claimed_at = None
        zone.expires_at = None

    def _check_invariants(self, zone: Zone) -> None:
        """Reject, never clamp: a violation here is a logic error upstream."""
        if (zone.owner_id is not None) != bool(zone.is_claimed):
            raise ZoneInvariantViolation(
                zone.id, f"owner_id={zone.owner_id!r} but is_claimed={zone.is_claimed}"
            )

        if zone.is_claimed:
            if zone.claimed_at is None or zone.expires_at is None:
                raise ZoneInvariantViolation(zone.id, "claimed zone without claimed_at/expires_at")
            if zone.expires_at <= zone.claimed_at:
                raise ZoneInvariantViolation(
                    zone.id, f"expires_at {zone.expires_at} not after claimed_at {zone.claimed_at}"
                )
        elif zone.claimed_at is not None or zone.expires_at is not None:
            raise ZoneInvariantViolation(zone.id, "unclaimed zone still carries claim timestamps")

        defense = zone.defense_points
        if isinstance(defense, bool) or not isinstance(defense, int):
            raise ZoneInvariantViolation(zone.id, f"defense_points must be an integer, got {defense!r}")
        if not self.settings.min_defense <= defense <= self.settings.max_defense:
            raise ZoneInvariantViolation(
                zone.id,
                f"defense_points {defense} outside "
                f"[{self.settings.min_defense}, {self.settings.max_defense}]"
            )

        if zone.level != zone_level(defense):
            raise ZoneInvariantViolation(
                zone.id, f"level {zone.level} does not match defense_points {defense}"
            )
