"""
Concurrency control.

Two layers, both keyed by zone id (never a global lock):

1. ZoneLockTable: an in-process lock per zone with a bounded wait. This is
   what serializes concurrent requests inside one server process.
2. with_zone_lock: SELECT ... FOR UPDATE on the zone row, so several server
   processes sharing a PostgreSQL database also serialize per zone.
   SQLite ignores FOR UPDATE; there the version column on Zone still turns
   a lost race into a StaleDataError.
"""
from contextlib import contextmanager
import logging
import threading
import weakref

from sqlalchemy.orm import Session, Query

from zoneclash.core.exceptions import ZoneBusy
from zoneclash.models import Zone

logger = logging.getLogger(__name__)


class _ZoneLock:
    __slots__ = ("lock", "__weakref__")

    def __init__(self):
        self.lock = threading.Lock()


class ZoneLockTable:
    """
    One lock per zone id, created on demand.

    Entries live in a WeakValueDictionary: a zone's lock disappears once no
    request holds or waits on it, so the table does not grow with the map.
    The table-level mutex only guards lookup/creation, never the zone work.

    Usage:
        with locks.hold(zone_id, timeout=5.0):
            ...  # read-check-mutate on exactly this zone
    """

    def __init__(self):
        self._locks = weakref.WeakValueDictionary()
        self._mutex = threading.Lock()

    def _lock_for(self, zone_id: str) -> _ZoneLock:
        with self._mutex:
            entry = self._locks.get(zone_id)
            if entry is None:
                entry = _ZoneLock()
                self._locks[zone_id] = entry
            return entry

    @contextmanager
    def hold(self, zone_id: str, timeout: float):
        """
        Acquire the zone's lock, waiting at most `timeout` seconds.

        Raises:
            ZoneBusy: the lock was not acquired in time (retryable)
        """
        entry = self._lock_for(zone_id)
        if not entry.lock.acquire(timeout=timeout):
            logger.warning(f"Timed out after {timeout}s waiting for zone {zone_id}")
            raise ZoneBusy(zone_id)
        try:
            yield
        finally:
            entry.lock.release()

    def __len__(self):
        with self._mutex:
            return len(self._locks)


def with_zone_lock(zone_id: str, db: Session) -> Query:
    """
    Lock one zone row (row-level lock) for the rest of the transaction.

    Example:
        zone = with_zone_lock(zone_id, db).first()
        if zone is None:
            zone = Zone(id=zone_id, ...)
            db.add(zone)

    Args:
        zone_id: zone grid key
        db: SQLAlchemy Session

    Returns:
        Query object (call .first())

    Notes:
        - nowait=False: wait for the holder, the in-process table already
          bounds how long we queue
        - must run inside a transaction that ends in commit or rollback
    """
    return db.query(Zone).filter(
        Zone.id == zone_id
    ).with_for_update(nowait=False)
