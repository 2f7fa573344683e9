"""
Domain exceptions.

Every recoverable failure the core can hand back to a caller lives here, so
the API layer can map them in one place. Each concrete error carries a stable
`code` used on the wire.
"""
from datetime import timedelta


class ZoneClashException(Exception):
    """Base class for all recoverable game errors."""
    code = "error"

    def to_dict(self) -> dict:
        return {"error": self.code, "message": str(self)}


# ============ Category bases ============

class ValidationError(ZoneClashException):
    """Malformed input (coordinates, amounts)."""
    code = "validation_error"


class RangeError(ZoneClashException):
    """The actor is outside the permitted radius."""
    code = "range_error"


class StateConflict(ZoneClashException):
    """The zone is not in a state that allows the requested action."""
    code = "state_conflict"


class RateLimited(ZoneClashException):
    """The action is temporarily blocked for this actor."""
    code = "rate_limited"


class NotFound(ZoneClashException):
    code = "not_found"


class Contention(ZoneClashException):
    """Retryable: the zone is held by another transaction."""
    code = "contention"


# ============ Validation ============

class InvalidCoordinates(ValidationError):
    code = "invalid_coordinates"

    def __init__(self, lat, lng):
        self.lat = lat
        self.lng = lng
        super().__init__(f"Invalid coordinates ({lat}, {lng})")


class InvalidXpAmount(ValidationError):
    code = "invalid_xp_amount"

    def __init__(self, amount):
        self.amount = amount
        super().__init__(f"XP amount must be a non-negative integer, got {amount!r}")


# ============ Range ============

class TooFarAway(RangeError):
    code = "too_far_away"

    def __init__(self, distance: float, required_radius: float):
        self.distance = distance
        self.required_radius = required_radius
        super().__init__(
            f"Too far from zone: {distance:.1f} m away, must be within {required_radius:.1f} m"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update(distance=round(self.distance, 2), required_radius=self.required_radius)
        return data


# ============ State conflicts ============

class ZoneAlreadyClaimed(StateConflict):
    code = "zone_already_claimed"

    def __init__(self, zone_id, owner_id):
        self.zone_id = zone_id
        self.owner_id = owner_id
        super().__init__(f"Zone {zone_id} is already claimed")


class NotOwner(StateConflict):
    code = "not_owner"

    def __init__(self, zone_id, actor_id):
        self.zone_id = zone_id
        self.actor_id = actor_id
        super().__init__(f"Actor {actor_id} does not own zone {zone_id}")


class SelfAttack(StateConflict):
    code = "self_attack"

    def __init__(self, zone_id):
        self.zone_id = zone_id
        super().__init__(f"Cannot attack your own zone {zone_id}")


class ZoneUnclaimed(StateConflict):
    """Attack on a zone nobody owns; the caller should claim it instead."""
    code = "zone_unclaimed"

    def __init__(self, zone_id):
        self.zone_id = zone_id
        super().__init__(f"Zone {zone_id} is unclaimed, claim it instead")


class IdempotencyKeyReused(StateConflict):
    code = "idempotency_key_reused"

    def __init__(self, key):
        self.key = key
        super().__init__(f"Idempotency key {key!r} was already used for a different request")


# ============ Rate limiting ============

class OnCooldown(RateLimited):
    code = "on_cooldown"

    def __init__(self, zone_id, remaining: timedelta):
        self.zone_id = zone_id
        self.remaining = remaining
        super().__init__(
            f"Attack on zone {zone_id} is on cooldown for another "
            f"{int(remaining.total_seconds())} s"
        )

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["remaining_seconds"] = self.remaining.total_seconds()
        return data


# ============ Not found ============

class ZoneNotFound(NotFound):
    code = "zone_not_found"

    def __init__(self, zone_id):
        self.zone_id = zone_id
        super().__init__(f"Zone {zone_id} not found")


# ============ Contention ============

class ZoneBusy(Contention):
    code = "zone_busy"

    def __init__(self, zone_id):
        self.zone_id = zone_id
        super().__init__(f"Zone {zone_id} is busy, retry the request")


# ============ Internal ============

class ZoneInvariantViolation(RuntimeError):
    """A commit tried to leave a zone in an invalid state (logic error)."""

    def __init__(self, zone_id, reason):
        self.zone_id = zone_id
        self.reason = reason
        super().__init__(f"Zone {zone_id} invariant violated: {reason}")
