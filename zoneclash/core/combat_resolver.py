"""
CombatResolver: attacks on owned zones.

Preconditions, checked in this order:
1. the zone is claimed (otherwise ZoneUnclaimed: claim it instead)
2. the attacker is not the owner (SelfAttack)
3. the attacker is within the capture radius (TooFarAway)
4. no active cooldown for the attacker (OnCooldown)

The outcome is a single Bernoulli draw made here, on the server, against a
bounded success probability. Cooldown is set whatever the outcome.
"""
from datetime import timedelta
from typing import Optional, Tuple
import logging

from sqlalchemy.orm import Session

from zoneclash.core.events import BattleResult, ZoneAttacked, level_up_event
from zoneclash.core.exceptions import OnCooldown, SelfAttack, TooFarAway, ZoneUnclaimed
from zoneclash.core.idempotency import find_replay, remember
from zoneclash.core.zone_registry import ZoneRegistry, ZoneTransaction
from zoneclash.models import AttackOutcome, AttackRecord, ZoneCooldown
from zoneclash.schemas import AttackRecordView, AttackResult
from zoneclash.services.battle_odds import RandomSource, draw_outcome, success_probability
from zoneclash.services.geo_grid import distance_meters, validate_point, within_radius
from zoneclash.services.progression import ProgressionEngine

logger = logging.getLogger(__name__)

COOLDOWN_SCOPE_ZONE = "zone"
COOLDOWN_SCOPE_ACTOR = "actor"


class CombatResolver:
    def __init__(
        self,
        registry: ZoneRegistry,
        progression: ProgressionEngine,
        settings,
        rng: Optional[RandomSource] = None,
    ):
        self.registry = registry
        self.progression = progression
        self.settings = settings
        self.rng = rng

    def _active_cooldown(self, tx: ZoneTransaction, actor_id: str) -> Optional[ZoneCooldown]:
        """
        The cooldown blocking this attack, if any.

        Scope "zone": only the (actor, zone) pair counts.
        Scope "actor": any of the actor's cooldowns counts, on any zone.
        """
        if self.settings.cooldown_scope == COOLDOWN_SCOPE_ACTOR:
            return tx.db.query(ZoneCooldown).filter(
                ZoneCooldown.actor_id == actor_id,
                ZoneCooldown.cooldown_until > tx.now
            ).order_by(ZoneCooldown.cooldown_until.desc()).first()

        cooldown = tx.zone.cooldown_for(actor_id)
        if cooldown is not None and cooldown.cooldown_until > tx.now:
            return cooldown
        return None

    def _set_cooldown(self, tx: ZoneTransaction, actor_id: str) -> None:
        until = tx.now + timedelta(minutes=self.settings.attack_cooldown_minutes)

        # lapsed rows of other actors block nobody
        lapsed = [
            c for c in tx.zone.cooldowns
            if c.cooldown_until <= tx.now and c.actor_id != actor_id
        ]
        for stale in lapsed:
            tx.zone.cooldowns.remove(stale)

        cooldown = tx.zone.cooldown_for(actor_id)
        if cooldown is None:
            tx.zone.cooldowns.append(ZoneCooldown(actor_id=actor_id, cooldown_until=until))
        else:
            cooldown.cooldown_until = until

    def _captured_defense(self, attacker_level: int) -> int:
        """Defense a freshly captured zone starts with, scaled by the new owner's level."""
        scaled = self.settings.base_defense + (attacker_level - 1) * self.settings.defense_per_level
        return min(self.settings.max_defense, scaled)

    def attack(
        self,
        db: Session,
        actor_id: str,
        zone_id: str,
        location: Tuple[float, float],
        idempotency_key: Optional[str] = None,
    ) -> AttackResult:
        """
        Attack a zone owned by someone else.

        Flow:
        1. Check preconditions (claimed, not own zone, in range, off cooldown)
        2. Compute p from attacker level, defender level and zone level
        3. Draw the outcome
        4. Success: transfer ownership, reset defense, refresh claim window
           Failure: owner keeps the zone, defense hardens a little
        5. Ledger the attack, set the cooldown, grant XP, emit events

        Args:
            db: SQLAlchemy Session
            actor_id: attacking actor
            zone_id: zone grid key
            location: (lat, lng) reported by the attacker for this request
            idempotency_key: optional client retry key

        Returns:
            AttackResult(attack_record, zone_captured, zone)

        Raises:
            InvalidCoordinates, ZoneNotFound, ZoneUnclaimed, SelfAttack,
            TooFarAway, OnCooldown, ZoneBusy
        """
        point = validate_point(*location)
        radius = self.settings.capture_radius_m
        self.progression.ensure_actor(db, actor_id)

        def mutation(tx: ZoneTransaction) -> AttackResult:
            zone = tx.zone

            replay = find_replay(tx.db, actor_id, idempotency_key, "attack", zone_id)
            if replay is not None:
                logger.info(f"Replaying attack {replay['attack_id']} on zone {zone_id}")
                record = tx.db.get(AttackRecord, replay["attack_id"])
                return AttackResult(
                    attack_record=AttackRecordView.model_validate(record),
                    zone_captured=record.success,
                    zone=self.registry.view(zone),
                )

            # 1. Preconditions
            if not zone.is_claimed:
                raise ZoneUnclaimed(zone_id)
            if zone.owner_id == actor_id:
                raise SelfAttack(zone_id)

            center = (zone.center_lat, zone.center_lng)
            if not within_radius(point, center, radius):
                raise TooFarAway(distance_meters(point, center), radius)

            cooldown = self._active_cooldown(tx, actor_id)
            if cooldown is not None:
                raise OnCooldown(zone_id, cooldown.cooldown_until - tx.now)

            # 2. Odds
            defender_id = zone.owner_id
            attacker = self.progression.get_or_create_actor(tx.db, actor_id)
            attacker_level = self.progression.level_for_xp(attacker.xp)
            defender_level = self.progression.level_of(tx.db, defender_id)
            zone_level = zone.level
            probability = success_probability(attacker_level, defender_level, zone_level)

            attacker_power = self.progression.attack_power_for_level(attacker_level)
            defender_power = zone.defense_points + self.settings.defender_advantage

            # 3. Draw
            captured = draw_outcome(probability, self.rng)

            # 4. Apply
            if captured:
                zone.owner_id = actor_id
                zone.claimed_at = tx.now
                zone.expires_at = tx.now + timedelta(hours=self.settings.zone_expiry_hours)
                zone.defense_points = self._captured_defense(attacker_level)
                xp_gained = zone_level * self.settings.xp_per_attack_win
            else:
                zone.defense_points = min(
                    self.settings.max_defense,
                    zone.defense_points + self.settings.failed_attack_hardening
                )
                xp_gained = zone_level * self.settings.xp_per_attack_loss

            # 5. Ledger, cooldown, XP, events
            record = AttackRecord(
                zone_id=zone_id,
                attacker_id=actor_id,
                defender_id=defender_id,
                attacker_power=attacker_power,
                defender_power=defender_power,
                success_probability=probability,
                outcome=AttackOutcome.SUCCESS if captured else AttackOutcome.FAILED,
                xp_gained=xp_gained,
                latitude=point.lat,
                longitude=point.lng,
                timestamp=tx.now,
            )
            tx.db.add(record)
            self._set_cooldown(tx, actor_id)
            tx.db.flush()

            change = self.progression.apply_xp(tx.db, actor_id, xp_gained)

            if captured:
                tx.emit(ZoneAttacked(
                    zone_id=zone_id,
                    attacker_id=actor_id,
                    defender_id=defender_id,
                    attack_id=record.id,
                ))
            tx.emit(BattleResult(
                zone_id=zone_id,
                attack_id=record.id,
                attacker_id=actor_id,
                defender_id=defender_id,
                result=record.outcome.value,
                success_probability=probability,
                xp_gained=xp_gained,
            ))
            level_up = level_up_event(change)
            if level_up is not None:
                tx.emit(level_up)

            remember(tx.db, actor_id, idempotency_key, "attack", zone_id, {"attack_id": record.id})
            logger.info(
                f"Actor {actor_id} attacked zone {zone_id} held by {defender_id}: "
                f"p={probability:.2f}, {record.outcome.value}, +{xp_gained} XP"
            )
            return AttackResult(
                attack_record=AttackRecordView.model_validate(record),
                zone_captured=captured,
                zone=self.registry.view(zone),
            )

        return self.registry.commit(db, zone_id, mutation)
