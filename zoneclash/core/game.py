"""
Wiring of the game core.

One GameCore per process: the zone lock table inside its registry must be
shared by every request that can touch the same zones.
"""
from datetime import datetime
from typing import Callable, Optional

from zoneclash.core.claim_arbiter import ClaimArbiter
from zoneclash.core.combat_resolver import CombatResolver
from zoneclash.core.events import EventSink
from zoneclash.core.zone_registry import ZoneRegistry
from zoneclash.services.battle_odds import RandomSource
from zoneclash.services.geo_grid import GeoGrid
from zoneclash.services.progression import ProgressionEngine
from zoneclash.timeutils import utcnow


class GameCore:
    def __init__(
        self,
        settings,
        sink: Optional[EventSink] = None,
        rng: Optional[RandomSource] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.settings = settings
        self.grid = GeoGrid(settings.grid_size)
        self.progression = ProgressionEngine.from_settings(settings)
        self.registry = ZoneRegistry(self.grid, settings, sink=sink, clock=clock)
        self.arbiter = ClaimArbiter(self.registry, self.progression, settings)
        self.resolver = CombatResolver(self.registry, self.progression, settings, rng=rng)
