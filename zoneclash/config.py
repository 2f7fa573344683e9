from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./zoneclash.db"
    log_level: str = "INFO"

    # Grid
    grid_size: float = 0.001  # degrees, roughly 100 m
    max_nearby_zones: int = 50
    default_nearby_radius_m: float = 1000.0

    # Claim / check-in
    capture_radius_m: float = 20.0
    zone_expiry_hours: int = 24
    xp_per_claim: int = 10
    xp_per_checkin: int = 5
    checkin_defense_restore: int = 25
    checkin_defense_cap: int = 500

    # Defense bounds
    min_defense: int = 0
    max_defense: int = 1000
    base_defense: int = 50
    defense_per_level: int = 25

    # Combat
    attack_cooldown_minutes: int = 30
    cooldown_scope: Literal["zone", "actor"] = "zone"
    xp_per_attack_win: int = 25
    xp_per_attack_loss: int = 5
    failed_attack_hardening: int = 10
    defender_advantage: int = 20

    # Progression
    xp_per_level: int = 1000
    max_level: Optional[int] = None  # no cap unless set
    base_attack_power: int = 10
    attack_power_per_level: int = 5
    max_attack_power: int = 100

    # Concurrency
    zone_lock_timeout_sec: float = 5.0

    class Config:
        env_file = ".env"
        env_prefix = "ZONECLASH_"


@lru_cache()
def get_settings():
    return Settings()
