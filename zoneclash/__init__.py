"""ZoneClash: authoritative core of a location-based territory capture game."""

__version__ = "1.0.0"
