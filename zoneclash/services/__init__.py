"""
Service layer.

Pure computation and read-only queries, no zone state transitions:
- GeoGrid: zone ids and distances
- BattleOdds: attack success probability and the outcome draw
- Progression: XP, level and attack power
- ZoneStatus: viewer-relative zone status
- History: ledger queries and counters
"""
