"""
Core game logic.

This package holds everything that mutates zone state:
- ZoneRegistry: the only path that commits a zone change
- ClaimArbiter: claim and check-in
- CombatResolver: attacks
- Events: outbound event sink contract
- Locks: per-zone concurrency control
"""
