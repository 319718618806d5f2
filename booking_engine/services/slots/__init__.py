# booking_engine/services/slots/__init__.py
"""
Slots calculation module.

Level 1: Per-staff slot computation (calculator.py, conflicts.py)
Level 2: Cached / aggregated availability (cache.py, availability.py)

Submodules are imported directly; this package stays import-free so the
value objects in booking_engine.schemas can use the time helpers in
config.py without pulling in the calculator.
"""
