"""
Availability & booking scheduling engine.

Level 1: Slot calculation (schedule + policy + existing bookings)
Level 2: Booking lifecycle (create / update / cancel)
"""
