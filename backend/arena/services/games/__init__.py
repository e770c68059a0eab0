"""Game domain services: rooms, game sessions, scoring and timers.

This package contains the room/game core that HTTP routes and socket
handlers call into, keeping transport concerns separated from game
mechanics.
"""
