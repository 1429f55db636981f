"""Waypoint - decision request broker for agent-driven planning."""

__version__ = "1.0.0"
