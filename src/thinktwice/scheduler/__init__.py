"""Timers and periodic jobs."""
