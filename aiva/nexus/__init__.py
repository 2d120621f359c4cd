"""Scheduling, classification and briefing engine."""
