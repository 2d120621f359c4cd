"""Synced workspace data: inbox, contacts, tasks, calendar, orders."""
