"""Concrete adapters for the scheduler ports."""
