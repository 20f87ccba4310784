"""Persistence for pool documents."""
