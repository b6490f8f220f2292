"""Shared helpers for dockspace CLI handlers."""
