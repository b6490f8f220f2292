"""Dockspace - staged, gated disk-space reclamation for container hosts."""

__version__ = "0.1.0"
