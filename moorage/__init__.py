"""Moorage - container state snapshots and volume backups for Docker hosts."""

__version__ = "0.3.0"
