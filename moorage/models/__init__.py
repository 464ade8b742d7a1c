"""Data models for Moorage."""
from moorage.models.archive import ArchiveArtifact
from moorage.models.snapshot import ContainerRecord, ContainerSnapshot

__all__ = [
    'ArchiveArtifact',
    'ContainerRecord',
    'ContainerSnapshot',
]
