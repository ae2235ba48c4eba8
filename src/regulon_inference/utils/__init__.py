"""Utility modules for the regulon inference framework."""

from .artifacts import ArtifactStore, DirectoryArtifactStore, InMemoryArtifactStore
from .performance import chunked, parallel_map

__all__ = [
    "ArtifactStore",
    "InMemoryArtifactStore",
    "DirectoryArtifactStore",
    "chunked",
    "parallel_map",
]
