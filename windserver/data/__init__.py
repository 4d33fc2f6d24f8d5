"""Artifact storage and the external GFS / grib2json collaborators."""

from .store import ArtifactStore
from .gfs import SnapshotFetcher, NomadsFetcher
from .converter import SnapshotConverter, Grib2JsonConverter

__all__ = [
    'ArtifactStore',
    'SnapshotFetcher',
    'NomadsFetcher',
    'SnapshotConverter',
    'Grib2JsonConverter',
]
