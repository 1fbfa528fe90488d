"""Path flattening and reconstruction."""

from todohub.paths.flatten import flatten
from todohub.paths.metadata_cache import METADATA_FILENAME, MetadataCache
from todohub.paths.oracle import FilesystemOracle, LocalFilesystemOracle
from todohub.paths.reconstruct import (
    PathReconstructor,
    Resolution,
    ResolutionStrategy,
    parse_flattened,
)

__all__ = [
    "flatten",
    "METADATA_FILENAME",
    "MetadataCache",
    "FilesystemOracle",
    "LocalFilesystemOracle",
    "PathReconstructor",
    "Resolution",
    "ResolutionStrategy",
    "parse_flattened",
]
