"""The compiled pack and its assembler."""

from ..normalizer.records import DynamicInfo, MapData, Marker, Trail
from .assembler import PackAssembler, compile_pack, default_metadata
from .model import (
    MARKER_MEMBER,
    TRAIL_MEMBER,
    Author,
    Pack,
    PackMetadata,
    ResolvedMarker,
    ResolvedTrail,
    effective_attributes,
)

__all__ = [
    "Author",
    "PackMetadata",
    "Pack",
    "MapData",
    "Marker",
    "Trail",
    "DynamicInfo",
    "ResolvedMarker",
    "ResolvedTrail",
    "MARKER_MEMBER",
    "TRAIL_MEMBER",
    "effective_attributes",
    "PackAssembler",
    "compile_pack",
    "default_metadata",
]
