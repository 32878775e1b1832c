"""Binding assets and grouping markers and trails per map."""

from .normalizer import TEXTURE_FIELDS, Normalizer, normalize_records
from .records import DynamicInfo, MapData, Marker, Position, Trail

__all__ = [
    "Normalizer",
    "normalize_records",
    "TEXTURE_FIELDS",
    "DynamicInfo",
    "MapData",
    "Marker",
    "Position",
    "Trail",
]
