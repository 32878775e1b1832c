"""Content store and the asset types kept in it."""

from .assets import NODE_DTYPE, TRAIL_HEADER, TextureAsset, TrailBinary
from .store import ContentStore, Handle, content_handle

__all__ = [
    "ContentStore",
    "Handle",
    "content_handle",
    "TextureAsset",
    "TrailBinary",
    "TRAIL_HEADER",
    "NODE_DTYPE",
]
