"""Decoded views over stored blobs: textures and trail binaries."""

from __future__ import annotations

import io
import struct
from dataclasses import dataclass
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..errors import AssetMissingError, TrailBinaryCorrupt
from .store import Handle

TRAIL_HEADER = struct.Struct("<II")  # version, map_id
TRAIL_NODE_SIZE = 12  # three little-endian float32
NODE_DTYPE = np.dtype("<f4")


@dataclass(frozen=True)
class TextureAsset:
    """An image stored once in the content store."""

    handle: Handle
    width: int
    height: int
    format: Optional[str] = None  # Pillow format name, e.g. "PNG"

    @property
    def extension(self) -> str:
        return f".{self.format.lower()}" if self.format else ".img"

    @classmethod
    def decode(cls, handle: Handle, data: bytes) -> "TextureAsset":
        """Read image dimensions with Pillow.

        Raises
        ------
        AssetMissingError
            If the bytes are not a decodable image
        """
        try:
            with Image.open(io.BytesIO(data)) as image:
                width, height = image.size
                image_format = image.format
        except (UnidentifiedImageError, OSError) as exc:
            raise AssetMissingError(f"undecodable image: {exc}") from exc
        return cls(handle=handle, width=width, height=height, format=image_format)


class TrailBinary:
    """A recorded trail path: header plus an ``(N, 3)`` float32 node array.

    Byte layout: u32 version, u32 map_id, then N packed little-endian
    float triples.

    Parameters
    ----------
    version : int
        Trail format version from the header
    map_id : int
        Map the trail was recorded on
    nodes : array-like
        Node positions, reshaped to ``(N, 3)``
    """

    def __init__(self, version: int, map_id: int, nodes=None):
        self.version = int(version)
        self.map_id = int(map_id)
        if nodes is None:
            nodes = np.zeros((0, 3), dtype=NODE_DTYPE)
        self.nodes = np.asarray(nodes, dtype=NODE_DTYPE).reshape(-1, 3)

    @classmethod
    def from_bytes(cls, data: bytes) -> "TrailBinary":
        """Decode a trail binary.

        Raises
        ------
        TrailBinaryCorrupt
            If the data is shorter than the header or the node region is
            not a whole number of nodes
        """
        if len(data) < TRAIL_HEADER.size:
            raise TrailBinaryCorrupt(
                f"trail binary has {len(data)} bytes, header needs {TRAIL_HEADER.size}"
            )
        remainder = (len(data) - TRAIL_HEADER.size) % TRAIL_NODE_SIZE
        if remainder:
            raise TrailBinaryCorrupt(
                f"trail binary node region is misaligned ({remainder} trailing bytes)"
            )
        version, map_id = TRAIL_HEADER.unpack_from(data, 0)
        nodes = np.frombuffer(data, dtype=NODE_DTYPE, offset=TRAIL_HEADER.size)
        return cls(version, map_id, nodes.reshape(-1, 3).copy())

    def to_bytes(self) -> bytes:
        """Re-emit the original header + node layout."""
        return TRAIL_HEADER.pack(self.version, self.map_id) + self.nodes.astype(
            NODE_DTYPE, copy=False
        ).tobytes()

    @property
    def node_count(self) -> int:
        return int(self.nodes.shape[0])

    @property
    def is_empty(self) -> bool:
        return self.node_count == 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TrailBinary):
            return NotImplemented
        return (
            self.version == other.version
            and self.map_id == other.map_id
            and np.array_equal(self.nodes, other.nodes)
        )

    def __repr__(self) -> str:
        return (
            f"TrailBinary(version={self.version}, map_id={self.map_id}, "
            f"nodes={self.node_count})"
        )
