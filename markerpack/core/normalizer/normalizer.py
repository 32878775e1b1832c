"""Turning raw records into per-map markers and trails.

Asset paths found on categories and records are bound to content handles
here: the referenced bytes are stored once in the pack's content store and
the attribute is rewritten to hold the handle.
"""

from __future__ import annotations

import logging
import posixpath
from typing import Dict, Iterable, List, Optional, Tuple

from ..categories.resolver import CategoryResolution
from ..categories.template import Attributes, normalize_path
from ..content.assets import TextureAsset, TrailBinary
from ..content.store import ContentStore, Handle, content_handle
from ..errors import (
    AssetMissingError,
    Diagnostics,
    ElementError,
    TrailBinaryCorrupt,
)
from ..ingestion.xml_parser import MARKER, TRAIL, RawRecord
from .records import MapData, Marker, Trail

TEXTURE_FIELDS = ("icon_file", "texture")


class Normalizer:
    """Binds assets and buckets records into :class:`MapData` per map.

    Parameters
    ----------
    entries : Dict[str, bytes]
        Asset entries of the archive (lowercased path -> bytes)
    store : ContentStore
        Store receiving texture and trail binary bytes
    diagnostics : Diagnostics
        Bundle receiving warnings and errors
    resolve_relative_to_file : bool
        Also try asset paths relative to the referencing file's directory
    logger : logging.Logger, optional
        Logger instance
    """

    def __init__(
        self,
        entries: Dict[str, bytes],
        store: ContentStore,
        diagnostics: Diagnostics,
        resolve_relative_to_file: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.entries = entries
        self.store = store
        self.diagnostics = diagnostics
        self.resolve_relative_to_file = resolve_relative_to_file
        self.logger = logger or logging.getLogger(__name__)

        self.textures: Dict[Handle, TextureAsset] = {}
        self.trail_binaries: Dict[Handle, TrailBinary] = {}
        # path -> handle, or None when the path failed to load
        self._texture_paths: Dict[str, Optional[Handle]] = {}
        self._trail_paths: Dict[str, Optional[Tuple[Handle, TrailBinary]]] = {}

    # -------------------------------------------------------------------------
    # Asset binding
    # -------------------------------------------------------------------------

    def _locate(self, path: str, source: Optional[str]) -> Optional[str]:
        """Find an asset entry for a path: pack root first, then the file's directory."""
        path = normalize_path(path)
        if path in self.entries:
            return path
        if self.resolve_relative_to_file and source:
            directory = posixpath.dirname(source)
            if directory:
                candidate = posixpath.normpath(posixpath.join(directory, path))
                if candidate in self.entries:
                    return candidate
        return None

    def _load_texture(self, path: str, source: Optional[str]) -> Handle:
        location = self._locate(path, source)
        if location is None:
            raise AssetMissingError(f"texture not found: {path}")
        if location in self._texture_paths:
            handle = self._texture_paths[location]
            if handle is None:
                raise AssetMissingError(f"texture could not be decoded: {path}")
            return handle

        data = self.entries[location]
        handle = content_handle(data)
        if handle not in self.textures:
            try:
                texture = TextureAsset.decode(handle, data)
            except AssetMissingError as exc:
                self._texture_paths[location] = None
                raise AssetMissingError(f"texture {path}: {exc}") from exc
            self.textures[handle] = texture
        self.store.insert(data)
        self._texture_paths[location] = handle
        return handle

    def bind_assets(
        self,
        attrs: Attributes,
        source: Optional[str],
        element: Optional[str] = None,
    ) -> Attributes:
        """Replace texture paths with content handles.

        A missing or undecodable texture is reported and the field is unset,
        so the category template's value applies instead.
        """
        changes = {}
        for name in TEXTURE_FIELDS:
            path = getattr(attrs, name)
            if path is None:
                continue
            try:
                changes[name] = self._load_texture(path, source)
            except AssetMissingError as exc:
                self.diagnostics.record(exc, source, element)
                changes[name] = None
        return attrs.with_values(**changes) if changes else attrs

    def bind_category_assets(self, attrs: Attributes, source: Optional[str]) -> Attributes:
        """Attribute binder used while resolving categories."""
        return self.bind_assets(attrs, source)

    def load_trail_binary(self, path: str, source: Optional[str] = None) -> Tuple[Handle, TrailBinary]:
        """Load, decode and store a trail binary. Each path is loaded once.

        Raises
        ------
        AssetMissingError
            If the file is not in the archive
        TrailBinaryCorrupt
            If the file is truncated or misaligned
        """
        location = self._locate(path, source)
        if location is None:
            raise AssetMissingError(f"trail file not found: {path}")
        if location in self._trail_paths:
            cached = self._trail_paths[location]
            if cached is None:
                raise TrailBinaryCorrupt(f"trail file is corrupt: {path}")
            return cached

        data = self.entries[location]
        try:
            binary = TrailBinary.from_bytes(data)
        except TrailBinaryCorrupt as exc:
            self._trail_paths[location] = None
            raise TrailBinaryCorrupt(f"{path}: {exc}") from exc

        if binary.is_empty:
            self.diagnostics.warn(
                "trail binary has a header but no nodes",
                location,
                kind="EmptyTrail",
            )
        handle = self.store.insert(data)
        self.trail_binaries.setdefault(handle, binary)
        self._trail_paths[location] = (handle, binary)
        return handle, binary

    # -------------------------------------------------------------------------
    # Normalization
    # -------------------------------------------------------------------------

    def normalize(
        self,
        records: Iterable[RawRecord],
        resolution: CategoryResolution,
    ) -> Dict[int, MapData]:
        """Resolve categories and bucket records by map id.

        Parameters
        ----------
        records : Iterable[RawRecord]
            Raw records of all files, in file order
        resolution : CategoryResolution
            Resolved category table

        Returns
        -------
        Dict[int, MapData]
            Map id -> markers and trails, in record order
        """
        maps: Dict[int, MapData] = {}
        dropped = 0

        for record in records:
            category_id = resolution.lookup(record.category)
            if category_id is None:
                self.diagnostics.record(
                    ElementError(f"unknown category '{record.category}'; dropped"),
                    record.source,
                    record.element,
                )
                dropped += 1
                continue

            attributes = self.bind_assets(record.attributes, record.source, record.element)

            if record.kind == MARKER:
                data = maps.setdefault(record.map_id, MapData(map_id=record.map_id))
                data.markers.append(
                    Marker(
                        id=len(data.markers),
                        map_id=record.map_id,
                        position=record.position,
                        category_id=category_id,
                        guid=record.guid,
                        attributes=attributes,
                    )
                )
            elif record.kind == TRAIL:
                trail = self._normalize_trail(record, category_id, attributes, resolution, maps)
                if trail is None:
                    dropped += 1

        self.logger.debug(
            "Normalized records into %d maps (%d dropped)", len(maps), dropped
        )
        return maps

    def _normalize_trail(
        self,
        record: RawRecord,
        category_id: int,
        attributes: Attributes,
        resolution: CategoryResolution,
        maps: Dict[int, MapData],
    ) -> Optional[Trail]:
        trail_path = attributes.trail_data or resolution.template_for(category_id).trail_data
        if not trail_path:
            self.diagnostics.record(
                ElementError("trail has no trailData attribute; dropped"),
                record.source,
                record.element,
            )
            return None

        try:
            handle, binary = self.load_trail_binary(trail_path, record.source)
        except (AssetMissingError, TrailBinaryCorrupt) as exc:
            self.diagnostics.record(exc, record.source, record.element)
            return None

        # Trails are bucketed by the map recorded in the binary, not by MapID
        map_id = binary.map_id
        if record.map_id is not None and record.map_id != map_id:
            self.logger.debug(
                "Trail %s in %s declares MapID %d but its binary records map %d",
                record.element,
                record.source,
                record.map_id,
                map_id,
            )
        data = maps.setdefault(map_id, MapData(map_id=map_id))
        trail = Trail(
            id=len(data.trails),
            map_id=map_id,
            category_id=category_id,
            trail_handle=handle,
            position=record.position,
            guid=record.guid,
            attributes=attributes,
        )
        data.trails.append(trail)
        return trail


def normalize_records(
    records: List[RawRecord],
    resolution: CategoryResolution,
    entries: Dict[str, bytes],
    store: Optional[ContentStore] = None,
    diagnostics: Optional[Diagnostics] = None,
) -> Dict[int, MapData]:
    """Convenience function to normalize records with a fresh normalizer."""
    normalizer = Normalizer(
        entries,
        store if store is not None else ContentStore(),
        diagnostics if diagnostics is not None else Diagnostics(),
    )
    return normalizer.normalize(records, resolution)
