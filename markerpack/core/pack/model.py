"""The compiled pack and its per-map tables.

A :class:`Pack` owns every entity produced from one archive. Categories are
kept in a flat table addressed by integer id; markers and trails hold the id
of their category, never a reference to it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

import pandas as pd

from ..categories.template import (
    DEFAULT_ATTRIBUTES,
    Attributes,
    attributes_to_json,
)
from ..categories.tree import Category
from ..content.assets import TextureAsset, TrailBinary
from ..content.store import ContentStore, Handle
from ..normalizer.records import MapData, Marker, Position, Trail

# Member kinds reported by Pack.members_of
MARKER_MEMBER = "marker"
TRAIL_MEMBER = "trail"


@dataclass(frozen=True)
class Author:
    """A pack author."""

    name: str
    email: Optional[str] = None
    ign: Optional[str] = None  # in-game name
    extra: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"name": self.name}
        for key in ("email", "ign", "extra"):
            if getattr(self, key) is not None:
                data[key] = getattr(self, key)
        return data


@dataclass
class PackMetadata:
    """Descriptive information about a pack."""

    name: str
    pack_id: str
    authors: List[Author] = field(default_factory=list)
    source_url: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "name": self.name,
            "pack_id": self.pack_id,
            "authors": [author.to_dict() for author in self.authors],
        }
        if self.source_url is not None:
            data["source_url"] = self.source_url
        return data


@dataclass(frozen=True)
class ResolvedMarker:
    """A marker with every attribute defaulted, ready for rendering."""

    marker: Marker
    category: Category
    attributes: Attributes

    @property
    def position(self) -> Position:
        return self.marker.position


@dataclass(frozen=True)
class ResolvedTrail:
    """A trail with every attribute defaulted and its geometry attached."""

    trail: Trail
    category: Category
    attributes: Attributes
    binary: TrailBinary


def effective_attributes(overrides: Attributes, template: Attributes) -> Attributes:
    """Override, else category template, else built-in default."""
    return overrides.inherit(template).inherit(DEFAULT_ATTRIBUTES)


class Pack:
    """A compiled marker pack.

    Parameters
    ----------
    metadata : PackMetadata
        Pack name, id, authors and source URL
    categories : Dict[int, Category]
        Category table (id -> Category)
    by_full_name : Dict[str, int]
        Dotted full name -> category id
    templates : Dict[int, Attributes]
        Category id -> resolved template
    store : ContentStore
        Blob storage for textures and trail binaries
    textures : Dict[str, TextureAsset]
        Handle -> decoded texture info
    trail_binaries : Dict[str, TrailBinary]
        Handle -> decoded trail binary
    maps : Dict[int, MapData]
        Map id -> markers and trails

    Example
    -------
    >>> pack, diagnostics = compile_pack("tekkit.taco")
    >>> for resolved in pack.active_markers_for(15):
    ...     print(resolved.position, resolved.attributes.alpha)
    """

    def __init__(
        self,
        metadata: PackMetadata,
        categories: Dict[int, Category],
        by_full_name: Dict[str, int],
        templates: Dict[int, Attributes],
        store: ContentStore,
        textures: Dict[Handle, TextureAsset],
        trail_binaries: Dict[Handle, TrailBinary],
        maps: Dict[int, MapData],
    ):
        self.metadata = metadata
        self.categories = categories
        self.by_full_name = by_full_name
        self.templates = templates
        self.store = store
        self.textures = textures
        self.trail_binaries = trail_binaries
        self.maps = maps
        self._members: Optional[Dict[int, List[Tuple[int, str, int]]]] = None

    # -------------------------------------------------------------------------
    # Category queries
    # -------------------------------------------------------------------------

    @property
    def roots(self) -> List[int]:
        return [cid for cid in sorted(self.categories) if self.categories[cid].is_root]

    def category_by_name(self, full_name: str) -> Optional[Category]:
        """Look up a category by dotted full name (case-insensitive)."""
        category_id = self.by_full_name.get(full_name.strip().lower())
        return None if category_id is None else self.categories[category_id]

    def default_enabled(self) -> Set[int]:
        """Categories enabled when they and all their ancestors default to on."""
        enabled: Set[int] = set()
        for category_id in sorted(self.categories):
            category = self.categories[category_id]
            if not category.default_enabled:
                continue
            if category.parent_id is None or category.parent_id in enabled:
                enabled.add(category_id)
        return enabled

    def members_of(self, category_id: int) -> List[Tuple[int, str, int]]:
        """Return ``(map_id, kind, id)`` of every marker and trail in a category.

        Membership is computed on first use and cached.
        """
        if self._members is None:
            members: Dict[int, List[Tuple[int, str, int]]] = {}
            for map_id in sorted(self.maps):
                data = self.maps[map_id]
                for marker in data.markers:
                    members.setdefault(marker.category_id, []).append(
                        (map_id, MARKER_MEMBER, marker.id)
                    )
                for trail in data.trails:
                    members.setdefault(trail.category_id, []).append(
                        (map_id, TRAIL_MEMBER, trail.id)
                    )
            self._members = members
        return list(self._members.get(category_id, []))

    # -------------------------------------------------------------------------
    # Collaborator API
    # -------------------------------------------------------------------------

    def active_markers_for(
        self, map_id: int, enabled: Optional[Iterable[int]] = None
    ) -> List[ResolvedMarker]:
        """Markers of a map in enabled categories, with effective attributes.

        Parameters
        ----------
        map_id : int
            Map to query
        enabled : Iterable[int], optional
            Enabled category ids; defaults to :meth:`default_enabled`
        """
        data = self.maps.get(map_id)
        if data is None:
            return []
        active = self.default_enabled() if enabled is None else set(enabled)
        return [
            ResolvedMarker(
                marker=marker,
                category=self.categories[marker.category_id],
                attributes=effective_attributes(
                    marker.attributes, self.templates[marker.category_id]
                ),
            )
            for marker in data.markers
            if marker.category_id in active
        ]

    def active_trails_for(
        self, map_id: int, enabled: Optional[Iterable[int]] = None
    ) -> List[ResolvedTrail]:
        """Trails of a map in enabled categories, with geometry attached."""
        data = self.maps.get(map_id)
        if data is None:
            return []
        active = self.default_enabled() if enabled is None else set(enabled)
        return [
            ResolvedTrail(
                trail=trail,
                category=self.categories[trail.category_id],
                attributes=effective_attributes(
                    trail.attributes, self.templates[trail.category_id]
                ),
                binary=self.trail_binaries[trail.trail_handle],
            )
            for trail in data.trails
            if trail.category_id in active
        ]

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def marker_count(self) -> int:
        return sum(len(data.markers) for data in self.maps.values())

    def trail_count(self) -> int:
        return sum(len(data.trails) for data in self.maps.values())

    def summary(self) -> pd.DataFrame:
        """Per-map marker and trail counts."""
        rows = []
        for map_id in sorted(self.maps):
            data = self.maps[map_id]
            category_ids = {m.category_id for m in data.markers}
            category_ids.update(t.category_id for t in data.trails)
            rows.append(
                {
                    "map_id": map_id,
                    "markers": len(data.markers),
                    "trails": len(data.trails),
                    "categories": len(category_ids),
                }
            )
        return pd.DataFrame(rows, columns=["map_id", "markers", "trails", "categories"])

    def to_canonical(self) -> Dict[str, Any]:
        """Id-independent view of the pack, addressed by category full name.

        Two packs are attribute-equivalent when their canonical views are equal.
        """
        def full_name(category_id: Optional[int]) -> Optional[str]:
            return None if category_id is None else self.categories[category_id].full_name

        categories = {
            c.full_name: {
                "display_name": c.display_name,
                "is_separator": c.is_separator,
                "default_enabled": c.default_enabled,
                "parent": full_name(c.parent_id),
                "children": [full_name(child) for child in c.children],
                "attributes": attributes_to_json(c.attributes),
                "template": attributes_to_json(self.templates[c.id]),
            }
            for c in self.categories.values()
        }
        maps = {
            map_id: {
                "markers": [
                    (m.id, m.position, full_name(m.category_id), m.guid,
                     attributes_to_json(m.attributes))
                    for m in data.markers
                ],
                "trails": [
                    (t.id, t.position, full_name(t.category_id), t.trail_handle, t.guid,
                     attributes_to_json(t.attributes))
                    for t in data.trails
                ],
            }
            for map_id, data in self.maps.items()
        }
        return {
            "metadata": self.metadata.to_dict(),
            "categories": categories,
            "maps": maps,
            "textures": {
                h: (t.width, t.height, self.store.get(h)) for h, t in self.textures.items()
            },
            "trail_binaries": {
                h: self.trail_binaries[h].to_bytes() for h in self.trail_binaries
            },
        }

    def __repr__(self) -> str:
        return (
            f"Pack(name={self.metadata.name!r}, categories={len(self.categories)}, "
            f"maps={len(self.maps)}, markers={self.marker_count()}, "
            f"trails={self.trail_count()})"
        )
