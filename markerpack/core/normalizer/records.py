"""Normalized markers, trails and per-map tables."""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..categories.template import EMPTY_ATTRIBUTES, Attributes, Behavior
from ..content.store import Handle

Position = Tuple[float, float, float]


@dataclass(frozen=True)
class DynamicInfo:
    """Trigger, achievement and info settings of a marker."""

    behavior: Optional[Behavior] = None
    trigger_range: Optional[float] = None
    auto_trigger: Optional[bool] = None
    has_countdown: Optional[bool] = None
    achievement_id: Optional[int] = None
    achievement_bit: Optional[int] = None
    info: Optional[str] = None
    info_range: Optional[float] = None

    @classmethod
    def from_attributes(cls, attrs: Attributes) -> "DynamicInfo":
        return cls(
            behavior=attrs.behavior,
            trigger_range=attrs.trigger_range,
            auto_trigger=attrs.auto_trigger,
            has_countdown=attrs.has_countdown,
            achievement_id=attrs.achievement_id,
            achievement_bit=attrs.achievement_bit,
            info=attrs.info,
            info_range=attrs.info_range,
        )


@dataclass(frozen=True)
class Marker:
    """A normalized POI.

    ``id`` is the marker's index within its map. ``attributes`` holds only the
    overrides set on the element itself.
    """

    id: int
    map_id: int
    position: Position
    category_id: int
    guid: Optional[str] = None
    attributes: Attributes = EMPTY_ATTRIBUTES

    @property
    def dynamic(self) -> DynamicInfo:
        return DynamicInfo.from_attributes(self.attributes)


@dataclass(frozen=True)
class Trail:
    """A normalized trail referencing a stored trail binary."""

    id: int
    map_id: int
    category_id: int
    trail_handle: Handle
    position: Position = (0.0, 0.0, 0.0)
    guid: Optional[str] = None
    attributes: Attributes = EMPTY_ATTRIBUTES


@dataclass
class MapData:
    """Markers and trails of one map."""

    map_id: int
    markers: List[Marker] = field(default_factory=list)
    trails: List[Trail] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.markers and not self.trails
