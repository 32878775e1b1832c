"""Inheritable attribute records.

Categories, markers and trails all carry the same record of optional
attributes. A category's resolved template is built top-down: each field is
taken from the node itself when it sets it explicitly, otherwise from the
parent's already-resolved template. Markers and trails override their
category's template the same way.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import IntEnum
from typing import Any, Dict, List, Optional, Tuple

INCHES_PER_METER = 39.37008

Color = Tuple[int, int, int, int]


class BehaviorKind(IntEnum):
    """What happens to a marker after the player activates it.

    Values match the integer codes used by the XML ``behavior`` attribute.
    """

    ALWAYS_VISIBLE = 0
    REAPPEAR_ON_MAP_CHANGE = 1
    REAPPEAR_ON_DAILY_RESET = 2
    ONLY_VISIBLE_BEFORE_ACTIVATION = 3
    REAPPEAR_AFTER_TIMER = 4
    REAPPEAR_ON_MAP_RESET = 5
    ONCE_PER_INSTANCE = 6
    DAILY_PER_CHAR = 7
    ONCE_PER_INSTANCE_PER_CHAR = 8
    WVW_OBJECTIVE = 9


DEFAULT_TIMER_SECONDS = 10
DEFAULT_MAP_CYCLE_SECONDS = 7200


@dataclass(frozen=True)
class Behavior:
    """Activation behavior with its parameters.

    Only ``REAPPEAR_AFTER_TIMER`` (``reset_length`` = seconds) and
    ``REAPPEAR_ON_MAP_RESET`` (``reset_length`` = cycle length,
    ``reset_offset`` = cycle offset after daily reset) carry parameters.
    """

    kind: BehaviorKind
    reset_length: Optional[int] = None
    reset_offset: Optional[int] = None

    @classmethod
    def from_code(
        cls,
        code: int,
        reset_length: Optional[int] = None,
        reset_offset: Optional[int] = None,
    ) -> "Behavior":
        """Build a behavior from its XML code. Raises ValueError for unknown codes."""
        kind = BehaviorKind(code)
        if kind == BehaviorKind.REAPPEAR_AFTER_TIMER:
            return cls(kind, reset_length if reset_length is not None else DEFAULT_TIMER_SECONDS)
        if kind == BehaviorKind.REAPPEAR_ON_MAP_RESET:
            return cls(
                kind,
                reset_length if reset_length is not None else DEFAULT_MAP_CYCLE_SECONDS,
                reset_offset if reset_offset is not None else 0,
            )
        return cls(kind)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"kind": self.kind.name.lower()}
        if self.reset_length is not None:
            data["reset_length"] = self.reset_length
        if self.reset_offset is not None:
            data["reset_offset"] = self.reset_offset
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Behavior":
        return cls(
            kind=BehaviorKind[str(data["kind"]).upper()],
            reset_length=data.get("reset_length"),
            reset_offset=data.get("reset_offset"),
        )


@dataclass(frozen=True)
class Attributes:
    """A record of optional, inheritable attributes.

    ``None`` means "not set here". ``icon_file`` and ``texture`` hold an
    archive path while parsing and a content handle once assets are bound.
    ``trail_data`` is only meaningful for trails and always holds a path.
    """

    icon_file: Optional[str] = None
    texture: Optional[str] = None
    icon_size: Optional[float] = None
    height_offset: Optional[float] = None
    min_size: Optional[int] = None
    max_size: Optional[int] = None
    map_display_size: Optional[int] = None
    alpha: Optional[float] = None
    fade_near: Optional[float] = None
    fade_far: Optional[float] = None
    color: Optional[Color] = None
    behavior: Optional[Behavior] = None
    trigger_range: Optional[float] = None
    auto_trigger: Optional[bool] = None
    has_countdown: Optional[bool] = None
    achievement_id: Optional[int] = None
    achievement_bit: Optional[int] = None
    info: Optional[str] = None
    info_range: Optional[float] = None
    map_visibility: Optional[bool] = None
    mini_map_visibility: Optional[bool] = None
    in_game_visibility: Optional[bool] = None
    keep_on_map_edge: Optional[bool] = None
    scale_on_map_with_zoom: Optional[bool] = None
    anim_speed: Optional[float] = None
    trail_scale: Optional[float] = None
    trail_data: Optional[str] = None
    toggle_category: Optional[str] = None

    def explicit(self) -> Dict[str, Any]:
        """Return only the fields that are set."""
        return {
            name: getattr(self, name)
            for name in FIELD_NAMES
            if getattr(self, name) is not None
        }

    @property
    def is_empty(self) -> bool:
        return not self.explicit()

    def inherit(self, parent: "Attributes") -> "Attributes":
        """Fill every unset field from ``parent``; explicit fields win."""
        return Attributes(
            **{
                name: own if own is not None else getattr(parent, name)
                for name, own in ((n, getattr(self, n)) for n in FIELD_NAMES)
            }
        )

    def with_values(self, **changes: Any) -> "Attributes":
        return replace(self, **changes)


FIELD_NAMES: Tuple[str, ...] = tuple(f.name for f in fields(Attributes))

EMPTY_ATTRIBUTES = Attributes()

# Render-time fallbacks when neither marker nor category sets a field.
# Fields absent here (textures, achievement, info, toggle) have no default.
DEFAULT_ATTRIBUTES = Attributes(
    icon_size=1.0,
    height_offset=1.5,
    min_size=5,
    max_size=2048,
    map_display_size=20,
    alpha=1.0,
    fade_near=-1.0,
    fade_far=-1.0,
    color=(255, 255, 255, 255),
    behavior=Behavior(BehaviorKind.ALWAYS_VISIBLE),
    trigger_range=2.0,
    auto_trigger=False,
    has_countdown=False,
    info_range=2.0,
    map_visibility=True,
    mini_map_visibility=True,
    in_game_visibility=True,
    keep_on_map_edge=False,
    scale_on_map_with_zoom=True,
    anim_speed=1.0,
    trail_scale=1.0,
)


# =============================================================================
# XML attribute parsing
# =============================================================================

# field name -> (lowercased xml attribute names, value kind)
XML_FIELDS: Dict[str, Tuple[Tuple[str, ...], str]] = {
    "icon_file": (("iconfile",), "path"),
    "texture": (("texture",), "path"),
    "icon_size": (("iconsize",), "float"),
    "height_offset": (("heightoffset",), "float"),
    "min_size": (("minsize",), "int"),
    "max_size": (("maxsize",), "int"),
    "map_display_size": (("mapdisplaysize",), "int"),
    "alpha": (("alpha",), "float"),
    "fade_near": (("fadenear",), "float"),
    "fade_far": (("fadefar",), "float"),
    "color": (("color",), "color"),
    "trigger_range": (("triggerrange",), "float"),
    "auto_trigger": (("autotrigger",), "bool"),
    "has_countdown": (("hascountdown",), "bool"),
    "achievement_id": (("achievementid",), "int"),
    "achievement_bit": (("achievementbit",), "int"),
    "info": (("info",), "str"),
    "info_range": (("inforange",), "float"),
    "map_visibility": (("mapvisibility",), "bool"),
    "mini_map_visibility": (("minimapvisibility",), "bool"),
    "in_game_visibility": (("ingamevisibility",), "bool"),
    "keep_on_map_edge": (("keeponmapedge",), "bool"),
    "scale_on_map_with_zoom": (("scaleonmapwithzoom",), "bool"),
    "anim_speed": (("animspeed",), "float"),
    "trail_scale": (("trailscale",), "float"),
    "trail_data": (("traildata", "trailfile"), "path"),
    "toggle_category": (("togglecategory",), "str"),
}


def parse_bool(value: str) -> bool:
    text = value.strip().lower()
    if text in ("1", "true", "yes"):
        return True
    if text in ("0", "false", "no"):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def parse_int(value: str) -> int:
    text = value.strip()
    try:
        return int(text)
    except ValueError:
        as_float = float(text)
        if not as_float.is_integer():
            raise
        return int(as_float)


def parse_color(value: str) -> Color:
    """Parse a hex color (``rrggbbaa`` or ``rrggbb``, optional ``#``)."""
    text = value.strip().lstrip("#")
    if len(text) == 6:
        text += "ff"
    if len(text) != 8:
        raise ValueError(f"not a hex color: {value!r}")
    raw = bytes.fromhex(text)
    return (raw[0], raw[1], raw[2], raw[3])


def format_color(color: Color) -> str:
    return bytes(color).hex()


def normalize_path(value: str) -> str:
    """Normalize an archive-relative path: lowercase, forward slashes, no leading ./ or /."""
    path = value.strip().replace("\\", "/").lower()
    while path.startswith("./"):
        path = path[2:]
    return path.lstrip("/")


_PARSERS = {
    "float": lambda v: float(v.strip()),
    "int": parse_int,
    "bool": parse_bool,
    "color": parse_color,
    "path": normalize_path,
    "str": lambda v: v,
}


def parse_xml_attributes(attrib: Dict[str, str]) -> Tuple[Attributes, List[str]]:
    """Parse inheritable attributes from an element's attribute dict.

    Attribute names are matched case-insensitively. Values that fail to parse
    are left unset and reported.

    Returns
    -------
    Tuple[Attributes, List[str]]
        (attributes, problems) where problems describes each rejected value
    """
    lowered = {key.strip().lower(): value for key, value in attrib.items()}
    values: Dict[str, Any] = {}
    problems: List[str] = []

    for name, (xml_names, kind) in XML_FIELDS.items():
        for xml_name in xml_names:
            if xml_name not in lowered:
                continue
            try:
                values[name] = _PARSERS[kind](lowered[xml_name])
            except ValueError:
                problems.append(f"invalid {xml_name} value {lowered[xml_name]!r}")
            break

    if "behavior" in lowered:
        try:
            reset_length = lowered.get("resetlength")
            reset_offset = lowered.get("resetoffset")
            values["behavior"] = Behavior.from_code(
                parse_int(lowered["behavior"]),
                parse_int(reset_length) if reset_length is not None else None,
                parse_int(reset_offset) if reset_offset is not None else None,
            )
        except ValueError:
            problems.append(f"invalid behavior value {lowered['behavior']!r}")

    return Attributes(**values), problems


# =============================================================================
# JSON encoding
# =============================================================================


def attributes_to_json(attrs: Attributes) -> Dict[str, Any]:
    """Encode the explicit fields only; unset fields are omitted."""
    data: Dict[str, Any] = {}
    for name, value in attrs.explicit().items():
        if name == "color":
            data[name] = format_color(value)
        elif name == "behavior":
            data[name] = value.to_dict()
        else:
            data[name] = value
    return data


def _json_value(name: str, kind: str, value: Any) -> Any:
    """Check a decoded JSON value against its field kind."""
    if kind == "float":
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ValueError(f"{name} must be a number, got {value!r}")
        return float(value)
    if kind == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{name} must be an integer, got {value!r}")
        return value
    if kind == "bool":
        if not isinstance(value, bool):
            raise ValueError(f"{name} must be a boolean, got {value!r}")
        return value
    if not isinstance(value, str):
        raise ValueError(f"{name} must be a string, got {value!r}")
    return value


def attributes_from_json(data: Dict[str, Any]) -> Attributes:
    """Decode attributes written by :func:`attributes_to_json`.

    Raises
    ------
    ValueError
        If an unknown field name is present or a value has the wrong type
    """
    unknown = set(data) - set(FIELD_NAMES)
    if unknown:
        raise ValueError(f"unknown attribute fields: {sorted(unknown)}")
    values: Dict[str, Any] = {}
    for name, value in data.items():
        if value is None:
            continue
        if name == "color":
            values[name] = parse_color(_json_value(name, "str", value))
        elif name == "behavior":
            if not isinstance(value, dict):
                raise ValueError(f"behavior must be an object, got {value!r}")
            for key in ("reset_length", "reset_offset"):
                if value.get(key) is not None:
                    _json_value(f"behavior.{key}", "int", value[key])
            values[name] = Behavior.from_dict(value)
        else:
            values[name] = _json_value(name, XML_FIELDS[name][1], value)
    return Attributes(**values)
