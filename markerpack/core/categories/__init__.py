"""Category tree merging and attribute inheritance."""

from .resolver import CategoryResolution, CategoryResolver, resolve_categories
from .template import (
    DEFAULT_ATTRIBUTES,
    EMPTY_ATTRIBUTES,
    FIELD_NAMES,
    INCHES_PER_METER,
    Attributes,
    Behavior,
    BehaviorKind,
    attributes_from_json,
    attributes_to_json,
    normalize_path,
    parse_xml_attributes,
)
from .tree import Category, RawCategory, join_full_name

__all__ = [
    "Attributes",
    "Behavior",
    "BehaviorKind",
    "DEFAULT_ATTRIBUTES",
    "EMPTY_ATTRIBUTES",
    "FIELD_NAMES",
    "INCHES_PER_METER",
    "attributes_from_json",
    "attributes_to_json",
    "normalize_path",
    "parse_xml_attributes",
    "RawCategory",
    "Category",
    "join_full_name",
    "CategoryResolver",
    "CategoryResolution",
    "resolve_categories",
]
