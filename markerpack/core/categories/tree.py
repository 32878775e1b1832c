"""Category tree representation."""

from dataclasses import dataclass, field
from typing import List, Optional

from .template import EMPTY_ATTRIBUTES, Attributes


@dataclass
class RawCategory:
    """A ``MarkerCategory`` element as parsed from one XML file."""

    name: str  # e.g., "tekkit"
    display_name: Optional[str] = None  # e.g., "Tekkit's Workshop"
    is_separator: bool = False
    default_enabled: bool = True
    attributes: Attributes = EMPTY_ATTRIBUTES
    source: Optional[str] = None  # archive path of the defining file
    children: List["RawCategory"] = field(default_factory=list)


@dataclass
class Category:
    """A resolved category, addressed by its integer id.

    Parent and children are ids into the pack's category table, never
    direct references.
    """

    id: int
    name: str  # leaf name, lowercased
    full_name: str  # e.g., "tekkit.dailies.chests"
    display_name: str
    is_separator: bool = False
    default_enabled: bool = True
    parent_id: Optional[int] = None
    children: List[int] = field(default_factory=list)
    attributes: Attributes = EMPTY_ATTRIBUTES  # explicit attributes only
    source: Optional[str] = None

    @property
    def level(self) -> int:
        return self.full_name.count(".")

    @property
    def is_root(self) -> bool:
        return self.parent_id is None


def join_full_name(prefix: str, name: str) -> str:
    """Join a parent's full name and a leaf name with a dot."""
    return name if not prefix else f"{prefix}.{name}"
