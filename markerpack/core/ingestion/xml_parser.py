"""Parsing overlay XML files into raw categories and raw records.

An overlay file looks like::

    <OverlayData>
      <MarkerCategory name="tekkit" DisplayName="Tekkit's Workshop" alpha="0.5">
        <MarkerCategory name="dailies" />
      </MarkerCategory>
      <POIs>
        <POI MapID="15" xpos="1.0" ypos="2.0" zpos="3.0" type="tekkit.dailies" />
        <Trail type="tekkit" trailData="trails/route.trl" />
      </POIs>
    </OverlayData>

Element and attribute names are matched case-insensitively.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ..categories.template import (
    EMPTY_ATTRIBUTES,
    INCHES_PER_METER,
    Attributes,
    parse_bool,
    parse_int,
    parse_xml_attributes,
)
from ..categories.tree import RawCategory
from ..errors import Diagnostics, ElementError, FileParseError

Position = Tuple[float, float, float]

MARKER = "marker"
TRAIL = "trail"


@dataclass
class RawRecord:
    """A ``POI`` or ``Trail`` element before category resolution.

    Attributes:
        kind: "marker" or "trail"
        category: Dotted category name from the ``type`` attribute
        source: Archive path of the defining XML file
        element: Identity used in diagnostics (GUID or "POI #3")
        map_id: ``MapID`` attribute; required for markers only
        position: Position in inches (origin when absent)
        guid: ``GUID`` attribute, if any
        attributes: Explicit attribute overrides
    """

    kind: str
    category: str
    source: str
    element: str
    map_id: Optional[int] = None
    position: Position = (0.0, 0.0, 0.0)
    guid: Optional[str] = None
    attributes: Attributes = EMPTY_ATTRIBUTES


@dataclass
class ParsedFile:
    """Content of one overlay XML file."""

    path: str
    categories: List[RawCategory] = field(default_factory=list)
    records: List[RawRecord] = field(default_factory=list)


def _local_name(tag: str) -> str:
    """Strip any namespace and lowercase a tag."""
    if "}" in tag:
        tag = tag.rsplit("}", 1)[1]
    return tag.lower()


def _lowered(attrib: Dict[str, str]) -> Dict[str, str]:
    return {key.strip().lower(): value for key, value in attrib.items()}


class OverlayParser:
    """Parses one overlay XML file, recording problems in ``diagnostics``.

    Parameters
    ----------
    path : str
        Archive path of the file (used as the diagnostics source)
    diagnostics : Diagnostics
        Bundle receiving warnings and errors
    root_tag : str
        Required root element name
    position_scale : float
        Factor applied to ``xpos``/``ypos``/``zpos``
    """

    def __init__(
        self,
        path: str,
        diagnostics: Diagnostics,
        root_tag: str = "OverlayData",
        position_scale: float = INCHES_PER_METER,
    ):
        self.path = path
        self.diagnostics = diagnostics
        self.root_tag = root_tag.lower()
        self.position_scale = position_scale
        self._record_index = 0

    def parse(self, data: bytes) -> Optional[ParsedFile]:
        """Parse file bytes. Returns None if the file is unusable."""
        try:
            root = self._parse_root(data)
        except FileParseError as exc:
            self.diagnostics.record(exc, self.path)
            return None

        parsed = ParsedFile(path=self.path)
        category_index = 0
        for child in root:
            if not isinstance(child.tag, str):
                continue
            tag = _local_name(child.tag)
            if tag == "markercategory":
                node = self._parse_category(child, f"MarkerCategory #{category_index}")
                category_index += 1
                if node is not None:
                    parsed.categories.append(node)
            elif tag == "pois":
                for element in child:
                    if not isinstance(element.tag, str):
                        continue
                    record = self._parse_record(element)
                    if record is not None:
                        parsed.records.append(record)
            elif tag == "trail":
                record = self._parse_record(child)
                if record is not None:
                    parsed.records.append(record)
        return parsed

    def _parse_root(self, data: bytes) -> ET.Element:
        if data.startswith(b"\xef\xbb\xbf"):
            data = data[3:]
        try:
            data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise FileParseError(f"file is not valid UTF-8: {exc}") from exc
        try:
            root = ET.fromstring(data)
        except ET.ParseError as exc:
            raise FileParseError(f"malformed XML: {exc}") from exc

        if _local_name(root.tag) != self.root_tag:
            raise FileParseError(
                f"unexpected root element <{root.tag}>, expected <{self.root_tag}>"
            )
        return root

    def _parse_category(self, element: ET.Element, identity: str) -> Optional[RawCategory]:
        attrib = _lowered(element.attrib)
        name = (attrib.get("name") or "").strip()
        if not name:
            self.diagnostics.record(
                ElementError("category has no name; subtree skipped"),
                self.path,
                identity,
            )
            return None

        attributes, problems = parse_xml_attributes(element.attrib)
        for problem in problems:
            self.diagnostics.warn(problem, self.path, name)

        is_separator = self._flag(attrib, "isseparator", False, name)
        default_enabled = self._flag(attrib, "defaulttoggle", True, name)

        node = RawCategory(
            name=name,
            display_name=attrib.get("displayname"),
            is_separator=is_separator,
            default_enabled=default_enabled,
            attributes=attributes,
            source=self.path,
        )

        child_index = 0
        for child in element:
            if not isinstance(child.tag, str) or _local_name(child.tag) != "markercategory":
                continue
            sub = self._parse_category(child, f"{name} > MarkerCategory #{child_index}")
            child_index += 1
            if sub is not None:
                node.children.append(sub)
        return node

    def _flag(self, attrib: Dict[str, str], key: str, default: bool, identity: str) -> bool:
        if key not in attrib:
            return default
        try:
            return parse_bool(attrib[key])
        except ValueError:
            self.diagnostics.warn(f"invalid {key} value {attrib[key]!r}", self.path, identity)
            return default

    def _parse_record(self, element: ET.Element) -> Optional[RawRecord]:
        tag = _local_name(element.tag)
        if tag == "poi":
            kind, label = MARKER, "POI"
        elif tag == "trail":
            kind, label = TRAIL, "Trail"
        else:
            return None

        attrib = _lowered(element.attrib)
        guid = (attrib.get("guid") or "").strip() or None
        identity = guid or f"{label} #{self._record_index}"
        self._record_index += 1

        category = (attrib.get("type") or "").strip()
        if not category:
            self.diagnostics.record(
                ElementError(f"{label} has no type attribute; dropped"),
                self.path,
                identity,
            )
            return None

        map_id = None
        if "mapid" in attrib:
            try:
                map_id = parse_int(attrib["mapid"])
            except ValueError:
                if kind == MARKER:
                    self.diagnostics.record(
                        ElementError(f"invalid MapID {attrib['mapid']!r}; dropped"),
                        self.path,
                        identity,
                    )
                    return None
                self.diagnostics.warn(
                    f"invalid MapID value {attrib['mapid']!r}", self.path, identity
                )
        elif kind == MARKER:
            self.diagnostics.record(
                ElementError("POI has no MapID attribute; dropped"),
                self.path,
                identity,
            )
            return None

        attributes, problems = parse_xml_attributes(element.attrib)
        for problem in problems:
            self.diagnostics.warn(problem, self.path, identity)

        return RawRecord(
            kind=kind,
            category=category,
            source=self.path,
            element=identity,
            map_id=map_id,
            position=self._position(attrib, identity),
            guid=guid,
            attributes=attributes,
        )

    def _position(self, attrib: Dict[str, str], identity: str) -> Position:
        coords = []
        for axis in ("xpos", "ypos", "zpos"):
            value = 0.0
            if axis in attrib:
                try:
                    value = float(attrib[axis].strip()) * self.position_scale
                except ValueError:
                    self.diagnostics.warn(
                        f"invalid {axis} value {attrib[axis]!r}", self.path, identity
                    )
            coords.append(value)
        return (coords[0], coords[1], coords[2])


def parse_overlay_xml(
    path: str,
    data: bytes,
    diagnostics: Diagnostics,
    root_tag: str = "OverlayData",
    position_scale: float = INCHES_PER_METER,
) -> Optional[ParsedFile]:
    """Parse one overlay XML file.

    Parameters
    ----------
    path : str
        Archive path of the file
    data : bytes
        Raw file contents (UTF-8, BOM tolerated)
    diagnostics : Diagnostics
        Bundle receiving warnings and errors for this file
    root_tag : str
        Required root element name
    position_scale : float
        Factor applied to positions

    Returns
    -------
    ParsedFile or None
        None if the file is malformed (a FileParseError is recorded)
    """
    parser = OverlayParser(path, diagnostics, root_tag, position_scale)
    parsed = parser.parse(data)
    if parsed is not None:
        logging.getLogger(__name__).debug(
            "Parsed %s: %d root categories, %d records",
            path,
            len(parsed.categories),
            len(parsed.records),
        )
    return parsed
