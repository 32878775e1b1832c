"""Fixed-layout binary archive of a pack.

File layout (all integers little-endian)::

    header   magic "MKPK", u16 format version, u16 section count,
             u32 CRC-32 of everything after the header, u64 body length
    toc      one (tag, offset, length) entry per section
    META AUTH CATS TMPL TEXS TBIN MAPS MRKS TRLS
             arrays of fixed-size records (numpy structured dtypes),
             each section 8-byte aligned
    BLOB     strings, image bytes and trail binaries, 4-byte aligned,
             referenced from records by (offset, length)

Records never hold pointers, only indexes into other sections and blob
references, so sections can be viewed directly from a memory map.
"""

from __future__ import annotations

import logging
import mmap
import os
import struct
import tempfile
import zlib
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np

from ..categories.template import FIELD_NAMES, Attributes, Behavior, BehaviorKind
from ..categories.tree import Category
from ..content.assets import NODE_DTYPE, TRAIL_HEADER, TextureAsset, TrailBinary
from ..content.store import ContentStore, content_handle
from ..errors import ArchiveFormatError, TrailBinaryCorrupt
from ..normalizer.records import MapData, Marker, Trail
from ..pack.model import Author, Pack, PackMetadata

MAGIC = b"MKPK"
FORMAT_VERSION = 1

HEADER = struct.Struct("<4sHHIQ4x")  # magic, version, sections, crc32, body length
TOC_ENTRY = struct.Struct("<4s4xQQ")  # tag, absolute offset, length

NONE = 0xFFFFFFFF  # blob reference length for a missing string
SECTION_ALIGN = 8
BLOB_ALIGN = 4
CRC_CHUNK = 1 << 20

FLAG_SEPARATOR = 1
FLAG_DEFAULT_ENABLED = 2

# =============================================================================
# Record layouts
# =============================================================================

REF_DTYPE = np.dtype([("off", "<u4"), ("len", "<u4")])

_FLOAT_FIELDS = (
    "icon_size",
    "height_offset",
    "alpha",
    "fade_near",
    "fade_far",
    "trigger_range",
    "info_range",
    "anim_speed",
    "trail_scale",
)
_INT_FIELDS = ("min_size", "max_size", "map_display_size", "achievement_id", "achievement_bit")
_BOOL_FIELDS = (
    "auto_trigger",
    "has_countdown",
    "map_visibility",
    "mini_map_visibility",
    "in_game_visibility",
    "keep_on_map_edge",
    "scale_on_map_with_zoom",
)
_STR_FIELDS = ("icon_file", "texture", "info", "trail_data", "toggle_category")

# Presence bits: one per attribute field, plus the behavior parameters
_PRESENT_BIT = {name: index for index, name in enumerate(FIELD_NAMES)}
RESET_LENGTH_BIT = 40
RESET_OFFSET_BIT = 41
BEHAVIOR_BIT = _PRESENT_BIT["behavior"]

ATTR_DTYPE = np.dtype(
    [
        ("present", "<u8"),
        ("bools", "<u4"),
        ("color", "u1", (4,)),
        ("behavior_kind", "<i4"),
        ("reset_length", "<i8"),
        ("reset_offset", "<i8"),
    ]
    + [(name, "<f8") for name in _FLOAT_FIELDS]
    + [(name, "<i8") for name in _INT_FIELDS]
    + [(name, REF_DTYPE) for name in _STR_FIELDS]
)

SECTION_DTYPES: Dict[str, np.dtype] = {
    "META": np.dtype([("name", REF_DTYPE), ("pack_id", REF_DTYPE), ("source_url", REF_DTYPE)]),
    "AUTH": np.dtype(
        [("name", REF_DTYPE), ("email", REF_DTYPE), ("ign", REF_DTYPE), ("extra", REF_DTYPE)]
    ),
    "CATS": np.dtype(
        [
            ("parent", "<u4"),
            ("flags", "<u4"),
            ("name", REF_DTYPE),
            ("full_name", REF_DTYPE),
            ("display_name", REF_DTYPE),
            ("attributes", ATTR_DTYPE),
        ]
    ),
    "TMPL": ATTR_DTYPE,
    "TEXS": np.dtype(
        [
            ("handle", "u1", (32,)),
            ("width", "<u4"),
            ("height", "<u4"),
            ("format", REF_DTYPE),
            ("data", REF_DTYPE),
        ]
    ),
    "TBIN": np.dtype(
        [("handle", "u1", (32,)), ("version", "<u4"), ("map_id", "<u4"), ("data", REF_DTYPE)]
    ),
    "MAPS": np.dtype(
        [
            ("map_id", "<i8"),
            ("marker_start", "<u4"),
            ("marker_count", "<u4"),
            ("trail_start", "<u4"),
            ("trail_count", "<u4"),
        ]
    ),
    "MRKS": np.dtype(
        [
            ("category", "<u4"),
            ("position", "<f8", (3,)),
            ("guid", REF_DTYPE),
            ("attributes", ATTR_DTYPE),
        ]
    ),
    "TRLS": np.dtype(
        [
            ("category", "<u4"),
            ("trail", "<u4"),
            ("position", "<f8", (3,)),
            ("guid", REF_DTYPE),
            ("attributes", ATTR_DTYPE),
        ]
    ),
}
SECTION_ORDER = tuple(SECTION_DTYPES)
BLOB_TAG = "BLOB"


# =============================================================================
# Writer
# =============================================================================


class _BlobWriter:
    """Accumulates the BLOB section; identical strings are stored once."""

    def __init__(self) -> None:
        self._parts: List[bytes] = []
        self._size = 0
        self._strings: Dict[str, Tuple[int, int]] = {}

    def add(self, data: bytes) -> Tuple[int, int]:
        pad = (-self._size) % BLOB_ALIGN
        if pad:
            self._parts.append(b"\0" * pad)
            self._size += pad
        offset = self._size
        self._parts.append(data)
        self._size += len(data)
        if self._size >= NONE:
            raise ValueError("Pack content exceeds the 4 GiB archive blob limit")
        return offset, len(data)

    def add_str(self, value: Optional[str]) -> Tuple[int, int]:
        if value is None:
            return 0, NONE
        if value not in self._strings:
            self._strings[value] = self.add(value.encode("utf-8"))
        return self._strings[value]

    def getvalue(self) -> bytes:
        return b"".join(self._parts)


def _set_ref(table: np.ndarray, index: int, ref: Tuple[int, int]) -> None:
    table["off"][index], table["len"][index] = ref


def _encode_attributes(
    table: np.ndarray, index: int, attrs: Attributes, blob: _BlobWriter
) -> None:
    present = 0
    bools = 0
    for name, value in attrs.explicit().items():
        present |= 1 << _PRESENT_BIT[name]
        if name in _FLOAT_FIELDS or name in _INT_FIELDS:
            table[name][index] = value
        elif name in _BOOL_FIELDS:
            if value:
                bools |= 1 << _BOOL_FIELDS.index(name)
        elif name in _STR_FIELDS:
            _set_ref(table[name], index, blob.add_str(value))
        elif name == "color":
            table["color"][index] = value
        elif name == "behavior":
            table["behavior_kind"][index] = int(value.kind)
            if value.reset_length is not None:
                present |= 1 << RESET_LENGTH_BIT
                table["reset_length"][index] = value.reset_length
            if value.reset_offset is not None:
                present |= 1 << RESET_OFFSET_BIT
                table["reset_offset"][index] = value.reset_offset
    table["present"][index] = present
    table["bools"][index] = bools


def _build_sections(pack: Pack) -> List[Tuple[str, bytes]]:
    blob = _BlobWriter()
    tables = {}

    meta = np.zeros(1, SECTION_DTYPES["META"])
    _set_ref(meta["name"], 0, blob.add_str(pack.metadata.name))
    _set_ref(meta["pack_id"], 0, blob.add_str(pack.metadata.pack_id))
    _set_ref(meta["source_url"], 0, blob.add_str(pack.metadata.source_url))
    tables["META"] = meta

    auth = np.zeros(len(pack.metadata.authors), SECTION_DTYPES["AUTH"])
    for i, author in enumerate(pack.metadata.authors):
        for key in ("name", "email", "ign", "extra"):
            _set_ref(auth[key], i, blob.add_str(getattr(author, key)))
    tables["AUTH"] = auth

    # Category ids are stored implicitly as record positions
    category_ids = sorted(pack.categories)
    position_of = {category_id: i for i, category_id in enumerate(category_ids)}
    cats = np.zeros(len(category_ids), SECTION_DTYPES["CATS"])
    tmpl = np.zeros(len(category_ids), SECTION_DTYPES["TMPL"])
    for i, category_id in enumerate(category_ids):
        category = pack.categories[category_id]
        cats["parent"][i] = NONE if category.parent_id is None else position_of[category.parent_id]
        cats["flags"][i] = (FLAG_SEPARATOR if category.is_separator else 0) | (
            FLAG_DEFAULT_ENABLED if category.default_enabled else 0
        )
        _set_ref(cats["name"], i, blob.add_str(category.name))
        _set_ref(cats["full_name"], i, blob.add_str(category.full_name))
        _set_ref(cats["display_name"], i, blob.add_str(category.display_name))
        _encode_attributes(cats["attributes"], i, category.attributes, blob)
        _encode_attributes(tmpl, i, pack.templates[category_id], blob)
    tables["CATS"] = cats
    tables["TMPL"] = tmpl

    texs = np.zeros(len(pack.textures), SECTION_DTYPES["TEXS"])
    for i, (handle, texture) in enumerate(pack.textures.items()):
        texs["handle"][i] = np.frombuffer(bytes.fromhex(handle), dtype="u1")
        texs["width"][i] = texture.width
        texs["height"][i] = texture.height
        _set_ref(texs["format"], i, blob.add_str(texture.format))
        _set_ref(texs["data"], i, blob.add(pack.store.get(handle)))
    tables["TEXS"] = texs

    trail_index = {}
    tbin = np.zeros(len(pack.trail_binaries), SECTION_DTYPES["TBIN"])
    for i, (handle, binary) in enumerate(pack.trail_binaries.items()):
        trail_index[handle] = i
        tbin["handle"][i] = np.frombuffer(bytes.fromhex(handle), dtype="u1")
        tbin["version"][i] = binary.version
        tbin["map_id"][i] = binary.map_id
        _set_ref(tbin["data"], i, blob.add(binary.to_bytes()))
    tables["TBIN"] = tbin

    map_ids = sorted(pack.maps)
    maps = np.zeros(len(map_ids), SECTION_DTYPES["MAPS"])
    n_markers = sum(len(pack.maps[m].markers) for m in map_ids)
    n_trails = sum(len(pack.maps[m].trails) for m in map_ids)
    mrks = np.zeros(n_markers, SECTION_DTYPES["MRKS"])
    trls = np.zeros(n_trails, SECTION_DTYPES["TRLS"])
    marker_pos = 0
    trail_pos = 0
    for i, map_id in enumerate(map_ids):
        data = pack.maps[map_id]
        maps["map_id"][i] = map_id
        maps["marker_start"][i] = marker_pos
        maps["marker_count"][i] = len(data.markers)
        maps["trail_start"][i] = trail_pos
        maps["trail_count"][i] = len(data.trails)
        for marker in data.markers:
            mrks["category"][marker_pos] = position_of[marker.category_id]
            mrks["position"][marker_pos] = marker.position
            _set_ref(mrks["guid"], marker_pos, blob.add_str(marker.guid))
            _encode_attributes(mrks["attributes"], marker_pos, marker.attributes, blob)
            marker_pos += 1
        for trail in data.trails:
            trls["category"][trail_pos] = position_of[trail.category_id]
            trls["trail"][trail_pos] = trail_index[trail.trail_handle]
            trls["position"][trail_pos] = trail.position
            _set_ref(trls["guid"], trail_pos, blob.add_str(trail.guid))
            _encode_attributes(trls["attributes"], trail_pos, trail.attributes, blob)
            trail_pos += 1
    tables["MAPS"] = maps
    tables["MRKS"] = mrks
    tables["TRLS"] = trls

    sections = [(tag, tables[tag].tobytes()) for tag in SECTION_ORDER]
    sections.append((BLOB_TAG, blob.getvalue()))
    return sections


def encode_archive(pack: Pack) -> bytes:
    """Serialize a pack to archive bytes."""
    sections = _build_sections(pack)
    position = HEADER.size + len(sections) * TOC_ENTRY.size

    toc = []
    chunks = []
    for tag, data in sections:
        pad = (-position) % SECTION_ALIGN
        if pad:
            chunks.append(b"\0" * pad)
            position += pad
        toc.append(TOC_ENTRY.pack(tag.encode("ascii"), position, len(data)))
        chunks.append(data)
        position += len(data)

    body = b"".join(toc) + b"".join(chunks)
    header = HEADER.pack(MAGIC, FORMAT_VERSION, len(sections), zlib.crc32(body), len(body))
    return header + body


def write_archive(
    pack: Pack,
    path: Union[str, Path],
    logger: Optional[logging.Logger] = None,
) -> Path:
    """Write a pack archive.

    The archive is written to a temporary file in the target directory and
    renamed over ``path``, so readers never see a partial file.
    """
    logger = logger or logging.getLogger(__name__)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = encode_archive(pack)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    logger.info(f"Wrote archive {path} ({len(data)} bytes)")
    return path


# =============================================================================
# Reader
# =============================================================================


def _crc32(buffer, start: int) -> int:
    crc = 0
    for offset in range(start, len(buffer), CRC_CHUNK):
        crc = zlib.crc32(buffer[offset : offset + CRC_CHUNK], crc)
    return crc


class ArchiveReader:
    """Validated, memory-mapped view of an archive.

    Opening the reader checks the header, checksum, table of contents,
    record sizes and every blob reference. Maps can then be loaded one at
    a time without decoding the rest of the archive.

    Parameters
    ----------
    path : str or Path
        Archive file
    copy_nodes : bool
        Copy trail node arrays out of the map. When False, node arrays are
        views into the memory map and the map stays open while they live.
    logger : logging.Logger, optional
        Logger instance

    Raises
    ------
    ArchiveFormatError
        If the file cannot be read or fails validation

    Example
    -------
    >>> with ArchiveReader("tekkit.mkpk") as reader:
    ...     data = reader.load_map(15)
    """

    def __init__(
        self,
        path: Union[str, Path],
        copy_nodes: bool = True,
        logger: Optional[logging.Logger] = None,
    ):
        self.path = Path(path)
        self.copy_nodes = copy_nodes
        self.logger = logger or logging.getLogger(__name__)
        self._file = None
        self._mm: Optional[mmap.mmap] = None
        self._tables: Dict[str, np.ndarray] = {}
        self._blob_offset = 0
        self._blob_length = 0
        self._categories: Optional[Tuple[Dict[int, Category], Dict[str, int]]] = None

        try:
            self._file = open(self.path, "rb")
        except OSError as exc:
            raise ArchiveFormatError(f"Cannot open archive {self.path}: {exc}") from exc
        try:
            size = os.fstat(self._file.fileno()).st_size
            if size < HEADER.size:
                raise ArchiveFormatError(f"{self.path}: file too short for an archive header")
            self._mm = mmap.mmap(self._file.fileno(), 0, access=mmap.ACCESS_READ)
            self._validate()
        except Exception:
            self.close()
            raise

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def _fail(self, message: str) -> ArchiveFormatError:
        return ArchiveFormatError(f"{self.path}: {message}")

    def _validate(self) -> None:
        mm = self._mm
        magic, version, count, crc, body_length = HEADER.unpack_from(mm, 0)
        if magic != MAGIC:
            raise self._fail(f"bad magic {magic!r}")
        if version != FORMAT_VERSION:
            raise self._fail(f"unsupported format version {version}, expected {FORMAT_VERSION}")
        if body_length != len(mm) - HEADER.size:
            raise self._fail(
                f"body length {body_length} does not match file size {len(mm)}"
            )
        if _crc32(mm, HEADER.size) != crc:
            raise self._fail("checksum mismatch")

        toc_end = HEADER.size + count * TOC_ENTRY.size
        if toc_end > len(mm):
            raise self._fail("table of contents exceeds file size")

        sections: Dict[str, Tuple[int, int]] = {}
        for i in range(count):
            raw_tag, offset, length = TOC_ENTRY.unpack_from(mm, HEADER.size + i * TOC_ENTRY.size)
            tag = raw_tag.decode("ascii", errors="replace")
            if tag not in SECTION_DTYPES and tag != BLOB_TAG:
                raise self._fail(f"unknown section {tag!r}")
            if tag in sections:
                raise self._fail(f"duplicate section {tag}")
            if offset < toc_end or offset + length > len(mm):
                raise self._fail(f"section {tag} out of bounds")
            sections[tag] = (offset, length)

        missing = [tag for tag in SECTION_ORDER + (BLOB_TAG,) if tag not in sections]
        if missing:
            raise self._fail(f"missing sections {missing}")

        self._blob_offset, self._blob_length = sections[BLOB_TAG]
        for tag in SECTION_ORDER:
            offset, length = sections[tag]
            dtype = SECTION_DTYPES[tag]
            if length % dtype.itemsize:
                raise self._fail(f"section {tag} is not a whole number of records")
            if length == 0:
                self._tables[tag] = np.zeros(0, dtype)
            else:
                self._tables[tag] = np.frombuffer(
                    mm, dtype=dtype, count=length // dtype.itemsize, offset=offset
                )

        for tag in SECTION_ORDER:
            self._check_table(self._tables[tag], tag)
        self._check_structure()

    def _check_table(self, table: np.ndarray, where: str) -> None:
        """Check every blob reference and behavior code in a record array."""
        dtype = table.dtype
        if dtype == REF_DTYPE:
            lengths = table["len"].astype(np.uint64)
            present = lengths != NONE
            ends = table["off"].astype(np.uint64)[present] + lengths[present]
            if np.any(ends > self._blob_length):
                raise self._fail(f"{where}: blob reference out of bounds")
            return
        if dtype == ATTR_DTYPE:
            has_behavior = (table["present"] >> np.uint64(BEHAVIOR_BIT)) & np.uint64(1)
            kinds = table["behavior_kind"][has_behavior.astype(bool)]
            if np.any((kinds < 0) | (kinds > int(max(BehaviorKind)))):
                raise self._fail(f"{where}: invalid behavior code")
        if dtype.names is None:
            return
        for name in dtype.names:
            if table[name].dtype.names is not None:
                self._check_table(table[name], f"{where}.{name}")

    def _check_structure(self) -> None:
        t = self._tables
        if len(t["META"]) != 1:
            raise self._fail("META must hold exactly one record")

        n_categories = len(t["CATS"])
        if len(t["TMPL"]) != n_categories:
            raise self._fail("TMPL and CATS record counts differ")
        parents = t["CATS"]["parent"].astype(np.int64)
        ok = (parents == NONE) | (parents < np.arange(n_categories))
        if not np.all(ok):
            raise self._fail("CATS: parent must precede its child")

        maps = t["MAPS"]
        if len(maps) > 1 and np.any(np.diff(maps["map_id"]) <= 0):
            raise self._fail("MAPS: map ids not strictly increasing")
        for kind, table in (("marker", t["MRKS"]), ("trail", t["TRLS"])):
            starts = maps[f"{kind}_start"].astype(np.int64)
            counts = maps[f"{kind}_count"].astype(np.int64)
            expected = np.concatenate([[0], np.cumsum(counts)[:-1]]) if len(maps) else starts
            if np.any(starts != expected) or int(counts.sum()) != len(table):
                raise self._fail(f"MAPS: {kind} ranges do not cover the {kind} table")

        if np.any(t["MRKS"]["category"] >= n_categories):
            raise self._fail("MRKS: category index out of range")
        if np.any(t["TRLS"]["category"] >= n_categories):
            raise self._fail("TRLS: category index out of range")
        if np.any(t["TRLS"]["trail"] >= len(t["TBIN"])):
            raise self._fail("TRLS: trail binary index out of range")

        lengths = t["TBIN"]["data"]["len"].astype(np.int64)
        if np.any((lengths == NONE) | (lengths < TRAIL_HEADER.size)) or np.any(
            (lengths - TRAIL_HEADER.size) % 12
        ):
            raise self._fail("TBIN: malformed trail binary")
        if np.any(t["TEXS"]["data"]["len"] == NONE):
            raise self._fail("TEXS: texture without data")

    # -------------------------------------------------------------------------
    # Low-level access
    # -------------------------------------------------------------------------

    def _bytes(self, ref) -> bytes:
        start = self._blob_offset + int(ref["off"])
        return self._mm[start : start + int(ref["len"])]

    def _string(self, ref) -> Optional[str]:
        if int(ref["len"]) == NONE:
            return None
        try:
            return self._bytes(ref).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise self._fail(f"invalid UTF-8 string in blob: {exc}") from exc

    def _attributes(self, rec) -> Attributes:
        present = int(rec["present"])
        bools = int(rec["bools"])
        values: Dict[str, Any] = {}
        for name, bit in _PRESENT_BIT.items():
            if not (present >> bit) & 1:
                continue
            if name in _FLOAT_FIELDS:
                values[name] = float(rec[name])
            elif name in _INT_FIELDS:
                values[name] = int(rec[name])
            elif name in _BOOL_FIELDS:
                values[name] = bool((bools >> _BOOL_FIELDS.index(name)) & 1)
            elif name in _STR_FIELDS:
                value = self._string(rec[name])
                if value is None:
                    raise self._fail(f"attribute {name} marked present without a value")
                values[name] = value
            elif name == "color":
                values[name] = tuple(int(c) for c in rec["color"])
            elif name == "behavior":
                values[name] = Behavior(
                    BehaviorKind(int(rec["behavior_kind"])),
                    int(rec["reset_length"]) if (present >> RESET_LENGTH_BIT) & 1 else None,
                    int(rec["reset_offset"]) if (present >> RESET_OFFSET_BIT) & 1 else None,
                )
        return Attributes(**values)

    @staticmethod
    def _handle(rec) -> str:
        return rec["handle"].tobytes().hex()

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def counts(self) -> Dict[str, int]:
        """Record count per section."""
        return {tag: len(self._tables[tag]) for tag in SECTION_ORDER}

    @property
    def map_ids(self) -> List[int]:
        return [int(map_id) for map_id in self._tables["MAPS"]["map_id"]]

    def load_metadata(self) -> PackMetadata:
        meta = self._tables["META"][0]
        authors = [
            Author(
                name=self._string(rec["name"]) or "",
                email=self._string(rec["email"]),
                ign=self._string(rec["ign"]),
                extra=self._string(rec["extra"]),
            )
            for rec in self._tables["AUTH"]
        ]
        return PackMetadata(
            name=self._string(meta["name"]) or "",
            pack_id=self._string(meta["pack_id"]) or "",
            authors=authors,
            source_url=self._string(meta["source_url"]),
        )

    def load_categories(self) -> Tuple[Dict[int, Category], Dict[str, int], Dict[int, Attributes]]:
        """Return the category table, full-name index and templates."""
        categories: Dict[int, Category] = {}
        by_full_name: Dict[str, int] = {}
        for category_id, rec in enumerate(self._tables["CATS"]):
            parent = int(rec["parent"])
            full_name = self._string(rec["full_name"])
            if full_name is None or full_name in by_full_name:
                raise self._fail(f"CATS: missing or duplicate full name {full_name!r}")
            flags = int(rec["flags"])
            categories[category_id] = Category(
                id=category_id,
                name=self._string(rec["name"]) or "",
                full_name=full_name,
                display_name=self._string(rec["display_name"]) or "",
                is_separator=bool(flags & FLAG_SEPARATOR),
                default_enabled=bool(flags & FLAG_DEFAULT_ENABLED),
                parent_id=None if parent == NONE else parent,
                attributes=self._attributes(rec["attributes"]),
            )
            by_full_name[full_name] = category_id
            if parent != NONE:
                categories[parent].children.append(category_id)

        templates = {
            category_id: self._attributes(rec)
            for category_id, rec in enumerate(self._tables["TMPL"])
        }
        return categories, by_full_name, templates

    def trail_binary(self, index: int) -> Tuple[str, TrailBinary]:
        """Return the handle and decoded binary of a TBIN record."""
        rec = self._tables["TBIN"][index]
        start = self._blob_offset + int(rec["data"]["off"])
        length = int(rec["data"]["len"])
        version, map_id = TRAIL_HEADER.unpack_from(self._mm, start)
        if version != int(rec["version"]) or map_id != int(rec["map_id"]):
            raise self._fail(f"TBIN[{index}]: header does not match its record")
        node_count = (length - TRAIL_HEADER.size) // 12
        if node_count:
            nodes = np.frombuffer(
                self._mm, dtype=NODE_DTYPE, count=node_count * 3, offset=start + TRAIL_HEADER.size
            ).reshape(-1, 3)
            if self.copy_nodes:
                nodes = nodes.copy()
        else:
            nodes = None
        return self._handle(rec), TrailBinary(version, map_id, nodes)

    def load_map(self, map_id: int) -> MapData:
        """Decode the markers and trails of one map.

        Raises
        ------
        KeyError
            If the archive holds no data for ``map_id``
        """
        maps = self._tables["MAPS"]
        index = int(np.searchsorted(maps["map_id"], map_id))
        if index >= len(maps) or int(maps["map_id"][index]) != map_id:
            raise KeyError(f"Map {map_id} not in archive")
        entry = maps[index]

        data = MapData(map_id=map_id)
        start = int(entry["marker_start"])
        for offset in range(int(entry["marker_count"])):
            rec = self._tables["MRKS"][start + offset]
            data.markers.append(
                Marker(
                    id=offset,
                    map_id=map_id,
                    position=tuple(float(v) for v in rec["position"]),
                    category_id=int(rec["category"]),
                    guid=self._string(rec["guid"]),
                    attributes=self._attributes(rec["attributes"]),
                )
            )
        start = int(entry["trail_start"])
        tbin = self._tables["TBIN"]
        for offset in range(int(entry["trail_count"])):
            rec = self._tables["TRLS"][start + offset]
            data.trails.append(
                Trail(
                    id=offset,
                    map_id=map_id,
                    category_id=int(rec["category"]),
                    trail_handle=self._handle(tbin[int(rec["trail"])]),
                    position=tuple(float(v) for v in rec["position"]),
                    guid=self._string(rec["guid"]),
                    attributes=self._attributes(rec["attributes"]),
                )
            )
        return data

    def verify_content(self) -> None:
        """Check that every texture and trail binary matches its handle."""
        for tag in ("TEXS", "TBIN"):
            for index, rec in enumerate(self._tables[tag]):
                if content_handle(self._bytes(rec["data"])) != self._handle(rec):
                    raise self._fail(f"{tag}[{index}]: content does not match its handle")

    def to_pack(self) -> Pack:
        """Decode the whole archive into a :class:`Pack`."""
        store = ContentStore()
        textures = {}
        for rec in self._tables["TEXS"]:
            handle = self._handle(rec)
            if store.insert(self._bytes(rec["data"])) != handle:
                raise self._fail(f"texture {handle}: content does not match its handle")
            textures[handle] = TextureAsset(
                handle=handle,
                width=int(rec["width"]),
                height=int(rec["height"]),
                format=self._string(rec["format"]),
            )

        trail_binaries = {}
        for index in range(len(self._tables["TBIN"])):
            handle, binary = self.trail_binary(index)
            if store.insert(binary.to_bytes()) != handle:
                raise self._fail(f"trail binary {handle}: content does not match its handle")
            trail_binaries[handle] = binary

        categories, by_full_name, templates = self.load_categories()
        return Pack(
            metadata=self.load_metadata(),
            categories=categories,
            by_full_name=by_full_name,
            templates=templates,
            store=store,
            textures=textures,
            trail_binaries=trail_binaries,
            maps={map_id: self.load_map(map_id) for map_id in self.map_ids},
        )

    # -------------------------------------------------------------------------
    # Lifetime
    # -------------------------------------------------------------------------

    def close(self) -> None:
        self._tables = {}
        if self._mm is not None:
            try:
                self._mm.close()
            except BufferError:
                # Node views handed out with copy_nodes=False still reference
                # the map; it is released when they are garbage collected.
                self.logger.debug(f"Memory map of {self.path} still referenced")
            self._mm = None
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self) -> "ArchiveReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def read_archive(path: Union[str, Path], logger: Optional[logging.Logger] = None) -> Pack:
    """Read and fully decode an archive.

    Raises
    ------
    ArchiveFormatError
        If the archive fails validation
    """
    with ArchiveReader(path, copy_nodes=True, logger=logger) as reader:
        pack = reader.to_pack()
    (logger or logging.getLogger(__name__)).info(f"Read archive {path}: {pack!r}")
    return pack


def validate_archive(path: Union[str, Path], logger: Optional[logging.Logger] = None) -> Dict[str, int]:
    """Validate an archive's structure and content hashes.

    Returns
    -------
    Dict[str, int]
        Record count per section

    Raises
    ------
    ArchiveFormatError
        If any check fails
    """
    with ArchiveReader(path, logger=logger) as reader:
        reader.verify_content()
        return reader.counts()
