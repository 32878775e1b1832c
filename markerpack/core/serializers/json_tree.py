"""Editable JSON tree layout of a pack.

Layout::

    <directory>/
        categories.json          pack metadata and the category forest
        maps/<map_id>.json       markers and trails of one map
        textures/<handle>.<ext>  one file per distinct texture
        trails/<handle>.trl      one file per distinct trail binary

Markers and trails reference categories by full name and assets by content
handle. Only explicitly set attributes are written.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ...config import SerializerConfig
from ..categories.resolver import CategoryResolver
from ..categories.template import Attributes, attributes_from_json, attributes_to_json
from ..categories.tree import RawCategory
from ..content.assets import TextureAsset, TrailBinary
from ..content.store import ContentStore, content_handle
from ..errors import AssetMissingError, PackFormatError, TrailBinaryCorrupt
from ..normalizer.records import MapData, Marker, Trail
from ..pack.model import Author, Pack, PackMetadata

TREE_FORMAT = "markerpack-tree"
TREE_VERSION = 1

CATEGORIES_FILE = "categories.json"
MAPS_DIR = "maps"
TEXTURES_DIR = "textures"
TRAILS_DIR = "trails"

ORIGIN = (0.0, 0.0, 0.0)


# =============================================================================
# Writer
# =============================================================================


def _category_node(pack: Pack, category_id: int) -> Dict[str, Any]:
    category = pack.categories[category_id]
    node: Dict[str, Any] = {"name": category.name}
    if category.display_name != category.name:
        node["display_name"] = category.display_name
    if category.is_separator:
        node["is_separator"] = True
    if not category.default_enabled:
        node["default_enabled"] = False
    attributes = attributes_to_json(category.attributes)
    if attributes:
        node["attributes"] = attributes
    if category.children:
        node["children"] = [_category_node(pack, child) for child in category.children]
    return node


def _element_entry(
    category: str,
    position,
    guid: Optional[str],
    attributes: Attributes,
) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"category": category}
    if tuple(position) != ORIGIN:
        entry["position"] = list(position)
    if guid is not None:
        entry["guid"] = guid
    overrides = attributes_to_json(attributes)
    if overrides:
        entry["attributes"] = overrides
    return entry


def _map_document(pack: Pack, data: MapData) -> Dict[str, Any]:
    markers = [
        _element_entry(
            pack.categories[m.category_id].full_name, m.position, m.guid, m.attributes
        )
        for m in data.markers
    ]
    trails = []
    for t in data.trails:
        entry = _element_entry(
            pack.categories[t.category_id].full_name, t.position, t.guid, t.attributes
        )
        entry["trail"] = t.trail_handle
        trails.append(entry)

    document: Dict[str, Any] = {"map_id": data.map_id}
    if markers:
        document["markers"] = markers
    if trails:
        document["trails"] = trails
    return document


def _write_json(path: Path, data: Any, config: SerializerConfig) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(
            data,
            f,
            indent=config.json_indent or None,
            sort_keys=config.sort_keys,
            ensure_ascii=False,
        )
        f.write("\n")


def _clear_stale(directory: Path, keep: set) -> None:
    """Remove files from a previous write that are not part of this one."""
    if not directory.exists():
        return
    for path in directory.iterdir():
        if path.is_file() and path.name not in keep:
            path.unlink()


def write_json_tree(
    pack: Pack,
    directory: Union[str, Path],
    config: Optional[SerializerConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> Path:
    """Write a pack as a JSON tree.

    Parameters
    ----------
    pack : Pack
        Pack to write
    directory : str or Path
        Output directory (created if missing)
    config : SerializerConfig, optional
        JSON formatting options
    logger : logging.Logger, optional
        Logger instance

    Returns
    -------
    Path
        The output directory
    """
    config = config or SerializerConfig()
    logger = logger or logging.getLogger(__name__)
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    _write_json(
        directory / CATEGORIES_FILE,
        {
            "format": TREE_FORMAT,
            "version": TREE_VERSION,
            "pack": pack.metadata.to_dict(),
            "categories": [_category_node(pack, root) for root in pack.roots],
        },
        config,
    )

    written_maps = set()
    populated = [data for data in pack.maps.values() if not data.is_empty]
    if populated:
        (directory / MAPS_DIR).mkdir(exist_ok=True)
    for data in populated:
        name = f"{data.map_id}.json"
        _write_json(directory / MAPS_DIR / name, _map_document(pack, data), config)
        written_maps.add(name)
    _clear_stale(directory / MAPS_DIR, written_maps)

    written_textures = set()
    if pack.textures:
        (directory / TEXTURES_DIR).mkdir(exist_ok=True)
    for handle, texture in pack.textures.items():
        name = f"{handle}{texture.extension}"
        (directory / TEXTURES_DIR / name).write_bytes(pack.store.get(handle))
        written_textures.add(name)
    _clear_stale(directory / TEXTURES_DIR, written_textures)

    written_trails = set()
    if pack.trail_binaries:
        (directory / TRAILS_DIR).mkdir(exist_ok=True)
    for handle, binary in pack.trail_binaries.items():
        name = f"{handle}.trl"
        (directory / TRAILS_DIR / name).write_bytes(binary.to_bytes())
        written_trails.add(name)
    _clear_stale(directory / TRAILS_DIR, written_trails)

    logger.info(
        f"Wrote JSON tree to {directory}: {len(written_maps)} maps, "
        f"{len(written_textures)} textures, {len(written_trails)} trails"
    )
    return directory


# =============================================================================
# Reader
# =============================================================================


def _load_json(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PackFormatError(f"Cannot read {path}: {exc}") from exc


def _require(data: Dict[str, Any], key: str, where: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise PackFormatError(f"{where}: missing required field '{key}'")
    return data[key]


def _decode_attributes(data: Any, where: str) -> Attributes:
    if data is None:
        return Attributes()
    if not isinstance(data, dict):
        raise PackFormatError(f"{where}: 'attributes' must be an object")
    try:
        return attributes_from_json(data)
    except (KeyError, ValueError, TypeError) as exc:
        raise PackFormatError(f"{where}: invalid attributes: {exc}") from exc


def _require_list(document: Dict[str, Any], key: str, where: str) -> List[Any]:
    value = document.get(key, [])
    if not isinstance(value, list):
        raise PackFormatError(f"{where}: '{key}' must be a list")
    return value


def _decode_guid(data: Dict[str, Any], where: str) -> Optional[str]:
    guid = data.get("guid")
    if guid is not None and not isinstance(guid, str):
        raise PackFormatError(f"{where}: guid must be a string")
    return guid


def _decode_position(data: Dict[str, Any], where: str):
    raw = data.get("position", list(ORIGIN))
    try:
        x, y, z = (float(v) for v in raw)
    except (TypeError, ValueError) as exc:
        raise PackFormatError(f"{where}: invalid position {raw!r}") from exc
    return (x, y, z)


def _raw_category(node: Dict[str, Any], where: str) -> RawCategory:
    name = _require(node, "name", where)
    if not isinstance(name, str) or not name:
        raise PackFormatError(f"{where}: invalid category name {name!r}")
    children = node.get("children", [])
    if not isinstance(children, list):
        raise PackFormatError(f"{where}: 'children' must be a list")
    return RawCategory(
        name=name,
        display_name=node.get("display_name"),
        is_separator=bool(node.get("is_separator", False)),
        default_enabled=bool(node.get("default_enabled", True)),
        attributes=_decode_attributes(node.get("attributes"), f"{where}/{name}"),
        source=CATEGORIES_FILE,
        children=[
            _raw_category(child, f"{where}/{name}[{index}]")
            for index, child in enumerate(children)
        ],
    )


def _read_metadata(data: Dict[str, Any]) -> PackMetadata:
    pack = _require(data, "pack", CATEGORIES_FILE)
    authors = []
    for index, author in enumerate(pack.get("authors", []) if isinstance(pack, dict) else []):
        where = f"{CATEGORIES_FILE}: authors[{index}]"
        authors.append(
            Author(
                name=_require(author, "name", where),
                email=author.get("email"),
                ign=author.get("ign"),
                extra=author.get("extra"),
            )
        )
    return PackMetadata(
        name=_require(pack, "name", f"{CATEGORIES_FILE}: pack"),
        pack_id=_require(pack, "pack_id", f"{CATEGORIES_FILE}: pack"),
        authors=authors,
        source_url=pack.get("source_url"),
    )


def _read_blobs(directory: Path, store: ContentStore) -> Dict[str, bytes]:
    """Read every file of an asset directory, checking names against content."""
    blobs: Dict[str, bytes] = {}
    if not directory.is_dir():
        return blobs
    for path in sorted(directory.iterdir()):
        if not path.is_file():
            continue
        data = path.read_bytes()
        handle = path.name.split(".", 1)[0]
        if content_handle(data) != handle:
            raise PackFormatError(f"{path}: content does not match its handle")
        store.insert(data)
        blobs[handle] = data
    return blobs


def read_json_tree(
    directory: Union[str, Path],
    logger: Optional[logging.Logger] = None,
) -> Pack:
    """Read a pack written by :func:`write_json_tree`.

    Missing ``maps/``, ``textures/`` and ``trails/`` directories are treated
    as empty.

    Raises
    ------
    PackFormatError
        If ``categories.json`` is missing, any file is malformed, a required
        field is missing, or an element references an unknown category,
        texture or trail binary
    """
    logger = logger or logging.getLogger(__name__)
    directory = Path(directory)
    categories_path = directory / CATEGORIES_FILE
    if not categories_path.is_file():
        raise PackFormatError(f"Missing {CATEGORIES_FILE} in {directory}")

    document = _load_json(categories_path)
    if not isinstance(document, dict) or document.get("format") != TREE_FORMAT:
        raise PackFormatError(f"{categories_path} is not a markerpack category file")
    if document.get("version") != TREE_VERSION:
        raise PackFormatError(
            f"Unsupported tree version {document.get('version')!r}, expected {TREE_VERSION}"
        )

    metadata = _read_metadata(document)
    roots = _require(document, "categories", CATEGORIES_FILE)
    if not isinstance(roots, list):
        raise PackFormatError(f"{CATEGORIES_FILE}: 'categories' must be a list")
    trees = [
        _raw_category(node, f"{CATEGORIES_FILE}: categories[{index}]")
        for index, node in enumerate(roots)
    ]
    resolution = CategoryResolver(logger=logger).resolve(trees)

    store = ContentStore()
    textures = {}
    for handle, data in _read_blobs(directory / TEXTURES_DIR, store).items():
        try:
            textures[handle] = TextureAsset.decode(handle, data)
        except AssetMissingError as exc:
            raise PackFormatError(f"texture {handle}: {exc}") from exc

    trail_binaries = {}
    for handle, data in _read_blobs(directory / TRAILS_DIR, store).items():
        try:
            trail_binaries[handle] = TrailBinary.from_bytes(data)
        except TrailBinaryCorrupt as exc:
            raise PackFormatError(f"trail binary {handle}: {exc}") from exc

    def check_textures(attrs: Attributes, where: str) -> None:
        for name in ("icon_file", "texture"):
            handle = getattr(attrs, name)
            if handle is not None and handle not in textures:
                raise PackFormatError(f"{where}: unknown texture {handle}")

    for category in resolution.categories.values():
        check_textures(category.attributes, f"category {category.full_name}")

    maps: Dict[int, MapData] = {}
    maps_dir = directory / MAPS_DIR
    map_files: List[Path] = sorted(maps_dir.glob("*.json")) if maps_dir.is_dir() else []
    for path in map_files:
        where = f"{MAPS_DIR}/{path.name}"
        try:
            map_id = int(path.stem)
        except ValueError as exc:
            raise PackFormatError(f"{where}: file name is not a map id") from exc
        document = _load_json(path)
        if _require(document, "map_id", where) != map_id:
            raise PackFormatError(f"{where}: map_id does not match file name")

        data = MapData(map_id=map_id)
        for index, entry in enumerate(_require_list(document, "markers", where)):
            element = f"{where}: markers[{index}]"
            category_id = resolution.lookup(str(_require(entry, "category", element)))
            if category_id is None:
                raise PackFormatError(f"{element}: unknown category {entry['category']!r}")
            attributes = _decode_attributes(entry.get("attributes"), element)
            check_textures(attributes, element)
            data.markers.append(
                Marker(
                    id=index,
                    map_id=map_id,
                    position=_decode_position(entry, element),
                    category_id=category_id,
                    guid=_decode_guid(entry, element),
                    attributes=attributes,
                )
            )
        for index, entry in enumerate(_require_list(document, "trails", where)):
            element = f"{where}: trails[{index}]"
            category_id = resolution.lookup(str(_require(entry, "category", element)))
            if category_id is None:
                raise PackFormatError(f"{element}: unknown category {entry['category']!r}")
            handle = _require(entry, "trail", element)
            if not isinstance(handle, str) or handle not in trail_binaries:
                raise PackFormatError(f"{element}: unknown trail binary {handle}")
            attributes = _decode_attributes(entry.get("attributes"), element)
            check_textures(attributes, element)
            data.trails.append(
                Trail(
                    id=index,
                    map_id=map_id,
                    category_id=category_id,
                    trail_handle=handle,
                    position=_decode_position(entry, element),
                    guid=_decode_guid(entry, element),
                    attributes=attributes,
                )
            )
        maps[map_id] = data

    logger.info(
        f"Read JSON tree from {directory}: {len(resolution.categories)} categories, "
        f"{len(maps)} maps"
    )
    return Pack(
        metadata=metadata,
        categories=resolution.categories,
        by_full_name=resolution.by_full_name,
        templates=resolution.templates,
        store=store,
        textures=textures,
        trail_binaries=trail_binaries,
        maps=dict(sorted(maps.items())),
    )
