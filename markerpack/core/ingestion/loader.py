"""Classifying archive entries and collecting raw content from every file."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ...config import IngestionConfig
from ..categories.tree import RawCategory
from ..errors import Diagnostics
from .archive import ArchiveSource, read_archive_entries
from .xml_parser import RawRecord, parse_overlay_xml


@dataclass
class IngestionResult:
    """Raw content of a whole archive.

    Attributes:
        categories: Root raw categories of every file, in file order
        records: Raw marker/trail records of every file, in file order
        assets: Image and trail-binary entries (path -> bytes)
        xml_files: XML files that parsed successfully
        diagnostics: Warnings and errors collected while parsing
    """

    categories: List[RawCategory] = field(default_factory=list)
    records: List[RawRecord] = field(default_factory=list)
    assets: Dict[str, bytes] = field(default_factory=dict)
    xml_files: List[str] = field(default_factory=list)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)


def ingest_entries(
    entries: Dict[str, bytes],
    config: Optional[IngestionConfig] = None,
    diagnostics: Optional[Diagnostics] = None,
    logger: Optional[logging.Logger] = None,
) -> IngestionResult:
    """Parse every XML entry and collect asset entries.

    Parameters
    ----------
    entries : Dict[str, bytes]
        Archive entries as returned by :func:`read_archive_entries`
    config : IngestionConfig, optional
        Extension classification and parsing settings
    diagnostics : Diagnostics, optional
        Existing bundle to append to
    logger : logging.Logger, optional
        Logger instance

    Returns
    -------
    IngestionResult
        Raw categories, records, assets and diagnostics
    """
    config = config or IngestionConfig()
    logger = logger or logging.getLogger(__name__)
    result = IngestionResult(
        diagnostics=diagnostics if diagnostics is not None else Diagnostics()
    )

    xml_paths = []
    for path, data in entries.items():
        kind = config.classify(path)
        if kind == "xml":
            xml_paths.append(path)
        elif kind in ("image", "trail"):
            result.assets[path] = data
        elif "." not in path.rsplit("/", 1)[-1]:
            result.diagnostics.warn(f"file without extension ignored: {path}")
        else:
            result.diagnostics.warn(f"file of unknown type ignored: {path}")

    # Sorted so category precedence does not depend on zip entry order
    for path in sorted(xml_paths):
        parsed = parse_overlay_xml(
            path,
            entries[path],
            result.diagnostics,
            root_tag=config.root_tag,
            position_scale=config.position_scale,
        )
        if parsed is None:
            continue
        result.xml_files.append(path)
        result.categories.extend(parsed.categories)
        result.records.extend(parsed.records)

    if not xml_paths:
        result.diagnostics.warn("archive contains no XML files")

    logger.info(
        "Ingested %d/%d XML files: %d root categories, %d records, %d assets",
        len(result.xml_files),
        len(xml_paths),
        len(result.categories),
        len(result.records),
        len(result.assets),
    )
    return result


def ingest_archive(
    source: ArchiveSource,
    config: Optional[IngestionConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> IngestionResult:
    """Read a zip archive and ingest its entries.

    Raises
    ------
    ArchiveError
        If the archive cannot be opened or extracted
    """
    entries = read_archive_entries(source, logger=logger)
    return ingest_entries(entries, config=config, logger=logger)
