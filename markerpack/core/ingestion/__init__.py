"""Reading marker pack archives into raw categories and records.

Example
-------
>>> from markerpack.core.ingestion import ingest_archive
>>> result = ingest_archive("tekkit.taco")
>>> len(result.records), result.diagnostics.warning_count
(1203, 2)
"""

from .archive import read_archive_entries
from .loader import IngestionResult, ingest_archive, ingest_entries
from .xml_parser import MARKER, TRAIL, OverlayParser, ParsedFile, RawRecord, parse_overlay_xml

__all__ = [
    "read_archive_entries",
    "parse_overlay_xml",
    "OverlayParser",
    "ParsedFile",
    "RawRecord",
    "MARKER",
    "TRAIL",
    "IngestionResult",
    "ingest_entries",
    "ingest_archive",
]
