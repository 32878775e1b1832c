"""Test fixtures for markerpack.

Provides builders for marker pack archives and their assets.
"""

from .packs import (
    DEFAULT_NODES,
    ROUTE_NODES,
    make_png,
    make_trail,
    make_zip,
    overlay_xml,
    sample_pack_files,
    sample_pack_zip,
)

__all__ = [
    "make_png",
    "make_trail",
    "make_zip",
    "overlay_xml",
    "sample_pack_files",
    "sample_pack_zip",
    "ROUTE_NODES",
    "DEFAULT_NODES",
]
