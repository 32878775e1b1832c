"""Command-line interface for markerpack.

Example Usage
-------------
    # From command line:
    markerpack --help
    markerpack compile pack.zip --json-out out/ --archive-out pack.mkpk
    markerpack inspect pack.mkpk --map 15
    markerpack validate pack.mkpk
"""

from .main import cli, main

__all__ = [
    "cli",
    "main",
]
