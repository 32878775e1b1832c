"""Persisting packs as a JSON tree or as a binary archive."""

from .archive import (
    FORMAT_VERSION,
    MAGIC,
    ArchiveReader,
    encode_archive,
    read_archive,
    validate_archive,
    write_archive,
)
from .json_tree import read_json_tree, write_json_tree

__all__ = [
    "write_json_tree",
    "read_json_tree",
    "write_archive",
    "read_archive",
    "encode_archive",
    "validate_archive",
    "ArchiveReader",
    "MAGIC",
    "FORMAT_VERSION",
]
