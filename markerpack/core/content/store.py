"""Hash-addressed blob storage."""

import hashlib
from typing import Dict, Iterator

Handle = str


def content_handle(data: bytes) -> Handle:
    """Return the handle (SHA-256 hex digest) identifying ``data``."""
    return hashlib.sha256(data).hexdigest()


class ContentStore:
    """Stores each distinct byte sequence once, keyed by its content hash.

    There is no eviction: blobs live as long as the owning pack. The store
    is not thread-safe; each pack owns its own store.

    Example
    -------
    >>> store = ContentStore()
    >>> a = store.insert(b"png bytes")
    >>> a == store.insert(b"png bytes")
    True
    >>> store.get(a)
    b'png bytes'
    """

    def __init__(self) -> None:
        self._blobs: Dict[Handle, bytes] = {}

    def insert(self, data: bytes) -> Handle:
        """Store ``data`` unless identical bytes are present; return its handle."""
        data = bytes(data)
        handle = content_handle(data)
        self._blobs.setdefault(handle, data)
        return handle

    def get(self, handle: Handle) -> bytes:
        """Return the bytes for ``handle``. Raises KeyError if unknown."""
        try:
            return self._blobs[handle]
        except KeyError:
            raise KeyError(f"Unknown content handle: {handle}") from None

    def handles(self) -> Iterator[Handle]:
        return iter(self._blobs)

    def total_bytes(self) -> int:
        return sum(len(blob) for blob in self._blobs.values())

    def __contains__(self, handle: object) -> bool:
        return handle in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
