"""Unit tests for content storage and asset decoding."""

import numpy as np
import pytest

from markerpack.core.content import ContentStore, TextureAsset, TrailBinary, content_handle
from markerpack.core.errors import AssetMissingError, TrailBinaryCorrupt
from tests.fixtures import make_png, make_trail


class TestContentStore:
    """Tests for ContentStore."""

    def test_identical_bytes_stored_once(self):
        """Test that inserting the same bytes twice yields one blob."""
        store = ContentStore()
        first = store.insert(b"texture")
        second = store.insert(bytearray(b"texture"))

        assert first == second
        assert len(store) == 1
        assert store.total_bytes() == len(b"texture")

    def test_handle_is_sha256(self):
        """Test that handles are SHA-256 hex digests of the content."""
        store = ContentStore()
        handle = store.insert(b"abc")
        assert handle == content_handle(b"abc")
        assert len(handle) == 64

    def test_distinct_bytes_get_distinct_handles(self):
        """Test that different content is stored separately."""
        store = ContentStore()
        a = store.insert(b"a")
        b = store.insert(b"b")

        assert a != b
        assert set(store.handles()) == {a, b}
        assert store.get(a) == b"a"
        assert a in store

    def test_unknown_handle_raises(self):
        """Test that get() on an unknown handle raises KeyError."""
        with pytest.raises(KeyError, match="Unknown content handle"):
            ContentStore().get("0" * 64)


class TestTextureAsset:
    """Tests for TextureAsset decoding."""

    def test_decode_png(self):
        """Test that dimensions and format are read from a PNG."""
        data = make_png(8, 2)
        texture = TextureAsset.decode(content_handle(data), data)

        assert (texture.width, texture.height) == (8, 2)
        assert texture.format == "PNG"
        assert texture.extension == ".png"

    def test_undecodable_raises(self):
        """Test that non-image bytes raise AssetMissingError."""
        with pytest.raises(AssetMissingError, match="undecodable"):
            TextureAsset.decode("x", b"not an image")

    def test_extension_without_format(self):
        """Test the fallback extension."""
        assert TextureAsset("x", 1, 1).extension == ".img"


class TestTrailBinary:
    """Tests for TrailBinary parsing."""

    def test_from_bytes(self):
        """Test parsing header and nodes."""
        data = make_trail(15, [(1.0, 2.0, 3.0), (4.0, 5.0, 6.0)], version=2)
        binary = TrailBinary.from_bytes(data)

        assert binary.version == 2
        assert binary.map_id == 15
        assert binary.node_count == 2
        assert binary.nodes.dtype == np.float32
        np.testing.assert_array_equal(binary.nodes[1], [4.0, 5.0, 6.0])

    def test_to_bytes_reproduces_input(self):
        """Test that re-emitting a trail gives the original bytes."""
        data = make_trail(7, [(0.5, -1.25, 3.0)])
        assert TrailBinary.from_bytes(data).to_bytes() == data

    def test_header_only_is_empty(self):
        """Test that a trail with no nodes parses as empty."""
        binary = TrailBinary.from_bytes(make_trail(50))
        assert binary.is_empty
        assert binary.nodes.shape == (0, 3)

    def test_shorter_than_header_raises(self):
        """Test that fewer than 8 bytes is corrupt."""
        with pytest.raises(TrailBinaryCorrupt, match="header"):
            TrailBinary.from_bytes(b"\x00" * 7)

    def test_misaligned_nodes_raise(self):
        """Test that a partial node is corrupt."""
        data = make_trail(15, [(1.0, 2.0, 3.0)]) + b"\x00" * 5
        with pytest.raises(TrailBinaryCorrupt, match="misaligned"):
            TrailBinary.from_bytes(data)

    def test_equality(self):
        """Test value equality of trail binaries."""
        a = TrailBinary(0, 15, [[1.0, 2.0, 3.0]])
        b = TrailBinary.from_bytes(make_trail(15, [(1.0, 2.0, 3.0)]))
        assert a == b
        assert a != TrailBinary(0, 16, [[1.0, 2.0, 3.0]])
