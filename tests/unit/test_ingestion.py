"""Unit tests for archive reading and overlay XML parsing."""

import io
import zipfile

import pytest

from markerpack.config import IngestionConfig
from markerpack.core.errors import ArchiveError, Diagnostics
from markerpack.core.ingestion import (
    MARKER,
    TRAIL,
    ingest_archive,
    ingest_entries,
    parse_overlay_xml,
    read_archive_entries,
)
from tests.fixtures import make_png, make_zip, overlay_xml


class TestReadArchiveEntries:
    """Tests for read_archive_entries."""

    def test_paths_lowercased_and_dirs_skipped(self):
        """Test entry normalization."""
        data = make_zip({"Data/Markers.XML": b"<x/>"}, directories=["Data"])
        entries = read_archive_entries(data)
        assert entries == {"data/markers.xml": b"<x/>"}

    def test_reads_from_path(self, tmp_path):
        """Test reading an archive file from disk."""
        path = tmp_path / "pack.taco"
        path.write_bytes(make_zip({"a.xml": b"<a/>"}))
        assert read_archive_entries(path) == {"a.xml": b"<a/>"}

    def test_missing_file_raises(self, tmp_path):
        """Test that a missing archive is fatal."""
        with pytest.raises(ArchiveError, match="not found"):
            read_archive_entries(tmp_path / "absent.zip")

    def test_not_a_zip_raises(self):
        """Test that garbage bytes are fatal."""
        with pytest.raises(ArchiveError, match="Cannot read archive"):
            read_archive_entries(b"definitely not a zip file")

    def test_unsafe_path_raises(self):
        """Test that entries escaping the archive root are rejected."""
        with pytest.raises(ArchiveError, match="Unsafe path"):
            read_archive_entries(make_zip({"../evil.xml": b"<x/>"}))

    def test_duplicate_case_insensitive_entry_raises(self):
        """Test that two entries differing only by case are rejected."""
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("A.xml", b"1")
            archive.writestr("a.XML", b"2")
        with pytest.raises(ArchiveError, match="Duplicate entry"):
            read_archive_entries(buffer.getvalue())


class TestParseOverlayXml:
    """Tests for parse_overlay_xml."""

    def test_categories_and_records(self):
        """Test parsing nested categories and POI/Trail elements."""
        diagnostics = Diagnostics()
        data = overlay_xml(
            '<MarkerCategory name="A" DisplayName="Alpha" isSeparator="1">'
            '<MarkerCategory name="B" defaultToggle="false" alpha="0.5"/>'
            "</MarkerCategory>"
            "<POIs>"
            '<POI MapID="15" xpos="1" ypos="2" zpos="3" type="A.B" GUID="abc"/>'
            '<Trail type="A" trailData="t.trl"/>'
            "</POIs>"
        )
        parsed = parse_overlay_xml("pack.xml", data, diagnostics, position_scale=2.0)

        assert len(diagnostics) == 0
        (root,) = parsed.categories
        assert root.name == "A"
        assert root.display_name == "Alpha"
        assert root.is_separator is True
        (child,) = root.children
        assert child.default_enabled is False
        assert child.attributes.alpha == 0.5
        assert child.source == "pack.xml"

        marker, trail = parsed.records
        assert marker.kind == MARKER
        assert marker.map_id == 15
        assert marker.position == (2.0, 4.0, 6.0)
        assert marker.guid == "abc"
        assert marker.element == "abc"
        assert trail.kind == TRAIL
        assert trail.map_id is None
        assert trail.attributes.trail_data == "t.trl"
        assert trail.element == "Trail #1"

    def test_positions_default_to_inches(self):
        """Test that positions are scaled from meters to inches by default."""
        diagnostics = Diagnostics()
        data = overlay_xml('<POIs><POI MapID="1" xpos="1" type="a"/></POIs>')
        (record,) = parse_overlay_xml("p.xml", data, diagnostics).records
        assert record.position == pytest.approx((39.37008, 0.0, 0.0))

    def test_malformed_file_recorded_and_skipped(self):
        """Test that a malformed file yields a FileParseError diagnostic."""
        diagnostics = Diagnostics()
        parsed = parse_overlay_xml("broken.xml", b"<OverlayData><POIs>", diagnostics)

        assert parsed is None
        (diagnostic,) = diagnostics.for_source("broken.xml").warnings
        assert diagnostic.kind == "FileParseError"
        assert "malformed XML" in diagnostic.message

    def test_wrong_root_rejected(self):
        """Test that a non-overlay root element skips the file."""
        diagnostics = Diagnostics()
        assert parse_overlay_xml("x.xml", b"<Other/>", diagnostics) is None
        assert diagnostics.warnings[0].kind == "FileParseError"

    def test_root_tag_case_insensitive_and_bom(self):
        """Test that a BOM and differently cased root are accepted."""
        diagnostics = Diagnostics()
        data = b"\xef\xbb\xbf<overlaydata><MarkerCategory name='A'/></overlaydata>"
        parsed = parse_overlay_xml("x.xml", data, diagnostics)
        assert parsed is not None
        assert [c.name for c in parsed.categories] == ["A"]

    def test_invalid_utf8_rejected(self):
        """Test that non-UTF-8 content skips the file."""
        diagnostics = Diagnostics()
        assert parse_overlay_xml("x.xml", b"<OverlayData>\xff</OverlayData>", diagnostics) is None
        assert "UTF-8" in diagnostics.warnings[0].message

    def test_poi_without_type_dropped(self):
        """Test that a POI without a type is dropped with an ElementError."""
        diagnostics = Diagnostics()
        data = overlay_xml('<POIs><POI MapID="1"/><POI MapID="1" type="a"/></POIs>')
        parsed = parse_overlay_xml("p.xml", data, diagnostics)

        assert len(parsed.records) == 1
        (diagnostic,) = diagnostics.warnings
        assert diagnostic.kind == "ElementError"
        assert diagnostic.element == "POI #0"
        assert diagnostic.source == "p.xml"

    def test_poi_without_map_id_dropped(self):
        """Test that POIs need a MapID while trails do not."""
        diagnostics = Diagnostics()
        data = overlay_xml(
            '<POIs><POI type="a" GUID="g1"/><POI MapID="x" type="a"/>'
            '<Trail type="a" MapID="x" trailData="t.trl"/></POIs>'
        )
        parsed = parse_overlay_xml("p.xml", data, diagnostics)

        assert [r.kind for r in parsed.records] == [TRAIL]
        kinds = [(d.kind, d.element) for d in diagnostics.warnings]
        assert ("ElementError", "g1") in kinds
        assert ("ElementError", "POI #1") in kinds
        assert ("Warning", "Trail #2") in kinds

    def test_bad_attribute_value_is_warning(self):
        """Test that a bad attribute value keeps the element."""
        diagnostics = Diagnostics()
        data = overlay_xml('<POIs><POI MapID="1" type="a" alpha="x" ypos="up"/></POIs>')
        (record,) = parse_overlay_xml("p.xml", data, diagnostics).records

        assert record.attributes.alpha is None
        assert record.position == (0.0, 0.0, 0.0)
        assert diagnostics.warning_count == 2
        assert diagnostics.error_count == 0

    def test_unnamed_category_skipped(self):
        """Test that a category without a name drops its subtree."""
        diagnostics = Diagnostics()
        data = overlay_xml(
            '<MarkerCategory><MarkerCategory name="Child"/></MarkerCategory>'
            '<MarkerCategory name="Kept"/>'
        )
        parsed = parse_overlay_xml("c.xml", data, diagnostics)

        assert [c.name for c in parsed.categories] == ["Kept"]
        assert diagnostics.warnings[0].element == "MarkerCategory #0"


class TestIngestEntries:
    """Tests for ingest_entries and ingest_archive."""

    def test_classifies_entries(self):
        """Test that XML is parsed, assets kept and other files reported."""
        entries = {
            "b.xml": overlay_xml('<MarkerCategory name="B"/>'),
            "a.xml": overlay_xml('<MarkerCategory name="A"/>'),
            "icon.png": make_png(),
            "route.trl": b"\x00" * 8,
            "readme.txt": b"hello",
            "license": b"MIT",
        }
        result = ingest_entries(entries)

        assert result.xml_files == ["a.xml", "b.xml"]
        assert [c.name for c in result.categories] == ["A", "B"]
        assert set(result.assets) == {"icon.png", "route.trl"}
        messages = [d.message for d in result.diagnostics.for_source(None).warnings]
        assert any("readme.txt" in m for m in messages)
        assert any("without extension" in m for m in messages)

    def test_malformed_file_does_not_abort(self):
        """Test that one broken file leaves the others intact."""
        entries = {
            "bad.xml": b"<OverlayData>",
            "good.xml": overlay_xml('<MarkerCategory name="A"/>'),
        }
        result = ingest_entries(entries)

        assert result.xml_files == ["good.xml"]
        assert len(result.diagnostics.for_source("bad.xml").warnings) == 1

    def test_no_xml_warns(self):
        """Test that an archive without XML is reported."""
        result = ingest_entries({"icon.png": make_png()})
        assert "no XML" in result.diagnostics.warnings[0].message

    def test_appends_to_given_bundle(self):
        """Test that an empty caller bundle is filled, not replaced."""
        diagnostics = Diagnostics()
        entries = {"bad.xml": b"<OverlayData>", "readme.txt": b"hello"}
        result = ingest_entries(entries, diagnostics=diagnostics)

        assert result.diagnostics is diagnostics
        assert diagnostics.for_source("bad.xml").warnings[0].kind == "FileParseError"
        assert any("readme.txt" in d.message for d in diagnostics.for_source(None).warnings)

    def test_custom_extensions(self):
        """Test that configured extensions drive classification."""
        config = IngestionConfig(xml_extensions=[".poi"])
        result = ingest_entries({"markers.poi": overlay_xml('<MarkerCategory name="A"/>')}, config)
        assert result.xml_files == ["markers.poi"]

    def test_ingest_archive(self, pack_zip):
        """Test ingesting the sample archive."""
        result = ingest_archive(pack_zip)
        assert result.xml_files == ["categories.xml", "markers.xml"]
        assert len(result.records) == 5
        assert "icons/a.png" in result.assets
        assert len(result.diagnostics) == 0
