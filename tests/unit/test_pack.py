"""Unit tests for pack assembly and the collaborator-facing queries."""

import pytest

from markerpack.config import CompilerConfig
from markerpack.core.categories import BehaviorKind
from markerpack.core.content import content_handle
from markerpack.core.errors import ArchiveError, ElementError, FileParseError
from markerpack.core.pack import (
    MARKER_MEMBER,
    TRAIL_MEMBER,
    Author,
    PackAssembler,
    PackMetadata,
    compile_pack,
    default_metadata,
)
from markerpack.pipeline import PipelineLogger
from tests.fixtures import (
    DEFAULT_NODES,
    ROUTE_NODES,
    make_png,
    make_zip,
    overlay_xml,
    sample_pack_files,
)


class TestCompilePack:
    """Tests for compiling the sample archive."""

    def test_category_table(self, pack):
        """Test ids, full names and parent links."""
        assert pack.by_full_name == {"a": 0, "a.b": 1, "a.hidden": 2, "routes": 3}
        assert pack.roots == [0, 3]
        assert pack.categories[0].display_name == "Alpha"
        assert pack.categories[1].display_name == "B"
        assert pack.categories[1].parent_id == 0
        assert pack.categories[0].children == [1, 2]

    def test_maps_and_counts(self, pack):
        """Test marker and trail bucketing."""
        assert sorted(pack.maps) == [15, 50]
        assert len(pack.maps[15].markers) == 2
        assert len(pack.maps[15].trails) == 1
        assert len(pack.maps[50].markers) == 1
        assert len(pack.maps[50].trails) == 1
        assert pack.marker_count() == 3
        assert pack.trail_count() == 2

    def test_diagnostics(self, compiled):
        """Test that only the missing icon is reported."""
        _, diagnostics = compiled
        (diagnostic,) = list(diagnostics)
        assert diagnostic.kind == "AssetMissingError"
        assert diagnostic.source == "markers.xml"
        assert diagnostic.element == "POI #2"

    def test_ingestion_diagnostics_returned(self):
        """Test that problems found while reading the archive reach the caller."""
        archive = make_zip(
            {
                "broken.xml": b"<OverlayData><POIs>",
                "markers.xml": overlay_xml(
                    '<MarkerCategory name="A"/>'
                    '<POIs><POI type="A" GUID="g2"/><POI MapID="1" type="A"/></POIs>'
                ),
                "readme.txt": b"hello",
            }
        )
        pack, diagnostics = compile_pack(archive)

        assert pack.marker_count() == 1
        (parse_error,) = diagnostics.of_kind(FileParseError)
        assert parse_error.source == "broken.xml"
        (element_error,) = diagnostics.of_kind(ElementError)
        assert element_error.source == "markers.xml"
        assert element_error.element == "g2"
        (archive_warning,) = diagnostics.for_source(None).warnings
        assert "readme.txt" in archive_warning.message
        assert diagnostics.error_count == 0

    def test_textures_and_trails_deduplicated(self, pack):
        """Test content tables."""
        assert len(pack.textures) == 2
        assert len(pack.trail_binaries) == 2
        icon = pack.templates[0].icon_file
        assert icon == content_handle(make_png(color=(255, 0, 0, 255)))
        assert pack.textures[icon].width == 4

    def test_positions_in_inches(self, pack):
        """Test that marker positions are converted from meters."""
        marker = pack.maps[15].markers[0]
        assert marker.guid == "m1"
        assert marker.position == pytest.approx((39.37008, 78.74016, 118.11024))

    def test_default_metadata(self, pack, pack_zip_path):
        """Test pack name and id derived from the archive."""
        assert pack.metadata.name == "tekkit"
        assert len(pack.metadata.pack_id) == 16
        again, _ = compile_pack(pack_zip_path)
        assert again.metadata.pack_id == pack.metadata.pack_id

    def test_explicit_metadata(self, pack_zip):
        """Test that given metadata is kept."""
        metadata = PackMetadata(name="Tekkit", pack_id="t1", authors=[Author("Tekkit", "t@example.com")])
        pack, _ = compile_pack(pack_zip, metadata=metadata)
        assert pack.metadata is metadata

    def test_bytes_source_named_pack(self):
        """Test the fallback name for in-memory archives."""
        metadata = default_metadata(b"zip", {"a.xml": b"1"})
        assert metadata.name == "pack"

    def test_pack_id_depends_on_content(self):
        """Test that different entries give different ids."""
        a = default_metadata("x.zip", {"a.xml": b"1"})
        b = default_metadata("x.zip", {"a.xml": b"2"})
        assert a.pack_id != b.pack_id

    def test_archive_error_is_fatal(self):
        """Test that an unreadable archive raises."""
        with pytest.raises(ArchiveError):
            compile_pack(b"not a zip")

    def test_repr(self, pack):
        """Test the pack summary repr."""
        assert repr(pack) == "Pack(name='tekkit', categories=4, maps=2, markers=3, trails=2)"


class TestActiveQueries:
    """Tests for active_markers_for and active_trails_for."""

    def test_effective_attributes(self, pack):
        """Test marker override, category template and default fallback."""
        first, second = pack.active_markers_for(15)

        assert first.marker.guid == "m1"
        assert first.category.full_name == "a.b"
        assert first.attributes.alpha == 1.0
        assert first.attributes.color == (255, 0, 0, 255)
        assert first.attributes.icon_size == 1.0
        assert first.attributes.icon_file == pack.templates[0].icon_file

        assert second.attributes.alpha == 0.25
        assert second.attributes.behavior.kind == BehaviorKind.REAPPEAR_AFTER_TIMER
        assert second.attributes.behavior.reset_length == 30

    def test_disabled_category_hidden_by_default(self, pack):
        """Test that categories with defaulttoggle=0 are not active."""
        assert pack.active_markers_for(50) == []
        enabled = {pack.by_full_name["a.hidden"]}
        (resolved,) = pack.active_markers_for(50, enabled=enabled)
        assert resolved.category.full_name == "a.hidden"
        # The missing icon leaves the category icon in effect
        assert resolved.attributes.icon_file == pack.templates[0].icon_file

    def test_unknown_map(self, pack):
        """Test that an unknown map has no active content."""
        assert pack.active_markers_for(999) == []
        assert pack.active_trails_for(999) == []

    def test_trails_with_geometry(self, pack):
        """Test trail geometry and inherited trail texture."""
        (route,) = pack.active_trails_for(15)
        assert route.trail.guid == "t1"
        assert route.binary.node_count == len(ROUTE_NODES)
        assert route.attributes.texture == pack.templates[3].texture
        assert route.attributes.trail_data == "trails/route.trl"

        (inherited,) = pack.active_trails_for(50)
        assert inherited.binary.node_count == len(DEFAULT_NODES)
        assert inherited.attributes.trail_data == "trails/default.trl"

    def test_default_enabled_follows_ancestors(self, pack):
        """Test that disabling a parent disables its children."""
        assert pack.default_enabled() == {0, 1, 3}
        pack.categories[0].default_enabled = False
        assert pack.default_enabled() == {3}


class TestMembership:
    """Tests for members_of and summary."""

    def test_members_of(self, pack):
        """Test marker and trail membership per category."""
        assert pack.members_of(1) == [(15, MARKER_MEMBER, 0)]
        assert pack.members_of(3) == [(15, TRAIL_MEMBER, 0), (50, TRAIL_MEMBER, 0)]
        assert pack.members_of(99) == []

    def test_summary(self, pack):
        """Test per-map summary counts."""
        summary = pack.summary()
        assert list(summary.columns) == ["map_id", "markers", "trails", "categories"]
        assert summary.to_dict(orient="records") == [
            {"map_id": 15, "markers": 2, "trails": 1, "categories": 3},
            {"map_id": 50, "markers": 1, "trails": 1, "categories": 2},
        ]

    def test_category_by_name(self, pack):
        """Test case-insensitive full-name lookup."""
        assert pack.category_by_name("A.Hidden").id == 2
        assert pack.category_by_name("a.nope") is None


class TestPackAssembler:
    """Tests for PackAssembler phases."""

    def test_phases_logged(self, pack_zip):
        """Test compiling with a phase logger attached."""
        logger = PipelineLogger(log_level="DEBUG", log_name="markerpack.test")
        logger.setup()
        assembler = PackAssembler(CompilerConfig.default(), logger)
        pack, diagnostics = assembler.compile(pack_zip)

        assert pack.marker_count() == 3
        assert diagnostics is assembler.diagnostics
        assert pack.store is assembler.store

    def test_relative_resolution_configurable(self):
        """Test that the ingestion config reaches the normalizer."""
        files = {
            "data/markers.xml": overlay_xml(
                '<MarkerCategory name="A" iconFile="icons/x.png"/>'
            ),
            "data/icons/x.png": make_png(),
        }
        config = CompilerConfig.from_dict({"ingestion": {"resolve_relative_to_file": False}})
        pack, diagnostics = compile_pack(make_zip(files), config=config)
        assert pack.categories[0].attributes.icon_file is None
        assert diagnostics.warning_count == 1

    def test_files_fixture_is_complete(self):
        """Sanity check of the sample pack."""
        assert set(sample_pack_files()) == {
            "categories.xml",
            "markers.xml",
            "Icons/A.png",
            "icons/trail.png",
            "trails/route.trl",
            "trails/default.trl",
        }
