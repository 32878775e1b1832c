"""Unit tests for the command-line interface."""

import logging

import pytest
from click.testing import CliRunner

from markerpack.cli.main import cli, parse_author
from markerpack.core.pack import assembler
from tests.fixtures import make_zip, overlay_xml


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture(autouse=True)
def reset_cli_logger():
    """Detach handlers bound to the runner's streams after each test."""
    yield
    logging.getLogger("markerpack").handlers = []


@pytest.fixture
def compiled_outputs(runner, pack_zip_path, tmp_output_dir):
    """Compile the sample archive to both output formats."""
    json_out = tmp_output_dir / "tree"
    archive_out = tmp_output_dir / "tekkit.mkpk"
    result = runner.invoke(
        cli,
        [
            "compile",
            str(pack_zip_path),
            "--json-out",
            str(json_out),
            "--archive-out",
            str(archive_out),
        ],
        obj={},
    )
    assert result.exit_code == 0, result.output
    return json_out, archive_out, result


class TestParseAuthor:
    """Tests for parse_author."""

    def test_name_and_email(self):
        """Test the 'Name <email>' form."""
        author = parse_author("Tekkit <tekkit@example.com>")
        assert author.name == "Tekkit"
        assert author.email == "tekkit@example.com"

    def test_name_only(self):
        """Test a bare name."""
        author = parse_author("  Tekkit  ")
        assert author.name == "Tekkit"
        assert author.email is None


class TestCompileCommand:
    """Tests for `markerpack compile`."""

    def test_writes_outputs(self, compiled_outputs):
        """Test that both outputs are written and the pack is summarized."""
        json_out, archive_out, result = compiled_outputs
        assert (json_out / "categories.json").is_file()
        assert archive_out.is_file()
        assert "Pack(name='tekkit'" in result.output
        assert "0 errors, 1 warnings" in result.output

    def test_metadata_options(self, runner, pack_zip_path, tmp_output_dir):
        """Test --name, --author and --source-url."""
        archive_out = tmp_output_dir / "named.mkpk"
        result = runner.invoke(
            cli,
            [
                "compile",
                str(pack_zip_path),
                "--archive-out",
                str(archive_out),
                "--name",
                "Tekkit's Workshop",
                "--author",
                "Tekkit <t@example.com>",
                "--source-url",
                "https://example.com/pack",
            ],
            obj={},
        )
        assert result.exit_code == 0, result.output

        inspected = runner.invoke(cli, ["inspect", str(archive_out)], obj={})
        assert "Tekkit's Workshop" in inspected.output
        assert "author: Tekkit <t@example.com>" in inspected.output

    def test_metadata_options_read_archive_once(self, runner, pack_zip_path, monkeypatch):
        """Test that metadata overrides do not re-read the archive."""
        calls = []
        original = assembler.read_archive_entries

        def counting(*args, **kwargs):
            calls.append(args[0])
            return original(*args, **kwargs)

        monkeypatch.setattr(assembler, "read_archive_entries", counting)
        result = runner.invoke(
            cli,
            ["compile", str(pack_zip_path), "--name", "Renamed", "--source-url", "https://example.com"],
            obj={},
        )
        assert result.exit_code == 0, result.output
        assert "Pack(name='Renamed'" in result.output
        assert len(calls) == 1

    def test_report(self, runner, pack_zip_path, tmp_output_dir):
        """Test writing a diagnostics report."""
        report = tmp_output_dir / "report.csv"
        result = runner.invoke(
            cli, ["compile", str(pack_zip_path), "--report", str(report)], obj={}
        )
        assert result.exit_code == 0, result.output
        assert "AssetMissingError" in report.read_text()

    def test_config_file(self, runner, pack_zip_path, sample_config_path, tmp_output_dir):
        """Test compiling with a configuration file."""
        result = runner.invoke(
            cli,
            ["compile", str(pack_zip_path), "-c", str(sample_config_path)],
            obj={},
        )
        assert result.exit_code == 0, result.output

    def test_invalid_config(self, runner, pack_zip_path, tmp_path):
        """Test that a bad configuration file is reported."""
        config = tmp_path / "bad.yaml"
        config.write_text("rendering: {}\n")
        result = runner.invoke(cli, ["compile", str(pack_zip_path), "-c", str(config)], obj={})
        assert result.exit_code != 0
        assert "Invalid config" in result.output

    def test_unreadable_archive(self, runner, tmp_path):
        """Test that an archive error becomes a CLI error."""
        path = tmp_path / "broken.zip"
        path.write_bytes(b"not a zip")
        result = runner.invoke(cli, ["compile", str(path)], obj={})
        assert result.exit_code == 1
        assert "Cannot read archive" in result.output

    def test_strict_fails_on_errors(self, runner, tmp_path):
        """Test that --strict exits non-zero when a trail binary is corrupt."""
        data = overlay_xml(
            '<MarkerCategory name="A"/><POIs><Trail type="A" trailData="t.trl"/></POIs>'
        )
        path = tmp_path / "corrupt.zip"
        path.write_bytes(make_zip({"p.xml": data, "t.trl": b"\x00" * 10}))

        relaxed = runner.invoke(cli, ["compile", str(path)], obj={})
        assert relaxed.exit_code == 0
        strict = runner.invoke(cli, ["compile", str(path), "--strict"], obj={})
        assert strict.exit_code == 1


class TestInspectCommand:
    """Tests for `markerpack inspect`."""

    def test_inspect_archive(self, runner, compiled_outputs):
        """Test the archive summary."""
        _, archive_out, _ = compiled_outputs
        result = runner.invoke(cli, ["inspect", str(archive_out)], obj={})
        assert result.exit_code == 0, result.output
        assert "4 categories, 2 textures, 2 trail binaries" in result.output
        assert "map_id" in result.output

    def test_inspect_json_tree(self, runner, compiled_outputs):
        """Test the JSON tree summary."""
        json_out, _, _ = compiled_outputs
        result = runner.invoke(cli, ["inspect", str(json_out)], obj={})
        assert result.exit_code == 0, result.output
        assert "4 categories" in result.output

    def test_inspect_single_map(self, runner, compiled_outputs):
        """Test listing one map from the archive."""
        _, archive_out, _ = compiled_outputs
        result = runner.invoke(cli, ["inspect", str(archive_out), "--map", "15"], obj={})
        assert result.exit_code == 0, result.output
        assert "a.b" in result.output
        assert "m1" in result.output
        assert "routes" in result.output

    def test_inspect_unknown_map(self, runner, compiled_outputs):
        """Test that an absent map is an error."""
        _, archive_out, _ = compiled_outputs
        result = runner.invoke(cli, ["inspect", str(archive_out), "--map", "99"], obj={})
        assert result.exit_code == 1
        assert "Map 99 not found" in result.output


class TestValidateCommand:
    """Tests for `markerpack validate`."""

    def test_valid_archive(self, runner, compiled_outputs):
        """Test a valid archive."""
        _, archive_out, _ = compiled_outputs
        result = runner.invoke(cli, ["validate", str(archive_out)], obj={})
        assert result.exit_code == 0, result.output
        assert "OK" in result.output
        assert "MRKS: 3" in result.output

    def test_corrupt_archive(self, runner, compiled_outputs):
        """Test that a corrupt archive fails validation."""
        _, archive_out, _ = compiled_outputs
        data = bytearray(archive_out.read_bytes())
        data[-1] ^= 0xFF
        archive_out.write_bytes(bytes(data))

        result = runner.invoke(cli, ["validate", str(archive_out)], obj={})
        assert result.exit_code == 1
        assert "checksum mismatch" in result.output
