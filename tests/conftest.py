"""Pytest configuration and shared fixtures for markerpack tests."""

import sys
from pathlib import Path

import pytest

# Add package to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from markerpack.core.pack import compile_pack
from tests.fixtures import sample_pack_files, sample_pack_zip


# ============================================================================
# Archive Fixtures
# ============================================================================


@pytest.fixture
def pack_files() -> dict:
    """Files of the sample pack (path -> bytes)."""
    return sample_pack_files()


@pytest.fixture
def pack_zip() -> bytes:
    """The sample pack as zip archive bytes."""
    return sample_pack_zip()


@pytest.fixture
def pack_zip_path(tmp_path: Path, pack_zip: bytes) -> Path:
    """The sample pack written to disk as ``tekkit.zip``."""
    path = tmp_path / "tekkit.zip"
    path.write_bytes(pack_zip)
    return path


# ============================================================================
# Compiled Pack Fixtures
# ============================================================================


@pytest.fixture
def compiled(pack_zip_path: Path):
    """(pack, diagnostics) compiled from the sample archive."""
    return compile_pack(pack_zip_path)


@pytest.fixture
def pack(compiled):
    """The compiled sample pack."""
    return compiled[0]


@pytest.fixture
def tmp_output_dir(tmp_path: Path) -> Path:
    """Create a temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir(parents=True, exist_ok=True)
    return output_dir


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def sample_config_path(tmp_path) -> Path:
    """Create a sample compiler configuration file."""
    import yaml

    config = {
        "markerpack": {
            "ingestion": {
                "root_tag": "OverlayData",
                "position_scale": 1.0,
            },
            "serializer": {
                "json_indent": 0,
            },
            "logging": {
                "level": "DEBUG",
            },
        }
    }

    path = tmp_path / "markerpack.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)

    return path
