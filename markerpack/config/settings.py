"""Configuration classes for pack compilation.

Every setting has a default so a compiler can run without a config file.
"""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..core.categories.template import INCHES_PER_METER


@dataclass
class IngestionConfig:
    """Configuration for reading marker pack archives.

    Attributes
    ----------
    root_tag : str
        Required root element of overlay XML files (matched case-insensitively)
    xml_extensions : List[str]
        Extensions parsed as overlay XML
    image_extensions : List[str]
        Extensions treated as texture assets
    trail_extensions : List[str]
        Extensions treated as trail binaries
    position_scale : float
        Factor applied to XML positions (meters to inches)
    resolve_relative_to_file : bool
        Also look up asset paths relative to the referencing XML file
    """

    root_tag: str = "OverlayData"
    xml_extensions: List[str] = field(default_factory=lambda: [".xml"])
    image_extensions: List[str] = field(
        default_factory=lambda: [".png", ".jpg", ".jpeg", ".bmp", ".tga", ".dds"]
    )
    trail_extensions: List[str] = field(default_factory=lambda: [".trl"])
    position_scale: float = INCHES_PER_METER
    resolve_relative_to_file: bool = True

    def classify(self, path: str) -> Optional[str]:
        """Return "xml", "image" or "trail" for a path, or None if unknown."""
        suffix = Path(path).suffix.lower()
        if not suffix:
            return None
        if suffix in self.xml_extensions:
            return "xml"
        if suffix in self.image_extensions:
            return "image"
        if suffix in self.trail_extensions:
            return "trail"
        return None


@dataclass
class SerializerConfig:
    """Configuration for the JSON tree and archive writers.

    Attributes
    ----------
    json_indent : int
        Indentation of written JSON files (0 for compact output)
    sort_keys : bool
        Sort keys in written JSON files
    """

    json_indent: int = 2
    sort_keys: bool = True


@dataclass
class LoggingConfig:
    """Configuration for compiler logging.

    Attributes
    ----------
    level : str
        Log level name for console output
    log_dir : str, optional
        Directory for timestamped log files (no file logging if unset)
    """

    level: str = "INFO"
    log_dir: Optional[str] = None


def _section(cls, data: Optional[Dict[str, Any]], name: str):
    """Build a config section, rejecting unknown keys."""
    data = data or {}
    if not isinstance(data, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown keys in config section '{name}': {sorted(unknown)}")
    return cls(**data)


@dataclass
class CompilerConfig:
    """Master configuration for pack compilation.

    Attributes
    ----------
    ingestion : IngestionConfig
        Archive reading configuration
    serializer : SerializerConfig
        Output writer configuration
    logging : LoggingConfig
        Logging configuration
    """

    ingestion: IngestionConfig = field(default_factory=IngestionConfig)
    serializer: SerializerConfig = field(default_factory=SerializerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_yaml(cls, path: Path) -> "CompilerConfig":
        """Load configuration from YAML file.

        Raises
        ------
        FileNotFoundError
            If the file does not exist
        ValueError
            If the file contains unknown sections or keys
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Handle nested markerpack section
        if "markerpack" in data:
            data = data["markerpack"]

        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompilerConfig":
        unknown = set(data) - {"ingestion", "serializer", "logging"}
        if unknown:
            raise ValueError(f"Unknown config sections: {sorted(unknown)}")
        return cls(
            ingestion=_section(IngestionConfig, data.get("ingestion"), "ingestion"),
            serializer=_section(SerializerConfig, data.get("serializer"), "serializer"),
            logging=_section(LoggingConfig, data.get("logging"), "logging"),
        )

    @classmethod
    def default(cls) -> "CompilerConfig":
        """Create default configuration."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "ingestion": {
                "root_tag": self.ingestion.root_tag,
                "xml_extensions": list(self.ingestion.xml_extensions),
                "image_extensions": list(self.ingestion.image_extensions),
                "trail_extensions": list(self.ingestion.trail_extensions),
                "position_scale": self.ingestion.position_scale,
                "resolve_relative_to_file": self.ingestion.resolve_relative_to_file,
            },
            "serializer": {
                "json_indent": self.serializer.json_indent,
                "sort_keys": self.serializer.sort_keys,
            },
            "logging": {
                "level": self.logging.level,
                "log_dir": self.logging.log_dir,
            },
        }
