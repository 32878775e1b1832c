"""Compiler configuration.

Example
-------
>>> from markerpack.config import CompilerConfig
>>> config = CompilerConfig.from_yaml("markerpack.yaml")
>>> config.ingestion.root_tag
'OverlayData'
"""

from .settings import CompilerConfig, IngestionConfig, LoggingConfig, SerializerConfig

__all__ = [
    "CompilerConfig",
    "IngestionConfig",
    "SerializerConfig",
    "LoggingConfig",
]
