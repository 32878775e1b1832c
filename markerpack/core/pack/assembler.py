"""Compiling an archive into a :class:`Pack`."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from ...config import CompilerConfig
from ...pipeline import InMemoryExecutor, PipelineLogger
from ..categories.resolver import CategoryResolution, CategoryResolver
from ..content.store import ContentStore
from ..errors import Diagnostics
from ..ingestion.archive import ArchiveSource, read_archive_entries
from ..ingestion.loader import IngestionResult, ingest_entries
from ..normalizer.normalizer import Normalizer
from .model import MapData, Pack, PackMetadata


def default_metadata(source: ArchiveSource, entries: Dict[str, bytes]) -> PackMetadata:
    """Name a pack after its archive and derive a stable id from its entries."""
    if isinstance(source, (bytes, bytearray)):
        name = "pack"
    else:
        name = Path(source).stem
    digest = hashlib.sha256()
    for path in sorted(entries):
        digest.update(path.encode("utf-8"))
        digest.update(hashlib.sha256(entries[path]).digest())
    return PackMetadata(name=name, pack_id=digest.hexdigest()[:16])


class PackAssembler:
    """Runs ingestion, category resolution and normalization for one archive.

    Each phase is registered on an :class:`InMemoryExecutor` so it is timed
    and logged. The assembler owns the pack's content store; compile each
    archive with a new assembler.

    Parameters
    ----------
    config : CompilerConfig, optional
        Compiler configuration
    logger : PipelineLogger, optional
        Phase logger; phases are not logged if None

    Example
    -------
    >>> assembler = PackAssembler()
    >>> pack, diagnostics = assembler.compile("tekkit.taco")
    """

    def __init__(
        self,
        config: Optional[CompilerConfig] = None,
        logger: Optional[PipelineLogger] = None,
    ):
        self.config = config or CompilerConfig.default()
        self.pipeline_logger = logger
        self.logger = logger.logger if logger else logging.getLogger(__name__)
        self.store = ContentStore()
        self.diagnostics = Diagnostics()
        self.normalizer: Optional[Normalizer] = None
        self._entries: Dict[str, bytes] = {}

    def _ingest(self, source: ArchiveSource, stage_results: Dict[str, Any], **_) -> IngestionResult:
        entries = read_archive_entries(source, logger=self.logger)
        result = ingest_entries(
            entries,
            self.config.ingestion,
            diagnostics=self.diagnostics,
            logger=self.logger,
        )
        self._entries = entries
        return result

    def _resolve(self, stage_results: Dict[str, Any], **_) -> CategoryResolution:
        ingested: IngestionResult = stage_results["ingest"]
        self.normalizer = Normalizer(
            ingested.assets,
            self.store,
            self.diagnostics,
            resolve_relative_to_file=self.config.ingestion.resolve_relative_to_file,
            logger=self.logger,
        )
        resolver = CategoryResolver(
            bind_attributes=self.normalizer.bind_category_assets,
            logger=self.logger,
        )
        resolution = resolver.resolve(ingested.categories)
        self.logger.info(f"Resolved {len(resolution.categories)} categories")
        return resolution

    def _normalize(self, stage_results: Dict[str, Any], **_) -> Dict[int, MapData]:
        ingested: IngestionResult = stage_results["ingest"]
        maps = self.normalizer.normalize(ingested.records, stage_results["resolve"])
        self.logger.info(
            f"Normalized {sum(len(m.markers) for m in maps.values())} markers and "
            f"{sum(len(m.trails) for m in maps.values())} trails on {len(maps)} maps"
        )
        return maps

    def _assemble(
        self,
        source: ArchiveSource,
        metadata: Optional[PackMetadata],
        stage_results: Dict[str, Any],
        **_,
    ) -> Pack:
        resolution: CategoryResolution = stage_results["resolve"]
        return Pack(
            metadata=metadata or default_metadata(source, self._entries),
            categories=resolution.categories,
            by_full_name=resolution.by_full_name,
            templates=resolution.templates,
            store=self.store,
            textures=self.normalizer.textures,
            trail_binaries=self.normalizer.trail_binaries,
            maps=dict(sorted(stage_results["normalize"].items())),
        )

    def compile(
        self,
        source: ArchiveSource,
        metadata: Optional[PackMetadata] = None,
    ) -> Tuple[Pack, Diagnostics]:
        """Compile an archive.

        Parameters
        ----------
        source : str, Path or bytes
            Zip archive path or bytes
        metadata : PackMetadata, optional
            Pack metadata; derived from the archive if None

        Returns
        -------
        Tuple[Pack, Diagnostics]
            The (possibly partial) pack and every recorded problem

        Raises
        ------
        ArchiveError
            If the archive cannot be opened or extracted
        """
        executor = InMemoryExecutor(self.pipeline_logger)
        executor.register_stage("ingest", self._ingest, name="Read archive and parse XML")
        executor.register_stage(
            "resolve", self._resolve, depends_on=["ingest"], name="Resolve categories"
        )
        executor.register_stage(
            "normalize", self._normalize, depends_on=["resolve"], name="Normalize markers and trails"
        )
        executor.register_stage(
            "assemble", self._assemble, depends_on=["normalize"], name="Assemble pack"
        )

        results = executor.run(source=source, metadata=metadata)
        pack = results["assemble"]
        if self.pipeline_logger:
            self.pipeline_logger.log_diagnostics(self.diagnostics)
        return pack, self.diagnostics


def compile_pack(
    source: ArchiveSource,
    config: Optional[CompilerConfig] = None,
    metadata: Optional[PackMetadata] = None,
    logger: Optional[PipelineLogger] = None,
) -> Tuple[Pack, Diagnostics]:
    """Convenience function to compile an archive into a pack."""
    return PackAssembler(config=config, logger=logger).compile(source, metadata=metadata)
