"""Phase orchestration and logging.

Example Usage
-------------
>>> from markerpack.pipeline import InMemoryExecutor, PipelineLogger
>>> logger = PipelineLogger(log_level="DEBUG")
>>> logger.setup()
>>> executor = InMemoryExecutor(logger)
>>> executor.register_stage("ingest", ingest)
>>> results = executor.run(source="pack.zip")
"""

from .executor import InMemoryExecutor
from .logger import ColoredFormatter, PipelineLogger

__all__ = [
    "ColoredFormatter",
    "PipelineLogger",
    "InMemoryExecutor",
]
