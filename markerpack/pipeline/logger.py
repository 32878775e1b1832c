"""Structured logging for pack compilation."""

import logging
import sys
from pathlib import Path
from typing import Optional

from ..core.errors import Diagnostics
from ..io.logging import get_timestamped_log_path


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name for terminal output."""

    def __init__(self, fmt: str, datefmt: str, colors: dict):
        super().__init__(fmt=fmt, datefmt=datefmt)
        self.colors = colors

    def format(self, record):
        original = record.levelname
        color = self.colors.get(original, self.colors["RESET"])
        record.levelname = f"{color}{original}{self.colors['RESET']}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


class PipelineLogger:
    """Logging for compilation phases.

    Console output is colored and goes to stderr so command output on stdout
    stays clean. When ``log_dir`` is given, a detailed timestamped log file is
    written as well.

    Parameters
    ----------
    log_dir : str, optional
        Directory for log files. No file logging if None.
    log_level : str
        Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_name : str, optional
        Logger name. Default: "markerpack"

    Example
    -------
    >>> logger = PipelineLogger(log_level="INFO")
    >>> logger.setup()
    >>> logger.log_stage_start("ingest", "Read archive")
    >>> logger.log_stage_complete("ingest", 0.8)
    """

    COLORS = {
        "DEBUG": "\033[0;36m",  # Cyan
        "INFO": "\033[0;34m",  # Blue
        "WARNING": "\033[1;33m",  # Yellow
        "ERROR": "\033[0;31m",  # Red
        "CRITICAL": "\033[1;31m",  # Bold Red
        "RESET": "\033[0m",
    }

    def __init__(
        self,
        log_dir: Optional[str] = None,
        log_level: str = "INFO",
        log_name: str = "markerpack",
    ):
        self.log_dir = Path(log_dir) if log_dir else None
        self.log_file: Optional[Path] = None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            self.log_file = get_timestamped_log_path(self.log_dir / "compile.log")

        self.log_level = getattr(logging, log_level.upper())
        self.logger = logging.getLogger(log_name)
        self.logger.setLevel(self.log_level)

    def setup(self) -> None:
        """Attach the console handler and, if configured, the file handler."""
        self.logger.handlers = []
        self.logger.propagate = False

        if self.log_file is not None:
            file_handler = logging.FileHandler(self.log_file, mode="w")
            file_handler.setLevel(self.log_level)
            file_handler.setFormatter(self._get_file_formatter())
            self.logger.addHandler(file_handler)

        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(self.log_level)
        console_handler.setFormatter(self._get_console_formatter())
        self.logger.addHandler(console_handler)

    def _get_file_formatter(self) -> logging.Formatter:
        return logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def _get_console_formatter(self) -> logging.Formatter:
        return ColoredFormatter(
            fmt="%(asctime)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
            colors=self.COLORS,
        )

    def log_stage_start(self, stage_id: str, stage_name: str) -> None:
        """Log the start of a compilation phase."""
        self.logger.info(f"[{stage_id}] {stage_name}")

    def log_stage_complete(self, stage_id: str, duration: float) -> None:
        """Log successful completion of a phase.

        Parameters
        ----------
        stage_id : str
            Phase identifier
        duration : float
            Execution time in seconds
        """
        self.logger.info(f"[{stage_id}] done in {self.format_duration(duration)}")

    def log_stage_error(self, stage_id: str, error: str) -> None:
        self.logger.error(f"[{stage_id}] failed: {error}")

    def log_diagnostics(self, diagnostics: Diagnostics, limit: int = 20) -> None:
        """Log a summary line plus the first ``limit`` diagnostics.

        Errors are logged at WARNING level; diagnostics never abort a run.
        """
        self.logger.info(
            f"Diagnostics: {diagnostics.error_count} errors, "
            f"{diagnostics.warning_count} warnings"
        )
        for index, diagnostic in enumerate(diagnostics):
            if index >= limit:
                self.logger.info(f"... {len(diagnostics) - limit} more not shown")
                break
            if diagnostic.severity == "error":
                self.logger.warning(str(diagnostic))
            else:
                self.logger.debug(str(diagnostic))

    def log_info(self, message: str) -> None:
        self.logger.info(message)

    def log_warning(self, message: str) -> None:
        self.logger.warning(message)

    def log_error(self, message: str) -> None:
        self.logger.error(message)

    def log_debug(self, message: str) -> None:
        self.logger.debug(message)

    @staticmethod
    def format_duration(seconds: float) -> str:
        """Format a duration (e.g. "0.35s", "1m 23s", "2h 15m").

        Parameters
        ----------
        seconds : float
            Duration in seconds

        Returns
        -------
        str
            Human-readable duration
        """
        if seconds < 60:
            return f"{seconds:.2f}s"
        elif seconds < 3600:
            mins = int(seconds // 60)
            secs = int(seconds % 60)
            return f"{mins}m {secs}s"
        hours = int(seconds // 3600)
        mins = int((seconds % 3600) // 60)
        return f"{hours}h {mins}m"
