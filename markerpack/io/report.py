"""Compilation reports: diagnostics and pack summaries on disk."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import pandas as pd

from ..core.errors import Diagnostics
from .logging import log_json, log_yaml

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

REPORT_FORMATS = (".csv", ".yaml", ".yml", ".jsonl")


def ensure_output_dir(path: PathLike) -> Path:
    """Create the directory at path if it does not exist and return it."""
    directory = Path(path)
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def diagnostics_summary(diagnostics: Diagnostics) -> Dict[str, Any]:
    """Counts per severity, kind and source."""
    frame = diagnostics.to_frame()
    by_kind = frame.groupby("kind").size().to_dict() if not frame.empty else {}
    sources = frame["source"].fillna("<archive>")
    by_source = sources.value_counts().to_dict() if not frame.empty else {}
    return {
        "errors": diagnostics.error_count,
        "warnings": diagnostics.warning_count,
        "by_kind": {str(k): int(v) for k, v in by_kind.items()},
        "by_source": {str(k): int(v) for k, v in by_source.items()},
    }


def write_diagnostics_report(
    diagnostics: Diagnostics,
    path: PathLike,
    summary: Optional[pd.DataFrame] = None,
) -> Path:
    """Write diagnostics to a report file; the format follows the suffix.

    Parameters
    ----------
    diagnostics : Diagnostics
        Diagnostics of a compilation
    path : PathLike
        Report file: ``.csv`` (one row per diagnostic), ``.yaml``/``.yml``
        (summary plus diagnostics) or ``.jsonl`` (one line per diagnostic)
    summary : pd.DataFrame, optional
        Pack summary (see ``Pack.summary``) included in YAML reports

    Returns
    -------
    Path
        The report file

    Raises
    ------
    ValueError
        If the suffix is not a supported report format
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in REPORT_FORMATS:
        raise ValueError(f"Unsupported report format '{suffix}', expected one of {REPORT_FORMATS}")
    ensure_output_dir(path.parent)

    frame = diagnostics.to_frame()
    if suffix == ".csv":
        frame.to_csv(path, index=False)
    elif suffix == ".jsonl":
        log_json(path, (vars(diagnostic) for diagnostic in diagnostics), append=False)
    else:
        record: Dict[str, Any] = {"summary": diagnostics_summary(diagnostics)}
        if summary is not None:
            record["maps"] = [
                {column: int(value) for column, value in row.items()}
                for row in summary.to_dict(orient="records")
            ]
        record["diagnostics"] = [
            {
                key: value
                for key, value in vars(diagnostic).items()
                if value is not None
            }
            for diagnostic in diagnostics
        ]
        log_yaml(path, record, append=False)

    logger.info("Wrote diagnostics report (%d entries) to %s", len(frame), path)
    return path
