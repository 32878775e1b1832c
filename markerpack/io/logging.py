"""Log file helpers.

Provides timestamped log paths and structured record output (JSON lines,
YAML documents).
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable, Union

import yaml

PathLike = Union[str, Path]


def get_timestamped_log_path(log_path: PathLike) -> Path:
    """Add a timestamp to a log file name.

    Example: compile.log -> compile_20251209_080530.log
    """
    log_path = Path(log_path)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    suffix = log_path.suffix or ".log"
    return log_path.parent / f"{log_path.stem}_{timestamp}{suffix}"


def _prepare_log_destination(log_path: PathLike, append: bool) -> Path:
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if not append:
        path.unlink(missing_ok=True)
    return path


def log_json(log_path: PathLike, records: Iterable[dict[str, Any]], *, append: bool = True) -> Path:
    """Write records as JSON lines.

    Parameters
    ----------
    log_path : PathLike
        Output file
    records : Iterable[dict]
        Records to serialize, one per line
    append : bool
        Append to an existing file instead of replacing it

    Returns
    -------
    Path
        The output file
    """
    path = _prepare_log_destination(log_path, append)
    with path.open("a", encoding="utf-8") as handle:
        for record in records:
            handle.write(json.dumps(record, default=str))
            handle.write("\n")
    return path


def log_yaml(
    log_path: PathLike,
    record: dict[str, Any],
    *,
    append: bool = True,
    logger: logging.Logger | None = None,
) -> Path:
    """Write a record as one YAML document.

    If ``logger`` is given, the document is also logged at DEBUG level.
    """
    yaml_text = yaml.safe_dump(record, sort_keys=False, allow_unicode=True).rstrip("\n")
    if logger is not None:
        logger.debug("%s", yaml_text)

    path = _prepare_log_destination(log_path, append)
    with path.open("a", encoding="utf-8") as handle:
        handle.write(yaml_text)
        handle.write("\n---\n")
    return path
