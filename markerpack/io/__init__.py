"""I/O utilities for markerpack.

Provides log file helpers and compilation reports.
"""

from .logging import get_timestamped_log_path, log_json, log_yaml
from .report import diagnostics_summary, ensure_output_dir, write_diagnostics_report

__all__ = [
    # Logging
    "get_timestamped_log_path",
    "log_json",
    "log_yaml",
    # Reports
    "ensure_output_dir",
    "diagnostics_summary",
    "write_diagnostics_report",
]
