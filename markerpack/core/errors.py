"""Error taxonomy and diagnostics for pack compilation.

Only archive-level failures abort ingestion. Everything scoped to a single
file or element is recorded in a :class:`Diagnostics` bundle and compilation
continues with the remaining input.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

import pandas as pd


class MarkerPackError(Exception):
    """Base class for all markerpack errors."""

    pass


class ArchiveError(MarkerPackError):
    """Raised when the input archive cannot be opened or extracted."""

    pass


class FileParseError(MarkerPackError):
    """A single XML file is malformed; the file is skipped."""

    pass


class ElementError(MarkerPackError):
    """A marker, trail or category element is unusable; it is dropped."""

    pass


class AssetMissingError(MarkerPackError):
    """A referenced texture or trail binary is absent or undecodable."""

    pass


class TrailBinaryCorrupt(MarkerPackError):
    """A trail binary is too short or misaligned."""

    pass


class PackFormatError(MarkerPackError):
    """A JSON tree on disk violates its schema."""

    pass


class ArchiveFormatError(MarkerPackError):
    """A compiled archive failed validation."""

    pass


WARNING = "warning"
ERROR = "error"

# Non-fatal kinds and whether they count as errors or warnings
SEVERITY_BY_KIND = {
    FileParseError: WARNING,
    TrailBinaryCorrupt: ERROR,
    ElementError: WARNING,
    AssetMissingError: WARNING,
}


@dataclass(frozen=True)
class Diagnostic:
    """A single recorded problem.

    Attributes:
        severity: "warning" or "error"
        kind: Name of the error class (e.g. "ElementError")
        source: Archive path of the file concerned, None for archive scope
        element: Identity of the element (GUID or "POI #3"), if any
        message: Human-readable description
    """

    severity: str
    kind: str
    source: Optional[str]
    element: Optional[str]
    message: str

    def __str__(self) -> str:
        location = self.source or "<archive>"
        if self.element:
            location = f"{location} [{self.element}]"
        return f"{self.severity.upper()} {self.kind}: {location}: {self.message}"


@dataclass
class SourceDiagnostics:
    """Warnings and errors for one source path."""

    warnings: List[Diagnostic] = field(default_factory=list)
    errors: List[Diagnostic] = field(default_factory=list)


class Diagnostics:
    """Diagnostics partitioned by source path.

    ``None`` is used as the key for archive-scope issues.

    Example
    -------
    >>> diagnostics = Diagnostics()
    >>> diagnostics.record(ElementError("unknown category 'a.b'"), "pois.xml", "POI #0")
    >>> diagnostics.warning_count
    1
    """

    def __init__(self) -> None:
        self.by_source: Dict[Optional[str], SourceDiagnostics] = {}

    def record(
        self,
        error: MarkerPackError,
        source: Optional[str] = None,
        element: Optional[str] = None,
    ) -> Diagnostic:
        """Record a non-fatal error under its taxonomy severity."""
        severity = SEVERITY_BY_KIND.get(type(error), WARNING)
        return self._add(severity, type(error).__name__, source, element, str(error))

    def warn(
        self,
        message: str,
        source: Optional[str] = None,
        element: Optional[str] = None,
        kind: str = "Warning",
    ) -> Diagnostic:
        """Record a free-form warning (unknown file types, bad attribute values)."""
        return self._add(WARNING, kind, source, element, message)

    def _add(
        self,
        severity: str,
        kind: str,
        source: Optional[str],
        element: Optional[str],
        message: str,
    ) -> Diagnostic:
        diagnostic = Diagnostic(
            severity=severity,
            kind=kind,
            source=source,
            element=element,
            message=message,
        )
        bucket = self.by_source.setdefault(source, SourceDiagnostics())
        if severity == ERROR:
            bucket.errors.append(diagnostic)
        else:
            bucket.warnings.append(diagnostic)
        return diagnostic

    def __iter__(self) -> Iterator[Diagnostic]:
        for bucket in self.by_source.values():
            yield from bucket.errors
            yield from bucket.warnings

    def __len__(self) -> int:
        return self.warning_count + self.error_count

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for bucket in self.by_source.values() for d in bucket.warnings]

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for bucket in self.by_source.values() for d in bucket.errors]

    @property
    def warning_count(self) -> int:
        return sum(len(b.warnings) for b in self.by_source.values())

    @property
    def error_count(self) -> int:
        return sum(len(b.errors) for b in self.by_source.values())

    def for_source(self, source: Optional[str]) -> SourceDiagnostics:
        """Return the bucket for a source path (empty if nothing was recorded)."""
        return self.by_source.get(source, SourceDiagnostics())

    def of_kind(self, kind: type) -> List[Diagnostic]:
        return [d for d in self if d.kind == kind.__name__]

    def to_frame(self) -> pd.DataFrame:
        """Return all diagnostics as a DataFrame (one row per diagnostic)."""
        columns = ["severity", "kind", "source", "element", "message"]
        rows = [
            {
                "severity": d.severity,
                "kind": d.kind,
                "source": d.source,
                "element": d.element,
                "message": d.message,
            }
            for d in self
        ]
        return pd.DataFrame(rows, columns=columns)
