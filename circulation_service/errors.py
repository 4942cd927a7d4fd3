"""
Exceptions raised while building circulation reports.

Only bad input and adapter failures abort a report. Rows that point at
entities missing from the snapshot are skipped and counted instead; see
``MissingReference``.
"""
from dataclasses import dataclass


class ReportError(Exception):
    """Base class for report failures."""


class InvalidParameter(ReportError, ValueError):
    """A report parameter was rejected before any computation started."""

    def __init__(self, name, message):
        super().__init__(f"{name}: {message}")
        self.name = name
        self.message = message


class SnapshotUnavailable(ReportError):
    """The entity store could not produce a snapshot."""


@dataclass(frozen=True)
class MissingReference:
    """
    Diagnostic for one row excluded from aggregation, e.g. a loan whose
    copy is not in the snapshot.
    """
    kind: str
    row_id: object
    missing_kind: str
    missing_id: object

    def __str__(self):
        return f"{self.kind} {self.row_id!r} -> missing {self.missing_kind} {self.missing_id!r}"
