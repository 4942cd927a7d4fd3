"""
Grouping, counting and averaging helpers shared by the report builders,
plus the per-loan and per-patron classifications they pivot on.
"""
from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Callable, Dict, Hashable, Iterable, List, Optional, TypeVar

from .snapshot import FineRecord, LoanRecord
from .temporal import as_date, as_timestamp

T = TypeVar("T")
K = TypeVar("K", bound=Hashable)


class LoanStatus(str, Enum):
    CURRENT = "CURRENT"
    OVERDUE = "OVERDUE"
    RETURNED = "RETURNED"


class PatronBucket(str, Enum):
    STUDENT = "Student"
    FACULTY = "Faculty"
    STAFF = "Staff"
    ALUMNI = "Alumni"
    OTHER = "Other"


# ----------------- generic primitives -----------------

def count_distinct(items: Iterable[T], key: Callable[[T], Hashable]) -> int:
    return len({key(item) for item in items})


def conditional_sum(items: Iterable[T], predicate: Callable[[T], bool]) -> int:
    """Number of items satisfying ``predicate``; 0 for an empty input."""
    return sum(1 for item in items if predicate(item))


def average(values: Iterable[Optional[float]]) -> Optional[float]:
    """Arithmetic mean ignoring ``None``; ``None`` when nothing is left."""
    present = [v for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def sum_amount(fines: Iterable[FineRecord], predicate: Optional[Callable[[FineRecord], bool]] = None) -> Decimal:
    return sum((f.amount for f in fines if predicate is None or predicate(f)), Decimal("0"))


def rounded_average(values: Iterable[Optional[int]], places: int = 2) -> Optional[Decimal]:
    """
    Exact mean of the non-``None`` values, rounded half away from zero
    (SQL ROUND over a DECIMAL average). ``None`` when nothing is left.
    """
    present = [v for v in values if v is not None]
    if not present:
        return None
    mean = Decimal(sum(present)) / Decimal(len(present))
    return mean.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def group_by(items: Iterable[T], key: Callable[[T], K]) -> Dict[K, List[T]]:
    """Groups in order of first appearance."""
    groups: Dict[K, List[T]] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups


def count_by(items: Iterable[T], classify: Callable[[T], K], buckets: Iterable[K] = ()) -> Dict[K, int]:
    """
    Count items per bucket. Every bucket named in ``buckets`` is present
    in the result even when nothing falls into it.
    """
    counts: Dict[K, int] = {b: 0 for b in buckets}
    for item in items:
        bucket = classify(item)
        counts[bucket] = counts.get(bucket, 0) + 1
    return counts


# ----------------- loan facts -----------------

def is_current(loan: LoanRecord) -> bool:
    return loan.return_ts is None


def is_overdue(loan: LoanRecord, today) -> bool:
    return loan.return_ts is None and as_date(loan.due_ts) < today


def is_late_return(loan: LoanRecord) -> bool:
    return loan.return_ts is not None and as_timestamp(loan.return_ts) > as_timestamp(loan.due_ts)


def is_overdue_or_late(loan: LoanRecord, today) -> bool:
    return is_overdue(loan, today) or is_late_return(loan)


def loan_status(loan: LoanRecord, today) -> LoanStatus:
    if loan.return_ts is not None:
        return LoanStatus.RETURNED
    if as_date(loan.due_ts) < today:
        return LoanStatus.OVERDUE
    return LoanStatus.CURRENT


def loan_duration_days(loan: LoanRecord, today) -> Optional[int]:
    """Whole calendar days from checkout to return, or to today while out."""
    if loan.loan_ts is None:
        return None
    end = as_date(loan.return_ts) if loan.return_ts is not None else today
    return (end - as_date(loan.loan_ts)).days


def patron_bucket(patron_type: Optional[str]) -> PatronBucket:
    for bucket in (PatronBucket.STUDENT, PatronBucket.FACULTY, PatronBucket.STAFF, PatronBucket.ALUMNI):
        if patron_type == bucket.value:
            return bucket
    return PatronBucket.OTHER


def is_unpaid(fine: FineRecord) -> bool:
    return fine.status == "Unpaid"
