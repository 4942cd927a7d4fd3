"""
The six circulation reports.

Each builder takes a snapshot, a temporal context and its own parameters
and returns a ``ReportResult``. Builders first drop rows with dangling
references (``Snapshot.checked``) and report how many they dropped.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from .aggregates import (
    PatronBucket,
    average,
    conditional_sum,
    count_by,
    count_distinct,
    group_by,
    is_current,
    is_overdue,
    is_overdue_or_late,
    is_unpaid,
    loan_duration_days,
    loan_status,
    patron_bucket,
    rounded_average,
    sum_amount,
)
from .errors import InvalidParameter
from .params import STATUS_ALL, parse_search, parse_status_filter, parse_subject_id
from .ranking import partition_rank, rank_desc, running_total
from .snapshot import Snapshot
from .temporal import TemporalContext, as_date, as_timestamp

logger = logging.getLogger(__name__)

RISK_HIGH = "HIGH"
RISK_MEDIUM = "MEDIUM"
RISK_LOW = "LOW"
RISK_ORDER = {RISK_HIGH: 0, RISK_MEDIUM: 1, RISK_LOW: 2}

LONGER = "LONGER THAN USUAL"
SHORTER = "SHORTER THAN USUAL"
TYPICAL = "TYPICAL"

DEFAULT_RECENT_DAYS = 30


def _jsonable(value):
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


@dataclass
class ReportResult:
    report: str
    as_of: date
    rows: List[Dict[str, Any]] = field(default_factory=list)
    skipped: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report": self.report,
            "as_of": self.as_of.isoformat(),
            "skipped": dict(self.skipped),
            "rows": [{k: _jsonable(v) for k, v in row.items()} for row in self.rows],
        }


def _finish(name, context, rows, skipped) -> ReportResult:
    logger.info(
        "Built %s report for %s: %d row(s), %d skipped",
        name,
        context.today,
        len(rows),
        sum(skipped.values()),
    )
    return ReportResult(report=name, as_of=context.today, rows=rows, skipped=skipped)


# ----------------- dashboard summary -----------------

def dashboard_summary(snapshot: Snapshot, context: TemporalContext) -> ReportResult:
    snap, skipped = snapshot.checked()
    today = context.today
    loans = snap.loans

    row = {
        "total_books": len(snap.books),
        "total_copies": count_distinct(snap.copies, lambda c: c.copy_id),
        "total_subjects": count_distinct(snap.book_subjects, lambda s: s.subject_id),
        "total_patrons": len(snap.patrons),
        "active_patrons_90d": count_distinct(
            (loan for loan in loans if loan.loan_ts is not None and as_date(loan.loan_ts) >= context.last_90),
            lambda loan: loan.patron_id,
        ),
        "total_loans": len(loans),
        "current_loans": conditional_sum(loans, is_current),
        "overdue_loans": conditional_sum(loans, lambda loan: is_overdue(loan, today)),
        "avg_duration_days": rounded_average(loan_duration_days(loan, today) for loan in loans),
        "loans_last_7d": conditional_sum(
            loans, lambda loan: loan.loan_ts is not None and as_date(loan.loan_ts) >= context.last_7
        ),
        "returns_last_7d": conditional_sum(
            loans, lambda loan: loan.return_ts is not None and as_date(loan.return_ts) >= context.last_7
        ),
    }
    return _finish("dashboard", context, [row], skipped)


# ----------------- overdue risk -----------------

def risk_score(days_overdue: int, overdue_or_late_loans: int, unpaid_fines: Decimal) -> Decimal:
    return Decimal(days_overdue) + Decimal(overdue_or_late_loans) * 2 + Decimal(unpaid_fines) / Decimal(10)


def overdue_risk(snapshot: Snapshot, context: TemporalContext) -> ReportResult:
    snap, skipped = snapshot.checked()
    idx = snap.index()
    today = context.today

    rows = []
    for loan in snap.loans:
        if not is_overdue(loan, today):
            continue
        history = idx.loans_by_patron.get(loan.patron_id, [])
        days_overdue = (today - as_date(loan.due_ts)).days
        late_count = conditional_sum(history, lambda past: is_overdue_or_late(past, today))
        unpaid = sum_amount(idx.fines_by_patron.get(loan.patron_id, []), is_unpaid)
        rows.append(
            {
                "loan_id": loan.loan_id,
                "patron_name": idx.patrons[loan.patron_id].full_name,
                "book_title": idx.book_of_loan(loan).title,
                "due_date": as_date(loan.due_ts),
                "days_overdue": days_overdue,
                "all_loans": len(history),
                "overdue_or_late_loans": late_count,
                "unpaid_fines": unpaid,
                "risk_score": risk_score(days_overdue, late_count, unpaid),
            }
        )

    ranked = rank_desc(
        rows,
        score=lambda r: r["risk_score"],
        tie_break=lambda r: (-r["days_overdue"], r["loan_id"]),
    )
    out = []
    for rank, row in ranked:
        row["risk_rank"] = rank
        out.append(row)
    return _finish("overdue-risk", context, out, skipped)


# ----------------- catalog search & subject rank -----------------

def _matches(search: Optional[str], *fields: str) -> bool:
    if not search:
        return True
    needle = search.lower()
    return any(needle in (f or "").lower() for f in fields)


def catalog_search(
    snapshot: Snapshot,
    context: TemporalContext,
    search: Optional[str] = None,
    subject_id: Optional[int] = None,
) -> ReportResult:
    snap, skipped = snapshot.checked()
    idx = snap.index()

    candidates = []
    for book in snap.books:
        primary_id = idx.primary_subject_id(book.isbn)
        if subject_id is not None and primary_id != subject_id:
            continue
        if not _matches(search, book.title, book.isbn):
            continue

        authors = {}
        for author_id in idx.author_ids_by_book.get(book.isbn, []):
            a = idx.authors[author_id]
            authors.setdefault(a.full_name, a.last_name)
        author_names = sorted(authors, key=lambda name: (authors[name], name))
        subject_names = sorted({idx.subjects[s].name for s in idx.subject_ids_by_book.get(book.isbn, [])})

        copies = idx.copies_by_book.get(book.isbn, [])
        publisher = idx.publishers.get(book.publisher_id)
        row = {
            "isbn": book.isbn,
            "title": book.title,
            "pub_year": book.pub_year,
            "publisher_name": publisher.name if publisher else None,
            "authors": ", ".join(author_names) or None,
            "subjects": ", ".join(subject_names) or None,
            "times_loaned": sum(len(idx.loans_by_copy.get(c.copy_id, [])) for c in copies),
            "total_copies": count_distinct(copies, lambda c: c.copy_id),
            "available_copies": conditional_sum(
                copies,
                lambda c: not any(is_current(loan) for loan in idx.loans_by_copy.get(c.copy_id, [])),
            ),
            "primary_subject": idx.subjects[primary_id].name if primary_id is not None else None,
        }
        candidates.append((primary_id, row))

    ranked = partition_rank(
        candidates,
        partition=lambda c: c[0],
        score=lambda c: c[1]["times_loaned"],
        tie_break=lambda c: (c[1]["title"].lower(), c[1]["isbn"]),
    )
    rows = []
    for rank, (_, row) in ranked:
        row["subject_popularity_rank"] = rank
        rows.append(row)
    rows.sort(key=lambda r: (-r["times_loaned"], r["title"].lower(), r["isbn"]))
    return _finish("catalog", context, rows, skipped)


# ----------------- patron risk profile -----------------

def risk_level(unpaid_fines: Decimal, overdue_loans: int) -> str:
    if unpaid_fines >= 50 or overdue_loans >= 3:
        return RISK_HIGH
    if 10 <= unpaid_fines <= 49 or 1 <= overdue_loans <= 2:
        return RISK_MEDIUM
    return RISK_LOW


def patron_risk_profile(
    snapshot: Snapshot,
    context: TemporalContext,
    recent_days: int = DEFAULT_RECENT_DAYS,
) -> ReportResult:
    snap, skipped = snapshot.checked()
    idx = snap.index()
    today = context.today
    recent_cutoff = context.cutoff(recent_days)

    rows = []
    for patron in snap.patrons:
        loans = idx.loans_by_patron.get(patron.patron_id, [])
        fines = idx.fines_by_patron.get(patron.patron_id, [])
        stamps = [loan.loan_ts for loan in loans if loan.loan_ts is not None]
        last_loan_ts = max(stamps, key=as_timestamp) if stamps else None
        overdue = conditional_sum(loans, lambda loan: is_overdue(loan, today))
        unpaid = sum_amount(fines, is_unpaid)
        rows.append(
            {
                "patron_id": patron.patron_id,
                "patron_name": patron.full_name,
                "email": patron.email,
                "patron_type": patron.patron_type,
                "balance": patron.balance,
                "total_loans": len(loans),
                "active_loans": conditional_sum(loans, is_current),
                "overdue_loans": overdue,
                "last_loan_ts": last_loan_ts,
                "total_fines": sum_amount(fines),
                "unpaid_fines": unpaid,
                "risk_level": risk_level(unpaid, overdue),
                "is_recent_borrower": int(
                    last_loan_ts is not None and as_date(last_loan_ts) >= recent_cutoff
                ),
            }
        )

    rows.sort(
        key=lambda r: (
            RISK_ORDER[r["risk_level"]],
            -r["unpaid_fines"],
            r["patron_name"].lower(),
            r["patron_id"],
        )
    )
    return _finish("patron-risk", context, rows, skipped)


# ----------------- loan segment view -----------------

def compare_to_usual(duration: Optional[int], usual: Optional[float]) -> str:
    if duration is None or usual is None:
        return TYPICAL
    if duration > usual:
        return LONGER
    if duration < usual:
        return SHORTER
    return TYPICAL


def loan_segments(
    snapshot: Snapshot,
    context: TemporalContext,
    status_filter: str = STATUS_ALL,
) -> ReportResult:
    snap, skipped = snapshot.checked()
    idx = snap.index()
    today = context.today

    durations = {loan.loan_id: loan_duration_days(loan, today) for loan in snap.loans}
    usual = {
        patron_id: average(durations[loan.loan_id] for loan in loans)
        for patron_id, loans in group_by(snap.loans, lambda loan: loan.patron_id).items()
    }

    rows = []
    for loan in snap.loans:
        status = loan_status(loan, today)
        if status_filter != STATUS_ALL and status.value != status_filter:
            continue
        copy = idx.copies[loan.copy_id]
        book = idx.books[copy.isbn]
        duration = durations[loan.loan_id]
        avg = usual.get(loan.patron_id)
        rows.append(
            {
                "loan_id": loan.loan_id,
                "patron_name": idx.patrons[loan.patron_id].full_name,
                "barcode": copy.barcode,
                "isbn": book.isbn,
                "title": book.title,
                "branch_name": idx.branches[copy.branch_id].name,
                "loan_ts": loan.loan_ts,
                "due_ts": loan.due_ts,
                "return_ts": loan.return_ts,
                "status": status.value,
                "duration_days": duration,
                "avg_duration_per_patron": avg,
                "duration_vs_usual": compare_to_usual(duration, avg),
            }
        )

    # Newest first; loans without a checkout time go last
    rows.sort(key=lambda r: r["loan_id"])
    rows.sort(
        key=lambda r: as_timestamp(r["loan_ts"]) if r["loan_ts"] is not None else datetime.min,
        reverse=True,
    )
    return _finish("loans", context, rows, skipped)


# ----------------- monthly trend -----------------

TREND_COLUMNS = {
    PatronBucket.STUDENT: "student_loans",
    PatronBucket.FACULTY: "faculty_loans",
    PatronBucket.STAFF: "staff_loans",
    PatronBucket.ALUMNI: "alumni_loans",
    PatronBucket.OTHER: "other_loans",
}


def monthly_trend(snapshot: Snapshot, context: TemporalContext) -> ReportResult:
    snap, skipped = snapshot.checked()
    idx = snap.index()

    dated = [loan for loan in snap.loans if loan.loan_ts is not None]
    by_month = group_by(dated, lambda loan: as_date(loan.loan_ts).strftime("%Y-%m"))

    months = []
    for month, loans in by_month.items():
        counts = count_by(
            loans,
            lambda loan: patron_bucket(idx.patrons[loan.patron_id].patron_type),
            buckets=TREND_COLUMNS,
        )
        row = {"loan_month": month}
        for bucket, column in TREND_COLUMNS.items():
            row[column] = counts[bucket]
        row["total_loans"] = len(loans)
        months.append(row)

    rows = []
    for row, total in running_total(months, lambda r: r["loan_month"], lambda r: r["total_loans"]):
        row["running_total_loans"] = total
        rows.append(row)
    return _finish("monthly-trend", context, rows, skipped)


# ----------------- registry -----------------

def _no_params(params):
    if params:
        raise InvalidParameter(sorted(params)[0], "not accepted by this report")
    return {}


def _catalog_params(params):
    unknown = set(params) - {"search", "subject_id"}
    if unknown:
        raise InvalidParameter(sorted(unknown)[0], "not accepted by this report")
    return {
        "search": parse_search(params.get("search")),
        "subject_id": parse_subject_id(params.get("subject_id")),
    }


def _loan_params(params):
    unknown = set(params) - {"status_filter"}
    if unknown:
        raise InvalidParameter(sorted(unknown)[0], "not accepted by this report")
    return {"status_filter": parse_status_filter(params.get("status_filter"))}


REPORTS: Dict[str, tuple] = {
    "dashboard": (dashboard_summary, _no_params),
    "overdue-risk": (overdue_risk, _no_params),
    "catalog": (catalog_search, _catalog_params),
    "patron-risk": (patron_risk_profile, _no_params),
    "loans": (loan_segments, _loan_params),
    "monthly-trend": (monthly_trend, _no_params),
}


def validate_params(name: str, **params) -> Dict[str, Any]:
    """Check a report's parameters without touching any data."""
    if name not in REPORTS:
        raise InvalidParameter("report", f"unknown report {name!r}")
    _, validate = REPORTS[name]
    return validate(params)


def run_report(
    name: str,
    snapshot_source: Callable[[], Snapshot],
    context: TemporalContext,
    settings: Optional[Dict[str, Any]] = None,
    **params,
) -> ReportResult:
    """
    Validate ``params``, then read a snapshot and build the report.

    ``snapshot_source`` is only called once validation has passed.
    ``settings`` come from the service configuration rather than the
    request and go to the builder unvalidated.
    """
    clean = validate_params(name, **params)
    clean.update(settings or {})
    builder, _ = REPORTS[name]
    return builder(snapshot_source(), context, **clean)
