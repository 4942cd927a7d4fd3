"""
Read side of the entity store.

``load_snapshot`` pulls every table once, in primary key order, and turns
the ORM rows into frozen records. Report builders only ever see a
``Snapshot``; they never touch a session.
"""
from __future__ import annotations

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from .errors import MissingReference, SnapshotUnavailable
from . import models

logger = logging.getLogger(__name__)


# ----------------- records -----------------

@dataclass(frozen=True)
class PublisherRecord:
    publisher_id: int
    name: str


@dataclass(frozen=True)
class BranchRecord:
    branch_id: int
    name: str


@dataclass(frozen=True)
class BookRecord:
    isbn: str
    title: str
    pub_year: Optional[int] = None
    publisher_id: Optional[int] = None


@dataclass(frozen=True)
class CopyRecord:
    copy_id: int
    isbn: str
    branch_id: int
    barcode: str


@dataclass(frozen=True)
class PatronRecord:
    patron_id: int
    first_name: str
    last_name: str
    email: Optional[str] = None
    patron_type: Optional[str] = None
    balance: Decimal = Decimal("0")

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class LoanRecord:
    loan_id: int
    copy_id: int
    patron_id: int
    loan_ts: Optional[datetime]
    due_ts: datetime
    return_ts: Optional[datetime] = None


@dataclass(frozen=True)
class FineRecord:
    fine_id: int
    patron_id: int
    amount: Decimal
    status: str


@dataclass(frozen=True)
class SubjectRecord:
    subject_id: int
    name: str


@dataclass(frozen=True)
class AuthorRecord:
    author_id: int
    first_name: str
    last_name: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class BookSubjectLink:
    isbn: str
    subject_id: int


@dataclass(frozen=True)
class BookAuthorLink:
    isbn: str
    author_id: int


# ----------------- snapshot -----------------

@dataclass(frozen=True)
class Snapshot:
    """A consistent, read-only view of every entity collection."""

    books: Tuple[BookRecord, ...] = ()
    copies: Tuple[CopyRecord, ...] = ()
    loans: Tuple[LoanRecord, ...] = ()
    patrons: Tuple[PatronRecord, ...] = ()
    fines: Tuple[FineRecord, ...] = ()
    subjects: Tuple[SubjectRecord, ...] = ()
    authors: Tuple[AuthorRecord, ...] = ()
    branches: Tuple[BranchRecord, ...] = ()
    publishers: Tuple[PublisherRecord, ...] = ()
    book_subjects: Tuple[BookSubjectLink, ...] = ()
    book_authors: Tuple[BookAuthorLink, ...] = ()

    def checked(self) -> Tuple["Snapshot", Dict[str, int]]:
        """
        Drop rows that reference entities absent from the snapshot.

        Removal cascades: a loan against a dropped copy is dropped too.
        Returns the cleaned snapshot and the number of rows removed per
        entity kind (kinds with nothing removed are omitted).
        """
        problems: List[MissingReference] = []

        def keep(rows, kind, row_id, *refs):
            kept = []
            for row in rows:
                bad = next(
                    (
                        MissingReference(kind, row_id(row), ref_kind, getattr(row, attr))
                        for ref_kind, attr, known in refs
                        if getattr(row, attr) not in known
                    ),
                    None,
                )
                if bad is None:
                    kept.append(row)
                else:
                    problems.append(bad)
            return tuple(kept)

        isbns = {b.isbn for b in self.books}
        branch_ids = {b.branch_id for b in self.branches}
        patron_ids = {p.patron_id for p in self.patrons}
        subject_ids = {s.subject_id for s in self.subjects}
        author_ids = {a.author_id for a in self.authors}

        copies = keep(
            self.copies, "copy", lambda c: c.copy_id,
            ("book", "isbn", isbns),
            ("branch", "branch_id", branch_ids),
        )
        copy_ids = {c.copy_id for c in copies}
        loans = keep(
            self.loans, "loan", lambda loan: loan.loan_id,
            ("copy", "copy_id", copy_ids),
            ("patron", "patron_id", patron_ids),
        )
        fines = keep(
            self.fines, "fine", lambda f: f.fine_id,
            ("patron", "patron_id", patron_ids),
        )
        book_subjects = keep(
            self.book_subjects, "book_subject", lambda s: (s.isbn, s.subject_id),
            ("book", "isbn", isbns),
            ("subject", "subject_id", subject_ids),
        )
        book_authors = keep(
            self.book_authors, "book_author", lambda a: (a.isbn, a.author_id),
            ("book", "isbn", isbns),
            ("author", "author_id", author_ids),
        )

        skipped = dict(Counter(p.kind for p in problems))
        for kind, count in skipped.items():
            logger.warning("Skipping %d %s row(s) with missing references", count, kind)
        for p in problems:
            logger.debug("Skipped %s", p)

        cleaned = replace(
            self,
            copies=copies,
            loans=loans,
            fines=fines,
            book_subjects=book_subjects,
            book_authors=book_authors,
        )
        return cleaned, skipped

    def index(self) -> "SnapshotIndex":
        return SnapshotIndex(self)


@dataclass
class SnapshotIndex:
    """Lookup-by-id maps, built once per report."""

    snapshot: Snapshot
    books: Dict[str, BookRecord] = field(init=False)
    copies: Dict[int, CopyRecord] = field(init=False)
    patrons: Dict[int, PatronRecord] = field(init=False)
    subjects: Dict[int, SubjectRecord] = field(init=False)
    authors: Dict[int, AuthorRecord] = field(init=False)
    branches: Dict[int, BranchRecord] = field(init=False)
    publishers: Dict[int, PublisherRecord] = field(init=False)
    copies_by_book: Dict[str, List[CopyRecord]] = field(init=False)
    loans_by_copy: Dict[int, List[LoanRecord]] = field(init=False)
    loans_by_patron: Dict[int, List[LoanRecord]] = field(init=False)
    fines_by_patron: Dict[int, List[FineRecord]] = field(init=False)
    subject_ids_by_book: Dict[str, List[int]] = field(init=False)
    author_ids_by_book: Dict[str, List[int]] = field(init=False)

    def __post_init__(self):
        s = self.snapshot
        self.books = {b.isbn: b for b in s.books}
        self.copies = {c.copy_id: c for c in s.copies}
        self.patrons = {p.patron_id: p for p in s.patrons}
        self.subjects = {x.subject_id: x for x in s.subjects}
        self.authors = {a.author_id: a for a in s.authors}
        self.branches = {b.branch_id: b for b in s.branches}
        self.publishers = {p.publisher_id: p for p in s.publishers}

        self.copies_by_book = defaultdict(list)
        for c in s.copies:
            self.copies_by_book[c.isbn].append(c)
        self.loans_by_copy = defaultdict(list)
        self.loans_by_patron = defaultdict(list)
        for loan in s.loans:
            self.loans_by_copy[loan.copy_id].append(loan)
            self.loans_by_patron[loan.patron_id].append(loan)
        self.fines_by_patron = defaultdict(list)
        for f in s.fines:
            self.fines_by_patron[f.patron_id].append(f)
        self.subject_ids_by_book = defaultdict(list)
        for link in s.book_subjects:
            self.subject_ids_by_book[link.isbn].append(link.subject_id)
        self.author_ids_by_book = defaultdict(list)
        for link in s.book_authors:
            self.author_ids_by_book[link.isbn].append(link.author_id)

    def book_of_loan(self, loan: LoanRecord) -> BookRecord:
        return self.books[self.copies[loan.copy_id].isbn]

    def primary_subject_id(self, isbn: str) -> Optional[int]:
        ids = self.subject_ids_by_book.get(isbn)
        return min(ids) if ids else None


# ----------------- loading -----------------

def _money(value) -> Decimal:
    # Numeric columns come back as Decimal; keep them exact
    return Decimal(str(value)) if value is not None else Decimal("0")


def load_snapshot(session) -> Snapshot:
    """Bulk-read every entity kind through one session."""

    def rows(model, *order_by):
        return session.execute(select(model).order_by(*order_by)).scalars().all()

    try:
        snap = Snapshot(
            publishers=tuple(
                PublisherRecord(p.publisher_id, p.name)
                for p in rows(models.Publisher, models.Publisher.publisher_id)
            ),
            branches=tuple(
                BranchRecord(b.branch_id, b.name)
                for b in rows(models.Branch, models.Branch.branch_id)
            ),
            books=tuple(
                BookRecord(b.isbn, b.title, b.pub_year, b.publisher_id)
                for b in rows(models.Book, models.Book.isbn)
            ),
            copies=tuple(
                CopyRecord(c.copy_id, c.isbn, c.branch_id, c.barcode)
                for c in rows(models.Copy, models.Copy.copy_id)
            ),
            patrons=tuple(
                PatronRecord(
                    p.patron_id,
                    p.first_name,
                    p.last_name,
                    p.email,
                    p.patron_type,
                    _money(p.balance),
                )
                for p in rows(models.Patron, models.Patron.patron_id)
            ),
            loans=tuple(
                LoanRecord(r.loan_id, r.copy_id, r.patron_id, r.loan_ts, r.due_ts, r.return_ts)
                for r in rows(models.Loan, models.Loan.loan_id)
            ),
            fines=tuple(
                FineRecord(f.fine_id, f.patron_id, _money(f.amount), f.status)
                for f in rows(models.Fine, models.Fine.fine_id)
            ),
            subjects=tuple(
                SubjectRecord(s.subject_id, s.name)
                for s in rows(models.Subject, models.Subject.subject_id)
            ),
            authors=tuple(
                AuthorRecord(a.author_id, a.first_name, a.last_name)
                for a in rows(models.Author, models.Author.author_id)
            ),
            book_subjects=tuple(
                BookSubjectLink(x.isbn, x.subject_id)
                for x in rows(models.BookSubject, models.BookSubject.isbn, models.BookSubject.subject_id)
            ),
            book_authors=tuple(
                BookAuthorLink(x.isbn, x.author_id)
                for x in rows(models.BookAuthor, models.BookAuthor.isbn, models.BookAuthor.author_id)
            ),
        )
    except SQLAlchemyError as e:
        logger.error("Snapshot load failed: %s", e)
        raise SnapshotUnavailable(str(e)) from e

    logger.info(
        "Loaded snapshot: %d books, %d copies, %d loans, %d patrons, %d fines",
        len(snap.books),
        len(snap.copies),
        len(snap.loans),
        len(snap.patrons),
        len(snap.fines),
    )
    return snap
