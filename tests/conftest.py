"""
Shared fixtures: a fixed reference date, a small snapshot builder and a
throwaway SQLite database for the HTTP tests.
"""
import os
import tempfile
from datetime import date, datetime, time, timedelta
from decimal import Decimal

import pytest

# Must be set before circulation_service.app is imported anywhere
_DB_DIR = tempfile.mkdtemp(prefix="circulation-tests-")
os.environ["DATABASE_URL"] = "sqlite:///" + os.path.join(_DB_DIR, "test.db")
os.environ.pop("REFERENCE_DATE", None)

from circulation_service.snapshot import (  # noqa: E402
    AuthorRecord,
    BookAuthorLink,
    BookRecord,
    BookSubjectLink,
    BranchRecord,
    CopyRecord,
    FineRecord,
    LoanRecord,
    PatronRecord,
    PublisherRecord,
    Snapshot,
    SubjectRecord,
)
from circulation_service.temporal import TemporalContext  # noqa: E402

TODAY = date(2024, 6, 15)


def days_ago(n, hour=10):
    """Timestamp ``n`` days before TODAY (negative means in the future)."""
    return datetime.combine(TODAY - timedelta(days=n), time(hour, 0))


class SnapshotBuilder:
    def __init__(self):
        self.books = []
        self.copies = []
        self.loans = []
        self.patrons = []
        self.fines = []
        self.subjects = []
        self.authors = []
        self.branches = [BranchRecord(1, "Main")]
        self.publishers = []
        self.book_subjects = []
        self.book_authors = []

    def subject(self, subject_id, name):
        self.subjects.append(SubjectRecord(subject_id, name))
        return subject_id

    def author(self, author_id, first, last):
        self.authors.append(AuthorRecord(author_id, first, last))
        return author_id

    def publisher(self, publisher_id, name):
        self.publishers.append(PublisherRecord(publisher_id, name))
        return publisher_id

    def book(self, isbn, title, copies=1, subjects=(), authors=(), publisher_id=None, pub_year=None):
        """Add a book and its copies; returns the new copy ids."""
        self.books.append(BookRecord(isbn, title, pub_year, publisher_id))
        for subject_id in subjects:
            self.book_subjects.append(BookSubjectLink(isbn, subject_id))
        for author_id in authors:
            self.book_authors.append(BookAuthorLink(isbn, author_id))
        ids = []
        for _ in range(copies):
            copy_id = len(self.copies) + 1
            self.copies.append(CopyRecord(copy_id, isbn, 1, f"BC-{copy_id:04}"))
            ids.append(copy_id)
        return ids

    def patron(self, patron_id, first, last, patron_type="Student", email=None, balance=Decimal("0")):
        self.patrons.append(PatronRecord(patron_id, first, last, email, patron_type, balance))
        return patron_id

    def loan(self, copy_id, patron_id, loan_ts, due_ts, return_ts=None):
        loan_id = len(self.loans) + 1
        self.loans.append(LoanRecord(loan_id, copy_id, patron_id, loan_ts, due_ts, return_ts))
        return loan_id

    def fine(self, patron_id, amount, status="Unpaid"):
        fine_id = len(self.fines) + 1
        self.fines.append(FineRecord(fine_id, patron_id, Decimal(str(amount)), status))
        return fine_id

    def build(self):
        return Snapshot(
            books=tuple(self.books),
            copies=tuple(self.copies),
            loans=tuple(self.loans),
            patrons=tuple(self.patrons),
            fines=tuple(self.fines),
            subjects=tuple(self.subjects),
            authors=tuple(self.authors),
            branches=tuple(self.branches),
            publishers=tuple(self.publishers),
            book_subjects=tuple(self.book_subjects),
            book_authors=tuple(self.book_authors),
        )


@pytest.fixture
def context():
    return TemporalContext(TODAY)


@pytest.fixture
def builder():
    return SnapshotBuilder()


@pytest.fixture
def library(builder):
    """
    Four books, four patrons, five loans:

    L1 copy1 Ann   returned early, 100 days ago
    L2 copy1 Ben   overdue by 6 days
    L3 copy2 Ann   out, due in 4 days
    L4 copy3 Cy    returned 2 days ago, 14 days late
    L5 copy4 Ben   out, borrowed 3 days ago
    """
    b = builder
    b.subject(1, "Databases")
    b.subject(2, "Algorithms")
    b.subject(3, "Fiction")
    b.author(1, "Ann", "Zed")
    b.author(2, "Bob", "Adams")
    b.author(3, "Cara", "Adams")
    b.publisher(1, "Prentice Hall")

    c1, c2 = b.book("111", "SQL Basics", copies=2, subjects=(2, 1), authors=(1, 2), publisher_id=1, pub_year=2001)
    (c3,) = b.book("222", "Advanced SQL", subjects=(1,), authors=(3,))
    c4, _ = b.book("333", "Graph Theory", copies=2, subjects=(2,))
    b.book("444", "Loose Leaf", copies=0)

    b.patron(1, "Ann", "Lee", "Student")
    b.patron(2, "Ben", "Ortiz", "Faculty")
    b.patron(3, "Cy", "Park", "Visitor")
    b.patron(4, "Dee", "Quinn", None)

    b.loan(c1, 1, days_ago(100), days_ago(86), days_ago(90))
    b.loan(c1, 2, days_ago(20), days_ago(6))
    b.loan(c2, 1, days_ago(10), days_ago(-4))
    b.loan(c3, 3, days_ago(30), days_ago(16), days_ago(2))
    b.loan(c4, 2, days_ago(3), days_ago(-11))

    b.fine(1, 12)
    b.fine(2, 25)
    b.fine(2, 100, status="Paid")
    return b.build()
