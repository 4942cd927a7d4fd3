# seed_demo.py
from datetime import datetime, timedelta

import requests
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from circulation_service.config import Config
from circulation_service.models import (
    Base,
    Author,
    Book,
    BookAuthor,
    BookSubject,
    Branch,
    Copy,
    Fine,
    Loan,
    Patron,
    Publisher,
    Subject,
)

SERVICE_BASE_URL = "http://localhost:5010"

BRANCHES = ["Toronto Reference Library", "North York Central Library"]

PUBLISHERS = ["Prentice Hall", "Addison-Wesley", "O'Reilly Media", "MIT Press"]

SUBJECTS = ["Software Engineering", "Algorithms", "Distributed Systems"]

AUTHORS = [
    ("Robert C.", "Martin"),
    ("Andrew", "Hunt"),
    ("David", "Thomas"),
    ("Thomas H.", "Cormen"),
    ("Martin", "Kleppmann"),
]

BOOKS = [
    {
        "isbn": "978-0132350884",
        "title": "Clean Code",
        "pub_year": 2008,
        "publisher": 1,
        "subjects": [1],
        "authors": [1],
    },
    {
        "isbn": "978-0201616224",
        "title": "The Pragmatic Programmer",
        "pub_year": 1999,
        "publisher": 2,
        "subjects": [1],
        "authors": [2, 3],
    },
    {
        "isbn": "978-0262033848",
        "title": "Introduction to Algorithms",
        "pub_year": 2009,
        "publisher": 4,
        "subjects": [2],
        "authors": [4],
    },
    {
        "isbn": "978-1491950357",
        "title": "Designing Data-Intensive Applications",
        "pub_year": 2017,
        "publisher": 3,
        "subjects": [3, 2],
        "authors": [5],
    },
    {
        "isbn": "978-0134494166",
        "title": "Clean Architecture",
        "pub_year": 2017,
        "publisher": 1,
        "subjects": [1],
        "authors": [1],
    },
]

PATRONS = [
    ("Alice", "Nguyen", "Student"),
    ("Bashir", "Rahimi", "Faculty"),
    ("Chen", "Wei", "Staff"),
    ("Dana", "Okafor", "Alumni"),
    ("Emil", "Novak", "Visitor"),
]

REPORTS = ["dashboard", "overdue-risk", "catalog", "patron-risk", "loans", "monthly-trend"]


def seed_database(session, now):
    """Insert a small, fixed circulation history relative to ``now``."""
    print("\n== Seeding circulation data ==")
    for i, name in enumerate(BRANCHES, start=1):
        session.add(Branch(branch_id=i, name=name))
    for i, name in enumerate(PUBLISHERS, start=1):
        session.add(Publisher(publisher_id=i, name=name))
    for i, name in enumerate(SUBJECTS, start=1):
        session.add(Subject(subject_id=i, name=name))
    for i, (first, last) in enumerate(AUTHORS, start=1):
        session.add(Author(author_id=i, first_name=first, last_name=last))
    session.flush()

    copy_id = 0
    for i, book in enumerate(BOOKS, start=1):
        session.add(
            Book(
                isbn=book["isbn"],
                title=book["title"],
                pub_year=book["pub_year"],
                publisher_id=book["publisher"],
            )
        )
        for subject_id in book["subjects"]:
            session.add(BookSubject(isbn=book["isbn"], subject_id=subject_id))
        for author_id in book["authors"]:
            session.add(BookAuthor(isbn=book["isbn"], author_id=author_id))
        # vary copies per title to make availability more interesting
        for n in range(1 + (i % 3)):
            copy_id += 1
            session.add(
                Copy(
                    copy_id=copy_id,
                    isbn=book["isbn"],
                    branch_id=1 + (n % len(BRANCHES)),
                    barcode=f"BC-{copy_id:05}",
                )
            )
        print(f"  [{i:02}] {book['title']}")

    for i, (first, last, patron_type) in enumerate(PATRONS, start=1):
        session.add(
            Patron(
                patron_id=i,
                first_name=first,
                last_name=last,
                email=f"{first.lower()}.{last.lower()}@example.org",
                patron_type=patron_type,
                balance=0,
            )
        )
    session.flush()

    # (copy, patron, days ago borrowed, loan length, days ago returned or None)
    history = [
        (1, 1, 120, 14, 100),
        (2, 2, 95, 21, 70),
        (3, 1, 60, 14, 40),
        (4, 3, 45, 14, 33),
        (5, 4, 35, 14, 30),
        (1, 5, 25, 14, None),
        (6, 1, 20, 14, None),
        (7, 2, 10, 14, 3),
        (3, 3, 5, 14, None),
        (8, 1, 40, 14, None),
    ]
    for loan_id, (copy, patron, ago, length, returned) in enumerate(history, start=1):
        loan_ts = now - timedelta(days=ago)
        session.add(
            Loan(
                loan_id=loan_id,
                copy_id=copy,
                patron_id=patron,
                loan_ts=loan_ts,
                due_ts=loan_ts + timedelta(days=length),
                return_ts=now - timedelta(days=returned) if returned is not None else None,
            )
        )

    session.add(Fine(fine_id=1, patron_id=1, amount=35, status="Unpaid"))
    session.add(Fine(fine_id=2, patron_id=1, amount=20, status="Unpaid"))
    session.add(Fine(fine_id=3, patron_id=2, amount=12, status="Paid"))
    session.add(Fine(fine_id=4, patron_id=5, amount=15, status="Unpaid"))
    session.commit()
    print(f"  {len(history)} loans, {len(PATRONS)} patrons")


def check_service(url):
    """Hit /api/health and return True/False."""
    health_url = f"{url.rstrip('/')}/api/health"
    try:
        r = requests.get(health_url, timeout=3)
        print(f"[CHECK] {health_url} -> {r.status_code}")
        return r.ok
    except requests.RequestException as e:
        print(f"[ERROR] service not reachable at {health_url}: {e}")
        return False


def show_report(name):
    url = f"{SERVICE_BASE_URL}/api/reports/{name}"
    try:
        resp = requests.get(url, timeout=5)
    except requests.RequestException as e:
        print(f"  {name}: FAILED -> {e}")
        return
    if not resp.ok:
        print(f"  {name}: {resp.status_code} {resp.text.strip()}")
        return
    body = resp.json()
    print(f"\n== {name} (as of {body['as_of']}, skipped {body['skipped']}) ==")
    for row in body["rows"][:5]:
        print(f"  {row}")


def main():
    engine = create_engine(Config.SQLALCHEMY_DATABASE_URI, future=True)
    Base.metadata.drop_all(engine)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False)

    session = SessionLocal()
    try:
        seed_database(session, datetime.now().replace(microsecond=0))
    finally:
        session.close()

    print("\nChecking report service...")
    if not check_service(SERVICE_BASE_URL):
        print("\nReport service is not reachable. Start it with:")
        print("  python -m circulation_service.app")
        return

    for name in REPORTS:
        show_report(name)

    print("\nDone.")


if __name__ == "__main__":
    main()
