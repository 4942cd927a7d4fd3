# circulation_service/models.py
#
# Tables read by the report service. The service never writes to them;
# loans, fines and patrons are maintained by the circulation desk system.
from sqlalchemy.orm import declarative_base
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Numeric,
    Enum,
    ForeignKey,
)

Base = declarative_base()


class Publisher(Base):
    __tablename__ = "publisher"

    publisher_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)


class Branch(Base):
    __tablename__ = "branch"

    branch_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)


class Book(Base):
    __tablename__ = "book"

    isbn = Column(String(20), primary_key=True)
    title = Column(String(255), nullable=False)
    pub_year = Column(Integer)
    publisher_id = Column(Integer, ForeignKey("publisher.publisher_id"))


class Copy(Base):
    __tablename__ = "copy"

    copy_id = Column(Integer, primary_key=True, autoincrement=True)
    isbn = Column(String(20), ForeignKey("book.isbn"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branch.branch_id"), nullable=False)
    barcode = Column(String(50), unique=True, nullable=False)


class Patron(Base):
    __tablename__ = "patron"

    patron_id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True)
    # Free text upstream; anything outside the four known types is "Other"
    patron_type = Column(String(50))
    balance = Column(Numeric(10, 2), nullable=False, default=0)


class Loan(Base):
    __tablename__ = "loan"

    loan_id = Column(Integer, primary_key=True, autoincrement=True)
    copy_id = Column(Integer, ForeignKey("copy.copy_id"), nullable=False)
    patron_id = Column(Integer, ForeignKey("patron.patron_id"), nullable=False)
    loan_ts = Column(DateTime)
    due_ts = Column(DateTime, nullable=False)
    return_ts = Column(DateTime)


class Fine(Base):
    __tablename__ = "fine"

    fine_id = Column(Integer, primary_key=True, autoincrement=True)
    patron_id = Column(Integer, ForeignKey("patron.patron_id"), nullable=False)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum("Paid", "Unpaid", name="fine_status"),
        nullable=False,
        default="Unpaid",
    )


class Subject(Base):
    __tablename__ = "subject"

    subject_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)


class Author(Base):
    __tablename__ = "author"

    author_id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)


class BookSubject(Base):
    __tablename__ = "book_subject"

    isbn = Column(String(20), ForeignKey("book.isbn"), primary_key=True)
    subject_id = Column(Integer, ForeignKey("subject.subject_id"), primary_key=True)


class BookAuthor(Base):
    __tablename__ = "book_author"

    isbn = Column(String(20), ForeignKey("book.isbn"), primary_key=True)
    author_id = Column(Integer, ForeignKey("author.author_id"), primary_key=True)
