import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import Column, DateTime, ForeignKey, Table, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ibdb.database import Base

# Book ↔ author link.  Composite PK: a book is linked to a given author at most once.
book_authors = Table(
    "book_authors",
    Base.metadata,
    Column("book_id", Uuid, ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
    Column("author_id", Uuid, ForeignKey("authors.id", ondelete="CASCADE"), primary_key=True, index=True),
)


class Book(Base):
    __tablename__ = "books"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    goodreads_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    openlibrary_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # NULL = still pending Hardcover enrichment (see hardcover_queue)
    hardcover_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hardcover_slug: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    authors: Mapped[list["Author"]] = relationship(  # noqa: F821
        "Author", secondary=book_authors, back_populates="books"
    )
    editions: Mapped[list["Edition"]] = relationship(
        "Edition", back_populates="book", cascade="all, delete-orphan"
    )


class Edition(Base):
    __tablename__ = "editions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    book_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, index=True)
    isbn13: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    goodreads_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    openlibrary_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hardcover_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    book: Mapped[Book] = relationship("Book", back_populates="editions")
