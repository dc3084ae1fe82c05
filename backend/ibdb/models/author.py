import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ibdb.database import Base
from ibdb.models.book import book_authors


class Author(Base):
    """
    One author row.  Duplicate rows for the same person are expected to exist
    transiently; the duplicate detector finds them and the merge service folds
    them into a single target.

    External ids come from three independent catalogs (Goodreads, Open Library,
    Hardcover) plus the Hardcover slug.  They are backfilled by enrichment and
    adopted by the target during a merge.
    """
    __tablename__ = "authors"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    goodreads_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    openlibrary_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hardcover_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    hardcover_slug: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    books: Mapped[list["Book"]] = relationship(  # noqa: F821
        "Book", secondary=book_authors, back_populates="authors"
    )
