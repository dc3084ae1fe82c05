import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, ForeignKey, String, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ibdb.database import Base


class HardcoverQueueEntry(Base):
    """
    One row per book still waiting for a Hardcover id.

    Lease state lives in (processing_id, claim_time):
      unclaimed: both NULL
      claimed:   processing_id = lease token, claim_time = when it was taken
    Completed entries are deleted, never flagged.

    UNIQUE(book_id): a book is queued at most once.
    """
    __tablename__ = "hardcover_queue"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    book_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("books.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    processing_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    claim_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    book: Mapped["Book"] = relationship("Book")  # noqa: F821
