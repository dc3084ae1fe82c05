import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Integer, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ibdb.database import Base


class AuthorMerge(Base):
    """Audit record of one completed merge.  Written once, never updated."""
    __tablename__ = "author_merges"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # Absorbed (deleted) authors, in request order
    merged_author_ids: Mapped[list] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    merged_author_names: Mapped[list] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    target_author_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    target_author_name: Mapped[str] = mapped_column(Text, nullable=False)
    merged_by: Mapped[str] = mapped_column(Text, nullable=False)
    merge_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    books_reassigned: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    similarities: Mapped[list["AuthorSimilarity"]] = relationship(  # noqa: F821
        "AuthorSimilarity", back_populates="merge"
    )
