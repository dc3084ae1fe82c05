import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Integer, String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ibdb.database import Base

SIMILARITY_STATUSES = ("pending", "reviewed", "merged", "dismissed")


class AuthorSimilarity(Base):
    """
    Candidate-duplicate edge between two authors.

    The pair is symmetric but stored ordered (author1, author2); scans never
    store a second edge for the same unordered pair.  Author ids are plain
    columns, not FKs: an edge outlives the author a merge absorbs, and the
    cached names keep it readable afterwards.
    """
    __tablename__ = "author_similarities"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    author1_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    author1_name: Mapped[str] = mapped_column(Text, nullable=False)
    author2_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    author2_name: Mapped[str] = mapped_column(Text, nullable=False)
    # 0–100
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    # exact | high | medium | low
    confidence: Mapped[str] = mapped_column(String(10), nullable=False)
    # MatchReasons.to_dict()
    match_reasons: Mapped[dict] = mapped_column(JSON().with_variant(JSONB(), "postgresql"), nullable=False, default=dict)
    # pending | reviewed | merged | dismissed
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    merge_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("author_merges.id", ondelete="SET NULL"), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    merge: Mapped[Optional["AuthorMerge"]] = relationship(  # noqa: F821
        "AuthorMerge", back_populates="similarities"
    )
