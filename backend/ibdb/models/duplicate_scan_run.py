import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from ibdb.database import Base


class DuplicateScanRun(Base):
    __tablename__ = "duplicate_scan_runs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    # exact | flipped | fuzzy | full
    scan_type: Mapped[str] = mapped_column(String(20), nullable=False)
    min_score: Mapped[int] = mapped_column(Integer, nullable=False)
    # running | completed | failed
    # A row stuck in 'running' means the process died mid-scan; reconcile by hand.
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="running")
    total_authors: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duplicates_found: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    duplicates_stored: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    processing_time_ms: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
