"""Repository for duplicate_scan_runs."""
import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ibdb.models.duplicate_scan_run import DuplicateScanRun


class ScanRunRepo:
    @staticmethod
    async def create_running(db: AsyncSession, scan_type: str, min_score: int) -> DuplicateScanRun:
        run = DuplicateScanRun(scan_type=scan_type, min_score=min_score, status="running")
        db.add(run)
        await db.commit()
        await db.refresh(run)
        return run

    @staticmethod
    async def get_by_id(db: AsyncSession, run_id: uuid.UUID) -> Optional[DuplicateScanRun]:
        return await db.get(DuplicateScanRun, run_id)

    @staticmethod
    async def list_recent(db: AsyncSession, limit: int = 10) -> list[DuplicateScanRun]:
        result = await db.execute(
            select(DuplicateScanRun).order_by(DuplicateScanRun.created_at.desc()).limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def set_completed(
        db: AsyncSession,
        run_id: uuid.UUID,
        total_authors: int,
        duplicates_found: int,
        duplicates_stored: int,
        processing_time_ms: int,
    ) -> None:
        await db.execute(
            update(DuplicateScanRun)
            .where(DuplicateScanRun.id == run_id)
            .values(
                status="completed",
                total_authors=total_authors,
                duplicates_found=duplicates_found,
                duplicates_stored=duplicates_stored,
                processing_time_ms=processing_time_ms,
                completed_at=datetime.now(timezone.utc),
            )
        )
        await db.commit()

    @staticmethod
    async def set_failed(db: AsyncSession, run_id: uuid.UUID, error: str) -> None:
        await db.execute(
            update(DuplicateScanRun)
            .where(DuplicateScanRun.id == run_id)
            .values(
                status="failed",
                error=error,
                completed_at=datetime.now(timezone.utc),
            )
        )
        await db.commit()
