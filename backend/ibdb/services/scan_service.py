"""
Duplicate scan service: runs one detector scan and persists its results.

Flow
----
  1. Validate scan_type (before anything is written).
  2. Create a duplicate_scan_runs row with status='running'.
  3. Run the detector scan matching scan_type:
       exact   → every pair inside each LOWER(TRIM(name)) group (score 100)
       flipped → "Last, First" vs "First Last"
       fuzzy / full → pairwise scan of one author page (min_score, limit, offset)
  4. Persist every result whose unordered author pair has no edge yet as a
     new pending author_similarities row.  Existing edges are never touched,
     so a rescan cannot overwrite a reviewer's decision or score.
  5. Mark the scan run completed with counts and elapsed time.

Any failure marks the scan run failed with the error text and re-raises.
A run left 'running' (process killed mid-scan) must be reconciled by hand.

run_scan_locked() is the entry point for CLI / scheduler use: it holds the
scan advisory lock so two scans never race on step 4.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from ibdb.database import SessionLocal, engine
from ibdb.errors import InvalidRequestError, ScanInProgressError
from ibdb.repositories.author_repo import AuthorRepo
from ibdb.repositories.scan_run_repo import ScanRunRepo
from ibdb.repositories.similarity_repo import SimilarityRepo
from ibdb.services.duplicate_detector import AuthorDuplicateDetector
from ibdb.services.locks import SCAN_LOCK_NAME, release_named_lock, try_acquire_named_lock
from ibdb.utils.similarity_scorer import SimilarityResult

logger = logging.getLogger(__name__)

SCAN_TYPES = ("exact", "flipped", "fuzzy", "full")
PREVIEW_SIZE = 10


@dataclass
class ScanOutcome:
    scan_run_id: uuid.UUID
    scan_type: str
    total_authors: int
    duplicates_found: int
    duplicates_stored: int
    processing_time_ms: int
    preview: list[SimilarityResult] = field(default_factory=list)


async def run_scan_locked(
    scan_type: str = "exact",
    min_score: int = 70,
    limit: int = 100,
    offset: int = 0,
) -> ScanOutcome:
    """Entry point: run one scan under the scan advisory lock, in its own session."""
    _validate(scan_type, min_score, limit, offset)

    async with engine.connect() as lock_conn:
        acquired = await try_acquire_named_lock(lock_conn, SCAN_LOCK_NAME)
        if not acquired:
            raise ScanInProgressError("Another duplicate scan is already running")
        try:
            async with SessionLocal() as db:
                return await run_scan(db, scan_type, min_score, limit, offset)
        finally:
            await release_named_lock(lock_conn, SCAN_LOCK_NAME)


async def run_scan(
    db: AsyncSession,
    scan_type: str = "exact",
    min_score: int = 70,
    limit: int = 100,
    offset: int = 0,
) -> ScanOutcome:
    _validate(scan_type, min_score, limit, offset)

    scan_run = await ScanRunRepo.create_running(db, scan_type, min_score)
    run_id = scan_run.id
    started = time.monotonic()

    try:
        total_authors = await AuthorRepo.count(db)
        duplicates = await _detect(db, scan_type, min_score, limit, offset)
        stored = await persist_new_edges(db, duplicates)
        elapsed_ms = int((time.monotonic() - started) * 1000)
        await ScanRunRepo.set_completed(
            db,
            run_id,
            total_authors=total_authors,
            duplicates_found=len(duplicates),
            duplicates_stored=stored,
            processing_time_ms=elapsed_ms,
        )
    except Exception as exc:
        logger.exception("Duplicate scan %s (%s) failed", run_id, scan_type)
        await db.rollback()
        await ScanRunRepo.set_failed(db, run_id, str(exc) or exc.__class__.__name__)
        raise

    logger.info(
        "Duplicate scan %s (%s) complete: %d found, %d new edges, %d ms",
        run_id, scan_type, len(duplicates), stored, elapsed_ms,
    )
    return ScanOutcome(
        scan_run_id=run_id,
        scan_type=scan_type,
        total_authors=total_authors,
        duplicates_found=len(duplicates),
        duplicates_stored=stored,
        processing_time_ms=elapsed_ms,
        preview=duplicates[:PREVIEW_SIZE],
    )


async def persist_new_edges(db: AsyncSession, duplicates: list[SimilarityResult]) -> int:
    """Insert a pending edge for each pair that has none yet; return how many were added."""
    stored = 0
    seen: set[str] = set()
    for dup in duplicates:
        if dup.pair_key in seen:
            continue
        seen.add(dup.pair_key)

        existing = await SimilarityRepo.find_pair(db, dup.author1.id, dup.author2.id)
        if existing is None:
            await SimilarityRepo.create_pending(db, dup)
            stored += 1
    await db.commit()
    return stored


async def _detect(
    db: AsyncSession,
    scan_type: str,
    min_score: int,
    limit: int,
    offset: int,
) -> list[SimilarityResult]:
    detector = AuthorDuplicateDetector(db)

    if scan_type == "exact":
        return await detector.exact_duplicate_pairs()
    if scan_type == "flipped":
        return await detector.find_flipped_name_duplicates()

    def _progress(current: int, total: int) -> None:
        if current == total or current % 100 == 0:
            logger.debug("Scan progress: %d/%d", current, total)

    return await detector.find_all_duplicates(
        min_score=min_score, limit=limit, offset=offset, on_progress=_progress
    )


def _validate(scan_type: str, min_score: int, limit: int, offset: int) -> None:
    if scan_type not in SCAN_TYPES:
        raise InvalidRequestError(
            f"Invalid scan type: {scan_type!r} (expected one of {', '.join(SCAN_TYPES)})"
        )
    if not 0 <= min_score <= 100:
        raise InvalidRequestError("min_score must be between 0 and 100")
    if limit < 1 or offset < 0:
        raise InvalidRequestError("limit must be positive and offset non-negative")


async def get_scan_run(db: AsyncSession, scan_run_id: uuid.UUID):
    return await ScanRunRepo.get_by_id(db, scan_run_id)


async def recent_scan_runs(db: AsyncSession, limit: int = 10):
    return await ScanRunRepo.list_recent(db, limit)
