"""
Hardcover enrichment queue: lease management over hardcover_queue.

Each entry moves through

    unclaimed (processing_id NULL)
        → claimed (processing_id = lease token, claim_time = now)
        → unclaimed again (release_claim / release_old_claims)
        | removed (completed, discarded by the next claim, or garbage-collected)

claim_books() is the worker-facing call.  Passing the token of the previous
cycle deletes whatever that cycle still holds before the next batch is taken:
the previous batch is treated as done, not requeued.  A worker that crashes
mid-cycle leaves its entries claimed until release_old_claims() frees them.
"""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, func, insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ibdb.errors import InvalidRequestError, NotFoundError, TransactionFailure
from ibdb.models.book import Book, Edition
from ibdb.models.hardcover_queue import HardcoverQueueEntry

logger = logging.getLogger(__name__)

_Q = HardcoverQueueEntry


@dataclass
class ClaimedBook:
    book: Book
    latest_edition: Optional[Edition] = None


@dataclass
class ClaimResult:
    processing_id: str
    books: list[ClaimedBook] = field(default_factory=list)
    remaining_unclaimed: int = 0


@dataclass
class QueueStatus:
    total: int
    unclaimed: int
    claimed: int
    active_leases: int


async def claim_books(
    db: AsyncSession,
    previous_processing_id: Optional[str] = None,
    limit: int = 100,
) -> ClaimResult:
    """Claim up to ``limit`` unclaimed entries under a fresh lease token.

    Discarding the previous lease, selecting and stamping happen in one
    transaction; concurrent claimers skip rows another transaction has locked.
    Hydrating the books and counting what is left happen afterwards.
    """
    if limit < 1:
        raise InvalidRequestError("limit must be at least 1")

    processing_id = str(uuid.uuid4())
    try:
        discarded = 0
        if previous_processing_id:
            result = await db.execute(
                delete(_Q)
                .where(_Q.processing_id == previous_processing_id)
                .execution_options(synchronize_session=False)
            )
            discarded = result.rowcount

        entry_ids = (
            await db.execute(
                select(_Q.id)
                .where(_Q.processing_id.is_(None))
                .order_by(_Q.created_at, _Q.id)
                .limit(limit)
                .with_for_update(skip_locked=True)
            )
        ).scalars().all()

        if entry_ids:
            await db.execute(
                update(_Q)
                .where(_Q.id.in_(entry_ids), _Q.processing_id.is_(None))
                .values(processing_id=processing_id, claim_time=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
        await db.commit()
    except SQLAlchemyError as exc:
        logger.exception("Queue claim failed; rolled back")
        await db.rollback()
        raise TransactionFailure(f"Queue claim failed: {exc}") from exc

    books = await _hydrate_claimed(db, processing_id)
    remaining = await _count_unclaimed(db)

    logger.info(
        "Claim %s: %d book(s) claimed, %d discarded from previous lease, %d remaining",
        processing_id, len(books), discarded, remaining,
    )
    return ClaimResult(processing_id=processing_id, books=books, remaining_unclaimed=remaining)


async def release_claim(db: AsyncSession, processing_id: str) -> int:
    """Return every entry held by ``processing_id`` to the unclaimed pool."""
    result = await db.execute(
        update(_Q)
        .where(_Q.processing_id == processing_id)
        .values(processing_id=None, claim_time=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    logger.info("Released %d entr(ies) held by %s", result.rowcount, processing_id)
    return result.rowcount


async def release_old_claims(db: AsyncSession, minutes: int = 30) -> int:
    """Free leases taken more than ``minutes`` ago (abandoned by dead workers)."""
    if minutes < 0:
        raise InvalidRequestError("minutes must be non-negative")

    threshold = datetime.now(timezone.utc) - timedelta(minutes=minutes)
    result = await db.execute(
        update(_Q)
        .where(_Q.processing_id.is_not(None), _Q.claim_time < threshold)
        .values(processing_id=None, claim_time=None)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    if result.rowcount:
        logger.warning("Reset %d stale claim(s) older than %d min", result.rowcount, minutes)
    return result.rowcount


async def cleanup_completed(db: AsyncSession) -> int:
    """Drop entries whose book already has a Hardcover id."""
    enriched = select(Book.id).where(Book.hardcover_id.is_not(None))
    result = await db.execute(
        delete(_Q).where(_Q.book_id.in_(enriched)).execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount


async def add_book_to_queue(db: AsyncSession, book_id: uuid.UUID) -> bool:
    """Queue one book.  False when it is already queued."""
    if await db.get(Book, book_id) is None:
        raise NotFoundError("Book not found", missing_ids=[book_id])

    try:
        await db.execute(insert(_Q).values(id=uuid.uuid4(), book_id=book_id))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        return False
    return True


async def remove_book_from_queue(db: AsyncSession, book_id: uuid.UUID) -> bool:
    result = await db.execute(
        delete(_Q).where(_Q.book_id == book_id).execution_options(synchronize_session=False)
    )
    await db.commit()
    return result.rowcount > 0


async def populate_queue(db: AsyncSession) -> tuple[int, int]:
    """Queue every book without a Hardcover id.  Returns (added, skipped-already-queued)."""
    queued = select(_Q.book_id)
    pending_ids = (
        await db.execute(
            select(Book.id)
            .where(Book.hardcover_id.is_(None), Book.id.not_in(queued))
            .order_by(Book.created_at, Book.id)
        )
    ).scalars().all()
    skipped = (
        await db.execute(
            select(func.count())
            .select_from(Book)
            .where(Book.hardcover_id.is_(None), Book.id.in_(queued))
        )
    ).scalar_one()

    if pending_ids:
        try:
            await db.execute(
                insert(_Q),
                [{"id": uuid.uuid4(), "book_id": book_id} for book_id in pending_ids],
            )
            await db.commit()
        except SQLAlchemyError as exc:
            logger.exception("Queue population failed; rolled back")
            await db.rollback()
            raise TransactionFailure(f"Queue population failed: {exc}") from exc

    logger.info("Queue populated: %d added, %d already queued", len(pending_ids), skipped)
    return len(pending_ids), skipped


async def queue_status(db: AsyncSession) -> QueueStatus:
    total = (await db.execute(select(func.count()).select_from(_Q))).scalar_one()
    unclaimed = await _count_unclaimed(db)
    leases = (
        await db.execute(
            select(func.count(func.distinct(_Q.processing_id))).where(_Q.processing_id.is_not(None))
        )
    ).scalar_one()
    return QueueStatus(
        total=total,
        unclaimed=unclaimed,
        claimed=total - unclaimed,
        active_leases=leases,
    )


async def _count_unclaimed(db: AsyncSession) -> int:
    return (
        await db.execute(select(func.count()).select_from(_Q).where(_Q.processing_id.is_(None)))
    ).scalar_one()


async def _hydrate_claimed(db: AsyncSession, processing_id: str) -> list[ClaimedBook]:
    books = (
        await db.execute(
            select(Book)
            .join(_Q, _Q.book_id == Book.id)
            .where(_Q.processing_id == processing_id)
            .options(selectinload(Book.authors))
            .order_by(_Q.created_at, _Q.id)
        )
    ).scalars().all()
    if not books:
        return []

    editions = (
        await db.execute(
            select(Edition)
            .where(Edition.book_id.in_([b.id for b in books]))
            .order_by(Edition.created_at.desc(), Edition.id)
        )
    ).scalars().all()
    latest: dict[uuid.UUID, Edition] = {}
    for edition in editions:
        latest.setdefault(edition.book_id, edition)

    return [ClaimedBook(book=b, latest_edition=latest.get(b.id)) for b in books]
