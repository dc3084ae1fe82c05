"""
Hardcover enrichment: look up queued books on Hardcover and store the ids found.

The worker loop is claim → look up each claimed book → apply matches → claim
again, handing the previous lease token to the next claim so that the finished
batch is dropped from the queue.  A book with no Hardcover edition keeps its
queue entry until that discard; a book whose lookup failed likewise.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import delete, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ibdb.database import SessionLocal
from ibdb.errors import ExternalServiceError, TransactionFailure
from ibdb.integrations.hardcover_client import HardcoverClient, HardcoverMatch
from ibdb.models.author import Author
from ibdb.models.book import Book, Edition
from ibdb.models.hardcover_queue import HardcoverQueueEntry
from ibdb.services.hardcover_queue import ClaimedBook, claim_books

logger = logging.getLogger(__name__)


@dataclass
class EnrichmentSummary:
    batches: int = 0
    claimed: int = 0
    updated: int = 0
    not_found: int = 0
    failed: int = 0
    processing_id: Optional[str] = None


async def apply_hardcover_match(
    db: AsyncSession, claimed: ClaimedBook, match: HardcoverMatch
) -> int:
    """Write the Hardcover ids onto the book, its latest edition and matching authors.

    Authors are matched to contributors by exact name.  The book's queue entry
    is deleted in the same transaction.  Returns the number of authors updated.
    """
    book = claimed.book
    book_id = book.id
    matched = []
    for author in book.authors:
        contributor = match.author_named(author.name)
        if contributor is not None:
            matched.append((author.id, contributor))

    try:
        if claimed.latest_edition is not None:
            await db.execute(
                update(Edition)
                .where(Edition.id == claimed.latest_edition.id)
                .values(hardcover_id=match.edition_id)
            )
        await db.execute(
            update(Book)
            .where(Book.id == book_id)
            .values(hardcover_id=match.book_id, hardcover_slug=match.book_slug)
        )
        for author_id, contributor in matched:
            await db.execute(
                update(Author)
                .where(Author.id == author_id)
                .values(hardcover_id=contributor.id, hardcover_slug=contributor.slug)
            )
        await db.execute(
            delete(HardcoverQueueEntry)
            .where(HardcoverQueueEntry.book_id == book_id)
            .execution_options(synchronize_session=False)
        )
        await db.commit()
    except SQLAlchemyError as exc:
        logger.exception("Storing Hardcover ids for book %s failed", book_id)
        await db.rollback()
        raise TransactionFailure(f"Storing Hardcover ids failed: {exc}") from exc

    return len(matched)


async def enrich_claimed_book(
    db: AsyncSession, client: HardcoverClient, claimed: ClaimedBook
) -> Optional[HardcoverMatch]:
    """Look one claimed book up (title, first author, latest ISBN-13) and apply a hit."""
    book = claimed.book
    author_name = book.authors[0].name if book.authors else None
    isbn = claimed.latest_edition.isbn13 if claimed.latest_edition is not None else None

    match = await client.lookup_external_id(book.title, author_name, isbn)
    if match is None:
        return None
    await apply_hardcover_match(db, claimed, match)
    return match


async def run_enrichment_worker(
    client: HardcoverClient,
    session_factory: async_sessionmaker = SessionLocal,
    batch_size: int = 100,
    processing_id: Optional[str] = None,
    max_batches: Optional[int] = None,
) -> EnrichmentSummary:
    """Drain the queue batch by batch.

    Stops when a claim comes back empty, when nothing unclaimed is left, or
    after ``max_batches``.  ``processing_id`` resumes from an earlier run's
    last lease; the summary carries the lease to resume from next time.
    """
    summary = EnrichmentSummary(processing_id=processing_id)

    while max_batches is None or summary.batches < max_batches:
        async with session_factory() as db:
            claim = await claim_books(
                db, previous_processing_id=summary.processing_id, limit=batch_size
            )
            summary.processing_id = claim.processing_id
            if not claim.books:
                logger.info("Hardcover queue empty; nothing to enrich")
                break

            summary.batches += 1
            summary.claimed += len(claim.books)
            batch_updated = 0

            for claimed in claim.books:
                title = claimed.book.title
                try:
                    match = await enrich_claimed_book(db, client, claimed)
                except ExternalServiceError:
                    logger.exception("Hardcover lookup failed for %r", title)
                    summary.failed += 1
                    continue

                if match is None:
                    summary.not_found += 1
                else:
                    batch_updated += 1

            summary.updated += batch_updated
            logger.info(
                "Batch %d (lease %s): %d/%d updated, %d remaining in queue",
                summary.batches, claim.processing_id, batch_updated,
                len(claim.books), claim.remaining_unclaimed,
            )

            if claim.remaining_unclaimed == 0:
                break

    return summary
