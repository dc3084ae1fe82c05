"""
Author merge service.

merge_authors() folds a set of duplicate author rows into one target author.

Preconditions are checked before anything is written, with the involved
author rows locked (SELECT ... FOR UPDATE) for the rest of the transaction:
  - at least two distinct author ids
  - the target is one of them
  - every id still resolves, unless only the target is left, in which case a
    previous run already completed the merge and the call succeeds with no
    effect (retry after a lost response, double-submitted merge)

The body runs in one transaction:
  1. Link the absorbed authors' books to the target (skipping books already
     linked to it) and drop the absorbed links.
  2. Copy external ids the target lacks from the absorbed authors.
  3. Write the author_merges audit row.
  4. Mark the approved similarity edges merged.
  5. Close every other pending edge that touches an absorbed author.
  6. Delete the absorbed authors.
"""
import logging
import uuid
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import delete, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ibdb.errors import InvalidRequestError, NotFoundError, TransactionFailure
from ibdb.models.author import Author
from ibdb.models.book import book_authors
from ibdb.repositories.author_repo import AuthorRepo
from ibdb.repositories.merge_repo import AuthorMergeRepo
from ibdb.repositories.similarity_repo import SimilarityRepo

logger = logging.getLogger(__name__)

# Copied onto the target when it has no value of its own.
ADOPTED_ID_FIELDS = ("goodreads_id", "openlibrary_id", "hardcover_id", "hardcover_slug")


@dataclass
class MergeResult:
    merge_id: Optional[uuid.UUID]
    target_author_id: uuid.UUID
    target_author_name: Optional[str]
    books_reassigned: int
    authors_deleted: int
    already_merged: bool = False


async def merge_authors(
    db: AsyncSession,
    author_ids: Sequence[uuid.UUID],
    target_author_id: uuid.UUID,
    merged_by: str = "admin",
    merge_reason: Optional[str] = None,
    similarity_ids: Optional[Sequence[uuid.UUID]] = None,
) -> MergeResult:
    ids = list(dict.fromkeys(author_ids))
    if len(ids) < 2:
        raise InvalidRequestError("At least 2 authors are required for a merge")
    if target_author_id not in ids:
        raise InvalidRequestError("Target author must be one of the authors being merged")

    # A concurrent merge of the same rows blocks here until this one ends,
    # then finds the absorbed rows gone.
    found = {a.id: a for a in await AuthorRepo.get_many(db, ids, for_update=True)}
    target = found.get(target_author_id)

    if target is not None and len(found) == 1:
        target_name = target.name
        await db.rollback()
        logger.info(
            "Merge into %s already applied: absorbed authors no longer exist", target_author_id
        )
        return MergeResult(
            merge_id=None,
            target_author_id=target_author_id,
            target_author_name=target_name,
            books_reassigned=0,
            authors_deleted=0,
            already_merged=True,
        )

    missing = [i for i in ids if i not in found]
    if missing:
        await db.rollback()
        raise NotFoundError("One or more authors not found", missing_ids=missing)

    absorbed = [found[i] for i in ids if i != target_author_id]
    absorbed_ids = [a.id for a in absorbed]
    target_name = target.name

    try:
        reassigned = await _reassign_books(db, absorbed_ids, target_author_id)
        _adopt_external_ids(target, absorbed)

        record = await AuthorMergeRepo.create(
            db,
            absorbed=absorbed,
            target=target,
            merged_by=merged_by,
            merge_reason=merge_reason,
            books_reassigned=reassigned,
        )
        merge_id = record.id

        await SimilarityRepo.mark_merged(db, similarity_ids or [], merge_id, merged_by)
        closed = await SimilarityRepo.auto_merge_pending_for_authors(
            db, absorbed_ids, merge_id, merged_by
        )

        await db.execute(
            delete(Author)
            .where(Author.id.in_(absorbed_ids))
            .execution_options(synchronize_session=False)
        )
        for author in absorbed:
            db.expunge(author)

        await db.commit()
    except SQLAlchemyError as exc:
        logger.exception("Merge into %s failed; rolled back", target_author_id)
        await db.rollback()
        raise TransactionFailure(f"Author merge failed: {exc}") from exc
    except Exception:
        logger.exception("Merge into %s failed; rolled back", target_author_id)
        await db.rollback()
        raise

    logger.info(
        "Merged %d author(s) into %s (%s): %d book(s) reassigned, %d pending edge(s) closed",
        len(absorbed_ids), target_author_id, target_name, reassigned, closed,
    )
    return MergeResult(
        merge_id=merge_id,
        target_author_id=target_author_id,
        target_author_name=target_name,
        books_reassigned=reassigned,
        authors_deleted=len(absorbed_ids),
    )


async def _reassign_books(
    db: AsyncSession, absorbed_ids: list[uuid.UUID], target_id: uuid.UUID
) -> int:
    """Move book links from the absorbed authors to the target; return books newly linked."""
    book_ids = set(
        (
            await db.execute(
                select(book_authors.c.book_id)
                .where(book_authors.c.author_id.in_(absorbed_ids))
                .distinct()
            )
        ).scalars().all()
    )
    if not book_ids:
        return 0

    already_linked = set(
        (
            await db.execute(
                select(book_authors.c.book_id).where(
                    book_authors.c.author_id == target_id,
                    book_authors.c.book_id.in_(book_ids),
                )
            )
        ).scalars().all()
    )
    to_link = sorted(book_ids - already_linked, key=str)
    if to_link:
        await db.execute(
            insert(book_authors),
            [{"book_id": book_id, "author_id": target_id} for book_id in to_link],
        )

    await db.execute(delete(book_authors).where(book_authors.c.author_id.in_(absorbed_ids)))
    return len(to_link)


def _adopt_external_ids(target: Author, absorbed: list[Author]) -> None:
    for attr in ADOPTED_ID_FIELDS:
        if getattr(target, attr):
            continue
        for author in absorbed:
            value = getattr(author, attr)
            if value:
                setattr(target, attr, value)
                break
