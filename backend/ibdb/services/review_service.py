"""Review workflow over stored similarity edges: list, triage, merge history."""
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ibdb.errors import InvalidRequestError, NotFoundError
from ibdb.models.author import Author
from ibdb.models.author_merge import AuthorMerge
from ibdb.models.author_similarity import SIMILARITY_STATUSES, AuthorSimilarity
from ibdb.repositories.author_repo import AuthorRepo
from ibdb.repositories.merge_repo import AuthorMergeRepo
from ibdb.repositories.similarity_repo import SimilarityRepo
from ibdb.utils.similarity_scorer import CONFIDENCE_LEVELS, MatchReasons

logger = logging.getLogger(__name__)


@dataclass
class AuthorSide:
    """One side of an edge as it looks now.  ``deleted`` once a merge absorbed it."""
    id: uuid.UUID
    name: str
    deleted: bool = False
    book_titles: list[str] = field(default_factory=list)


@dataclass
class DuplicateEntry:
    similarity: AuthorSimilarity
    reasons: MatchReasons
    author1: AuthorSide
    author2: AuthorSide


@dataclass
class DuplicatePage:
    items: list[DuplicateEntry]
    total: int
    limit: int
    offset: int


async def list_duplicates(
    db: AsyncSession,
    status: str = "pending",
    min_score: int = 70,
    confidence: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> DuplicatePage:
    _check_status(status)
    if confidence is not None and confidence not in CONFIDENCE_LEVELS:
        raise InvalidRequestError(f"Invalid confidence: {confidence!r}")
    if limit < 1 or offset < 0:
        raise InvalidRequestError("limit must be positive and offset non-negative")

    edges, total = await SimilarityRepo.list_filtered(
        db, status=status, min_score=min_score, confidence=confidence, limit=limit, offset=offset
    )

    author_ids = {e.author1_id for e in edges} | {e.author2_id for e in edges}
    current = {a.id: a for a in await AuthorRepo.get_many(db, list(author_ids), with_books=True)}

    items = [
        DuplicateEntry(
            similarity=edge,
            reasons=MatchReasons.from_dict(edge.match_reasons),
            author1=_side(current.get(edge.author1_id), edge.author1_id, edge.author1_name),
            author2=_side(current.get(edge.author2_id), edge.author2_id, edge.author2_name),
        )
        for edge in edges
    ]
    return DuplicatePage(items=items, total=total, limit=limit, offset=offset)


async def update_similarity_status(
    db: AsyncSession,
    similarity_id: uuid.UUID,
    status: str,
    reviewed_by: str = "admin",
    notes: Optional[str] = None,
) -> AuthorSimilarity:
    _check_status(status)

    edge = await SimilarityRepo.get_by_id(db, similarity_id)
    if edge is None:
        raise NotFoundError("Similarity record not found", missing_ids=[similarity_id])

    edge.status = status
    edge.reviewed_at = datetime.now(timezone.utc)
    edge.reviewed_by = reviewed_by
    edge.notes = notes
    await db.commit()

    logger.info("Similarity %s marked %s by %s", similarity_id, status, reviewed_by)
    return edge


async def merge_history(
    db: AsyncSession, limit: int = 50, offset: int = 0
) -> tuple[list[AuthorMerge], int]:
    merges = await AuthorMergeRepo.list_recent(db, limit=limit, offset=offset)
    return merges, await AuthorMergeRepo.count(db)


def _check_status(status: str) -> None:
    if status not in SIMILARITY_STATUSES:
        raise InvalidRequestError(
            f"Invalid status: {status!r} (expected one of {', '.join(SIMILARITY_STATUSES)})"
        )


def _side(author: Optional[Author], author_id: uuid.UUID, cached_name: str) -> AuthorSide:
    if author is None:
        return AuthorSide(id=author_id, name=cached_name, deleted=True)
    return AuthorSide(
        id=author.id,
        name=author.name,
        book_titles=[b.title for b in author.books],
    )
