"""Repository for author_similarities (candidate-duplicate edges)."""
import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ibdb.models.author_similarity import AuthorSimilarity
from ibdb.utils.similarity_scorer import SimilarityResult

AUTO_MERGE_NOTE = "Auto-marked as merged due to author merge"


class SimilarityRepo:

    @staticmethod
    async def get_by_id(db: AsyncSession, similarity_id: uuid.UUID) -> Optional[AuthorSimilarity]:
        return await db.get(AuthorSimilarity, similarity_id)

    @staticmethod
    async def find_pair(
        db: AsyncSession, author_a: uuid.UUID, author_b: uuid.UUID
    ) -> Optional[AuthorSimilarity]:
        """Return the edge between two authors, stored in either order."""
        result = await db.execute(
            select(AuthorSimilarity)
            .where(
                or_(
                    and_(AuthorSimilarity.author1_id == author_a, AuthorSimilarity.author2_id == author_b),
                    and_(AuthorSimilarity.author1_id == author_b, AuthorSimilarity.author2_id == author_a),
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def create_pending(db: AsyncSession, result: SimilarityResult) -> AuthorSimilarity:
        edge = AuthorSimilarity(
            author1_id=result.author1.id,
            author1_name=result.author1.name,
            author2_id=result.author2.id,
            author2_name=result.author2.name,
            score=result.score,
            confidence=result.confidence,
            match_reasons=result.reasons.to_dict(),
            status="pending",
        )
        db.add(edge)
        return edge

    @staticmethod
    async def list_filtered(
        db: AsyncSession,
        status: str = "pending",
        min_score: int = 70,
        confidence: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuthorSimilarity], int]:
        """Page of edges ordered by score desc, newest first; plus the total count."""
        conditions = [AuthorSimilarity.status == status, AuthorSimilarity.score >= min_score]
        if confidence:
            conditions.append(AuthorSimilarity.confidence == confidence)

        rows = await db.execute(
            select(AuthorSimilarity)
            .where(*conditions)
            .order_by(AuthorSimilarity.score.desc(), AuthorSimilarity.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        total = (
            await db.execute(select(func.count()).select_from(AuthorSimilarity).where(*conditions))
        ).scalar_one()
        return list(rows.scalars().all()), total

    @staticmethod
    async def mark_merged(
        db: AsyncSession,
        similarity_ids: Sequence[uuid.UUID],
        merge_id: uuid.UUID,
        reviewed_by: str,
    ) -> int:
        """Explicitly approved edges → merged, linked to the merge record."""
        if not similarity_ids:
            return 0
        result = await db.execute(
            update(AuthorSimilarity)
            .where(AuthorSimilarity.id.in_(similarity_ids))
            .values(
                status="merged",
                merge_id=merge_id,
                reviewed_at=datetime.now(timezone.utc),
                reviewed_by=reviewed_by,
            )
        )
        return result.rowcount

    @staticmethod
    async def auto_merge_pending_for_authors(
        db: AsyncSession,
        author_ids: Sequence[uuid.UUID],
        merge_id: uuid.UUID,
        reviewed_by: str,
    ) -> int:
        """Close every still-pending edge touching an absorbed author, on either side."""
        if not author_ids:
            return 0
        result = await db.execute(
            update(AuthorSimilarity)
            .where(
                AuthorSimilarity.status == "pending",
                or_(
                    AuthorSimilarity.author1_id.in_(author_ids),
                    AuthorSimilarity.author2_id.in_(author_ids),
                ),
            )
            .values(
                status="merged",
                merge_id=merge_id,
                reviewed_at=datetime.now(timezone.utc),
                reviewed_by=reviewed_by,
                notes=AUTO_MERGE_NOTE,
            )
        )
        return result.rowcount

    @staticmethod
    async def count_by_status(db: AsyncSession) -> dict[str, int]:
        rows = await db.execute(
            select(AuthorSimilarity.status, func.count()).group_by(AuthorSimilarity.status)
        )
        return {status: n for status, n in rows.all()}

    @staticmethod
    async def pending_confidence_distribution(db: AsyncSession) -> dict[str, int]:
        rows = await db.execute(
            select(AuthorSimilarity.confidence, func.count())
            .where(AuthorSimilarity.status == "pending")
            .group_by(AuthorSimilarity.confidence)
        )
        return {confidence: n for confidence, n in rows.all()}

    @staticmethod
    async def count_pending_in_range(db: AsyncSession, low: int, high: int) -> int:
        return (
            await db.execute(
                select(func.count())
                .select_from(AuthorSimilarity)
                .where(
                    AuthorSimilarity.status == "pending",
                    AuthorSimilarity.score >= low,
                    AuthorSimilarity.score <= high,
                )
            )
        ).scalar_one()
