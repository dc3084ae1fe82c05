"""Repository for author_merges (merge audit trail)."""
import uuid
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ibdb.models.author import Author
from ibdb.models.author_merge import AuthorMerge


class AuthorMergeRepo:

    @staticmethod
    async def create(
        db: AsyncSession,
        absorbed: list[Author],
        target: Author,
        merged_by: str,
        merge_reason: Optional[str],
        books_reassigned: int,
    ) -> AuthorMerge:
        record = AuthorMerge(
            merged_author_ids=[str(a.id) for a in absorbed],
            merged_author_names=[a.name for a in absorbed],
            target_author_id=target.id,
            target_author_name=target.name,
            merged_by=merged_by,
            merge_reason=merge_reason,
            books_reassigned=books_reassigned,
        )
        db.add(record)
        await db.flush()
        return record

    @staticmethod
    async def list_recent(db: AsyncSession, limit: int = 50, offset: int = 0) -> list[AuthorMerge]:
        result = await db.execute(
            select(AuthorMerge)
            .order_by(AuthorMerge.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession) -> int:
        return (await db.execute(select(func.count()).select_from(AuthorMerge))).scalar_one()

    @staticmethod
    async def total_books_reassigned(db: AsyncSession) -> int:
        total = (await db.execute(select(func.sum(AuthorMerge.books_reassigned)))).scalar_one()
        return total or 0
