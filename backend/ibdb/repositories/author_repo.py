"""Author lookups used by the duplicate detector and the merge service."""
import uuid
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ibdb.models.author import Author


class AuthorRepo:

    @staticmethod
    async def get_by_id(db: AsyncSession, author_id: uuid.UUID) -> Optional[Author]:
        return await db.get(Author, author_id)

    @staticmethod
    async def get_many(
        db: AsyncSession,
        author_ids: Sequence[uuid.UUID],
        with_books: bool = False,
        for_update: bool = False,
    ) -> list[Author]:
        """Load the given authors.  ``for_update`` row-locks them in id order
        (FOR UPDATE on PostgreSQL) until the caller's transaction ends."""
        if not author_ids:
            return []
        stmt = select(Author).where(Author.id.in_(author_ids))
        if with_books:
            stmt = stmt.options(selectinload(Author.books))
        if for_update:
            stmt = (
                stmt.order_by(Author.id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def count(db: AsyncSession) -> int:
        return (await db.execute(select(func.count()).select_from(Author))).scalar_one()

    @staticmethod
    async def list_page(db: AsyncSession, limit: int, offset: int) -> list[Author]:
        """One page of authors ordered by name (id breaks ties, so paging is stable)."""
        result = await db.execute(
            select(Author).order_by(Author.name, Author.id).offset(offset).limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_with_comma(db: AsyncSession) -> list[Author]:
        """Authors stored in "Last, First" form."""
        result = await db.execute(select(Author).where(Author.name.contains(",")))
        return list(result.scalars().all())

    @staticmethod
    async def find_by_name_ci(
        db: AsyncSession, name: str, exclude_id: Optional[uuid.UUID] = None
    ) -> list[Author]:
        """Case-insensitive exact name match."""
        stmt = select(Author).where(func.lower(Author.name) == name.lower())
        if exclude_id is not None:
            stmt = stmt.where(Author.id != exclude_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    @staticmethod
    async def list_by_first_letter(
        db: AsyncSession, letter: str, exclude_id: Optional[uuid.UUID] = None
    ) -> list[Author]:
        """Blocking query: authors whose name starts with ``letter`` (case-insensitive)."""
        stmt = select(Author).where(
            func.lower(Author.name).startswith(letter.lower(), autoescape=True)
        )
        if exclude_id is not None:
            stmt = stmt.where(Author.id != exclude_id)
        result = await db.execute(stmt.order_by(Author.name))
        return list(result.scalars().all())

    @staticmethod
    async def exact_name_groups(db: AsyncSession) -> list[tuple[str, list[Author]]]:
        """
        Groups of authors whose LOWER(TRIM(name)) collide, largest group first.

        The HAVING COUNT(*) > 1 aggregate runs server-side; only the authors in
        colliding groups are then loaded and bucketed.
        """
        key = func.lower(func.trim(Author.name))
        dup_keys = (
            await db.execute(
                select(key.label("normalized"), func.count().label("n"))
                .group_by(key)
                .having(func.count() > 1)
                .order_by(func.count().desc(), key)
            )
        ).all()
        if not dup_keys:
            return []

        keys = [row.normalized for row in dup_keys]
        members = (
            await db.execute(
                select(key.label("normalized"), Author)
                .where(key.in_(keys))
                .order_by(Author.name, Author.id)
            )
        ).all()

        buckets: dict[str, list[Author]] = {k: [] for k in keys}
        for row in members:
            buckets[row.normalized].append(row.Author)
        return [(k, buckets[k]) for k in keys]
