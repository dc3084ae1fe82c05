"""
Author duplicate detector.

Four scans over the author table, all read-only:

  find_exact_duplicates()        LOWER(TRIM(name)) collisions, aggregated server-side
  find_flipped_name_duplicates() "Last, First" rows whose flipped form exists
  find_all_duplicates()          pairwise compare_authors() inside one page of
                                 authors ordered by name, not a cross-product
                                 over the whole table; page with offset/limit
  find_duplicates_for_author()   one author vs. candidates blocked on first letter

Persisting the results is the scan service's job (ibdb.services.scan_service).
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from ibdb.repositories.author_repo import AuthorRepo
from ibdb.utils.name_normalizer import flip
from ibdb.utils.similarity_scorer import (
    AuthorRef,
    MatchReasons,
    SimilarityResult,
    compare_authors,
    make_pair_key,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class ExactGroup:
    """Authors sharing one normalized name."""
    name: str                        # LOWER(TRIM(name))
    author_ids: list[uuid.UUID]
    count: int


class AuthorDuplicateDetector:
    def __init__(self, db: AsyncSession, scorer: Callable = compare_authors):
        self.db = db
        self.scorer = scorer

    async def find_exact_duplicates(self) -> list[ExactGroup]:
        groups = await AuthorRepo.exact_name_groups(self.db)
        return [
            ExactGroup(name=key, author_ids=[a.id for a in authors], count=len(authors))
            for key, authors in groups
        ]

    async def exact_duplicate_pairs(self) -> list[SimilarityResult]:
        """Expand every exact group into all of its unordered pairs (score 100)."""
        pairs: list[SimilarityResult] = []
        for _, authors in await AuthorRepo.exact_name_groups(self.db):
            for i in range(len(authors) - 1):
                for j in range(i + 1, len(authors)):
                    pairs.append(SimilarityResult(
                        author1=AuthorRef(authors[i].id, authors[i].name),
                        author2=AuthorRef(authors[j].id, authors[j].name),
                        score=100,
                        confidence="exact",
                        reasons=MatchReasons(exact_match=True),
                    ))
        return pairs

    async def find_flipped_name_duplicates(self) -> list[SimilarityResult]:
        duplicates: list[SimilarityResult] = []
        for author in await AuthorRepo.list_with_comma(self.db):
            flipped = flip(author.name)
            if flipped == author.name:
                continue  # ambiguous multi-comma name
            for match in await AuthorRepo.find_by_name_ci(self.db, flipped, exclude_id=author.id):
                duplicates.append(SimilarityResult(
                    author1=AuthorRef(author.id, author.name),
                    author2=AuthorRef(match.id, match.name),
                    score=95,
                    confidence="high",
                    reasons=MatchReasons(name_flipped=True),
                ))
        return duplicates

    async def find_all_duplicates(
        self,
        min_score: int = 70,
        limit: int = 1000,
        offset: int = 0,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[SimilarityResult]:
        authors = await AuthorRepo.list_page(self.db, limit=limit, offset=offset)
        total = len(authors)

        duplicates: list[SimilarityResult] = []
        seen: set[str] = set()

        for i, author1 in enumerate(authors):
            if on_progress is not None:
                on_progress(i + 1, total)

            for author2 in authors[i + 1:]:
                key = make_pair_key(author1.id, author2.id)
                if key in seen:
                    continue
                seen.add(key)

                result = self.scorer(author1, author2)
                if result is not None and result.score >= min_score:
                    duplicates.append(result)

        duplicates.sort(key=lambda r: r.score, reverse=True)
        logger.debug(
            "Pairwise scan over %d authors (offset %d): %d candidate pairs",
            total, offset, len(duplicates),
        )
        return duplicates

    async def find_duplicates_for_author(self, author_id: uuid.UUID) -> list[SimilarityResult]:
        author = await AuthorRepo.get_by_id(self.db, author_id)
        if author is None or not author.name:
            return []

        candidates = await AuthorRepo.list_by_first_letter(
            self.db, author.name[0], exclude_id=author.id
        )
        duplicates = [
            result
            for result in (self.scorer(author, candidate) for candidate in candidates)
            if result is not None
        ]
        duplicates.sort(key=lambda r: r.score, reverse=True)
        return duplicates
