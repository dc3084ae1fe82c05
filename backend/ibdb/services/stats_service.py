"""Duplicate-detection statistics for the review dashboard and the CLI."""
from dataclasses import dataclass, field

from sqlalchemy.ext.asyncio import AsyncSession

from ibdb.models.author_merge import AuthorMerge
from ibdb.models.author_similarity import SIMILARITY_STATUSES
from ibdb.models.duplicate_scan_run import DuplicateScanRun
from ibdb.repositories.author_repo import AuthorRepo
from ibdb.repositories.merge_repo import AuthorMergeRepo
from ibdb.repositories.scan_run_repo import ScanRunRepo
from ibdb.repositories.similarity_repo import SimilarityRepo

# (low, high, label), inclusive on both ends
SCORE_BUCKETS = (
    (95, 100, "95-100%"),
    (90, 94, "90-94%"),
    (85, 89, "85-89%"),
    (80, 84, "80-84%"),
    (70, 79, "70-79%"),
)
RECENT_LIMIT = 5


@dataclass
class ScoreBucket:
    low: int
    high: int
    label: str
    count: int


@dataclass
class DuplicateStats:
    total_authors: int
    total_duplicates: int
    total_merges: int
    total_books_reassigned: int
    by_status: dict[str, int]
    pending_by_confidence: dict[str, int]
    score_distribution: list[ScoreBucket]
    recent_scans: list[DuplicateScanRun] = field(default_factory=list)
    recent_merges: list[AuthorMerge] = field(default_factory=list)


async def duplicate_stats(db: AsyncSession) -> DuplicateStats:
    counts = await SimilarityRepo.count_by_status(db)
    by_status = {status: counts.get(status, 0) for status in SIMILARITY_STATUSES}

    buckets = [
        ScoreBucket(low, high, label, await SimilarityRepo.count_pending_in_range(db, low, high))
        for low, high, label in SCORE_BUCKETS
    ]

    return DuplicateStats(
        total_authors=await AuthorRepo.count(db),
        total_duplicates=sum(counts.values()),
        total_merges=await AuthorMergeRepo.count(db),
        total_books_reassigned=await AuthorMergeRepo.total_books_reassigned(db),
        by_status=by_status,
        pending_by_confidence=await SimilarityRepo.pending_confidence_distribution(db),
        score_distribution=buckets,
        recent_scans=await ScanRunRepo.list_recent(db, RECENT_LIMIT),
        recent_merges=await AuthorMergeRepo.list_recent(db, limit=RECENT_LIMIT),
    )
