"""
Tests for the review workflow and duplicate statistics.

Covered behaviours
------------------
- Listing filters by status / score / confidence and orders by score
- Listed edges show current author data, or the cached name flagged deleted
- Status updates validate the status and stamp the reviewer
- Stats count edges by status, pending confidence and score bucket
"""
import uuid

import pytest

from ibdb.errors import InvalidRequestError, NotFoundError
from ibdb.models.author import Author
from ibdb.models.author_similarity import AuthorSimilarity
from ibdb.models.book import Book
from ibdb.services.merge_service import merge_authors
from ibdb.services.review_service import list_duplicates, merge_history, update_similarity_status
from ibdb.services.stats_service import duplicate_stats


def _edge(a: Author, b: Author, score: int, confidence: str = "high", status: str = "pending"):
    return AuthorSimilarity(
        author1_id=a.id, author1_name=a.name,
        author2_id=b.id, author2_name=b.name,
        score=score, confidence=confidence, status=status,
        match_reasons={"fuzzyMatch": score} if score < 100 else {"exactMatch": True},
    )


async def _seed(db):
    king = Author(name="Stephen King")
    king2 = Author(name="stephen king")
    kink = Author(name="Stephen Kink")
    franzen = Author(name="Jonathan Franzen")
    franzan = Author(name="Jonathon Franzan")
    db.add_all([king, king2, kink, franzen, franzan, Book(title="Carrie", authors=[king])])
    await db.flush()
    edges = [
        _edge(king, king2, 100, "exact"),
        _edge(king, kink, 92),
        _edge(franzen, franzan, 88, "medium"),
        _edge(king2, kink, 92, status="dismissed"),
    ]
    db.add_all(edges)
    await db.commit()
    return {"king": king.id, "king2": king2.id, "kink": kink.id}, [e.id for e in edges]


# ── list_duplicates ───────────────────────────────────────────────────────────

async def test_list_pending_ordered_by_score(db):
    await _seed(db)

    page = await list_duplicates(db)

    assert page.total == 3
    assert [i.similarity.score for i in page.items] == [100, 92, 88]
    assert page.items[0].reasons.exact_match
    assert page.items[1].reasons.fuzzy_match == 92


async def test_list_filters(db):
    await _seed(db)

    assert (await list_duplicates(db, min_score=90)).total == 2
    assert (await list_duplicates(db, confidence="medium")).total == 1
    assert (await list_duplicates(db, status="dismissed")).total == 1

    page = await list_duplicates(db, limit=1, offset=1)
    assert page.total == 3
    assert [i.similarity.score for i in page.items] == [92]


async def test_list_shows_current_authors_and_books(db):
    await _seed(db)

    top = (await list_duplicates(db)).items[0]

    assert top.author1.name == "Stephen King"
    assert top.author1.book_titles == ["Carrie"]
    assert not top.author1.deleted


async def test_list_flags_absorbed_author_as_deleted(db):
    ids, _ = await _seed(db)
    await merge_authors(db, [ids["king"], ids["kink"]], ids["king"])

    page = await list_duplicates(db, status="dismissed")

    item = page.items[0]
    assert item.author2.id == ids["kink"]
    assert item.author2.deleted
    assert item.author2.name == "Stephen Kink"
    assert not item.author1.deleted


@pytest.mark.parametrize("kwargs", [
    {"status": "approved"},
    {"confidence": "certain"},
    {"limit": 0},
])
async def test_list_rejects_bad_arguments(db, kwargs):
    with pytest.raises(InvalidRequestError):
        await list_duplicates(db, **kwargs)


# ── update_similarity_status ──────────────────────────────────────────────────

async def test_update_status(db):
    _, edge_ids = await _seed(db)

    edge = await update_similarity_status(db, edge_ids[1], "dismissed", reviewed_by="alice", notes="different people")

    assert edge.status == "dismissed"
    assert edge.reviewed_by == "alice"
    assert edge.notes == "different people"
    assert edge.reviewed_at is not None
    assert (await list_duplicates(db, status="dismissed")).total == 2


async def test_update_status_rejects_unknown_status(db):
    _, edge_ids = await _seed(db)
    with pytest.raises(InvalidRequestError):
        await update_similarity_status(db, edge_ids[0], "approved")


async def test_update_status_unknown_edge(db):
    with pytest.raises(NotFoundError):
        await update_similarity_status(db, uuid.uuid4(), "reviewed")


# ── stats / history ───────────────────────────────────────────────────────────

async def test_duplicate_stats(db):
    await _seed(db)

    stats = await duplicate_stats(db)

    assert stats.total_authors == 5
    assert stats.total_duplicates == 4
    assert stats.by_status == {"pending": 3, "reviewed": 0, "merged": 0, "dismissed": 1}
    assert stats.pending_by_confidence == {"exact": 1, "high": 1, "medium": 1}
    assert {b.label: b.count for b in stats.score_distribution} == {
        "95-100%": 1,
        "90-94%": 1,
        "85-89%": 1,
        "80-84%": 0,
        "70-79%": 0,
    }
    assert stats.total_merges == 0
    assert stats.total_books_reassigned == 0
    assert stats.recent_merges == []


async def test_stats_and_history_after_merge(db):
    ids, _ = await _seed(db)
    await merge_authors(db, [ids["king"], ids["king2"]], ids["king"], merged_by="bob")

    stats = await duplicate_stats(db)
    assert stats.total_authors == 4
    assert stats.total_merges == 1
    assert stats.by_status["merged"] == 1
    assert len(stats.recent_merges) == 1

    merges, total = await merge_history(db)
    assert total == 1
    assert merges[0].merged_by == "bob"
    assert merges[0].merged_author_names == ["stephen king"]
