"""
Integration tests for the duplicate scan service.

Tests call run_scan() directly (bypassing the advisory lock) with the test's
own session.

Covered behaviours
------------------
- An exact scan stores one pending edge per pair and completes its scan run
- Rescanning stores nothing new and never touches reviewed edges
- Invalid arguments fail before a scan run is written
- A failing scan records status='failed' with the error and re-raises
"""
import pytest
from sqlalchemy import func, select

from ibdb.errors import InvalidRequestError
from ibdb.models.author import Author
from ibdb.models.author_similarity import AuthorSimilarity
from ibdb.models.duplicate_scan_run import DuplicateScanRun
from ibdb.services import scan_service
from ibdb.services.scan_service import run_scan, run_scan_locked


async def _seed_authors(db, *names):
    db.add_all([Author(name=n) for n in names])
    await db.commit()


async def _edge_count(db) -> int:
    return (await db.execute(select(func.count()).select_from(AuthorSimilarity))).scalar_one()


async def test_exact_scan_stores_pending_edges(db):
    await _seed_authors(db, "Stephen King", "stephen king", "Neil Gaiman")

    outcome = await run_scan(db, scan_type="exact")

    assert outcome.duplicates_found == 1
    assert outcome.duplicates_stored == 1
    assert outcome.total_authors == 3
    assert len(outcome.preview) == 1

    edge = (await db.execute(select(AuthorSimilarity))).scalar_one()
    assert edge.status == "pending"
    assert edge.score == 100
    assert edge.confidence == "exact"
    assert edge.match_reasons == {"exactMatch": True}

    status, found, stored = (
        await db.execute(
            select(DuplicateScanRun.status, DuplicateScanRun.duplicates_found, DuplicateScanRun.duplicates_stored)
            .where(DuplicateScanRun.id == outcome.scan_run_id)
        )
    ).one()
    assert (status, found, stored) == ("completed", 1, 1)


async def test_rescan_stores_nothing_new_and_keeps_review(db):
    await _seed_authors(db, "Stephen King", "stephen king")
    await run_scan(db, scan_type="exact")

    edge = (await db.execute(select(AuthorSimilarity))).scalar_one()
    edge.status = "dismissed"
    await db.commit()

    outcome = await run_scan(db, scan_type="exact")

    assert outcome.duplicates_found == 1
    assert outcome.duplicates_stored == 0
    assert await _edge_count(db) == 1
    status = (await db.execute(select(AuthorSimilarity.status))).scalar_one()
    assert status == "dismissed"


async def test_rescan_in_other_pair_order_is_not_a_new_edge(db):
    await _seed_authors(db, "Stephen King", "stephen king")
    await run_scan(db, scan_type="exact")

    # fuzzy/full compares the same two authors, possibly in the other order
    outcome = await run_scan(db, scan_type="full", limit=10)

    assert outcome.duplicates_found == 1
    assert outcome.duplicates_stored == 0
    assert await _edge_count(db) == 1


async def test_flipped_scan(db):
    await _seed_authors(db, "King, Stephen", "Stephen King")

    outcome = await run_scan(db, scan_type="flipped")

    assert outcome.duplicates_stored == 1
    edge = (await db.execute(select(AuthorSimilarity))).scalar_one()
    assert edge.score == 95
    assert edge.match_reasons == {"nameFlipped": True}


async def test_fuzzy_scan_respects_min_score(db):
    await _seed_authors(db, "Stephen King", "Stephen Kink", "Jonathan Franzen", "Jonathon Franzan")

    outcome = await run_scan(db, scan_type="fuzzy", min_score=90, limit=10)

    assert outcome.duplicates_stored == 1
    assert (await db.execute(select(AuthorSimilarity.score))).scalar_one() == 92


@pytest.mark.parametrize("kwargs", [
    {"scan_type": "phonetic"},
    {"scan_type": "fuzzy", "min_score": 101},
    {"scan_type": "fuzzy", "limit": 0},
    {"scan_type": "fuzzy", "offset": -1},
])
async def test_invalid_arguments_write_nothing(db, kwargs):
    with pytest.raises(InvalidRequestError):
        await run_scan(db, **kwargs)

    runs = (await db.execute(select(func.count()).select_from(DuplicateScanRun))).scalar_one()
    assert runs == 0


async def test_locked_entry_point_validates_first():
    with pytest.raises(InvalidRequestError):
        await run_scan_locked(scan_type="bogus")


async def test_failed_scan_is_recorded_and_reraised(db, monkeypatch):
    await _seed_authors(db, "Stephen King")

    async def _boom(*args, **kwargs):
        raise RuntimeError("detector exploded")

    monkeypatch.setattr(scan_service, "_detect", _boom)

    with pytest.raises(RuntimeError, match="detector exploded"):
        await run_scan(db, scan_type="exact")

    status, error, completed_at = (
        await db.execute(
            select(DuplicateScanRun.status, DuplicateScanRun.error, DuplicateScanRun.completed_at)
        )
    ).one()
    assert status == "failed"
    assert error == "detector exploded"
    assert completed_at is not None


async def test_recent_scan_runs(db):
    await _seed_authors(db, "Stephen King", "stephen king")
    await run_scan(db, scan_type="exact")
    await run_scan(db, scan_type="flipped")

    runs = await scan_service.recent_scan_runs(db, limit=10)
    assert {r.scan_type for r in runs} == {"exact", "flipped"}

    fetched = await scan_service.get_scan_run(db, runs[0].id)
    assert fetched is runs[0]
