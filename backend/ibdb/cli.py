"""
IBDB maintenance CLI: duplicate-author detection, review and merge, plus the
Hardcover enrichment queue.

Usage:
    ibdb scan --type exact
    ibdb duplicates --min-score 90
    ibdb merge <author-id> <author-id> --target <author-id>
    ibdb queue populate
    ibdb enrich --max-batches 5
"""
import asyncio
import logging
import sys
import uuid
from typing import Optional

import click
from rich.console import Console
from rich.table import Table

from ibdb.config import settings
from ibdb.database import SessionLocal, engine
from ibdb.errors import IbdbError, InvalidRequestError, NotFoundError, ScanInProgressError
from ibdb.integrations.hardcover_client import HardcoverClient
from ibdb.models.author_similarity import SIMILARITY_STATUSES
from ibdb.services import hardcover_queue, review_service, stats_service
from ibdb.services.duplicate_detector import AuthorDuplicateDetector
from ibdb.services.enrichment_service import run_enrichment_worker
from ibdb.services.merge_service import merge_authors
from ibdb.services.scan_service import SCAN_TYPES, run_scan_locked
from ibdb.utils.similarity_scorer import CONFIDENCE_LEVELS, SimilarityResult

console = Console()
logger = logging.getLogger("ibdb.cli")


def _run(coro):
    """Run one command coroutine; map domain errors onto a message and exit code 1."""

    async def _main():
        try:
            return await coro
        finally:
            await engine.dispose()

    try:
        return asyncio.run(_main())
    except (InvalidRequestError, NotFoundError, ScanInProgressError) as exc:
        console.print(f"[red]{exc}[/red]")
        if isinstance(exc, NotFoundError) and exc.missing_ids:
            console.print(f"Missing: {', '.join(exc.missing_ids)}")
        sys.exit(1)
    except IbdbError as exc:
        logger.exception("Command failed")
        console.print(f"[red]{exc}[/red]")
        sys.exit(1)
    except Exception:
        logger.exception("Unexpected error")
        console.print("[red]Unexpected error; see log for details[/red]")
        sys.exit(1)


def _reason_labels(reasons) -> str:
    return ", ".join(sorted(reasons.to_dict())) or "-"


def _results_table(title: str, results: list[SimilarityResult]) -> Table:
    table = Table(title=title)
    table.add_column("Score", justify="right")
    table.add_column("Confidence")
    table.add_column("Author 1")
    table.add_column("Author 2")
    table.add_column("Reasons")
    for r in results:
        table.add_row(
            str(r.score), r.confidence, r.author1.name, r.author2.name, _reason_labels(r.reasons)
        )
    return table


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def cli(debug: bool):
    """IBDB duplicate-author and enrichment-queue maintenance."""
    logging.basicConfig(
        level=logging.DEBUG if debug else settings.log_level.upper(),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


# ---------------------------------------------------------------------------
# Duplicate detection and review
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--type", "scan_type", type=click.Choice(SCAN_TYPES), default="exact", show_default=True)
@click.option("--min-score", type=int, default=settings.duplicate_min_score, show_default=True)
@click.option("--limit", type=int, default=100, show_default=True, help="Authors per page (fuzzy/full)")
@click.option("--offset", type=int, default=0, show_default=True)
def scan(scan_type: str, min_score: int, limit: int, offset: int):
    """Run a duplicate scan and store new candidate pairs for review."""
    outcome = _run(run_scan_locked(scan_type, min_score, limit, offset))

    console.print(f"\n[bold blue]Duplicate scan {outcome.scan_run_id}[/bold blue]")
    console.print(f"Type: {outcome.scan_type}")
    console.print(f"Authors: {outcome.total_authors}")
    console.print(f"Found: {outcome.duplicates_found}")
    console.print(f"New pairs stored: {outcome.duplicates_stored}")
    console.print(f"Time: {outcome.processing_time_ms} ms\n")
    if outcome.preview:
        console.print(_results_table("Top results", outcome.preview))


@cli.command()
@click.option("--status", type=click.Choice(SIMILARITY_STATUSES), default="pending", show_default=True)
@click.option("--min-score", type=int, default=70, show_default=True)
@click.option("--confidence", type=click.Choice(CONFIDENCE_LEVELS), default=None)
@click.option("--limit", type=int, default=50, show_default=True)
@click.option("--offset", type=int, default=0, show_default=True)
def duplicates(status: str, min_score: int, confidence: Optional[str], limit: int, offset: int):
    """List stored duplicate pairs, highest score first."""

    async def _list():
        async with SessionLocal() as db:
            return await review_service.list_duplicates(
                db, status=status, min_score=min_score, confidence=confidence,
                limit=limit, offset=offset,
            )

    page = _run(_list())
    table = Table(title=f"{status} duplicates ({page.total} total)")
    table.add_column("ID")
    table.add_column("Score", justify="right")
    table.add_column("Confidence")
    table.add_column("Author 1")
    table.add_column("Author 2")
    table.add_column("Reasons")
    for item in page.items:
        names = []
        for side in (item.author1, item.author2):
            label = f"{side.name} ({len(side.book_titles)} books)"
            names.append(f"[dim]{side.name} (deleted)[/dim]" if side.deleted else label)
        table.add_row(
            str(item.similarity.id), str(item.similarity.score), item.similarity.confidence,
            names[0], names[1], _reason_labels(item.reasons),
        )
    console.print(table)
    console.print(f"[dim]Showing {len(page.items)} from offset {page.offset}[/dim]")


@cli.command("duplicates-for")
@click.argument("author_id", type=click.UUID)
def duplicates_for(author_id: uuid.UUID):
    """Score one author against candidates sharing its first letter."""

    async def _find():
        async with SessionLocal() as db:
            return await AuthorDuplicateDetector(db).find_duplicates_for_author(author_id)

    results = _run(_find())
    if not results:
        console.print("[yellow]No likely duplicates found[/yellow]")
        return
    console.print(_results_table(f"Duplicates for {author_id}", results))


@cli.command()
@click.argument("similarity_id", type=click.UUID)
@click.argument("status", type=click.Choice(SIMILARITY_STATUSES))
@click.option("--by", "reviewed_by", default="admin", show_default=True)
@click.option("--notes", default=None)
def review(similarity_id: uuid.UUID, status: str, reviewed_by: str, notes: Optional[str]):
    """Set the review status of one duplicate pair."""

    async def _update():
        async with SessionLocal() as db:
            return await review_service.update_similarity_status(
                db, similarity_id, status, reviewed_by=reviewed_by, notes=notes
            )

    edge = _run(_update())
    console.print(
        f"[green]{edge.author1_name} / {edge.author2_name}: {edge.status}[/green]"
    )


@cli.command()
@click.argument("author_ids", nargs=-1, required=True, type=click.UUID)
@click.option("--target", "target_id", required=True, type=click.UUID, help="Author that survives")
@click.option("--by", "merged_by", default="admin", show_default=True)
@click.option("--reason", default=None)
@click.option("--similarity-id", "similarity_ids", multiple=True, type=click.UUID,
              help="Approved duplicate pair(s) behind this merge")
def merge(author_ids, target_id: uuid.UUID, merged_by: str, reason: Optional[str], similarity_ids):
    """Merge AUTHOR_IDS into --target (the target must be one of them)."""

    async def _merge():
        async with SessionLocal() as db:
            return await merge_authors(
                db, list(author_ids), target_id, merged_by=merged_by,
                merge_reason=reason, similarity_ids=list(similarity_ids),
            )

    result = _run(_merge())
    if result.already_merged:
        console.print(f"[yellow]Already merged into {result.target_author_name}[/yellow]")
        return
    console.print(f"[green]Merged into {result.target_author_name} ({result.target_author_id})[/green]")
    console.print(f"Merge record: {result.merge_id}")
    console.print(f"Books reassigned: {result.books_reassigned}")
    console.print(f"Authors deleted: {result.authors_deleted}")


@cli.command()
@click.option("--limit", type=int, default=20, show_default=True)
@click.option("--offset", type=int, default=0, show_default=True)
def merges(limit: int, offset: int):
    """Show the merge audit trail, newest first."""

    async def _history():
        async with SessionLocal() as db:
            return await review_service.merge_history(db, limit=limit, offset=offset)

    records, total = _run(_history())
    table = Table(title=f"Author merges ({total} total)")
    table.add_column("When")
    table.add_column("Target")
    table.add_column("Absorbed")
    table.add_column("Books", justify="right")
    table.add_column("By")
    for m in records:
        table.add_row(
            m.created_at.strftime("%Y-%m-%d %H:%M") if m.created_at else "-",
            m.target_author_name,
            ", ".join(m.merged_author_names),
            str(m.books_reassigned),
            m.merged_by,
        )
    console.print(table)


@cli.command()
def stats():
    """Duplicate detection statistics."""

    async def _stats():
        async with SessionLocal() as db:
            return await stats_service.duplicate_stats(db)

    s = _run(_stats())

    console.print("\n[bold blue]Duplicate statistics[/bold blue]\n")
    overview = Table(title="Overview")
    overview.add_column("Metric")
    overview.add_column("Value", justify="right")
    overview.add_row("Authors", str(s.total_authors))
    overview.add_row("Duplicate pairs", str(s.total_duplicates))
    overview.add_row("Merges", str(s.total_merges))
    overview.add_row("Books reassigned", str(s.total_books_reassigned))
    for status, count in s.by_status.items():
        overview.add_row(f"  {status}", str(count))
    console.print(overview)

    scores = Table(title="Pending by score")
    scores.add_column("Range")
    scores.add_column("Pairs", justify="right")
    for bucket in s.score_distribution:
        scores.add_row(bucket.label, str(bucket.count))
    console.print(scores)

    if s.pending_by_confidence:
        conf = Table(title="Pending by confidence")
        conf.add_column("Confidence")
        conf.add_column("Pairs", justify="right")
        for level in CONFIDENCE_LEVELS:
            if level in s.pending_by_confidence:
                conf.add_row(level, str(s.pending_by_confidence[level]))
        console.print(conf)

    if s.recent_scans:
        scans = Table(title="Recent scans")
        scans.add_column("Type")
        scans.add_column("Status")
        scans.add_column("Found", justify="right")
        scans.add_column("Time (ms)", justify="right")
        for run in s.recent_scans:
            scans.add_row(
                run.scan_type, run.status, str(run.duplicates_found or 0),
                str(run.processing_time_ms or "-"),
            )
        console.print(scans)


# ---------------------------------------------------------------------------
# Hardcover enrichment queue
# ---------------------------------------------------------------------------

@cli.group()
def queue():
    """Hardcover enrichment queue commands."""
    pass


@queue.command("populate")
def queue_populate():
    """Queue every book that has no Hardcover id yet."""

    async def _populate():
        async with SessionLocal() as db:
            return await hardcover_queue.populate_queue(db)

    added, skipped = _run(_populate())
    console.print(f"[green]Queued {added} book(s)[/green] ({skipped} already queued)")


@queue.command("claim")
@click.option("--previous", "previous_id", default=None, help="Lease token of the finished batch")
@click.option("--limit", type=int, default=settings.claim_batch_size, show_default=True)
def queue_claim(previous_id: Optional[str], limit: int):
    """Claim a batch of books (prints the new lease token)."""

    async def _claim():
        async with SessionLocal() as db:
            return await hardcover_queue.claim_books(db, previous_processing_id=previous_id, limit=limit)

    result = _run(_claim())
    table = Table(title=f"Lease {result.processing_id}")
    table.add_column("Book")
    table.add_column("Title")
    table.add_column("Authors")
    table.add_column("ISBN-13")
    for claimed in result.books:
        table.add_row(
            str(claimed.book.id),
            claimed.book.title,
            ", ".join(a.name for a in claimed.book.authors),
            claimed.latest_edition.isbn13 if claimed.latest_edition and claimed.latest_edition.isbn13 else "-",
        )
    console.print(table)
    console.print(f"{len(result.books)} claimed, {result.remaining_unclaimed} remaining unclaimed")


@queue.command("release")
@click.argument("processing_id")
def queue_release(processing_id: str):
    """Return every entry held by PROCESSING_ID to the queue."""

    async def _release():
        async with SessionLocal() as db:
            return await hardcover_queue.release_claim(db, processing_id)

    console.print(f"Released {_run(_release())} entr(ies)")


@queue.command("reset")
@click.option("--minutes", type=int, default=settings.stale_claim_minutes, show_default=True)
def queue_reset(minutes: int):
    """Release claims older than --minutes."""

    async def _reset():
        async with SessionLocal() as db:
            return await hardcover_queue.release_old_claims(db, minutes)

    console.print(f"Reset {_run(_reset())} stale claim(s)")


@queue.command("cleanup")
def queue_cleanup():
    """Drop entries for books that already have a Hardcover id."""

    async def _cleanup():
        async with SessionLocal() as db:
            return await hardcover_queue.cleanup_completed(db)

    console.print(f"Removed {_run(_cleanup())} completed entr(ies)")


@queue.command("status")
def queue_status():
    """Show queue counts."""

    async def _status():
        async with SessionLocal() as db:
            return await hardcover_queue.queue_status(db)

    s = _run(_status())
    table = Table(title="Hardcover queue")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Total", str(s.total))
    table.add_row("Unclaimed", str(s.unclaimed))
    table.add_row("Claimed", str(s.claimed))
    table.add_row("Active leases", str(s.active_leases))
    console.print(table)


@cli.command()
@click.option("--batch-size", type=int, default=settings.claim_batch_size, show_default=True)
@click.option("--processing-id", default=None, envvar="HARDCOVER_PROCESSING_ID",
              help="Resume from the lease of an earlier run")
@click.option("--max-batches", type=int, default=None)
def enrich(batch_size: int, processing_id: Optional[str], max_batches: Optional[int]):
    """Look queued books up on Hardcover and store the ids found."""
    if not settings.hardcover_token:
        console.print("[red]HARDCOVER_TOKEN is not set[/red]")
        sys.exit(1)

    async def _enrich():
        async with HardcoverClient() as client:
            return await run_enrichment_worker(
                client,
                batch_size=batch_size,
                processing_id=processing_id,
                max_batches=max_batches,
            )

    summary = _run(_enrich())
    console.print("\n[bold]Enrichment summary[/bold]")
    console.print(f"Batches: {summary.batches}")
    console.print(f"Claimed: {summary.claimed}")
    console.print(f"Updated: {summary.updated}")
    console.print(f"Not on Hardcover: {summary.not_found}")
    console.print(f"Lookup failures: {summary.failed}")
    console.print(f"Last lease: {summary.processing_id}")


if __name__ == "__main__":
    cli()
