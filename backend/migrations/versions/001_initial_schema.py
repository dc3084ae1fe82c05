"""Initial schema: catalog tables, duplicate-author tables and the Hardcover queue.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _uuid_pk() -> sa.Column:
    return sa.Column(
        "id", postgresql.UUID(as_uuid=True), primary_key=True,
        server_default=sa.text("gen_random_uuid()"),
    )


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False)


def upgrade() -> None:
    # ── authors ──────────────────────────────────────────────────────────────
    op.create_table(
        "authors",
        _uuid_pk(),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("goodreads_id", sa.Text(), nullable=True),
        sa.Column("openlibrary_id", sa.Text(), nullable=True),
        sa.Column("hardcover_id", sa.Text(), nullable=True),
        sa.Column("hardcover_slug", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_authors_name", "authors", ["name"])
    # Exact-duplicate grouping key
    op.execute("CREATE INDEX ix_authors_name_normalized ON authors (LOWER(TRIM(name)))")

    # ── books / editions ─────────────────────────────────────────────────────
    op.create_table(
        "books",
        _uuid_pk(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("goodreads_id", sa.Text(), nullable=True),
        sa.Column("openlibrary_id", sa.Text(), nullable=True),
        sa.Column("hardcover_id", sa.Text(), nullable=True),
        sa.Column("hardcover_slug", sa.Text(), nullable=True),
        _created_at(),
    )

    op.create_table(
        "editions",
        _uuid_pk(),
        sa.Column("book_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("books.id", ondelete="CASCADE"), nullable=False),
        sa.Column("isbn13", sa.Text(), nullable=True),
        sa.Column("goodreads_id", sa.Text(), nullable=True),
        sa.Column("openlibrary_id", sa.Text(), nullable=True),
        sa.Column("hardcover_id", sa.Text(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_editions_book_id", "editions", ["book_id"])

    op.create_table(
        "book_authors",
        sa.Column("book_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("books.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("author_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("authors.id", ondelete="CASCADE"), primary_key=True),
    )
    op.create_index("ix_book_authors_author_id", "book_authors", ["author_id"])

    # ── author_merges ────────────────────────────────────────────────────────
    op.create_table(
        "author_merges",
        _uuid_pk(),
        sa.Column("merged_author_ids", postgresql.JSONB(), nullable=False),
        sa.Column("merged_author_names", postgresql.JSONB(), nullable=False),
        sa.Column("target_author_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("target_author_name", sa.Text(), nullable=False),
        sa.Column("merged_by", sa.Text(), nullable=False),
        sa.Column("merge_reason", sa.Text(), nullable=True),
        sa.Column("books_reassigned", sa.Integer(), nullable=False, server_default="0"),
        _created_at(),
    )
    op.create_index("ix_author_merges_target_author_id", "author_merges", ["target_author_id"])

    # ── author_similarities ──────────────────────────────────────────────────
    # author ids are plain columns: edges outlive absorbed authors.
    op.create_table(
        "author_similarities",
        _uuid_pk(),
        sa.Column("author1_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("author1_name", sa.Text(), nullable=False),
        sa.Column("author2_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("author2_name", sa.Text(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("confidence", sa.String(10), nullable=False),
        sa.Column("match_reasons", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.Text(), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("merge_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("author_merges.id", ondelete="SET NULL"), nullable=True),
        _created_at(),
        sa.CheckConstraint(
            "status IN ('pending', 'reviewed', 'merged', 'dismissed')",
            name="ck_author_similarities_status",
        ),
        sa.CheckConstraint("score BETWEEN 0 AND 100", name="ck_author_similarities_score"),
    )
    op.create_index("ix_author_similarities_author1_id", "author_similarities", ["author1_id"])
    op.create_index("ix_author_similarities_author2_id", "author_similarities", ["author2_id"])
    op.create_index("ix_author_similarities_status", "author_similarities", ["status"])
    op.create_index("ix_author_similarities_status_score", "author_similarities", ["status", "score"])

    # ── duplicate_scan_runs ──────────────────────────────────────────────────
    op.create_table(
        "duplicate_scan_runs",
        _uuid_pk(),
        sa.Column("scan_type", sa.String(20), nullable=False),
        sa.Column("min_score", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="running"),
        sa.Column("total_authors", sa.Integer(), nullable=True),
        sa.Column("duplicates_found", sa.Integer(), nullable=True),
        sa.Column("duplicates_stored", sa.Integer(), nullable=True),
        sa.Column("processing_time_ms", sa.Integer(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    # ── hardcover_queue ──────────────────────────────────────────────────────
    op.create_table(
        "hardcover_queue",
        _uuid_pk(),
        sa.Column("book_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("books.id", ondelete="CASCADE"), nullable=False),
        sa.Column("processing_id", sa.String(36), nullable=True),
        sa.Column("claim_time", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.UniqueConstraint("book_id", name="uq_hardcover_queue_book_id"),
    )
    op.create_index("ix_hardcover_queue_processing_id", "hardcover_queue", ["processing_id"])
    op.create_index("ix_hardcover_queue_claim_time", "hardcover_queue", ["claim_time"])


def downgrade() -> None:
    op.drop_table("hardcover_queue")
    op.drop_table("duplicate_scan_runs")
    op.drop_table("author_similarities")
    op.drop_table("author_merges")
    op.drop_table("book_authors")
    op.drop_table("editions")
    op.drop_table("books")
    op.execute("DROP INDEX IF EXISTS ix_authors_name_normalized")
    op.drop_table("authors")
