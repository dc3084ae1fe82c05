"""CLI argument handling (paths that fail before touching the database)."""
import uuid

from click.testing import CliRunner

from ibdb import cli as cli_module
from ibdb.cli import cli


def test_help_lists_commands():
    result = CliRunner().invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("scan", "duplicates", "duplicates-for", "review", "merge", "merges", "stats", "queue", "enrich"):
        assert command in result.output


def test_queue_help_lists_subcommands():
    result = CliRunner().invoke(cli, ["queue", "--help"])
    assert result.exit_code == 0
    for command in ("populate", "claim", "release", "reset", "cleanup", "status"):
        assert command in result.output


def test_scan_rejects_unknown_type():
    result = CliRunner().invoke(cli, ["scan", "--type", "phonetic"])
    assert result.exit_code == 2


def test_merge_needs_two_authors():
    author_id = str(uuid.uuid4())
    result = CliRunner().invoke(cli, ["merge", author_id, "--target", author_id])
    assert result.exit_code == 1
    assert "At least 2 authors" in result.output


def test_claim_rejects_zero_limit():
    result = CliRunner().invoke(cli, ["queue", "claim", "--limit", "0"])
    assert result.exit_code == 1
    assert "limit must be at least 1" in result.output


def test_enrich_requires_token(monkeypatch):
    monkeypatch.setattr(cli_module.settings, "hardcover_token", None)
    result = CliRunner().invoke(cli, ["enrich"])
    assert result.exit_code == 1
    assert "HARDCOVER_TOKEN is not set" in result.output
