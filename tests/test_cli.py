import sqlite3

import pytest
from click.testing import CliRunner

import scraping
from cli import cli
from models import Status
from storage import Storage


@pytest.fixture()
def run(db_path):
    runner = CliRunner()

    def _run(*args):
        return runner.invoke(cli, ["--db", str(db_path), *args], catch_exceptions=False)

    return _run


def _rows(db_path):
    db = Storage(db_path)
    try:
        return db.list_rows()
    finally:
        db.close()


def test_enqueue_and_list(run):
    result = run("enqueue", "print_document", "--field", "document=X.pdf")

    assert result.exit_code == 0
    assert "Command 1 enqueued: print_document(document='X.pdf')" in result.output

    result = run("list")
    assert "1 | pending | print_document(document='X.pdf')" in result.output


def test_enqueue_converts_integer_fields(run, db_path):
    result = run("enqueue", "scrape_genre_page", "--field", "url=https://example.com/list", "--field", "page=4")

    assert result.exit_code == 0
    assert "page=4" in result.output


def test_enqueue_unknown_kind_fails(run):
    result = run("enqueue", "launch_rocket")

    assert result.exit_code == 1
    assert "Unknown kind 'launch_rocket'" in result.output


def test_enqueue_rejects_unknown_field(run):
    result = run("enqueue", "print_document", "--field", "colour=red")

    assert result.exit_code == 2
    assert "has no field 'colour'" in result.output


def test_enqueue_missing_required_field_fails(run):
    result = run("enqueue", "print_document")

    assert result.exit_code == 1
    assert "Cannot build print_document" in result.output


def test_seed_documents_then_work(run, db_path):
    result = run("seed", "documents", "X.pdf")
    assert result.output.count("enqueued") == 3

    result = run("work")

    assert result.exit_code == 0
    assert "Executed 3, completed 3, failed 0, undecodable 0, enqueued 0" in result.output
    assert [r["status"] for r in _rows(db_path)] == [Status.COMPLETE] * 3


def test_seed_scrape_if_empty_skips_when_work_is_pending(run, db_path):
    run("seed", "documents", "X.pdf")

    result = run("seed", "scrape", "--if-empty")

    assert "not seeding" in result.output
    assert len(_rows(db_path)) == 3


def test_seed_scrape_local_listing(run, tmp_path):
    listing = tmp_path / "genres.html"
    listing.write_text("<p>no genres here</p>", encoding="utf-8")

    assert "scrape_genres" in run("seed", "scrape", str(listing)).output
    result = run("work")

    assert "Executed 1, completed 1" in result.output


def test_work_respects_configured_limit(run):
    run("seed", "documents", "X.pdf")
    run("config", "set", "work_limit", "2")

    result = run("work")

    assert "Executed 2, completed 2" in result.output
    assert "pending: 1" in run("status").output


def test_work_reports_undecodable_rows(run, db_path):
    db = Storage(db_path)
    db.insert(b"garbage!")
    db.close()

    result = run("work")

    assert result.exit_code == 0
    assert "undecodable 1" in result.output
    assert "<undecodable:" in run("list", "--status", "pending").output


def test_show_command(run):
    run("enqueue", "convert_document", "--field", "document=X.pdf", "--field", "target_format=odt")

    result = run("show", "1")

    assert "Kind: convert_document" in result.output
    assert "target_format: odt" in result.output
    assert "Status: pending" in result.output


def test_show_missing_command(run):
    result = run("show", "42")

    assert result.exit_code == 1
    assert "Command 42 not found" in result.output


def test_status_summary(run):
    assert "No commands in the queue yet." in run("status").output

    run("seed", "documents", "X.pdf")
    run("work", "--limit", "1")
    output = run("status").output

    assert "pending: 2" in output
    assert "complete: 1" in output


def test_list_empty(run):
    assert "No commands found." in run("list").output


def test_kinds_lists_registered_kinds(run):
    output = run("kinds").output

    assert "convert_document (document, target_format)" in output
    assert "scrape_genre_page (url, page)" in output


def test_config_commands(run):
    assert "log_level not set" in run("config", "get", "log_level").output
    assert "log_level=INFO (default)" in run("config", "get", "log_level", "--default", "INFO").output

    run("config", "set", "log_level", "DEBUG")

    assert "log_level=DEBUG" in run("config", "get", "log_level").output
    assert "log_level=DEBUG (updated_at=" in run("config", "list").output


def test_migrate_legacy_database(run, db_path):
    conn = sqlite3.connect(db_path)
    conn.execute("CREATE TABLE commands (id INTEGER PRIMARY KEY AUTOINCREMENT, command BLOB, status INTEGER)")
    conn.execute("INSERT INTO commands (command, status) VALUES ('Tzo0OiJKdW5rIjowOnt9', 0)")
    conn.commit()
    conn.close()

    result = run("migrate")

    assert "rename command -> payload" in result.output
    assert "Schema already up to date." in run("migrate").output
    assert "undecodable 1" in run("work").output


def test_db_path_from_environment(db_path, monkeypatch):
    monkeypatch.setenv("CMDQUEUE_DB", str(db_path))

    CliRunner().invoke(cli, ["seed", "documents", "X.pdf"], catch_exceptions=False)

    assert len(_rows(db_path)) == 3


@pytest.mark.parametrize("key", ["work_limit", "fetch_timeout_seconds"])
def test_work_ignores_invalid_numeric_config(run, key):
    run("seed", "documents", "X.pdf")
    run("config", "set", key, "lots")

    result = run("work")

    assert result.exit_code == 0
    assert f"Ignoring invalid config {key}='lots'" in result.output
    assert "Executed 3, completed 3" in result.output


def test_work_closes_its_fetcher(run, monkeypatch):
    created = []
    real_fetcher = scraping.PageFetcher

    def tracking_fetcher(**kwargs):
        fetcher = real_fetcher(**kwargs)
        created.append(fetcher)
        return fetcher

    monkeypatch.setattr(scraping, "PageFetcher", tracking_fetcher)

    run("work")

    assert len(created) == 1
    assert created[0]._client.is_closed
    assert scraping._fetcher is None
