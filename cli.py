# cli.py
import logging
from dataclasses import fields

import click

import codec
import documents
import scraping
from migrate import migrate as migrate_db
from models import DecodeError, NotFound, Status, StorageError, command_class, registered_kinds
from storage import DEFAULT_DB_PATH, Storage
from worker import Worker

STATUS_CHOICES = [s.name.lower() for s in Status]


def _storage(ctx):
    try:
        return Storage(ctx.obj["db_path"])
    except StorageError as e:
        raise click.ClickException(f"❌ {e}")


def _setup_logging(db, level):
    level = (level or db.get_config("log_level", default="INFO")).upper()
    logging.basicConfig(format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(getattr(logging, level, logging.INFO))


def _parse_fields(cls, pairs):
    """Turn ``name=value`` pairs into constructor kwargs for ``cls``."""
    types = {f.name: f.type for f in fields(cls) if f.name not in ("id", "status")}
    payload = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep:
            raise click.BadParameter(f"expected name=value, got {pair!r}", param_hint="--field")
        if name not in types:
            raise click.BadParameter(f"{cls.kind} has no field {name!r}", param_hint="--field")
        if types[name] is int:
            try:
                value = int(value)
            except ValueError:
                raise click.BadParameter(f"{name} must be an integer", param_hint="--field")
        payload[name] = value
    return payload


def _config_number(db, key, convert, default):
    """Config value converted with ``convert``; a bad value falls back to ``default``."""
    value = db.get_config(key)
    if not value:
        return default
    try:
        return convert(value)
    except ValueError:
        click.echo(f"⚠️ Ignoring invalid config {key}={value!r}, using {default}.")
        return default


def _submit_all(db, commands):
    worker = Worker(db)
    for command in commands:
        worker.submit(command)
        click.echo(f"✅ Command {command.id} enqueued: {command.describe()}")


@click.group()
@click.option("--db", "db_path", default=DEFAULT_DB_PATH, envvar="CMDQUEUE_DB", show_default=True,
              help="SQLite database holding the queue")
@click.option("--log-level", default=None, help="Logging level (overrides log_level config if set)")
@click.pass_context
def cli(ctx, db_path, log_level):
    """cmdqueue - a durable command queue"""
    ctx.ensure_object(dict)
    ctx.obj["db_path"] = db_path
    ctx.obj["log_level"] = log_level


# ---------------- Enqueue ----------------
@cli.command()
@click.argument("kind")
@click.option("--field", "pairs", multiple=True, help="Payload field as name=value (repeatable)")
@click.pass_context
def enqueue(ctx, kind, pairs):
    """Add a command of KIND to the queue"""
    try:
        cls = command_class(kind)
    except DecodeError:
        raise click.ClickException(f"❌ Unknown kind {kind!r}. Known kinds: {', '.join(registered_kinds())}")
    payload = _parse_fields(cls, pairs)
    try:
        command = cls(**payload)
    except TypeError as e:
        raise click.ClickException(f"❌ Cannot build {kind}: {e}")
    db = _storage(ctx)
    try:
        _submit_all(db, [command])
    finally:
        db.close()


@cli.group()
def seed():
    """Enqueue ready-made example workloads"""
    pass


@seed.command("documents")
@click.argument("document")
@click.pass_context
def seed_documents(ctx, document):
    """Print, save and convert DOCUMENT"""
    db = _storage(ctx)
    try:
        _submit_all(db, documents.document_pipeline(document))
    finally:
        db.close()


@seed.command("scrape")
@click.argument("url", default=scraping.GENRES_URL)
@click.option("--if-empty", is_flag=True, help="Only seed when nothing is pending")
@click.pass_context
def seed_scrape(ctx, url, if_empty):
    """Start a scrape from the genres index at URL"""
    db = _storage(ctx)
    try:
        if if_empty and not db.is_empty():
            click.echo(f"Queue has {db.pending_count()} pending command(s), not seeding.")
            return
        _submit_all(db, [scraping.GenresScrapingCommand(url)])
    finally:
        db.close()


# ---------------- Worker ----------------
@cli.command()
@click.option("--limit", default=None, type=int, help="Stop after N executions (uses work_limit config if set)")
@click.pass_context
def work(ctx, limit):
    """Drain the queue until no pending command is left"""
    db = _storage(ctx)
    try:
        _setup_logging(db, ctx.obj["log_level"])
        if limit is None:
            limit = _config_number(db, "work_limit", int, None)
        timeout = _config_number(db, "fetch_timeout_seconds", float, scraping.DEFAULT_TIMEOUT_SECONDS)
        scraping.set_fetcher(scraping.PageFetcher(timeout_seconds=timeout))

        stats = Worker(db, limit=limit).run()
    finally:
        scraping.set_fetcher(None)
        db.close()

    click.echo(f"📈 Executed {stats.executed}, completed {stats.completed}, failed {stats.failed}, "
               f"undecodable {stats.undecodable}, enqueued {stats.enqueued}")
    if stats.error:
        raise click.ClickException(f"❌ Worker stopped on storage error: {stats.error}")


# ---------------- Inspection ----------------
@cli.command(name="list")
@click.option("--status", "status_name", type=click.Choice(STATUS_CHOICES), default=None,
              help="Filter commands by status")
@click.pass_context
def list_commands(ctx, status_name):
    """List commands in the queue"""
    db = _storage(ctx)
    try:
        status = Status[status_name.upper()] if status_name else None
        rows = db.list_rows(status=status)
    finally:
        db.close()

    if not rows:
        click.echo("No commands found.")
        return
    for row in rows:
        click.echo(f"{row['id']} | {Status(row['status']).name.lower()} | {codec.describe(row['payload'])}")


@cli.command()
@click.argument("command_id", type=int)
@click.pass_context
def show(ctx, command_id):
    """Show details of a single command"""
    db = _storage(ctx)
    try:
        row = db.get(command_id)
    except NotFound:
        raise click.ClickException(f"❌ Command {command_id} not found.")
    finally:
        db.close()

    click.echo(f"🔎 Command {row['id']}")
    click.echo(f"  Status: {Status(row['status']).name.lower()}")
    try:
        command = codec.decode(row["payload"])
        click.echo(f"  Kind: {command.kind}")
        for name, value in command.payload().items():
            click.echo(f"  {name}: {value}")
    except DecodeError as e:
        click.echo(f"  Undecodable: {e}")
    click.echo(f"  Created: {row['created_at']}")
    click.echo(f"  Updated: {row['updated_at']}")


@cli.command()
@click.pass_context
def status(ctx):
    """Show summary of command statuses"""
    db = _storage(ctx)
    try:
        counts = db.count_by_status()
    finally:
        db.close()

    if not any(counts.values()):
        click.echo("No commands in the queue yet.")
        return
    click.echo("📊 Command Status Summary:")
    for state, count in counts.items():
        click.echo(f"  {state.name.lower()}: {count}")


@cli.command()
def kinds():
    """List registered command kinds"""
    for kind in registered_kinds():
        names = [f.name for f in fields(command_class(kind)) if f.name not in ("id", "status")]
        click.echo(f"{kind} ({', '.join(names)})")


# ---------------- Config management ----------------
@cli.group()
def config():
    """Runtime configuration for the worker"""
    pass


@config.command("set")
@click.argument("key")
@click.argument("value")
@click.pass_context
def config_set(ctx, key, value):
    """Set a config key to a value"""
    db = _storage(ctx)
    try:
        db.set_config(key, value)
    finally:
        db.close()
    click.echo(f"🛠️ Config '{key}' set to '{value}'.")


@config.command("get")
@click.argument("key")
@click.option("--default", default=None, help="Fallback if key not set")
@click.pass_context
def config_get(ctx, key, default):
    """Get a config key"""
    db = _storage(ctx)
    try:
        value = db.get_config(key)
    finally:
        db.close()
    if value is None:
        if default is not None:
            click.echo(f"{key}={default} (default)")
        else:
            click.echo(f"{key} not set")
        return
    click.echo(f"{key}={value}")


@config.command("list")
@click.pass_context
def config_list(ctx):
    """List all config keys"""
    db = _storage(ctx)
    try:
        rows = db.list_config()
    finally:
        db.close()
    if not rows:
        click.echo("No config keys set.")
        return
    for row in rows:
        click.echo(f"{row['key']}={row['value']} (updated_at={row['updated_at']})")


# ---------------- Maintenance ----------------
@cli.command()
@click.pass_context
def migrate(ctx):
    """Upgrade a legacy commands table to the current schema"""
    applied = migrate_db(ctx.obj["db_path"])
    if not applied:
        click.echo("Schema already up to date.")
        return
    for change in applied:
        click.echo(f"🔧 {change}")


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, type=int, show_default=True)
@click.pass_context
def dashboard(ctx, host, port):
    """Serve the read-only web dashboard"""
    import os

    import uvicorn

    os.environ["CMDQUEUE_DB"] = ctx.obj["db_path"]
    uvicorn.run("dashboard:app", host=host, port=port)


# ---------------- Entrypoint ----------------
if __name__ == "__main__":
    cli()
