"""sitepatch CLI entry point."""
from __future__ import annotations

import json
import logging
import sys

import click

from sitepatch.config import SitePatchConfig, parse_model_chain


def _open_db(path: str):
    from sitepatch.store.db import Database
    from sitepatch.store.migrations import run_migrations

    database = Database(path)
    database.connect()
    run_migrations(database)
    return database


def _read_text(path: str | None) -> str:
    if not path:
        return ""
    with open(path, encoding="utf-8") as fh:
        return fh.read()


@click.group()
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level",
)
def cli(log_level: str) -> None:
    """sitepatch: scoped, sanitizing site edits driven by a model chain."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


@cli.command()
@click.option("--host", default=None, help="Host to bind to")
@click.option("--port", default=None, type=int, help="Port to bind to")
@click.option("--db", default=None, help="Database path")
@click.option("--debug/--no-debug", default=False, help="Enable debug mode")
def serve(host: str | None, port: int | None, db: str | None, debug: bool) -> None:
    """Start the HTTP API."""
    from sitepatch.web.app import create_app

    overrides = {k: v for k, v in {"host": host, "port": port, "db_path": db}.items() if v is not None}
    config = SitePatchConfig.from_env(**overrides)
    database = _open_db(config.db_path)

    app = create_app(db=database, config=config)
    click.echo(f"Starting sitepatch on {config.host}:{config.port}")
    app.run(host=config.host, port=config.port, debug=debug)


@cli.command()
@click.option("--db", default=None, help="Database path")
@click.option("--models", default=None, help="Comma-separated model chain")
@click.option("--max-jobs", default=None, type=int, help="Stop after this many jobs")
@click.option("--drain", is_flag=True, help="Exit once the queue is empty")
def worker(db: str | None, models: str | None, max_jobs: int | None, drain: bool) -> None:
    """Process queued jobs against the model chain."""
    from sitepatch.oracle.client import ResponsesOracle
    from sitepatch.store.repositories import JobRepository
    from sitepatch.worker import Worker

    overrides: dict[str, object] = {}
    if db:
        overrides["db_path"] = db
    if models:
        overrides["model_chain"] = parse_model_chain(models)
    config = SitePatchConfig.from_env(**overrides)
    if not config.openai_api_key:
        raise click.UsageError("OPENAI_API_KEY is not set")

    database = _open_db(config.db_path)
    oracle = ResponsesOracle(
        config.openai_api_key,
        config.openai_base_url,
        timeout=config.oracle_timeout,
    )
    runner = Worker(JobRepository(database), oracle, config)
    try:
        count = runner.run(max_jobs=max_jobs, drain=drain)
    except KeyboardInterrupt:
        count = None
    finally:
        runner.close()
        oracle.close()
        database.close()
    if count is not None:
        click.echo(f"Processed {count} job(s)")


@cli.command()
@click.option("--prompt", required=True, help="What to change")
@click.option("--html", "html_file", type=click.Path(exists=True, dir_okay=False), help="index.html to edit")
@click.option("--css", "css_file", type=click.Path(exists=True, dir_okay=False), help="styles/style.css to edit")
@click.option("--preset", default="", help='"new" to generate a full site')
@click.option("--target", default="", help="Root selector override")
@click.option("--db", default=None, help="Database path")
def submit(
    prompt: str,
    html_file: str | None,
    css_file: str | None,
    preset: str,
    target: str,
    db: str | None,
) -> None:
    """Queue a job."""
    from sitepatch.model.job import JobPayload
    from sitepatch.store.repositories import JobRepository

    config = SitePatchConfig.from_env(**({"db_path": db} if db else {}))
    files: dict[str, str] = {}
    if html_file:
        files["index.html"] = _read_text(html_file)
    if css_file:
        files["styles/style.css"] = _read_text(css_file)

    database = _open_db(config.db_path)
    job = JobRepository(database).create(
        JobPayload(prompt=prompt, files=files, preset=preset, target=target)
    )
    database.close()
    click.echo(job.id)


@cli.command()
@click.argument("job_id")
@click.option("--db", default=None, help="Database path")
def status(job_id: str, db: str | None) -> None:
    """Show a job's status as JSON."""
    from sitepatch.store.repositories import JobRepository

    config = SitePatchConfig.from_env(**({"db_path": db} if db else {}))
    database = _open_db(config.db_path)
    view = JobRepository(database).status_view(job_id, log_tail=config.log_tail)
    database.close()
    if view is None:
        raise click.ClickException(f"Job not found: {job_id}")
    click.echo(json.dumps(view, indent=2))


@cli.command()
@click.option("--html", "html_file", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--css", "css_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--ops", "ops_file", required=True, type=click.Path(exists=True, dir_okay=False), help="JSON list of ops")
@click.option("--root", default=None, help="Root selector")
@click.option("--protect", multiple=True, help="Extra protected selector (repeatable)")
@click.option("--max-ops", default=0, type=int, help="Change budget, 0 for none")
def patch(
    html_file: str,
    css_file: str | None,
    ops_file: str,
    root: str | None,
    protect: tuple[str, ...],
    max_ops: int,
) -> None:
    """Apply ops to local files and print the result as JSON."""
    from sitepatch.errors import ParseError
    from sitepatch.patch.engine import apply_patch

    try:
        ops = json.loads(_read_text(ops_file))
    except ValueError as exc:
        raise click.ClickException(f"ops file is not JSON: {exc}") from exc
    if isinstance(ops, dict):
        ops = ops.get("ops", [])
    if not isinstance(ops, list):
        raise click.ClickException("ops file must hold a list or an object with 'ops'")

    try:
        result = apply_patch(
            _read_text(html_file),
            _read_text(css_file),
            ops,
            root_selector=root,
            protected_selectors=protect,
            max_ops=max_ops,
        )
    except ParseError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(result.to_dict(), indent=2))


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
