"""CLI for timetable: preview schedules, apply migrations, run the API."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import sys
from datetime import date, datetime, time
from pathlib import Path

import click
import uvicorn

from timetable.config import ConfigError, TimetableConfig, load_config
from timetable.core.logging import configure_logging
from timetable.core.metrics import init_metrics
from timetable.core.telemetry import init_telemetry
from timetable.errors import ScheduleValidationError
from timetable.schedule import materializer
from timetable.schedule.models import (
    DayOfWeek,
    EventCategory,
    RecurrenceTemplate,
    ScheduleGenerationRequest,
)
from timetable.schedule.validator import validate_request

logger = logging.getLogger(__name__)

_TEMPLATE_PATTERN = re.compile(r"^\s*(\w+)\s+(\d{1,2}:\d{2})\s*-\s*(\d{1,2}:\d{2})\s*$")


def parse_template(value: str) -> RecurrenceTemplate:
    """Parse ``"MON 09:00-10:30"`` (or ``"1 09:00-10:30"``, Sunday = 0)."""
    match = _TEMPLATE_PATTERN.match(value)
    if match is None:
        raise click.BadParameter(f"expected 'DAY HH:MM-HH:MM', got {value!r}")
    day_raw, start_raw, end_raw = match.groups()
    if day_raw.isdigit():
        day = int(day_raw)
    else:
        candidates = [d for d in DayOfWeek if d.name.startswith(day_raw.upper())]
        if len(candidates) != 1 or len(day_raw) < 2:
            raise click.BadParameter(f"unknown weekday {day_raw!r}")
        day = int(candidates[0])
    try:
        return RecurrenceTemplate(
            day_of_week=day,
            start_time=time.fromisoformat(start_raw.zfill(5)),
            end_time=time.fromisoformat(end_raw.zfill(5)),
        )
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc


def _load(config_dir: Path | None) -> TimetableConfig:
    if config_dir is None:
        return TimetableConfig()
    try:
        return load_config(config_dir)
    except ConfigError as exc:
        click.echo(f"Config error: {exc}", err=True)
        sys.exit(1)


def _setup(config: TimetableConfig, *, level: str | None = None) -> None:
    log_root = Path(config.logging.log_root) if config.logging.log_root else None
    configure_logging(
        level=level or config.logging.level,
        fmt=config.logging.format,
        log_root=log_root,
        service_name=config.name,
    )


_config_option = click.option(
    "--config",
    "config_dir",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Directory containing timetable.toml",
)


@click.group()
@click.version_option(version="0.1.0")
def cli() -> None:
    """Timetable: recurring schedule engine and status sync."""


@cli.command()
@click.option("--from", "valid_from", type=click.DateTime(["%Y-%m-%d"]), required=True)
@click.option("--to", "valid_to", type=click.DateTime(["%Y-%m-%d"]), required=True)
@click.option(
    "--template",
    "templates",
    multiple=True,
    required=True,
    help="Weekly slot, e.g. 'MON 09:00-10:30' (repeatable)",
)
@click.option("--title", default=None)
@click.option("--location", default=None)
@click.option(
    "--category",
    type=click.Choice([c.value for c in EventCategory], case_sensitive=False),
    default=EventCategory.LESSON.value,
)
@click.option(
    "--today",
    type=click.DateTime(["%Y-%m-%d"]),
    default=None,
    help="Evaluate the 'not in the past' rule against this date",
)
@click.option("--list", "list_instances", is_flag=True, help="Print every occurrence")
@click.option("--json", "as_json", is_flag=True, help="Emit JSON")
@_config_option
def preview(
    valid_from: datetime,
    valid_to: datetime,
    templates: tuple[str, ...],
    title: str | None,
    location: str | None,
    category: str,
    today: datetime | None,
    list_instances: bool,
    as_json: bool,
    config_dir: Path | None,
) -> None:
    """Validate a weekly schedule and show what it would create."""
    config = _load(config_dir)
    _setup(config, level="WARNING")
    request = ScheduleGenerationRequest(
        owner_id="cli",
        valid_from=valid_from.date(),
        valid_to=valid_to.date(),
        templates=[parse_template(t) for t in templates],
        title=title,
        location=location,
        category=EventCategory(category.upper()),
    )
    reference_day = today.date() if today is not None else date.today()
    try:
        validated = validate_request(request, today=reference_day, rules=config.rules)
    except ScheduleValidationError as exc:
        for issue in exc.issues:
            click.echo(f"  {issue.field}: {issue.message}", err=True)
        sys.exit(1)

    estimate = materializer.estimate(validated)
    instances = (
        materializer.materialize(validated, default_title=config.rules.default_title)
        if list_instances
        else []
    )

    if as_json:
        payload = estimate.model_dump(mode="json")
        if list_instances:
            payload["instances"] = [i.model_dump(mode="json") for i in instances]
        click.echo(json.dumps(payload, indent=2))
        return

    click.echo(
        f"{estimate.estimated_count} event(s) from {validated.valid_from} to {validated.valid_to}"
    )
    for item in estimate.templates:
        click.echo(f"  {item.label:<24} {item.count:>4}")
    for instance in instances:
        start, end = instance.start_at, instance.end_at
        click.echo(f"  {start:%a %Y-%m-%d %H:%M}-{end:%H:%M}  {instance.title}")


@cli.command()
@_config_option
def migrate(config_dir: Path | None) -> None:
    """Apply database migrations (core chain) to head."""
    from timetable.db import Database
    from timetable.migrations import run_migrations

    config = _load(config_dir)
    _setup(config)
    db = Database(config.db)

    async def _run() -> None:
        await db.provision()
        await run_migrations(db.dsn(), schema=config.db.schema)

    asyncio.run(_run())
    click.echo(f"Database {config.db.name} is up to date")


@cli.command()
@_config_option
@click.option("--host", default=None, help="Override [timetable.api].host")
@click.option("--port", type=int, default=None, help="Override [timetable.api].port")
@click.option("--migrate/--no-migrate", "apply_migrations", default=False)
def serve(
    config_dir: Path | None, host: str | None, port: int | None, apply_migrations: bool
) -> None:
    """Run the HTTP API."""
    from timetable.api.app import create_app
    from timetable.db import Database
    from timetable.migrations import run_migrations

    config = _load(config_dir)
    _setup(config)
    init_metrics(config.name)
    init_telemetry(config.name)

    if apply_migrations:
        db = Database(config.db)
        asyncio.run(run_migrations(db.dsn(), schema=config.db.schema))

    app = create_app(config)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host or config.api.host,
            port=port or config.api.port,
            log_level=config.logging.level.lower(),
            log_config=None,
        )
    )
    logger.info("Starting timetable API on %s:%d", server.config.host, server.config.port)
    asyncio.run(server.serve())


def main() -> None:
    cli()
