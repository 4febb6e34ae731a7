"""Command-line interface for pressplan."""

from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path
from typing import Annotated

import pydantic
import typer

from . import context
from .exceptions import PressPlanError
from .logger import setup_logger
from .scheduler import (
    CalendarService,
    CapacityTracker,
    PrecedenceValidator,
    ScheduleMode,
    ScheduleRequest,
    ScheduleResponse,
    SchedulingService,
    ScheduleWriter,
)
from .store import InMemoryScheduleStore, read_store_file, write_store_file
from .timezones import parse_instant, to_local
from .unified_config import UnifiedConfig

app = typer.Typer(
    name="pressplan",
    help="Production scheduler for print jobs - capacity, calendar and precedence aware",
    add_completion=False,
)

StoreArg = Annotated[Path, typer.Argument(help="Path to the store snapshot YAML file")]
JobOption = Annotated[
    list[str] | None,
    typer.Option("--job", "-j", help="Job id to restrict the command to (repeatable)"),
]


@app.callback()
def main_callback(
    verbose: Annotated[
        int,
        typer.Option(
            "--verbose",
            "-v",
            help="Verbosity level: 0=silent (default), 1=show changes, 2=show all checks, 3=debug",
            min=0,
            max=3,
        ),
    ] = 0,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to unified config file (default: pressplan_config.yaml)",
        ),
    ] = None,
) -> None:
    """Global options for pressplan commands."""
    setup_logger(verbose)
    context.set_config_path(config)


def _load(store_path: Path) -> tuple[UnifiedConfig, InMemoryScheduleStore]:
    try:
        config = context.get_config()
        store = read_store_file(store_path)
    except (FileNotFoundError, ValueError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None
    return config, store


def _parse_instant_option(value: str | None, name: str) -> datetime | None:
    if value is None:
        return None
    try:
        return parse_instant(value)
    except ValueError:
        typer.echo(
            f"Error: Invalid {name} '{value}'. Use ISO 8601, e.g. 2025-01-06T08:00Z", err=True
        )
        raise typer.Exit(1) from None


@app.command()
def schedule(  # noqa: PLR0913 - CLI command needs multiple options
    store_path: StoreArg,
    jobs: JobOption = None,
    *,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Compute and show placements without writing")
    ] = False,
    proposed: Annotated[
        bool | None,
        typer.Option(
            "--proposed/--final",
            help="Write as proposed (for review) or as final scheduled times",
        ),
    ] = None,
    replace: Annotated[
        bool,
        typer.Option("--replace", help="Reschedule stages that already have a schedule"),
    ] = False,
    start_from: Annotated[
        str | None,
        typer.Option("--start-from", help="Earliest start for any placement (ISO 8601)"),
    ] = None,
    now: Annotated[
        str | None,
        typer.Option("--now", help="Override the current time (ISO 8601)"),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the raw response")] = False,
) -> None:
    """Schedule eligible stages (all jobs, or only the given --job ids)."""
    config, store = _load(store_path)
    start = _parse_instant_option(start_from, "--start-from")
    current_time = _parse_instant_option(now, "--now")

    try:
        request = ScheduleRequest(
            mode=ScheduleMode.SINGLE if jobs else ScheduleMode.FULL,
            job_ids=jobs or None,
            commit=not dry_run,
            as_proposed=config.scheduler.default_as_proposed if proposed is None else proposed,
            only_if_unset=False if replace else config.scheduler.default_only_if_unset,
            start_from=start,
        )
    except pydantic.ValidationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    service = SchedulingService(
        store,
        calendar_config=config.calendar,
        resource_config=config.resources,
        config=config.scheduler,
        current_time=current_time,
    )
    try:
        response = service.run(request)
    except PressPlanError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from None

    if request.commit:
        write_store_file(store_path, store)

    if as_json:
        typer.echo(json.dumps(response.to_wire(), indent=2))
    else:
        _display_response(response, service.calendar)

    if not response.ok:
        raise typer.Exit(1)


def _display_response(response: ScheduleResponse, calendar: CalendarService) -> None:
    """Display a run's placements, failures and violations."""
    typer.echo("Schedule Results")
    typer.echo("=" * 80)
    for placement in response.placements:
        start = to_local(parse_instant(placement.start), calendar.timezone)
        end = to_local(parse_instant(placement.end), calendar.timezone)
        part = (
            f" (part {placement.part_index}/{placement.total_parts})"
            if placement.total_parts > 1
            else ""
        )
        typer.echo(
            f"{placement.job_id} {placement.stage_id} on {placement.resource_id}: "
            f"{start:%Y-%m-%d %H:%M} - {end:%H:%M} ({placement.minutes} min){part}"
        )
    typer.echo("")
    typer.echo(f"Scheduled stages: {response.scheduled_count}")
    typer.echo(f"Slots written:    {response.wrote_slots}")

    for job_id in response.discarded_jobs:
        typer.echo(f"Discarded (superseded by a newer run): {job_id}", err=True)
    if response.failures:
        typer.echo("\nFailures:", err=True)
        for failure in response.failures:
            typer.echo(
                f"  - {failure.job_id} [{failure.error_code}] {failure.details}", err=True
            )
    if response.violations:
        typer.echo("\nViolations (advisory):", err=True)
        for violation in response.violations:
            typer.echo(
                f"  - {violation.job_id} {violation.violation_type}: {violation.details}",
                err=True,
            )


@app.command()
def validate(store_path: StoreArg, jobs: JobOption = None) -> None:
    """Report precedence, group, overlap and break violations (advisory)."""
    config, store = _load(store_path)
    calendar = CalendarService(config.calendar, horizon_days=config.scheduler.horizon_days)
    violations = PrecedenceValidator(store.list_stages(), calendar).validate(
        set(jobs) if jobs else None
    )

    if not violations:
        typer.echo("✓ No violations found")
        return

    typer.echo(f"Found {len(violations)} violation(s):")
    for violation in violations:
        typer.echo(
            f"  - {violation.job_id} {violation.violation_type}: "
            f"{violation.stage1_name} / {violation.stage2_name} - {violation.details}"
        )


@app.command()
def confirm(store_path: StoreArg, jobs: JobOption = None) -> None:
    """Promote proposed schedules to scheduled."""
    _, store = _load(store_path)
    count = ScheduleWriter(store).confirm(jobs or None)
    write_store_file(store_path, store)
    typer.echo(f"Confirmed {count} stage instance(s)")


@app.command("reset-capacity")
def reset_capacity(
    store_path: StoreArg,
    from_date: Annotated[
        str, typer.Option("--from", help="First local date to reset (YYYY-MM-DD)")
    ],
    resource: Annotated[
        str | None, typer.Option("--resource", "-r", help="Only reset this resource")
    ] = None,
) -> None:
    """Reset committed capacity to zero from a date forward (maintenance)."""
    config, store = _load(store_path)
    try:
        day = date.fromisoformat(from_date)
    except ValueError:
        typer.echo(f"Error: Invalid date '{from_date}'. Use YYYY-MM-DD format.", err=True)
        raise typer.Exit(1) from None

    calendar = CalendarService(config.calendar, horizon_days=config.scheduler.horizon_days)
    tracker = CapacityTracker(store.ledger, calendar, config.resources)
    count = tracker.reset_from(day, resource)
    write_store_file(store_path, store)
    typer.echo(f"Reset {count} capacity row(s) from {day}")


@app.command()
def capacity(
    store_path: StoreArg,
    resource: Annotated[
        str | None, typer.Option("--resource", "-r", help="Only show this resource")
    ] = None,
) -> None:
    """Show the capacity ledger."""
    _, store = _load(store_path)
    rows = [row for row in store.ledger.rows() if resource is None or row.resource_id == resource]
    if not rows:
        typer.echo("No capacity rows")
        return

    typer.echo(f"{'Resource':<20} {'Date':<12} {'Committed':>10} {'Capacity':>10} {'Free':>8}")
    for row in rows:
        typer.echo(
            f"{row.resource_id:<20} {row.date.isoformat():<12} "
            f"{row.committed_minutes:>10} {row.capacity_minutes:>10} {row.available_minutes:>8}"
        )


def main() -> int:
    """Main entry point."""
    # Typer handles sys.exit() internally
    app()
    return 0


if __name__ == "__main__":
    main()
