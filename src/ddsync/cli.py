"""ddsync command line.

Usage:
    ddsync generate       # Write generated/ payloads for review
    ddsync plan           # Show what an update would change
    ddsync update --yes   # Apply the plan

Scope a run with PROJECT=a,b or TRACKING_ID=a:x (see ddsync.config).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import click

from .api import ApiError, DatadogApi
from .config import Config, ConfigurationError
from .dependency import DependencyError
from .differ import DiffEntry
from .executor import ApplyError, Executor
from .filter import FilterError
from .loader import LoadError, load_resources
from .normalizer import create_normalizer_from_env
from .planner import Plan, PlanError, Syncer
from .provenance import get_provenance_logger
from .store import GeneratedStore, StoreError
from .tracking import TrackingError

logger = logging.getLogger(__name__)

# Errors reported to the user without a traceback
KNOWN_ERRORS: tuple[type[Exception], ...] = (
    ApiError,
    ApplyError,
    ConfigurationError,
    DependencyError,
    FilterError,
    LoadError,
    PlanError,
    StoreError,
    TrackingError,
)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn known errors into a clean exit code 1."""
    try:
        yield
    except KNOWN_ERRORS as e:
        raise click.ClickException(str(e)) from e
    except Exception:
        logger.exception("Unexpected error")
        raise


def _format_value(value: Any) -> str:
    return repr(value) if isinstance(value, str) else str(value)


def format_diff_entry(entry: DiffEntry) -> str:
    match entry.op:
        case "~":
            return f"  ~{entry.path} {_format_value(entry.old)} -> {_format_value(entry.new)}"
        case "+":
            return f"  +{entry.path} {_format_value(entry.new)}"
        case _:
            return f"  -{entry.path} {_format_value(entry.old)}"


def format_plan(plan: Plan) -> list[str]:
    """Plain listing of a plan, one change per line."""
    lines = ["Plan:"]
    lines += [f"Warning: {message}" for message in plan.warnings]
    if plan.empty:
        lines.append("Nothing to do")
        return lines

    lines += [f"Create {c.kind.value} {c.tracking_id}" for c in plan.creates]
    for update in plan.updates:
        lines.append(f"Update {update.kind.value} {update.tracking_id}")
        lines += [format_diff_entry(entry) for entry in update.diff]
    lines += [f"Delete {d.kind.value} {d.tracking_id}" for d in plan.deletes]
    return lines


def _load_config(require_credentials: bool = True) -> Config:
    config = Config.from_env(require_credentials=require_credentials)
    logging.getLogger().setLevel(config.log_level)
    return config


def _compute_plan(config: Config, api: DatadogApi) -> Plan:
    sync_filter = config.sync_filter()
    resources = load_resources(config.parts_dir, sync_filter)
    syncer = Syncer(
        api,
        resources,
        sync_filter=sync_filter,
        strict_imports=config.strict_imports,
        normalizer=create_normalizer_from_env(),
    )
    return syncer.plan()


@click.group()
@click.version_option(version="0.1.0", prog_name="ddsync")
def cli() -> None:
    """ddsync: Datadog monitors, dashboards, SLOs and synthetics as code.

    \b
    Quick Start:
        ddsync generate   # Render parts/ into generated/
        ddsync plan       # Preview changes
        ddsync update     # Apply changes
    """
    pass


@cli.command()
def generate() -> None:
    """Write the payload of every declared resource to GENERATED_DIR."""
    with handle_errors():
        config = _load_config(require_credentials=False)
        sync_filter = config.sync_filter()
        resources = load_resources(config.parts_dir, sync_filter)
        written = GeneratedStore(config.generated_dir, sync_filter).write(resources)
    click.echo(f"Generated {len(resources)} resources ({len(written)} changed)")


@cli.command()
def plan() -> None:
    """Show the changes an update would make."""
    provenance_logger = get_provenance_logger()
    with handle_errors():
        config = _load_config()
        provenance = provenance_logger.create_provenance("plan", config.sync_filter())
        computed: Plan | None = None
        try:
            with DatadogApi.from_config(config) as api:
                computed = _compute_plan(config, api)
        except Exception as e:
            provenance.finish(error=e)
            provenance_logger.log_provenance(provenance)
            raise
        provenance.finish(plan=computed)
        provenance_logger.log_provenance(provenance)

    for line in format_plan(computed):
        click.echo(line)


@cli.command()
@click.option("--yes", "-y", is_flag=True, help="Apply without asking for confirmation")
def update(yes: bool) -> None:
    """Apply the plan to Datadog."""
    provenance_logger = get_provenance_logger()
    with handle_errors():
        config = _load_config()
        provenance = provenance_logger.create_provenance("update", config.sync_filter())
        computed: Plan | None = None
        try:
            with DatadogApi.from_config(config) as api:
                computed = _compute_plan(config, api)
                for line in format_plan(computed):
                    click.echo(line)

                if not computed.empty and (yes or click.confirm("Execute Plan ?")):
                    for change in Executor(api, app_url=config.app_url).execute(computed):
                        click.echo(
                            f"{change.type.value.capitalize()}d {change.api_resource} "
                            f"{change.tracking_id} {change.id}"
                        )
                    provenance.applied = True
        except Exception as e:
            provenance.finish(plan=computed, error=e)
            provenance_logger.log_provenance(provenance)
            raise
        provenance.finish(plan=computed)
        provenance_logger.log_provenance(provenance)
