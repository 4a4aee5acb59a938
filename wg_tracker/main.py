"""CLI entry point for wg-tracker."""

import asyncio
import sys
from datetime import datetime
from functools import partial

import click
import httpx
import structlog

from wg_tracker.config.policy import load_policy
from wg_tracker.config.settings import TrackerSettings
from wg_tracker.engine.tracker import Tracker
from wg_tracker.providers.factory import create_providers
from wg_tracker.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


def _one_line(text: str) -> str:
    return " ".join(text.split())


def format_error(error: BaseException) -> str:
    """Render an error as one timestamped line, with its direct cause.

    Multi-line texts (pydantic and YAML errors) are collapsed onto the line.
    The cause is left out when the message already quotes it.
    """
    message = _one_line(getattr(error, "message", None) or str(error)) or type(error).__name__
    cause = _one_line(str(error.__cause__)) if error.__cause__ is not None else ""
    suffix = f": {cause}" if cause and cause not in message else ""
    return f"[{datetime.now().astimezone().isoformat()}] error: {message}{suffix}"


@click.command()
@click.argument("config", type=click.Path(dir_okay=False))
@click.option("--log-level", default="INFO", help="Logging level")
@click.option(
    "--json-logs/--console-logs",
    default=True,
    help="Emit JSON log lines (default) or human-readable output",
)
def cli(config: str, log_level: str, json_logs: bool) -> None:
    """wg-tracker: turn working group resolutions into decision issues and bugs.

    CONFIG is the path to the tracker's YAML configuration file.
    """
    configure_logging(log_level, json_output=json_logs)

    try:
        settings = TrackerSettings.from_yaml(config)
        asyncio.run(_run(settings))
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(format_error(e), err=True)
        log.debug("run_failed", exc_info=True)
        sys.exit(1)


async def _run(settings: TrackerSettings) -> None:
    """Run the tracker once with a shared HTTP client.

    Args:
        settings: Tracker settings
    """
    async with httpx.AsyncClient(timeout=30.0) as client:
        git, bugs = create_providers(settings, client)
        tracker = Tracker(
            settings=settings,
            git=git,
            bugs=bugs,
            policy_loader=partial(load_policy, settings, client),
        )
        await tracker.run()


if __name__ == "__main__":
    cli()
