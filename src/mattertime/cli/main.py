"""CLI entry point for mattertime.

Uses Click to expose the ``mattertime`` command group with subcommands
that delegate to the Session manager.
"""

from __future__ import annotations

import sys
from typing import Callable, TypeVar

import click

import mattertime
from mattertime.config import configure_logging, get_settings
from mattertime.core.records import RecordStoreError
from mattertime.core.session import Session
from mattertime.core.timer import InvalidStateError

T = TypeVar("T")


def _run(action: Callable[[], T]) -> T:
    """Execute *action*, converting expected failures to a CLI error.

    On ``InvalidStateError`` or ``RecordStoreError`` the message is printed
    to stderr and the process exits with code 1.
    """
    try:
        return action()
    except (InvalidStateError, RecordStoreError) as exc:
        click.echo(str(exc), err=True)
        sys.exit(1)


def _echo_result(result: tuple[str, int]) -> None:
    message, exit_code = result
    click.echo(message)
    sys.exit(exit_code)


@click.group()
@click.version_option(version=mattertime.__version__, prog_name="mattertime")
def cli() -> None:
    """mattertime: a billable-time timer that suggests the matter you are working on."""
    configure_logging(get_settings().log_level)


@cli.command()
@click.option("--path", "pathname", default="/", show_default=True, help="Current page path.")
@click.option("--matter", "matter_id", default=None, help="Matter to bill this time to.")
@click.option("--accept", is_flag=True, help="Bill to the suggested matter.")
def start(pathname: str, matter_id: str | None, accept: bool) -> None:
    """Start a timer, suggesting a matter from PATH and recent records."""
    session = Session()
    message = _run(lambda: session.start(pathname, matter_id, accept_suggestion=accept))
    click.echo(message)


@cli.command()
def status() -> None:
    """Show the running timer."""
    session = Session()
    _echo_result(session.status())


@cli.command()
@click.option("--notes", default=None, help="Notes for the time record.")
def stop(notes: str | None) -> None:
    """Stop the timer and log the time."""
    session = Session()
    _echo_result(_run(lambda: session.stop(notes)))


@cli.command()
def reset() -> None:
    """Discard the running timer without logging time."""
    session = Session()
    click.echo(session.reset())


@cli.command()
@click.argument("text")
def notes(text: str) -> None:
    """Replace the running timer's notes with TEXT."""
    session = Session()
    message = _run(lambda: session.set_notes(text))
    click.echo(message)


@cli.command()
@click.argument("matter_id")
def matter(matter_id: str) -> None:
    """Bill the running timer to MATTER_ID."""
    session = Session()
    message = _run(lambda: session.set_matter(matter_id))
    click.echo(message)


@cli.command()
@click.option("--path", "pathname", default="/", show_default=True, help="Current page path.")
def suggest(pathname: str) -> None:
    """Suggest a matter for PATH without starting a timer."""
    session = Session()
    _echo_result(_run(lambda: session.suggest(pathname)))
