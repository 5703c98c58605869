"""Typer CLI for the DMARC report viewer."""

from __future__ import annotations

import asyncio
import logging
import signal
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from dmarc_report_viewer.cli.render import render_state
from dmarc_report_viewer.config.settings import AppSettings, load_settings
from dmarc_report_viewer.imap.client import FetchError, ImapMailSource
from dmarc_report_viewer.models.state import AppState, RawMail
from dmarc_report_viewer.pipeline.cycle import CycleError, build_state, run_cycle, unix_now
from dmarc_report_viewer.pipeline.extract import (
    ExtractionError,
    extract_xml_payloads,
    payloads_from_bytes,
)
from dmarc_report_viewer.pipeline.parse import parse_payloads
from dmarc_report_viewer.pipeline.scheduler import Scheduler
from dmarc_report_viewer.state.store import StateCorruptedError, StateStore
from dmarc_report_viewer.utils.email import to_raw_mail
from dmarc_report_viewer.utils.logging import configure_logging

logger = logging.getLogger(__name__)

app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help="Fetch DMARC aggregate reports from an IMAP inbox and summarize them.",
)

_ENV_FILE_OPTION = typer.Option(
    None,
    "--env-file",
    exists=True,
    dir_okay=False,
    help="Optional path to a .env file (in addition to environment variables).",
)


def _load(env_file: Path | None) -> AppSettings:
    """Load settings and configure logging, exiting on missing or invalid settings."""
    try:
        settings = load_settings(env_file=env_file)
    except ValidationError as exc:
        typer.echo(f"Invalid configuration:\n{exc}", err=True)
        raise typer.Exit(code=2) from None
    configure_logging(settings=settings.logging)
    if settings.imap is None:
        typer.echo(
            "Missing IMAP settings. Set at least DMARC_IMAP__HOST, "
            "DMARC_IMAP__USERNAME and DMARC_IMAP__PASSWORD.",
            err=True,
        )
        raise typer.Exit(code=2)
    return settings


def _emit(state: AppState, *, as_json: bool) -> None:
    """Print a snapshot as JSON or as rich tables."""
    if as_json:
        typer.echo(state.model_dump_json(indent=2))
    else:
        render_state(Console(), state)


async def _serve(settings: AppSettings, *, show: bool) -> None:
    """Run the background update loop until SIGINT/SIGTERM."""
    assert settings.imap is not None
    store = StateStore()
    source = ImapMailSource(settings=settings.imap)
    console = Console()

    async def _cycle() -> None:
        """Run one cycle and optionally print the new snapshot."""
        await run_cycle(source=source, store=store)
        if show:
            render_state(console, store.read(), show_errors=False)

    scheduler = Scheduler(
        cycle=_cycle,
        interval_seconds=settings.scheduler.check_interval_seconds,
    )
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, scheduler.stop)
    try:
        await scheduler.run()
    finally:
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.remove_signal_handler(sig)


@app.command("serve")
def serve_cmd(
    *,
    env_file: Path | None = _ENV_FILE_OPTION,
    show: bool = typer.Option(
        default=False,
        help="Print the summary after every update cycle.",
    ),
) -> None:
    """Periodically fetch and parse reports until interrupted.

    Args:
        env_file: Optional path to a .env file to load configuration from.
        show: Whether to print the summary after each cycle.
    """
    settings = _load(env_file)
    try:
        asyncio.run(_serve(settings, show=show))
    except StateCorruptedError:
        logger.critical("Shared state corrupted, exiting")
        raise typer.Exit(code=1) from None


@app.command("check")
def check_cmd(
    *,
    env_file: Path | None = _ENV_FILE_OPTION,
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON."),
) -> None:
    """Run a single update cycle and print the result.

    Args:
        env_file: Optional path to a .env file to load configuration from.
        as_json: Whether to print JSON instead of tables.
    """
    settings = _load(env_file)
    assert settings.imap is not None
    store = StateStore()
    source = ImapMailSource(settings=settings.imap)
    try:
        state = asyncio.run(run_cycle(source=source, store=store))
    except (FetchError, CycleError) as exc:
        logger.error("Update cycle failed: %s", exc)
        typer.echo(str(exc), err=True)
        raise typer.Exit(code=1) from None
    _emit(state, as_json=as_json)


@app.command("parse")
def parse_cmd(
    files: list[Path] = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        help="Report files: .xml, .gz, .zip or whole .eml messages.",
    ),
    as_json: bool = typer.Option(False, "--json", help="Print the snapshot as JSON."),
) -> None:
    """Parse local report files without contacting a mail server.

    Args:
        files: Files to parse.
        as_json: Whether to print JSON instead of tables.
    """
    mails: list[RawMail] = []
    payloads: list[bytes] = []
    for idx, path in enumerate(files, start=1):
        data = path.read_bytes()
        try:
            if path.suffix.lower() == ".eml":
                mail = to_raw_mail(idx, data)
                mails.append(mail)
                payloads.extend(extract_xml_payloads(mail))
            else:
                payloads.extend(payloads_from_bytes(data, filename=path.name))
        except ExtractionError as exc:
            typer.echo(f"{path}: {exc}", err=True)

    outcome = parse_payloads(payloads)
    state = build_state(
        mails=mails,
        xml_file_count=len(payloads),
        outcome=outcome,
        now=unix_now(),
    )
    _emit(state, as_json=as_json)
