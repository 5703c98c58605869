"""One fetch → extract → parse → aggregate → publish update cycle."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Protocol

from dmarc_report_viewer.models.state import AppState, MailInfo, RawMail
from dmarc_report_viewer.pipeline.extract import extract_all
from dmarc_report_viewer.pipeline.parse import ParseOutcome, parse_payloads
from dmarc_report_viewer.pipeline.summary import aggregate
from dmarc_report_viewer.state.store import StateStore

logger = logging.getLogger(__name__)


class MailSource(Protocol):
    """Anything that returns the current batch of report mails."""

    async def fetch(self) -> list[RawMail]:
        """Return all mails, or raise FetchError for the whole batch."""
        ...


class CycleError(RuntimeError):
    """Raised when a cycle is aborted before publishing."""


def unix_now() -> int:
    """Return the current unix time in whole seconds."""
    return int(time.time())


def _extract_and_parse(mails: list[RawMail]) -> tuple[int, ParseOutcome]:
    """Run the CPU-bound stages; executed in a worker thread."""
    payloads = extract_all(mails)
    return len(payloads), parse_payloads(payloads)


def build_state(
    *,
    mails: list[RawMail],
    xml_file_count: int,
    outcome: ParseOutcome,
    now: int,
) -> AppState:
    """Assemble a complete snapshot from one cycle's results.

    Args:
        mails: Mails fetched in the cycle.
        xml_file_count: Number of extracted XML documents.
        outcome: Parsed reports and failures.
        now: Unix timestamp of the cycle.

    Returns:
        The snapshot to publish.
    """
    summary = aggregate(
        mail_count=len(mails),
        xml_file_count=xml_file_count,
        reports=outcome.reports,
        now=now,
        xml_error_count=len(outcome.xml_errors),
    )
    return AppState(
        mails=tuple(MailInfo.from_raw(mail) for mail in mails),
        mail_count=len(mails),
        xml_file_count=xml_file_count,
        reports=tuple(outcome.reports),
        xml_errors=tuple(outcome.xml_errors),
        summary=summary,
        last_update=now,
    )


async def run_cycle(
    *,
    source: MailSource,
    store: StateStore,
    clock: Callable[[], int] = unix_now,
) -> AppState:
    """Run one update cycle and publish its snapshot.

    Args:
        source: Mail source for this cycle.
        store: State store to publish into.
        clock: Returns the cycle timestamp in unix seconds.

    Returns:
        The published snapshot.

    Raises:
        FetchError: If the mail source fails; nothing is published.
        CycleError: If the timestamp cannot be acquired; nothing is published.
        StateCorruptedError: If the store is poisoned.
    """
    logger.info("Starting background update cycle")
    mails = await source.fetch()
    logger.info("Downloaded %d mails", len(mails))

    xml_file_count, outcome = await asyncio.to_thread(_extract_and_parse, mails)

    try:
        now = clock()
    except Exception as exc:
        raise CycleError(f"Failed to get unix timestamp: {exc}") from exc

    state = build_state(mails=mails, xml_file_count=xml_file_count, outcome=outcome, now=now)
    store.publish(state)
    return state
