"""IMAP client wrapper and the mail source for report inboxes."""

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import Iterable

import aioimaplib

from dmarc_report_viewer.config.settings import ImapSettings
from dmarc_report_viewer.models.state import RawMail
from dmarc_report_viewer.utils.email import to_raw_mail

_FETCH_LITERAL_RE = re.compile(rb"\{(?P<n>\d+)\}$")

logger = logging.getLogger(__name__)


class ImapError(RuntimeError):
    """Raised for IMAP command errors."""


class FetchError(RuntimeError):
    """Raised when the batch of report mails could not be retrieved."""


class ImapClient:
    """Async IMAP client with basic helpers, used for a single fetch."""

    def __init__(self, *, host: str, port: int, ssl: bool, timeout_seconds: float = 60.0) -> None:
        """Initialize the IMAP client.

        Args:
            host: IMAP host.
            port: IMAP port.
            ssl: Whether to use SSL.
            timeout_seconds: Network timeout for IMAP operations.
        """
        self._host = host
        self._port = port
        self._ssl = ssl
        self._timeout = timeout_seconds
        self._imap: aioimaplib.IMAP4 | aioimaplib.IMAP4_SSL | None = None

    async def connect(self) -> None:
        """Connect to the IMAP server."""
        if self._imap is not None:
            return
        if self._ssl:
            self._imap = aioimaplib.IMAP4_SSL(self._host, self._port, timeout=self._timeout)
        else:
            self._imap = aioimaplib.IMAP4(self._host, self._port, timeout=self._timeout)
        await asyncio.wait_for(self._imap.wait_hello_from_server(), timeout=self._timeout)

    async def login(self, *, username: str, password: str) -> None:
        """Login to the IMAP server.

        Args:
            username: IMAP username.
            password: IMAP password.

        Raises:
            ImapError: If authentication fails.
        """
        imap = self._require()
        resp = await asyncio.wait_for(imap.login(username, password), timeout=self._timeout)
        if resp.result != "OK":
            raise ImapError(f"IMAP login failed: {resp.result} {resp.lines!r}")

    async def logout(self) -> None:
        """Logout and close the IMAP connection."""
        if self._imap is None:
            return
        try:
            await asyncio.wait_for(self._imap.logout(), timeout=self._timeout)
        finally:
            self._imap = None

    async def select(self, mailbox: str) -> None:
        """Select a mailbox.

        Args:
            mailbox: Mailbox name.

        Raises:
            ImapError: If the SELECT command fails.
        """
        imap = self._require()
        resp = await asyncio.wait_for(imap.select(_imap_quote(mailbox)), timeout=self._timeout)
        if resp.result != "OK":
            raise ImapError(f"IMAP SELECT failed ({mailbox}): {resp.result} {resp.lines!r}")

    async def uid_search(self, criteria: Iterable[str]) -> list[int]:
        """Run UID SEARCH and return matching UIDs.

        Args:
            criteria: IMAP search criteria.

        Returns:
            Matching UIDs in ascending order.

        Raises:
            ImapError: If the SEARCH command fails.
        """
        imap = self._require()
        resp = await asyncio.wait_for(
            imap.protocol.search(*criteria, by_uid=True),
            timeout=self._timeout,
        )
        if resp.result != "OK":
            raise ImapError(f"IMAP UID SEARCH failed: {resp.result} {resp.lines!r}")
        return _parse_search_response(resp.lines)

    async def uid_fetch_rfc822(self, uid: int) -> bytes | None:
        """Fetch raw RFC822 bytes for a UID.

        Args:
            uid: Message UID.

        Returns:
            Raw RFC822 bytes, or None if the response carried no message literal.

        Raises:
            ImapError: If the FETCH command fails.
        """
        imap = self._require()
        resp = await asyncio.wait_for(
            imap.uid("FETCH", str(uid), "(BODY.PEEK[])"),
            timeout=self._timeout,
        )
        if resp.result != "OK":
            raise ImapError(f"IMAP UID FETCH failed: {resp.result} {resp.lines!r}")
        return _extract_literal(resp.lines)

    def _require(self) -> aioimaplib.IMAP4 | aioimaplib.IMAP4_SSL:
        """Return the underlying IMAP client or raise if not connected."""
        if self._imap is None:
            raise ImapError("IMAP client not connected")
        return self._imap


class ImapMailSource:
    """Retrieves every message of the report mailbox in one batch."""

    def __init__(self, *, settings: ImapSettings) -> None:
        """Initialize the source.

        Args:
            settings: IMAP connection settings.
        """
        self._s = settings

    def _new_client(self) -> ImapClient:
        """Create an unconnected client for one fetch."""
        return ImapClient(
            host=self._s.host,
            port=self._s.port,
            ssl=self._s.ssl,
            timeout_seconds=self._s.timeout_seconds,
        )

    async def fetch(self) -> list[RawMail]:
        """Download all mails from the configured mailbox.

        Returns:
            Mails ordered by UID.

        Raises:
            FetchError: If connecting, authenticating or any command fails.
        """
        client = self._new_client()
        try:
            await client.connect()
            await client.login(username=self._s.username, password=self._s.password)
            await client.select(self._s.mailbox)
            uids = await client.uid_search(["ALL"])
            logger.info("Found %d mails in %s", len(uids), self._s.mailbox)

            mails: list[RawMail] = []
            for uid in uids:
                body = await client.uid_fetch_rfc822(uid)
                mails.append(_to_raw_mail(uid, body))
        except Exception as exc:
            raise FetchError(f"Failed to fetch mails from {self._s.host}: {exc!r}") from exc
        finally:
            try:
                await client.logout()
            except Exception as exc:
                logger.debug("IMAP logout failed: %r", exc)
        return mails


def _to_raw_mail(uid: int, body: bytes | None) -> RawMail:
    """Wrap fetched bytes, warning about UIDs that came back without a body."""
    if body is None:
        logger.warning("Mail UID %s has no body", uid)
    return to_raw_mail(uid, body)


def _parse_search_response(lines: list[bytes]) -> list[int]:
    """Parse UIDs from a UID SEARCH response.

    Args:
        lines: IMAP response lines.

    Returns:
        Sorted, de-duplicated UIDs.
    """
    uids: set[int] = set()
    for line in lines:
        parts = line.split()
        if len(parts) >= 2 and parts[0] == b"*" and parts[1] == b"SEARCH":
            parts = parts[2:]
        if parts and all(p.isdigit() for p in parts):
            uids.update(int(p) for p in parts)
    return sorted(uids)


def _extract_literal(lines: list[bytes]) -> bytes | None:
    """Extract the literal payload from an IMAP FETCH response.

    Args:
        lines: IMAP response lines.

    Returns:
        Literal payload bytes, or None if the response contains none.
    """
    for idx, line in enumerate(lines):
        match = _FETCH_LITERAL_RE.search(line)
        if not match:
            continue
        size = int(match.group("n"))
        if idx + 1 >= len(lines):
            break
        literal = lines[idx + 1]
        if len(literal) == size:
            return bytes(literal)

    candidates = [
        line for line in lines if b"FETCH" not in line and line.strip() not in {b")", b""}
    ]
    if not candidates:
        return None
    literal = max(candidates, key=len)
    if len(literal) < 64:
        return None
    return bytes(literal)


def _imap_quote(value: str) -> str:
    """Quote a string for use in IMAP commands.

    Args:
        value: Raw mailbox name.

    Returns:
        Quoted string safe for IMAP commands.
    """
    stripped = value.strip()
    if not stripped:
        return '""'
    escaped = stripped.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'
