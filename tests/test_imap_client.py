"""Tests for IMAP response parsing and the IMAP mail source."""

from __future__ import annotations

import asyncio
from collections import namedtuple

import pytest
from conftest import make_mail

from dmarc_report_viewer.config.settings import ImapSettings
from dmarc_report_viewer.imap.client import (
    FetchError,
    ImapClient,
    ImapError,
    ImapMailSource,
    _extract_literal,
    _parse_search_response,
)


def test_parse_search_response() -> None:
    """UID SEARCH parsing should return sorted unique UIDs."""
    lines = [b"* SEARCH 12 3 7 3", b"SEARCH completed (Success)"]
    assert _parse_search_response(lines) == [3, 7, 12]
    assert _parse_search_response([b"SEARCH completed"]) == []


def test_extract_literal_uses_declared_size() -> None:
    """The literal following a {n} marker should be returned."""
    lines = [b"1 FETCH (UID 5 BODY[] {11}", b"hello world", b")", b"Fetch completed."]
    assert _extract_literal(lines) == b"hello world"


def test_extract_literal_without_payload_returns_none() -> None:
    """A response without a message literal should yield None."""
    assert _extract_literal([]) is None
    assert _extract_literal([b"Fetch completed."]) is None


_Response = namedtuple("_Response", "result lines")


class FakeImap:
    """Stand-in for an aioimaplib connection."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, ...]] = []

    async def select(self, mailbox: str) -> _Response:
        self.calls.append(("select", mailbox))
        return _Response("OK", [])

    async def uid(self, *args: str) -> _Response:
        self.calls.append(("uid", *args))
        return _Response("OK", [b"1 FETCH (UID 7 BODY[] {5}", b"hello", b")", b"Success"])

    async def logout(self) -> _Response:
        self.calls.append(("logout",))
        return _Response("OK", [])


def test_client_issues_commands_on_its_connection() -> None:
    """A client should run its commands in order and forget the connection on logout."""
    fake = FakeImap()
    client = ImapClient(host="imap.example.com", port=993, ssl=True)
    client._imap = fake

    async def scenario() -> bytes | None:
        await client.select("INBOX")
        body = await client.uid_fetch_rfc822(7)
        await client.logout()
        return body

    assert asyncio.run(scenario()) == b"hello"
    assert fake.calls == [
        ("select", '"INBOX"'),
        ("uid", "FETCH", "7", "(BODY.PEEK[])"),
        ("logout",),
    ]
    with pytest.raises(ImapError, match="not connected"):
        asyncio.run(client.select("INBOX"))


class FakeClient:
    """Stand-in for ImapClient recording calls."""

    def __init__(self, bodies: dict[int, bytes | None], fail_on: str | None = None) -> None:
        self._bodies = bodies
        self._fail_on = fail_on
        self.logged_out = False
        self.selected: str | None = None

    def _maybe_fail(self, step: str) -> None:
        if self._fail_on == step:
            raise ImapError(f"{step} failed")

    async def connect(self) -> None:
        self._maybe_fail("connect")

    async def login(self, *, username: str, password: str) -> None:
        self._maybe_fail("login")

    async def select(self, mailbox: str) -> None:
        self._maybe_fail("select")
        self.selected = mailbox

    async def uid_search(self, criteria: list[str]) -> list[int]:
        self._maybe_fail("search")
        return sorted(self._bodies)

    async def uid_fetch_rfc822(self, uid: int) -> bytes | None:
        self._maybe_fail("fetch")
        return self._bodies[uid]

    async def logout(self) -> None:
        self.logged_out = True


def _settings() -> ImapSettings:
    return ImapSettings(host="imap.example.com", username="dmarc", password="secret")


def test_mail_source_fetches_all_mails(monkeypatch: pytest.MonkeyPatch) -> None:
    """The source should return one RawMail per UID with decoded headers."""
    client = FakeClient({1: make_mail(), 2: None})
    source = ImapMailSource(settings=_settings())
    monkeypatch.setattr(source, "_new_client", lambda: client)

    mails = asyncio.run(source.fetch())

    assert [m.uid for m in mails] == [1, 2]
    assert mails[0].subject == "Report domain: example.com Submitter: google.com"
    assert mails[0].sender == "DMARC Reports <noreply-dmarc-support@google.com>"
    assert mails[0].date == "2024-03-05T10:00:00+00:00"
    assert mails[1].body is None
    assert client.selected == "INBOX"
    assert client.logged_out is True


@pytest.mark.parametrize("step", ["connect", "login", "select", "search", "fetch"])
def test_mail_source_failure_is_all_or_nothing(
    monkeypatch: pytest.MonkeyPatch,
    step: str,
) -> None:
    """Any IMAP failure should surface as a single FetchError."""
    client = FakeClient({1: make_mail()}, fail_on=step)
    source = ImapMailSource(settings=_settings())
    monkeypatch.setattr(source, "_new_client", lambda: client)

    with pytest.raises(FetchError, match=f"{step} failed"):
        asyncio.run(source.fetch())
    assert client.logged_out is True
