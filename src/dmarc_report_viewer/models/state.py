"""Cycle transport objects and the published application state."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import Field

from dmarc_report_viewer.models.base import AppModel
from dmarc_report_viewer.models.report import Report


@dataclass(frozen=True)
class RawMail:
    """A message as retrieved from the report inbox.

    ``body`` is None when the server returned no message literal for the UID.
    Header fields are best-effort decoded from the body.
    """

    uid: int
    body: bytes | None
    subject: str | None = None
    sender: str | None = None
    to: str | None = None
    date: str | None = None

    @property
    def size(self) -> int:
        """Return the body size in bytes (0 when missing)."""
        return len(self.body) if self.body is not None else 0


class MailInfo(AppModel):
    """Body-less description of a fetched mail, kept in the published state."""

    uid: int
    subject: str | None = None
    sender: str | None = None
    to: str | None = None
    date: str | None = None
    size: int = Field(default=0, ge=0)
    has_body: bool = True

    @classmethod
    def from_raw(cls, mail: RawMail) -> MailInfo:
        """Build a MailInfo from a fetched mail."""
        return cls(
            uid=mail.uid,
            subject=mail.subject,
            sender=mail.sender,
            to=mail.to,
            date=mail.date,
            size=mail.size,
            has_body=mail.body is not None,
        )


class XmlError(AppModel):
    """A payload that could not be decoded as a DMARC report."""

    original_text: str
    error_message: str

    @classmethod
    def from_payload(cls, payload: bytes, error_message: str) -> XmlError:
        """Capture a failed payload with a lossy UTF-8 decode of its bytes."""
        return cls(
            original_text=payload.decode("utf-8", errors="replace"),
            error_message=error_message,
        )


class Summary(AppModel):
    """Rollup counts for one update cycle."""

    mail_count: int = Field(default=0, ge=0)
    xml_file_count: int = Field(default=0, ge=0)
    report_count: int = Field(default=0, ge=0)
    xml_error_count: int = Field(default=0, ge=0)
    pass_count: int = Field(default=0, ge=0)
    fail_count: int = Field(default=0, ge=0)
    orgs: dict[str, int] = Field(default_factory=dict)
    domains: dict[str, int] = Field(default_factory=dict)
    last_update: int = Field(default=0, ge=0)


class AppState(AppModel):
    """Snapshot shared between the update loop and readers.

    Replaced as a whole by the state store; all fields come from one cycle.
    """

    mails: tuple[MailInfo, ...] = ()
    mail_count: int = Field(default=0, ge=0)
    xml_file_count: int = Field(default=0, ge=0)
    reports: tuple[Report, ...] = ()
    xml_errors: tuple[XmlError, ...] = ()
    summary: Summary = Field(default_factory=Summary)
    last_update: int = Field(default=0, ge=0)
