"""Email parsing helpers: header decoding and MIME part iteration."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from email import policy
from email.header import decode_header, make_header
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import parsedate_to_datetime

from dmarc_report_viewer.models.state import RawMail


def _decode_header_value(value: str) -> str:
    """Decode RFC 2047-encoded header values.

    Args:
        value: Raw header value.

    Returns:
        Best-effort decoded value.
    """
    try:
        return str(make_header(decode_header(value)))
    except Exception:
        return value


@dataclass(frozen=True)
class MailHeaders:
    """Headers shown for a report mail."""

    subject: str | None
    sender: str | None
    to: str | None
    date: str | None


def parse_message(raw_rfc822: bytes) -> EmailMessage:
    """Parse raw RFC822 bytes into a message object."""
    return BytesParser(policy=policy.default).parsebytes(raw_rfc822)  # type: ignore[return-value]


def parse_mail_headers(raw_rfc822: bytes) -> MailHeaders:
    """Parse display headers from raw RFC822 bytes.

    Args:
        raw_rfc822: Raw RFC822 message bytes.

    Returns:
        Decoded header values. The date is normalized to ISO 8601 when it parses.
    """
    msg = BytesParser(policy=policy.compat32).parsebytes(raw_rfc822, headersonly=True)

    date_raw = msg.get("Date")
    date: str | None = None
    if date_raw:
        try:
            date = parsedate_to_datetime(date_raw).isoformat()
        except Exception:
            date = _decode_header_value(date_raw)

    subject = msg.get("Subject")
    sender = msg.get("From")
    to = msg.get("To")

    return MailHeaders(
        subject=_decode_header_value(subject) if subject else None,
        sender=_decode_header_value(sender) if sender else None,
        to=_decode_header_value(to) if to else None,
        date=date,
    )


@dataclass(frozen=True)
class MailPart:
    """A leaf MIME part with its decoded payload."""

    content_type: str
    filename: str | None
    payload: bytes


def iter_leaf_parts(msg: EmailMessage) -> Iterator[MailPart]:
    """Yield every non-multipart part of a message with its decoded payload.

    Args:
        msg: Parsed message.

    Yields:
        MailPart items in document order. Parts whose transfer encoding
        yields nothing are skipped.
    """
    for part in msg.walk():
        if part.is_multipart():
            continue
        payload = part.get_payload(decode=True)
        if not isinstance(payload, bytes) or not payload:
            continue
        yield MailPart(
            content_type=part.get_content_type(),
            filename=part.get_filename(),
            payload=payload,
        )


def to_raw_mail(uid: int, body: bytes | None) -> RawMail:
    """Build a RawMail, decoding display headers when a body is present."""
    if body is None:
        return RawMail(uid=uid, body=None)
    headers = parse_mail_headers(body)
    return RawMail(
        uid=uid,
        body=body,
        subject=headers.subject,
        sender=headers.sender,
        to=headers.to,
        date=headers.date,
    )
