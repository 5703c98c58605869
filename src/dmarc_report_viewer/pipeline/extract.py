"""Extraction of DMARC XML documents from report mails."""

from __future__ import annotations

import gzip
import io
import logging
import zipfile
import zlib
from collections.abc import Iterable

from dmarc_report_viewer.models.state import RawMail
from dmarc_report_viewer.utils.email import MailPart, iter_leaf_parts, parse_message

logger = logging.getLogger(__name__)

MAGIC_ZIP = b"PK\x03\x04"
MAGIC_GZIP = b"\x1f\x8b"
_XML_PREFIXES = (b"<?xml", b"<feedback")
_UTF8_BOM = b"\xef\xbb\xbf"

_ZIP_TYPES = {"application/zip", "application/x-zip-compressed", "application/x-zip"}
_GZIP_TYPES = {"application/gzip", "application/x-gzip", "application/gzip-compressed"}
_XML_TYPES = {"text/xml", "application/xml"}


class ExtractionError(RuntimeError):
    """Raised when a mail attachment looks like a report but cannot be unpacked."""


def _looks_like_xml(data: bytes) -> bool:
    """Return True if the bytes start like an XML report document."""
    head = data[:512].removeprefix(_UTF8_BOM).lstrip()
    return head.startswith(_XML_PREFIXES)


def _suffix(filename: str | None) -> str:
    """Return the lowercased final extension of an attachment filename."""
    if not filename or "." not in filename:
        return ""
    return filename.rsplit(".", 1)[1].strip().lower()


def unzip_xml(data: bytes) -> list[bytes]:
    """Return every XML member of a zip archive.

    Args:
        data: Zip archive bytes.

    Returns:
        Member contents in archive order.

    Raises:
        ExtractionError: If the archive is corrupt, encrypted or uses an
            unsupported compression method.
    """
    out: list[bytes] = []
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            for info in zf.infolist():
                if info.is_dir():
                    continue
                content = zf.read(info)
                if info.filename.lower().endswith(".xml") or _looks_like_xml(content):
                    out.append(content)
    except (
        zipfile.BadZipFile,
        zlib.error,
        EOFError,
        OSError,
        RuntimeError,
        NotImplementedError,
    ) as exc:
        # RuntimeError: encrypted member; NotImplementedError: unknown compression.
        raise ExtractionError(f"Failed to unzip attachment: {exc}") from exc
    return out


def gunzip(data: bytes) -> bytes:
    """Decompress a gzip payload.

    Raises:
        ExtractionError: If the stream is corrupt.
    """
    try:
        return gzip.decompress(data)
    except (gzip.BadGzipFile, zlib.error, EOFError, OSError) as exc:
        raise ExtractionError(f"Failed to decompress gzip attachment: {exc}") from exc


def payloads_from_bytes(
    data: bytes,
    *,
    content_type: str = "",
    filename: str | None = None,
) -> list[bytes]:
    """Return the candidate report documents contained in one blob.

    Magic bytes take precedence; content type and filename are only consulted
    when the bytes are not recognizable.

    Args:
        data: Attachment or file bytes.
        content_type: MIME content type, if known.
        filename: Attachment or file name, if known.

    Returns:
        Zero or more XML documents.

    Raises:
        ExtractionError: If an archive is corrupt.
    """
    suffix = _suffix(filename)
    if data.startswith(MAGIC_ZIP):
        return unzip_xml(data)
    if data.startswith(MAGIC_GZIP):
        return [gunzip(data)]
    if _looks_like_xml(data):
        return [data]
    if content_type in _ZIP_TYPES or suffix == "zip":
        return unzip_xml(data)
    if content_type in _GZIP_TYPES or suffix == "gz":
        return [gunzip(data)]
    if content_type in _XML_TYPES or suffix == "xml":
        return [data]
    return []


def _payloads_from_part(part: MailPart) -> list[bytes]:
    """Return the report documents found in a single MIME part."""
    return payloads_from_bytes(part.payload, content_type=part.content_type, filename=part.filename)


def extract_xml_payloads(mail: RawMail) -> list[bytes]:
    """Extract every candidate DMARC XML document from one mail.

    Args:
        mail: Mail with a body.

    Returns:
        XML documents in MIME order.

    Raises:
        ExtractionError: If the mail has no body or an attachment is corrupt.
    """
    if mail.body is None:
        raise ExtractionError(f"Mail UID {mail.uid} has no body")
    msg = parse_message(mail.body)
    payloads: list[bytes] = []
    for part in iter_leaf_parts(msg):
        payloads.extend(_payloads_from_part(part))
    return payloads


def extract_all(mails: Iterable[RawMail]) -> list[bytes]:
    """Extract report documents from a batch of mails.

    Mails without a body are skipped. A mail that fails extraction is logged
    and contributes nothing; the remaining mails are still processed.

    Args:
        mails: Mails fetched in this cycle.

    Returns:
        Flat list of XML documents in mail order.
    """
    payloads: list[bytes] = []
    for mail in mails:
        if mail.body is None:
            continue
        try:
            found = extract_xml_payloads(mail)
        except Exception as exc:
            logger.warning("Failed to extract XML files from mail UID %s: %s", mail.uid, exc)
            continue
        if not found:
            logger.debug("Mail UID %s contained no XML files", mail.uid)
        payloads.extend(found)
    logger.info("Extracted %d XML files from mails", len(payloads))
    return payloads
