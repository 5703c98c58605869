"""Decoding of DMARC aggregate report XML into typed reports."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any
from xml.parsers.expat import ExpatError

import xmltodict
from pydantic import ValidationError

from dmarc_report_viewer.models.report import Report
from dmarc_report_viewer.models.state import XmlError

logger = logging.getLogger(__name__)

# (parent element, child element) pairs that repeat in the RFC 7489 schema.
_REPEATED_ELEMENTS: frozenset[tuple[str, str]] = frozenset(
    {
        ("feedback", "record"),
        ("report_metadata", "error"),
        ("policy_evaluated", "reason"),
        ("auth_results", "dkim"),
        ("auth_results", "spf"),
    },
)


class ReportParseError(RuntimeError):
    """Raised when a payload is not a schema-conformant DMARC report."""


def _force_list(path: list[tuple[str, Any]], key: str, value: object) -> bool:
    """Tell xmltodict which elements are always lists."""
    if not path:
        return False
    parent = path[-1][0]
    return (parent, key) in _REPEATED_ELEMENTS


def xml_to_dict(payload: bytes) -> dict[str, Any]:
    """Convert a report document to its ``feedback`` element as a dict.

    Args:
        payload: Raw XML bytes.

    Returns:
        Content of the root ``feedback`` element.

    Raises:
        ReportParseError: If the XML is malformed or the root is not ``feedback``.
    """
    try:
        doc = xmltodict.parse(payload, force_list=_force_list)
    except (ExpatError, ValueError, TypeError) as exc:
        raise ReportParseError(f"Malformed XML: {exc}") from exc

    feedback = doc.get("feedback") if isinstance(doc, dict) else None
    if not isinstance(feedback, dict):
        root = next(iter(doc), None) if isinstance(doc, dict) else None
        raise ReportParseError(f"Expected <feedback> root element, found <{root}>")
    return feedback


def parse_report(payload: bytes) -> Report:
    """Decode one DMARC aggregate report.

    Args:
        payload: Raw XML bytes.

    Returns:
        The validated report.

    Raises:
        ReportParseError: If the document does not conform to the schema.
    """
    feedback = xml_to_dict(payload)
    try:
        return Report.model_validate(feedback)
    except ValidationError as exc:
        raise ReportParseError(f"Invalid DMARC report: {exc}") from exc


@dataclass
class ParseOutcome:
    """Reports and failures from one batch, each in payload order."""

    reports: list[Report] = field(default_factory=list)
    xml_errors: list[XmlError] = field(default_factory=list)


def parse_payloads(payloads: Iterable[bytes]) -> ParseOutcome:
    """Parse every payload, collecting failures instead of raising.

    Args:
        payloads: XML documents extracted in this cycle.

    Returns:
        ParseOutcome with one entry per payload across both lists.
    """
    outcome = ParseOutcome()
    for payload in payloads:
        try:
            outcome.reports.append(parse_report(payload))
        except ReportParseError as exc:
            outcome.xml_errors.append(XmlError.from_payload(payload, str(exc)))

    logger.info("Parsed %d DMARC reports successfully", len(outcome.reports))
    if outcome.xml_errors:
        logger.warning(
            "Failed to parse %d XML files as DMARC reports",
            len(outcome.xml_errors),
        )
    return outcome
