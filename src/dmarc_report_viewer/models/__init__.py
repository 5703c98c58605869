"""Validated domain models (Pydantic)."""

from __future__ import annotations

from dmarc_report_viewer.models.report import (
    AlignmentMode,
    AuthResult,
    Disposition,
    DkimOutcome,
    OverrideType,
    Record,
    Report,
    SpfOutcome,
    SpfScope,
)
from dmarc_report_viewer.models.state import AppState, MailInfo, RawMail, Summary, XmlError

__all__ = [
    "AlignmentMode",
    "AppState",
    "AuthResult",
    "Disposition",
    "DkimOutcome",
    "MailInfo",
    "OverrideType",
    "RawMail",
    "Record",
    "Report",
    "SpfOutcome",
    "SpfScope",
    "Summary",
    "XmlError",
]
