"""DMARC aggregate report models (RFC 7489, Appendix C).

Enumerations decode leniently: reporters disagree on the spelling of the same
RFC value (``r`` vs ``relaxed``, ``temperror`` vs ``temporary_error``), so every
enum accepts its canonical value, its member name and any spelling that
differs only in case, surrounding whitespace or ``_``/``-``/space separators.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Self

from pydantic import BeforeValidator, Field, IPvAnyAddress

from dmarc_report_viewer.models.base import XmlModel

_SEPARATORS = str.maketrans("", "", "_- ")


def _normalize(value: str) -> str:
    """Reduce an enum spelling to a comparison key."""
    return value.strip().lower().translate(_SEPARATORS)


class LenientStrEnum(StrEnum):
    """StrEnum that resolves every known spelling to one canonical member."""

    @classmethod
    def _missing_(cls, value: object) -> Self | None:
        if not isinstance(value, str):
            return None
        key = _normalize(value)
        if not key:
            return None
        for member in cls:
            if key in (_normalize(member.value), _normalize(member.name)):
                return member
        return None

    @classmethod
    def decode(cls, value: object) -> object:
        """Decode raw XML text into a member, leaving other values to pydantic.

        Args:
            value: Raw value from the parsed document.

        Returns:
            The matching member, or the value unchanged if it is not a string.

        Raises:
            ValueError: If the string matches no member.
        """
        if isinstance(value, cls) or not isinstance(value, str):
            return value
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(member.value for member in cls)
            msg = f"unknown {cls.__name__} value {value!r} (expected one of: {allowed})"
            raise ValueError(msg) from None


class AlignmentMode(LenientStrEnum):
    """DKIM/SPF identifier alignment mode."""

    relaxed = "r"
    strict = "s"


class Disposition(LenientStrEnum):
    """Policy action requested (or applied) for failing mail."""

    none = "none"
    quarantine = "quarantine"
    reject = "reject"


class AuthResult(LenientStrEnum):
    """Policy-evaluated DKIM/SPF alignment result."""

    pass_ = "pass"
    fail = "fail"


class DkimOutcome(LenientStrEnum):
    """Raw DKIM verification result."""

    none = "none"
    pass_ = "pass"
    fail = "fail"
    policy = "policy"
    neutral = "neutral"
    temporary_error = "temperror"
    permanent_error = "permerror"


class SpfOutcome(LenientStrEnum):
    """Raw SPF evaluation result."""

    none = "none"
    neutral = "neutral"
    pass_ = "pass"
    fail = "fail"
    soft_fail = "softfail"
    temporary_error = "temperror"
    permanent_error = "permerror"


class SpfScope(LenientStrEnum):
    """Identity checked by SPF."""

    helo = "helo"
    mfrom = "mfrom"


class OverrideType(LenientStrEnum):
    """Reason a receiver applied a disposition other than the published policy."""

    forwarded = "forwarded"
    sampled_out = "sampled_out"
    trusted_forwarder = "trusted_forwarder"
    mailing_list = "mailing_list"
    local_policy = "local_policy"
    other = "other"


def _ensure_list(value: object) -> object:
    """Wrap a single repeated element into a list."""
    if value is None or isinstance(value, list):
        return value
    return [value]


AlignmentModeField = Annotated[AlignmentMode, BeforeValidator(AlignmentMode.decode)]
DispositionField = Annotated[Disposition, BeforeValidator(Disposition.decode)]
AuthResultField = Annotated[AuthResult, BeforeValidator(AuthResult.decode)]
DkimOutcomeField = Annotated[DkimOutcome, BeforeValidator(DkimOutcome.decode)]
SpfOutcomeField = Annotated[SpfOutcome, BeforeValidator(SpfOutcome.decode)]
SpfScopeField = Annotated[SpfScope, BeforeValidator(SpfScope.decode)]
OverrideTypeField = Annotated[OverrideType, BeforeValidator(OverrideType.decode)]


class DateRange(XmlModel):
    """Reporting period in unix seconds."""

    begin: Annotated[int, Field(ge=0)]
    end: Annotated[int, Field(ge=0)]


class ReportMetadata(XmlModel):
    """Reporter identity and report period."""

    org_name: str
    email: str
    extra_contact_info: str | None = None
    report_id: Annotated[str, Field(min_length=1)]
    date_range: DateRange
    error: Annotated[list[str] | None, BeforeValidator(_ensure_list)] = None


class PolicyPublished(XmlModel):
    """DMARC policy the receiver found in DNS for the domain."""

    domain: str
    adkim: AlignmentModeField | None = None
    aspf: AlignmentModeField | None = None
    p: DispositionField
    sp: DispositionField | None = None
    pct: Annotated[int, Field(ge=0, le=100)]
    failure_options: str | None = Field(default=None, alias="fo")


class OverrideReason(XmlModel):
    """Policy override reason attached to an evaluated row."""

    type: OverrideTypeField
    comment: str | None = None


class PolicyEvaluated(XmlModel):
    """Outcome of DMARC evaluation for a row."""

    disposition: DispositionField
    dkim: AuthResultField | None = None
    spf: AuthResultField | None = None
    reasons: Annotated[list[OverrideReason] | None, BeforeValidator(_ensure_list)] = Field(
        default=None,
        alias="reason",
    )


class Row(XmlModel):
    """Source address, message count and evaluated policy."""

    source_ip: IPvAnyAddress
    count: Annotated[int, Field(ge=0)]
    policy_evaluated: PolicyEvaluated


class Identifiers(XmlModel):
    """Envelope and header identifiers of the evaluated messages."""

    envelope_to: str | None = None
    envelope_from: str | None = None
    header_from: str


class DkimResult(XmlModel):
    """One DKIM signature verification result."""

    domain: str
    selector: str | None = None
    outcome: DkimOutcomeField = Field(alias="result")
    human_result: str | None = None


class SpfResult(XmlModel):
    """One SPF evaluation result."""

    domain: str
    scope: SpfScopeField | None = None
    outcome: SpfOutcomeField = Field(alias="result")


class AuthResults(XmlModel):
    """Raw (unaligned) DKIM and SPF results."""

    dkim: Annotated[list[DkimResult] | None, BeforeValidator(_ensure_list)] = None
    spf: Annotated[list[SpfResult], BeforeValidator(_ensure_list)]


class Record(XmlModel):
    """One row of a report."""

    row: Row
    identifiers: Identifiers
    auth_results: AuthResults

    @property
    def dmarc_passed(self) -> bool:
        """Return True if either aligned mechanism passed."""
        evaluated = self.row.policy_evaluated
        return AuthResult.pass_ in (evaluated.dkim, evaluated.spf)


class Report(XmlModel):
    """A DMARC aggregate feedback report."""

    version: str | None = None
    metadata: ReportMetadata = Field(alias="report_metadata")
    policy_published: PolicyPublished
    records: Annotated[list[Record], BeforeValidator(_ensure_list)] = Field(alias="record")
