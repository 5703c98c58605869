"""Rollup counts for the published state."""

from __future__ import annotations

from collections import Counter
from collections.abc import Sequence

from dmarc_report_viewer.models.report import Report
from dmarc_report_viewer.models.state import Summary


def aggregate(
    *,
    mail_count: int,
    xml_file_count: int,
    reports: Sequence[Report],
    now: int,
    xml_error_count: int = 0,
) -> Summary:
    """Compute the summary for one cycle.

    A record counts as a pass when DKIM or SPF passed policy evaluation, and as
    a fail otherwise. Inputs are not modified.

    Args:
        mail_count: Number of mails fetched.
        xml_file_count: Number of XML documents extracted.
        reports: Successfully parsed reports.
        now: Unix timestamp of the cycle.
        xml_error_count: Number of documents that failed to parse.

    Returns:
        The summary stamped with ``now``.
    """
    pass_count = 0
    fail_count = 0
    orgs: Counter[str] = Counter()
    domains: Counter[str] = Counter()
    for report in reports:
        orgs[report.metadata.org_name] += 1
        domains[report.policy_published.domain] += 1
        for record in report.records:
            if record.dmarc_passed:
                pass_count += 1
            else:
                fail_count += 1

    return Summary(
        mail_count=mail_count,
        xml_file_count=xml_file_count,
        report_count=len(reports),
        xml_error_count=xml_error_count,
        pass_count=pass_count,
        fail_count=fail_count,
        orgs=dict(sorted(orgs.items())),
        domains=dict(sorted(domains.items())),
        last_update=now,
    )
