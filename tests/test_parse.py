"""Tests for batch parsing and XML error collection."""

from __future__ import annotations

import pytest

from dmarc_report_viewer.pipeline.parse import ReportParseError, parse_payloads, xml_to_dict


def test_missing_report_id_becomes_single_xml_error(missing_report_id_xml: bytes) -> None:
    """A report without report_id should yield one XmlError and no report."""
    outcome = parse_payloads([missing_report_id_xml])

    assert outcome.reports == []
    assert len(outcome.xml_errors) == 1
    err = outcome.xml_errors[0]
    assert err.original_text == missing_report_id_xml.decode("utf-8")
    assert "report_id" in err.error_message


def test_parse_payloads_preserves_order_and_counts(
    aol_xml: bytes,
    acme_xml: bytes,
    missing_report_id_xml: bytes,
) -> None:
    """Every payload should land in exactly one output list, in input order."""
    payloads = [acme_xml, b"<not xml", aol_xml, missing_report_id_xml, b"<other/>"]
    outcome = parse_payloads(payloads)

    assert len(outcome.reports) + len(outcome.xml_errors) == len(payloads)
    assert [r.metadata.org_name for r in outcome.reports] == ["acme.com", "AOL"]
    assert [e.original_text for e in outcome.xml_errors] == [
        "<not xml",
        missing_report_id_xml.decode("utf-8"),
        "<other/>",
    ]


def test_xml_error_text_is_lossy_decoded() -> None:
    """Invalid UTF-8 should be replaced rather than failing the cycle."""
    outcome = parse_payloads([b"\xff\xfe<feedback>"])
    assert len(outcome.xml_errors) == 1
    assert "�" in outcome.xml_errors[0].original_text


def test_malformed_xml_raises_parse_error() -> None:
    """Malformed XML should raise ReportParseError."""
    with pytest.raises(ReportParseError, match="Malformed XML"):
        xml_to_dict(b"<feedback><report_metadata></feedback>")


def test_wrong_root_raises_parse_error() -> None:
    """Documents whose root is not <feedback> should be rejected."""
    with pytest.raises(ReportParseError, match="<html>"):
        xml_to_dict(b"<html><body/></html>")


def test_single_record_is_forced_to_list(aol_xml: bytes) -> None:
    """Repeated elements should be lists even when they appear once."""
    feedback = xml_to_dict(aol_xml)
    assert isinstance(feedback["record"], list)
    assert isinstance(feedback["record"][0]["auth_results"]["dkim"], list)
    assert isinstance(feedback["record"][0]["auth_results"]["spf"], list)
    assert feedback["record"][0]["row"]["policy_evaluated"]["dkim"] == "pass"
