"""Shared report documents and mail builders for tests."""

from __future__ import annotations

import gzip
import io
import zipfile
from email.message import EmailMessage

import pytest

AOL_XML = b"""<?xml version="1.0" encoding="UTF-8" ?>
<feedback>
  <report_metadata>
    <org_name>AOL</org_name>
    <email>postmaster@aol.com</email>
    <report_id>website.com_1504828800</report_id>
    <date_range>
      <begin>1504742400</begin>
      <end>1504828800</end>
    </date_range>
  </report_metadata>
  <policy_published>
    <domain>website.com</domain>
    <adkim>r</adkim>
    <aspf>r</aspf>
    <p>reject</p>
    <sp>reject</sp>
    <pct>100</pct>
  </policy_published>
  <record>
    <row>
      <source_ip>125.125.125.125</source_ip>
      <count>1</count>
      <policy_evaluated>
        <disposition>none</disposition>
        <dkim>pass</dkim>
        <spf>pass</spf>
      </policy_evaluated>
    </row>
    <identifiers>
      <header_from>website.com</header_from>
    </identifiers>
    <auth_results>
      <dkim>
        <domain>website.com</domain>
        <result>pass</result>
      </dkim>
      <spf>
        <domain>website.com</domain>
        <scope>mfrom</scope>
        <result>pass</result>
      </spf>
    </auth_results>
  </record>
</feedback>
"""

ACME_XML = b"""<?xml version="1.0" encoding="UTF-8" ?>
<feedback>
  <version>1.0</version>
  <report_metadata>
    <org_name>acme.com</org_name>
    <email>noreply-dmarc-support@acme.com</email>
    <extra_contact_info>http://acme.com/dmarc/support</extra_contact_info>
    <report_id>9391651994964116463</report_id>
    <date_range>
      <begin>1335571200</begin>
      <end>1335657599</end>
    </date_range>
    <error>There was a sample error.</error>
  </report_metadata>
  <policy_published>
    <domain>example.com</domain>
    <adkim>relaxed</adkim>
    <aspf>Relaxed</aspf>
    <p>none</p>
    <sp>none</sp>
    <pct>100</pct>
    <fo>1</fo>
  </policy_published>
  <record>
    <row>
      <source_ip>72.150.241.94</source_ip>
      <count>2</count>
      <policy_evaluated>
        <disposition>none</disposition>
        <dkim>fail</dkim>
        <spf>pass</spf>
        <reason>
          <type>other</type>
          <comment>DMARC Policy overridden for incoherent example.</comment>
        </reason>
      </policy_evaluated>
    </row>
    <identifiers>
      <envelope_to>acme.com</envelope_to>
      <envelope_from>example.com</envelope_from>
      <header_from>example.com</header_from>
    </identifiers>
    <auth_results>
      <dkim>
        <domain>example.com</domain>
        <selector>ExamplesSelector</selector>
        <result>fail</result>
        <human_result>Incoherent example</human_result>
      </dkim>
      <spf>
        <domain>example.com</domain>
        <scope>helo</scope>
        <result>pass</result>
      </spf>
    </auth_results>
  </record>
  <record>
    <row>
      <source_ip>2001:db8::1</source_ip>
      <count>5</count>
      <policy_evaluated>
        <disposition>quarantine</disposition>
        <dkim>fail</dkim>
        <spf>fail</spf>
      </policy_evaluated>
    </row>
    <identifiers>
      <header_from>example.com</header_from>
    </identifiers>
    <auth_results>
      <spf>
        <domain>spoofed.example</domain>
        <result>softfail</result>
      </spf>
    </auth_results>
  </record>
</feedback>
"""

MISSING_REPORT_ID_XML = AOL_XML.replace(b"<report_id>website.com_1504828800</report_id>", b"")


def make_zip(members: dict[str, bytes]) -> bytes:
    """Build a zip archive from name → content."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, content in members.items():
            zf.writestr(name, content)
    return buf.getvalue()


def patch_zip_entry(
    archive: bytes,
    *,
    flag_bits: int = 0,
    compress_type: int | None = None,
) -> bytes:
    """Rewrite the central directory header of the first member of a zip."""
    data = bytearray(archive)
    idx = data.index(b"PK\x01\x02")
    data[idx + 8] |= flag_bits
    if compress_type is not None:
        data[idx + 10 : idx + 12] = compress_type.to_bytes(2, "little")
    return bytes(data)


def make_mail(*attachments: tuple[bytes, str, str]) -> bytes:
    """Build a report mail with (data, mime type, filename) attachments."""
    msg = EmailMessage()
    msg["From"] = "DMARC Reports <noreply-dmarc-support@google.com>"
    msg["To"] = "dmarc@example.com"
    msg["Subject"] = "Report domain: example.com Submitter: google.com"
    msg["Date"] = "Tue, 05 Mar 2024 10:00:00 +0000"
    msg.set_content("This is an aggregate report from google.com.")
    for data, mime_type, filename in attachments:
        maintype, subtype = mime_type.split("/", 1)
        msg.add_attachment(data, maintype=maintype, subtype=subtype, filename=filename)
    return msg.as_bytes()


@pytest.fixture
def aol_xml() -> bytes:
    """Conformant report with one passing record."""
    return AOL_XML


@pytest.fixture
def acme_xml() -> bytes:
    """Conformant report with an override reason and a failing record."""
    return ACME_XML


@pytest.fixture
def missing_report_id_xml() -> bytes:
    """Report lacking the required report_id element."""
    return MISSING_REPORT_ID_XML


@pytest.fixture
def gzip_mail() -> bytes:
    """Mail with a gzip-compressed report attachment."""
    return make_mail((gzip.compress(AOL_XML), "application/gzip", "report.xml.gz"))


@pytest.fixture
def zip_mail() -> bytes:
    """Mail with a zip holding one good and one broken report."""
    archive = make_zip({"acme.xml": ACME_XML, "broken.xml": MISSING_REPORT_ID_XML})
    return make_mail((archive, "application/zip", "reports.zip"))
