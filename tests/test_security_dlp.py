# FILE: tests/test_security_dlp.py
"""
Tests for helm/security/dlp.py
Sensitive-data detection and redaction.
"""

import sys
from pathlib import Path

_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest

from helm.security.dlp import DlpScanner, luhn_check, mask_match


@pytest.fixture
def scanner():
    return DlpScanner()


class TestValidators:
    """Luhn and masking helpers."""

    def test_luhn_valid(self):
        assert luhn_check("4111111111111111")
        assert luhn_check("4111 1111 1111 1111")

    def test_luhn_invalid(self):
        assert not luhn_check("4111111111111112")

    def test_mask_keeps_edges(self):
        assert mask_match("4111111111111111") == "41************11"

    def test_mask_short_value(self):
        assert mask_match("1234") == "****"


class TestScanner:
    """Detection and redaction."""

    def test_credit_card_redacted(self, scanner):
        result = scanner.scan("my card is 4111 1111 1111 1111 thanks")
        assert result.has_sensitive_data
        assert result.redacted_text == "my card is [REDACTED_CREDIT_CARD] thanks"
        assert [f.type for f in result.findings] == ["credit_card"]
        assert "4111 1111" not in result.findings[0].masked_match

    def test_invalid_card_not_flagged(self, scanner):
        result = scanner.scan("order number 4111111111111112")
        assert all(f.type != "credit_card" for f in result.findings)

    def test_ssn(self, scanner):
        result = scanner.scan("SSN 123-45-6789")
        assert result.redacted_text == "SSN [REDACTED_SSN]"

    def test_invalid_ssn_area_ignored(self, scanner):
        result = scanner.scan("code 666-45-6789")
        assert all(f.type != "ssn" for f in result.findings)

    def test_api_key(self, scanner):
        result = scanner.scan("use sk-abcdefghijklmnopqrstuvwxyz123456 please")
        assert "[REDACTED_API_KEY]" in result.redacted_text
        assert "sk-abcdef" not in result.redacted_text

    def test_email_and_placeholder(self, scanner):
        real = scanner.scan("mail jane.doe@acme-corp.io")
        assert real.redacted_text == "mail [REDACTED_EMAIL]"
        placeholder = scanner.scan("mail someone@example.com")
        assert not placeholder.has_sensitive_data

    def test_multiple_findings_summary(self, scanner):
        result = scanner.scan("jane.doe@acme-corp.io and bob.smith@acme-corp.io")
        assert len(result.findings) == 2
        assert result.summary == "Detected: 2 Email addresses"

    def test_clean_text_untouched(self, scanner):
        result = scanner.scan("Explain how quicksort works")
        assert not result.has_sensitive_data
        assert result.redacted_text == "Explain how quicksort works"
        assert result.summary == ""
        assert result.to_dict()["findings"] == []
