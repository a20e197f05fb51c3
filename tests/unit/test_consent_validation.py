"""Unit tests for structural GDPR consent validation."""

from uuid import uuid4

from gdprflow.consent.schemas import ConsentRequest, ConsentSource
from gdprflow.consent.validation import (
    BUNDLING_VIOLATION,
    ESSENTIAL_VIOLATION,
    EVIDENCE_RECOMMENDATION,
    INFORMED_VIOLATION,
    SOURCE_RECOMMENDATION,
    SPECIFIC_VIOLATION,
    UNAMBIGUOUS_VIOLATION,
    validate_gdpr_consent,
)
from gdprflow.models import ConsentPurpose


def _raw(**overrides):
    data = {
        "purpose": "MARKETING",
        "granted": True,
        "version": "2.1",
        "source": "cookie_banner",
        "ip_address": "198.51.100.4",
        "user_agent": "Mozilla/5.0",
        "metadata": {},
    }
    data.update(overrides)
    return data


class TestValidateGdprConsent:

    def test_complete_request_is_valid(self):
        result = validate_gdpr_consent(_raw())
        assert result.is_valid is True
        assert result.violations == []
        assert result.recommendations == []

    def test_essential_cannot_require_consent(self):
        result = validate_gdpr_consent(_raw(purpose="ESSENTIAL"))
        assert result.is_valid is False
        assert result.violations == [ESSENTIAL_VIOLATION]

    def test_unknown_purpose(self):
        result = validate_gdpr_consent(_raw(purpose="EVERYTHING"))
        assert result.violations == [SPECIFIC_VIOLATION]

    def test_unhashable_purpose_is_a_violation(self):
        """A list or dict purpose is reported, not raised."""
        for purpose in (["ANALYTICS"], {"name": "ANALYTICS"}):
            result = validate_gdpr_consent(_raw(purpose=purpose))
            assert result.is_valid is False
            assert result.violations == [SPECIFIC_VIOLATION]

    def test_non_mapping_request(self):
        for request in (None, "ANALYTICS", 42, ["purpose", "ANALYTICS"]):
            result = validate_gdpr_consent(request)
            assert result.is_valid is False
            assert SPECIFIC_VIOLATION in result.violations

    def test_missing_purpose(self):
        assert SPECIFIC_VIOLATION in validate_gdpr_consent(_raw(purpose=None)).violations

    def test_missing_version(self):
        assert validate_gdpr_consent(_raw(version="")).violations == [INFORMED_VIOLATION]

    def test_granted_must_be_boolean(self):
        """Pre-ticked or implied consent is not a decision"""
        assert validate_gdpr_consent(_raw(granted="yes")).violations == [UNAMBIGUOUS_VIOLATION]
        assert validate_gdpr_consent(_raw(granted=None)).violations == [UNAMBIGUOUS_VIOLATION]

    def test_bundled_purposes(self):
        result = validate_gdpr_consent(_raw(metadata={"purpose_ANALYTICS": True}))
        assert result.violations == [BUNDLING_VIOLATION]

    def test_own_purpose_key_is_not_bundling(self):
        result = validate_gdpr_consent(_raw(metadata={"purpose_MARKETING": True, "banner": "v3"}))
        assert result.is_valid is True

    def test_multiple_violations_accumulate(self):
        result = validate_gdpr_consent({"purpose": "ESSENTIAL"})
        assert result.violations == [ESSENTIAL_VIOLATION, INFORMED_VIOLATION, UNAMBIGUOUS_VIOLATION]

    def test_recommendations(self):
        result = validate_gdpr_consent(_raw(ip_address=None, source=""))
        assert result.is_valid is True
        assert result.recommendations == [EVIDENCE_RECOMMENDATION, SOURCE_RECOMMENDATION]

    def test_consent_request_model(self):
        request = ConsentRequest(
            user_id=uuid4(),
            tenant_id=uuid4(),
            purpose=ConsentPurpose.ANALYTICS,
            granted=False,
            version="2.1",
            source=ConsentSource.SETTINGS,
        )

        result = validate_gdpr_consent(request)

        assert result.is_valid is True
        assert result.recommendations == [EVIDENCE_RECOMMENDATION]
