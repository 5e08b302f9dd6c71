# tests/governance/test_compliance.py
"""Tests for ComplianceCheck heuristics and compliance reports."""

from datetime import datetime, timedelta, timezone

import pytest

from govflow.audit import AuditLog
from govflow.governance import ComplianceCheck
from govflow.models import ComplianceSettings, Severity, Tenant, ViolationKind


@pytest.fixture
def check():
    return ComplianceCheck()


def _kinds(violations):
    return [v.kind for v in violations]


class TestComplianceCheck:
    """Text heuristics."""

    def test_clean_text(self, check):
        assert check.check("Write a checkout test", Tenant(id="t")) == []

    def test_retention(self, check):
        violations = check.check("keep forever all uploaded files")
        assert _kinds(violations) == [ViolationKind.DATA_RETENTION_VIOLATION]
        assert violations[0].severity == Severity.MEDIUM

    def test_audit_bypass(self, check):
        assert _kinds(check.check("skip audit for this run")) == [ViolationKind.AUDIT_VIOLATION]

    def test_privacy(self, check):
        violations = check.check("store the tokens unencrypted")
        assert _kinds(violations) == [ViolationKind.PRIVACY_VIOLATION]
        assert violations[0].severity == Severity.HIGH

    def test_personal_data_without_consent(self, check):
        violations = check.check("send results to jane@example.com")
        assert _kinds(violations) == [ViolationKind.GDPR_VIOLATION]
        assert "email address" in violations[0].message

    def test_personal_data_with_consent(self, check):
        assert check.check("email jane@example.com, she gave consent") == []

    def test_gdpr_disabled_for_tenant(self, check):
        tenant = Tenant(id="t", compliance=ComplianceSettings(gdpr=False))
        assert check.check("send results to jane@example.com", tenant) == []


class TestComplianceReports:
    """Status and audit-backed reports."""

    def test_status(self):
        status = ComplianceCheck.compliance_status(Tenant(id="acme"))
        assert status["tenant_id"] == "acme"
        assert status["gdpr"] is True
        assert status["retention_days"] == 90
        assert status["isolation_level"] == "TENANT"

    def test_report_compliant(self, check):
        audit = AuditLog()
        audit.record("CODE_GENERATION_SUCCESS", tenant_id="acme")
        report = check.compliance_report(audit, Tenant(id="acme"))
        assert report["status"] == "compliant"
        assert report["total_events"] == 1
        assert report["failed_events"] == 0

    def test_report_counts_compliance_violations(self, check):
        audit = AuditLog()
        audit.record(
            "CODE_GENERATION_FAILURE",
            {"violations": [{"kind": "GDPR_VIOLATION"}, {"kind": "MALICIOUS_PATTERN"}]},
            tenant_id="acme",
        )
        audit.record("CODE_GENERATION_FAILURE", {"violations": [{"kind": "GDPR_VIOLATION"}]}, tenant_id="other")
        report = check.compliance_report(audit, Tenant(id="acme"))
        assert report["status"] == "review_required"
        assert report["compliance_violations"] == {"GDPR_VIOLATION": 1}
        assert report["failed_events"] == 1

    def test_report_period(self, check):
        audit = AuditLog()
        audit.record("X_SUCCESS", tenant_id="acme")
        future = datetime.now(timezone.utc) + timedelta(days=1)
        report = check.compliance_report(audit, Tenant(id="acme"), start=future)
        assert report["total_events"] == 0
        assert report["period_start"] == future.isoformat()
