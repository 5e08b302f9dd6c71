# src/govflow/governance/compliance.py
"""
Data-protection compliance heuristics.

Flags retention-policy phrases, audit-bypass phrases and privacy-weakening
language, and flags personal data that appears without a consent or
authorization phrase next to it (GDPR).  Also builds per-tenant compliance
reports from the audit trail.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..models import (
    AuditQuery,
    Severity,
    Tenant,
    Violation,
    ViolationKind,
    ViolationSource,
)
from .patterns import PolicyPattern, pii_patterns, scan

_SOURCE = ViolationSource.COMPLIANCE

CONSENT_PATTERN = re.compile(
    r"\b(?:consent(?:ed)?|permission|authori[sz]ed|authori[sz]ation|approved|gdpr[\s-]compliant)\b",
    re.IGNORECASE,
)

RETENTION_PATTERNS = [
    PolicyPattern(
        r"\b(?:delete after|retain for|keep until|store permanently|archive forever|keep forever|never delete)\b",
        ViolationKind.DATA_RETENTION_VIOLATION, Severity.MEDIUM, "data retention policy override", _SOURCE,
    ),
]

AUDIT_BYPASS_PATTERNS = [
    PolicyPattern(
        r"\b(?:skip audit|no logging|disable (?:tracking|logging|audit)|bypass audit|silent mode|without audit)\b",
        ViolationKind.AUDIT_VIOLATION, Severity.MEDIUM, "audit bypass request", _SOURCE,
    ),
]

PRIVACY_PATTERNS = [
    PolicyPattern(
        r"\b(?:expose (?:user |customer |personal )?data|public access|no encryption|plain[\s-]?text|unencrypted|unsecured)\b",
        ViolationKind.PRIVACY_VIOLATION, Severity.HIGH, "privacy-weakening requirement", _SOURCE,
    ),
]

_PII = pii_patterns(ViolationKind.GDPR_VIOLATION, Severity.HIGH, _SOURCE)

COMPLIANCE_KINDS = {
    ViolationKind.GDPR_VIOLATION.value,
    ViolationKind.DATA_RETENTION_VIOLATION.value,
    ViolationKind.AUDIT_VIOLATION.value,
    ViolationKind.PRIVACY_VIOLATION.value,
}


class ComplianceCheck:
    """Heuristic compliance scanner; tenant flags decide which rules apply."""

    def check(self, text: str, tenant: Optional[Tenant] = None) -> List[Violation]:
        violations: List[Violation] = []
        gdpr = tenant.compliance.gdpr if tenant is not None else True

        if gdpr:
            violations.extend(self._gdpr(text))
        violations.extend(scan(text, RETENTION_PATTERNS))
        violations.extend(scan(text, AUDIT_BYPASS_PATTERNS))
        violations.extend(scan(text, PRIVACY_PATTERNS))
        return violations

    def _gdpr(self, text: str) -> List[Violation]:
        found = [p.description for p in _PII if p.matches(text)]
        if not found or CONSENT_PATTERN.search(text):
            return []
        return [
            Violation(
                kind=ViolationKind.GDPR_VIOLATION,
                severity=Severity.HIGH,
                message=f"Personal data ({', '.join(found)}) processed without a stated consent or authorization",
                source=_SOURCE,
            )
        ]

    @staticmethod
    def compliance_status(tenant: Tenant) -> Dict[str, Any]:
        settings = tenant.compliance
        return {
            "tenant_id": tenant.id,
            "gdpr": settings.gdpr,
            "audit_enabled": settings.audit_enabled,
            "encryption_required": settings.encryption_required,
            "access_logging": settings.access_logging,
            "retention_days": settings.retention_days,
            "isolation_level": tenant.isolation_level.value,
        }

    def compliance_report(
        self,
        audit,
        tenant: Tenant,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """
        Summarize a tenant's audited activity for a compliance review.

        Counts rejected requests per compliance violation kind, using the
        ``violations`` list the governor stores in failure entries.
        """
        entries = audit.query(AuditQuery(tenant_id=tenant.id, start=start, end=end))
        by_kind: Dict[str, int] = {}
        for entry in entries:
            for violation in entry.details.get("violations", []):
                kind = violation.get("kind") if isinstance(violation, dict) else None
                if kind in COMPLIANCE_KINDS:
                    by_kind[kind] = by_kind.get(kind, 0) + 1

        return {
            **self.compliance_status(tenant),
            "period_start": start.isoformat() if start else None,
            "period_end": end.isoformat() if end else None,
            "total_events": len(entries),
            "failed_events": sum(1 for e in entries if e.is_failure),
            "compliance_violations": by_kind,
            "status": "compliant" if not by_kind else "review_required",
        }
