# src/govflow/governance/policy.py
"""
Policy engine: security, compliance and tenant-resource checks composed
into one :class:`~govflow.models.ValidationVerdict`.

All three checks always run, even when an earlier one already failed, so
the caller gets the complete violation set in one round trip.  The verdict
is invalid if any violation is HIGH or CRITICAL; MEDIUM and LOW findings
are advisory.
"""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Optional

from ..models import (
    GenerationRequest,
    Severity,
    ValidationVerdict,
    Violation,
    ViolationKind,
    ViolationSource,
)
from .compliance import ComplianceCheck
from .security import SecurityCheck
from .tenants import TenantDirectory
from .usage import Budget, UsageLedger

logger = logging.getLogger(__name__)

RECOMMENDATIONS: Dict[ViolationKind, List[str]] = {
    ViolationKind.SENSITIVE_DATA_EXPOSURE: ["Remove sensitive data from input or use environment variables"],
    ViolationKind.CODE_INJECTION_ATTEMPT: ["Sanitize input to prevent code injection"],
    ViolationKind.MALICIOUS_PATTERN: ["Review input for malicious content"],
    ViolationKind.HARDCODED_CREDENTIALS: ["Use environment variables or secure configuration management"],
    ViolationKind.UNSAFE_OPERATION: ["Replace unsafe operations with safer alternatives"],
    ViolationKind.INJECTION_VULNERABILITY: ["Use proper input validation and sanitization"],
    ViolationKind.DATA_LEAKAGE: ["Remove or secure logging statements"],
    ViolationKind.GDPR_VIOLATION: [
        "Implement proper consent mechanisms for personal data processing",
        "Use data minimization principles",
        "Provide clear privacy notices",
    ],
    ViolationKind.DATA_RETENTION_VIOLATION: [
        "Implement proper data retention policies",
        "Use automated data deletion mechanisms",
        "Document data retention periods",
    ],
    ViolationKind.AUDIT_VIOLATION: [
        "Ensure all operations are properly logged",
        "Implement audit trails for compliance",
        "Enable tracking for all data access",
    ],
    ViolationKind.PRIVACY_VIOLATION: [
        "Use encryption for sensitive information",
        "Use secure transmission protocols",
        "Enforce access controls and authentication",
    ],
    ViolationKind.TOKEN_QUOTA_EXCEEDED: ["Reduce request size or wait for the hourly token budget to reset"],
    ViolationKind.REQUEST_QUOTA_EXCEEDED: ["Wait for the hourly call budget to reset"],
    ViolationKind.STORAGE_QUOTA_EXCEEDED: ["Free storage or ask an administrator to raise the storage limit"],
    ViolationKind.CONCURRENCY_LIMIT_EXCEEDED: ["Wait for running jobs to finish"],
    ViolationKind.PERMISSION_DENIED: ["Ask a tenant administrator for the required permission"],
    ViolationKind.TENANT_NOT_FOUND: ["Check the tenant identifier or onboard the tenant first"],
}

_BUDGET_KINDS = {
    Budget.TOKENS: ViolationKind.TOKEN_QUOTA_EXCEEDED,
    Budget.REQUESTS: ViolationKind.REQUEST_QUOTA_EXCEEDED,
    Budget.STORAGE: ViolationKind.STORAGE_QUOTA_EXCEEDED,
    Budget.CONCURRENCY: ViolationKind.CONCURRENCY_LIMIT_EXCEEDED,
}


def estimate_tokens(text: str) -> int:
    """Rough token estimate: one token per four characters, rounded up."""
    return math.ceil(len(text) / 4)


def recommendations_for(violations: List[Violation]) -> List[str]:
    """Deduplicated recommendations in first-seen order."""
    seen: List[str] = []
    for v in violations:
        for rec in RECOMMENDATIONS.get(v.kind, []):
            if rec not in seen:
                seen.append(rec)
    return seen


def _resource_violation(kind: ViolationKind, message: str, severity: Severity = Severity.HIGH) -> Violation:
    return Violation(kind=kind, severity=severity, message=message, source=ViolationSource.RESOURCE)


class TenantResourceCheck:
    """Quota and permission check. Reads the ledger, never mutates it."""

    def __init__(self, tenants: TenantDirectory, ledger: UsageLedger):
        self._tenants = tenants
        self._ledger = ledger

    def check(self, request: GenerationRequest, tenant_id: str, action: str = "create") -> List[Violation]:
        tenant = self._tenants.find_tenant(tenant_id)
        if tenant is None:
            return [
                _resource_violation(
                    ViolationKind.TENANT_NOT_FOUND, f"Tenant '{tenant_id}' is not registered", Severity.CRITICAL
                )
            ]

        violations: List[Violation] = []
        if request.artifact_type is not None:
            resource = request.artifact_type.resource
            if not tenant.has_permission(resource, action):
                violations.append(
                    _resource_violation(
                        ViolationKind.PERMISSION_DENIED,
                        f"Tenant '{tenant_id}' lacks '{action}' permission on '{resource}'",
                    )
                )

        estimate = estimate_tokens(request.estimated_text)
        limits = tenant.resource_limits
        usage = self._ledger.current_usage(tenant_id)
        details = {
            Budget.TOKENS: f"{usage.hourly_token_count} + {estimate} tokens exceeds {limits.max_tokens_per_hour}/hour",
            Budget.REQUESTS: f"{usage.hourly_request_count} calls already made of {limits.max_calls_per_hour}/hour",
            Budget.STORAGE: f"{usage.storage_bytes} bytes stored of {limits.max_storage_bytes}",
            Budget.CONCURRENCY: f"{usage.concurrent_jobs} jobs running of {limits.max_concurrent_jobs}",
        }
        for budget in self._ledger.exceeded_budgets(tenant_id, estimate):
            violations.append(
                _resource_violation(_BUDGET_KINDS[budget], f"Budget '{budget.value}' exceeded: {details[budget]}")
            )
        return violations


class PolicyEngine:
    """Runs every check and folds the findings into one verdict."""

    def __init__(
        self,
        tenants: TenantDirectory,
        ledger: UsageLedger,
        security: Optional[SecurityCheck] = None,
        compliance: Optional[ComplianceCheck] = None,
    ):
        self.tenants = tenants
        self.security = security or SecurityCheck()
        self.compliance = compliance or ComplianceCheck()
        self.resources = TenantResourceCheck(tenants, ledger)

    def validate(self, request: GenerationRequest, tenant_id: str, action: str = "create") -> ValidationVerdict:
        text = request.user_input
        violations: List[Violation] = []
        violations.extend(self.security.scan_input(text))
        violations.extend(self.compliance.check(text, self.tenants.find_tenant(tenant_id)))
        violations.extend(self.resources.check(request, tenant_id, action))

        verdict = ValidationVerdict.from_violations(violations, recommendations_for(violations))
        if not verdict.is_valid:
            logger.info(
                f"Request for tenant '{tenant_id}' failed validation: "
                f"{[v.kind.value for v in verdict.blocking_violations]}"
            )
        return verdict

    def validate_output(self, code: str) -> ValidationVerdict:
        violations = self.security.scan_output(code)
        return ValidationVerdict.from_violations(violations, recommendations_for(violations))
