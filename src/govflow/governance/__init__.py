# src/govflow/governance/__init__.py
"""
Governance layer: tenants, usage accounting, policy checks and the
RequestGovernor that ties them together around every model call.
"""

from .compliance import ComplianceCheck
from .governor import RequestGovernor, violation_details
from .policy import PolicyEngine, TenantResourceCheck, estimate_tokens, recommendations_for
from .security import SecurityCheck
from .tenants import TenantDirectory
from .usage import Budget, UsageLedger, UserRateLimiter, hour_bucket

__all__ = [
    "Budget",
    "ComplianceCheck",
    "PolicyEngine",
    "RequestGovernor",
    "SecurityCheck",
    "TenantDirectory",
    "TenantResourceCheck",
    "UsageLedger",
    "UserRateLimiter",
    "estimate_tokens",
    "hour_bucket",
    "recommendations_for",
    "violation_details",
]
