# src/govflow/exceptions.py
"""
Custom exceptions for the govflow library.

This module defines a hierarchy of custom exception classes to provide
more specific error information and allow callers to tell a request that
was *rejected by policy* apart from a request that was allowed but *failed
to execute*.

Hierarchy::

    GovFlowError
    ├── ConfigError
    ├── ProviderError
    │   └── GenerationError          (code == "GENERATION_FAILED")
    ├── EmbeddingError
    ├── StorageError
    │   ├── VectorStorageError
    │   └── AuditLogError
    ├── GovernanceError              (rejections, never retried)
    │   ├── PolicyViolationError
    │   ├── QuotaExceededError
    │   └── RateLimitExceededError
    ├── TenantError
    │   ├── TenantNotFoundError
    │   └── TenantExistsError
    ├── WorkflowError
    └── GitOperationError
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .models import ValidationVerdict


class GovFlowError(Exception):
    """Base class for all govflow specific errors."""
    def __init__(self, message: str = "An unspecified error occurred in govflow."):
        super().__init__(message)

class ConfigError(GovFlowError):
    """Raised for errors related to configuration loading or validation."""
    def __init__(self, message: str = "Configuration error."):
        super().__init__(message)

class ProviderError(GovFlowError):
    """Raised for errors originating from the inference service (API errors, connection issues)."""
    def __init__(self, provider_name: str = "Unknown", message: str = "Provider error."):
        self.provider_name = provider_name
        super().__init__(f"Error with provider '{provider_name}': {message}")

class GenerationError(ProviderError):
    """
    Raised when a text generation call fails, times out or returns nothing.

    A timed-out call is reported exactly like any other failed call.
    """
    code = "GENERATION_FAILED"

    def __init__(self, provider_name: str = "ollama", message: str = "Generation failed.", model: Optional[str] = None):
        self.model = model
        super().__init__(provider_name, message)

class EmbeddingError(GovFlowError):
    """Raised for errors related to embedding generation."""
    def __init__(self, model_name: str = "Unknown", message: str = "Embedding generation error."):
        self.model_name = model_name
        super().__init__(f"Error with embedding model '{model_name}': {message}")

class StorageError(GovFlowError):
    """Base class for errors related to storage operations."""
    def __init__(self, message: str = "Storage error."):
        super().__init__(message)

class VectorStorageError(StorageError):
    """Raised for errors specific to vector storage operations."""
    def __init__(self, message: str = "Vector storage error."):
        super().__init__(message)

class AuditLogError(StorageError):
    """Raised when an audit entry cannot be persisted or read back."""
    def __init__(self, message: str = "Audit log error."):
        super().__init__(message)


class GovernanceError(GovFlowError):
    """
    Base class for governance rejections.

    These are never retried automatically. ``violations`` and
    ``recommendations`` are always populated so a caller can show the full
    reason in one round trip.
    """
    def __init__(
        self,
        message: str = "Request rejected by governance policy.",
        violations: Optional[list] = None,
        recommendations: Optional[List[str]] = None,
    ):
        self.violations = list(violations or [])
        self.recommendations = list(recommendations or [])
        super().__init__(message)

class PolicyViolationError(GovernanceError):
    """Raised when a PolicyEngine verdict is invalid (a HIGH or CRITICAL violation was found)."""
    def __init__(self, verdict: "ValidationVerdict", message: str = "Request rejected by policy."):
        self.verdict = verdict
        kinds = ", ".join(sorted({v.kind.value for v in verdict.blocking_violations}))
        super().__init__(
            f"{message} Blocking violations: {kinds}" if kinds else message,
            violations=verdict.violations,
            recommendations=verdict.recommendations,
        )

class QuotaExceededError(GovernanceError):
    """Raised when a tenant's reservation cannot be satisfied by its hourly budgets."""
    def __init__(self, tenant_id: str, budgets: Optional[List[str]] = None, message: str = "Tenant quota exceeded."):
        self.tenant_id = tenant_id
        self.budgets = list(budgets or [])
        detail = f" Budgets: {', '.join(self.budgets)}" if self.budgets else ""
        super().__init__(
            f"{message} Tenant: '{tenant_id}'.{detail}",
            recommendations=["Wait for the hourly usage window to reset or raise the tenant's resource limits"],
        )

class RateLimitExceededError(GovernanceError):
    """Raised when a single user exceeds the per-user hourly action ceiling."""
    def __init__(self, tenant_id: str, user_id: str, limit: int, message: str = "Rate limit exceeded."):
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.limit = limit
        super().__init__(
            f"{message} User '{user_id}' of tenant '{tenant_id}' is limited to {limit} actions per hour.",
            recommendations=["Retry later; the per-user window is a sliding hour"],
        )


class TenantError(GovFlowError):
    """Base class for tenant directory errors."""
    def __init__(self, message: str = "Tenant error."):
        super().__init__(message)

class TenantNotFoundError(TenantError):
    """Raised when a tenant ID is not present in the directory."""
    def __init__(self, tenant_id: str, message: str = "Tenant not found."):
        self.tenant_id = tenant_id
        super().__init__(f"{message} Tenant ID: '{tenant_id}'")

class TenantExistsError(TenantError):
    """Raised when creating a tenant whose ID is already registered."""
    def __init__(self, tenant_id: str, message: str = "Tenant already exists."):
        self.tenant_id = tenant_id
        super().__init__(f"{message} Tenant ID: '{tenant_id}'")


class WorkflowError(GovFlowError):
    """Raised when a workflow cannot be started or a stage cannot proceed."""
    def __init__(self, stage: str = "UNKNOWN", message: str = "Workflow error."):
        self.stage = stage
        super().__init__(f"{message} Stage: {stage}")

class GitOperationError(GovFlowError):
    """Raised for repository-level failures (not a git repository, unreadable tree)."""
    def __init__(self, repo_path: str = "", message: str = "Git operation failed."):
        self.repo_path = repo_path
        super().__init__(f"{message} Repository: '{repo_path}'" if repo_path else message)
