# src/govflow/__init__.py
"""
govflow - governed natural-language workflows for test-automation repositories.

Free-text requests are classified into a small catalogue of commands, checked
against security, compliance and per-tenant resource policy, answered or
executed with a locally hosted Ollama model, and recorded in an append-only
audit trail.  Workflow requests become a branch, generated files, a commit
and a push against the linked git repository.
"""

from importlib.metadata import PackageNotFoundError, version

from .api import GovFlow
from .config import GovFlowConfig, load_config
from .exceptions import (
    ConfigError,
    EmbeddingError,
    GenerationError,
    GitOperationError,
    GovernanceError,
    GovFlowError,
    PolicyViolationError,
    QuotaExceededError,
    RateLimitExceededError,
    TenantError,
    TenantExistsError,
    TenantNotFoundError,
    VectorStorageError,
    WorkflowError,
)
from .models import (
    ArtifactType,
    AuditEntry,
    AuditQuery,
    CommandResponse,
    GenerationRequest,
    ResourceLimits,
    Severity,
    Tenant,
    ValidationVerdict,
    Violation,
    WorkflowRequest,
    WorkflowResult,
    WorkflowStage,
)

try:
    __version__ = version("govflow")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

__all__ = [
    "GovFlow",
    "GovFlowConfig",
    "load_config",
    # Exceptions
    "ConfigError",
    "EmbeddingError",
    "GenerationError",
    "GitOperationError",
    "GovernanceError",
    "GovFlowError",
    "PolicyViolationError",
    "QuotaExceededError",
    "RateLimitExceededError",
    "TenantError",
    "TenantExistsError",
    "TenantNotFoundError",
    "VectorStorageError",
    "WorkflowError",
    # Models
    "ArtifactType",
    "AuditEntry",
    "AuditQuery",
    "CommandResponse",
    "GenerationRequest",
    "ResourceLimits",
    "Severity",
    "Tenant",
    "ValidationVerdict",
    "Violation",
    "WorkflowRequest",
    "WorkflowResult",
    "WorkflowStage",
]
