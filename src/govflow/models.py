# src/govflow/models.py
"""
Core data models for the govflow library.

Pydantic models shared across the governance pipeline: policy verdicts,
tenants and their usage counters, generation requests and results,
workflow requests and results, audit entries and retrieval chunks.
Component-local types (command kinds, git results) live next to the
component that owns them.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# POLICY
# =============================================================================


class Severity(str, Enum):
    """Violation severity. HIGH and CRITICAL block execution."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def order(self) -> int:
        return ["LOW", "MEDIUM", "HIGH", "CRITICAL"].index(self.value)

    @property
    def is_blocking(self) -> bool:
        return self.order >= Severity.HIGH.order

    def __lt__(self, other: Severity) -> bool:
        return self.order < other.order

    def __le__(self, other: Severity) -> bool:
        return self.order <= other.order

    def __gt__(self, other: Severity) -> bool:
        return self.order > other.order

    def __ge__(self, other: Severity) -> bool:
        return self.order >= other.order


class ViolationKind(str, Enum):
    """Closed set of violation kinds produced by the policy checks."""

    # Security, input side
    SENSITIVE_DATA_EXPOSURE = "SENSITIVE_DATA_EXPOSURE"
    CODE_INJECTION_ATTEMPT = "CODE_INJECTION_ATTEMPT"
    MALICIOUS_PATTERN = "MALICIOUS_PATTERN"
    # Security, generated output side
    HARDCODED_CREDENTIALS = "HARDCODED_CREDENTIALS"
    UNSAFE_OPERATION = "UNSAFE_OPERATION"
    INJECTION_VULNERABILITY = "INJECTION_VULNERABILITY"
    DATA_LEAKAGE = "DATA_LEAKAGE"
    # Compliance
    GDPR_VIOLATION = "GDPR_VIOLATION"
    DATA_RETENTION_VIOLATION = "DATA_RETENTION_VIOLATION"
    AUDIT_VIOLATION = "AUDIT_VIOLATION"
    PRIVACY_VIOLATION = "PRIVACY_VIOLATION"
    # Tenant resources
    TOKEN_QUOTA_EXCEEDED = "TOKEN_QUOTA_EXCEEDED"
    REQUEST_QUOTA_EXCEEDED = "REQUEST_QUOTA_EXCEEDED"
    STORAGE_QUOTA_EXCEEDED = "STORAGE_QUOTA_EXCEEDED"
    CONCURRENCY_LIMIT_EXCEEDED = "CONCURRENCY_LIMIT_EXCEEDED"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"


class ViolationSource(str, Enum):
    SECURITY = "security"
    COMPLIANCE = "compliance"
    RESOURCE = "resource"


class Violation(BaseModel):
    """A single policy finding."""

    model_config = ConfigDict(frozen=True)

    kind: ViolationKind
    severity: Severity
    message: str
    source: ViolationSource


class ValidationVerdict(BaseModel):
    """
    Aggregated outcome of all policy checks for one request.

    ``is_valid`` is derived from the violations: any HIGH or CRITICAL
    finding makes the verdict invalid, MEDIUM and LOW are advisory.
    """

    is_valid: bool
    violations: List[Violation] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)

    @classmethod
    def from_violations(
        cls, violations: List[Violation], recommendations: Optional[List[str]] = None
    ) -> ValidationVerdict:
        return cls(
            is_valid=not any(v.severity.is_blocking for v in violations),
            violations=list(violations),
            recommendations=list(recommendations or []),
        )

    @property
    def blocking_violations(self) -> List[Violation]:
        return [v for v in self.violations if v.severity.is_blocking]

    @property
    def max_severity(self) -> Optional[Severity]:
        if not self.violations:
            return None
        return max(v.severity for v in self.violations)


# =============================================================================
# TENANTS & USAGE
# =============================================================================


class SamplingOverrides(BaseModel):
    """Sampling options layered on top of a generation profile."""

    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    top_k: Optional[int] = Field(default=None, ge=0)
    repeat_penalty: Optional[float] = Field(default=None, ge=0.0)
    max_tokens: Optional[int] = Field(default=None, gt=0)

    def merged_over(self, base: Optional[SamplingOverrides]) -> SamplingOverrides:
        """Return ``base`` with every field set here taking precedence."""
        if base is None:
            return self
        return base.model_copy(update=self.model_dump(exclude_none=True))


class IsolationLevel(str, Enum):
    NONE = "NONE"
    TENANT = "TENANT"
    USER = "USER"
    SESSION = "SESSION"


class ResourceLimits(BaseModel):
    """Hourly and absolute budgets for a tenant."""

    max_calls_per_hour: int = Field(default=1000, ge=0)
    max_tokens_per_hour: int = Field(default=100_000, ge=0)
    max_storage_bytes: int = Field(default=10 * 1024 * 1024 * 1024, ge=0)
    max_concurrent_jobs: int = Field(default=10, ge=0)
    max_users: int = Field(default=100, ge=0)


class PermissionGrant(BaseModel):
    """A named grant of ``actions`` on one or more ``resources``."""

    name: str
    resources: List[str]
    actions: List[str]

    def allows(self, resource: str, action: str) -> bool:
        return resource in self.resources and action in self.actions


class ComplianceSettings(BaseModel):
    gdpr: bool = True
    retention_days: int = Field(default=90, ge=1)
    audit_enabled: bool = True
    encryption_required: bool = True
    access_logging: bool = True


def default_permissions() -> List[PermissionGrant]:
    return [
        PermissionGrant(name="test_generator", resources=["tests", "page_objects"], actions=["create", "read", "update"]),
        PermissionGrant(name="test_executor", resources=["tests"], actions=["execute", "read"]),
        PermissionGrant(name="results_viewer", resources=["results"], actions=["read"]),
    ]


class Tenant(BaseModel):
    """An isolated customer boundary with its own quotas and permissions."""

    id: str
    name: str = ""
    resource_limits: ResourceLimits = Field(default_factory=ResourceLimits)
    permissions: List[PermissionGrant] = Field(default_factory=default_permissions)
    isolation_level: IsolationLevel = IsolationLevel.TENANT
    compliance: ComplianceSettings = Field(default_factory=ComplianceSettings)
    features: Dict[str, bool] = Field(
        default_factory=lambda: {
            "ai_test_generation": True,
            "ai_workflows": True,
            "context_retrieval": True,
        }
    )
    sampling_overrides: Optional[SamplingOverrides] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("id")
    @classmethod
    def _id_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("tenant id must not be empty")
        return v.strip()

    def has_permission(self, resource: str, action: str) -> bool:
        return any(grant.allows(resource, action) for grant in self.permissions)


class UsageCounters(BaseModel):
    """Per-tenant usage inside the current hourly window."""

    hourly_token_count: int = 0
    hourly_request_count: int = 0
    concurrent_jobs: int = 0
    storage_bytes: int = 0
    last_request_time: Optional[datetime] = None
    window_start: Optional[datetime] = None


# =============================================================================
# GENERATION
# =============================================================================


class ArtifactType(str, Enum):
    TEST = "test"
    PAGE_OBJECT = "page_object"
    STEP_DEFINITION = "step_definition"
    FEATURE = "feature"

    @property
    def resource(self) -> str:
        """Permission resource guarding creation of this artifact."""
        return "page_objects" if self is ArtifactType.PAGE_OBJECT else "tests"


class GenerationRequest(BaseModel):
    """One governed generation call. Created per call, never persisted."""

    user_input: str
    artifact_type: Optional[ArtifactType] = None
    existing_code_context: Optional[str] = None
    file_path: Optional[str] = None

    @property
    def estimated_text(self) -> str:
        """All text that will be sent to the model on behalf of the user."""
        return self.user_input + (self.existing_code_context or "")


class GenerationResult(BaseModel):
    text: str
    tokens_used: int = 0
    latency_ms: float = 0.0
    model: str = ""


class GovernedResult(BaseModel):
    """What the RequestGovernor hands back after a successful governed call."""

    text: str
    tokens_used: int
    latency_ms: float
    model: str
    verdict: ValidationVerdict
    output_findings: List[Violation] = Field(default_factory=list)
    audit_id: str


# =============================================================================
# WORKFLOW
# =============================================================================


class WorkflowStage(str, Enum):
    PARSED = "PARSED"
    BRANCHED = "BRANCHED"
    GENERATING = "GENERATING"
    COMMITTED = "COMMITTED"
    PUSHED = "PUSHED"
    FAILED = "FAILED"


class WorkflowRequest(BaseModel):
    """Derived once per workflow invocation; immutable afterwards."""

    model_config = ConfigDict(frozen=True)

    branch_name: str
    feature_description: str
    files_to_generate: List[str]
    commit_message: str

    @field_validator("branch_name", "commit_message")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v.strip()

    @field_validator("files_to_generate")
    @classmethod
    def _files_present(cls, v: List[str]) -> List[str]:
        files = [f.strip() for f in v if f and f.strip()]
        if not files:
            raise ValueError("files_to_generate must not be empty")
        return files


class WorkflowResult(BaseModel):
    """Terminal value of one workflow run."""

    success: bool
    branch_name: str = ""
    files_generated: List[str] = Field(default_factory=list)
    fallback_files: List[str] = Field(default_factory=list)
    commit_hash: Optional[str] = None
    pushed: bool = False
    error: Optional[str] = None
    failed_stage: Optional[WorkflowStage] = None
    stages: List[WorkflowStage] = Field(default_factory=list)
    request: Optional[WorkflowRequest] = None


# =============================================================================
# AUDIT
# =============================================================================


class AuditSeverityClass(str, Enum):
    SECURITY = "SECURITY"
    COMPLIANCE = "COMPLIANCE"
    PERFORMANCE = "PERFORMANCE"
    USER_ACTION = "USER_ACTION"
    SYSTEM = "SYSTEM"
    GOVERNANCE = "GOVERNANCE"


class AuditEntry(BaseModel):
    """One immutable audit record. Identity is ``id``."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"audit_{uuid.uuid4().hex}")
    timestamp: datetime = Field(default_factory=utcnow)
    tenant_id: str = "system"
    user_id: str = "system"
    action: str
    resource: str = "ai_system"
    details: Dict[str, Any] = Field(default_factory=dict)
    severity_class: AuditSeverityClass = AuditSeverityClass.GOVERNANCE

    @property
    def is_failure(self) -> bool:
        return "FAILURE" in self.action or "ERROR" in self.action


class AuditQuery(BaseModel):
    """Predicate filters for :meth:`govflow.audit.AuditLog.query`."""

    tenant_id: Optional[str] = None
    user_id: Optional[str] = None
    action: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    limit: Optional[int] = Field(default=None, gt=0)

    def matches(self, entry: AuditEntry) -> bool:
        if self.tenant_id is not None and entry.tenant_id != self.tenant_id:
            return False
        if self.user_id is not None and entry.user_id != self.user_id:
            return False
        if self.action is not None and self.action not in entry.action:
            return False
        if self.start is not None and entry.timestamp < self.start:
            return False
        if self.end is not None and entry.timestamp > self.end:
            return False
        return True


class AuditSummary(BaseModel):
    total_events: int = 0
    events_by_type: Dict[str, int] = Field(default_factory=dict)
    events_by_user: Dict[str, int] = Field(default_factory=dict)
    events_by_severity: Dict[str, int] = Field(default_factory=dict)
    average_response_time_ms: float = 0.0
    error_count: int = 0
    error_rate: float = 0.0
    security_events: int = 0
    compliance_events: int = 0


# =============================================================================
# RETRIEVAL
# =============================================================================


class ChunkMetadata(BaseModel):
    file_path: str
    start_line: int
    end_line: int


class EmbeddingChunk(BaseModel):
    """A fixed-size line window of one source file."""

    id: str
    text: str
    metadata: ChunkMetadata


class RetrievedChunk(BaseModel):
    chunk: EmbeddingChunk
    score: float


class AssembledContext(BaseModel):
    text: str
    truncated: bool = False
    chunks: List[RetrievedChunk] = Field(default_factory=list)


# =============================================================================
# RESPONSES
# =============================================================================


class ResponseType(str, Enum):
    TEXT = "text"
    COMMAND = "command"
    ACTION = "action"
    ERROR = "error"


class CommandResponse(BaseModel):
    """
    Structured response for one free-text command.

    ``rejected`` is True only when governance refused the request; an
    allowed request that failed to execute has ``success=False`` and
    ``rejected=False``.
    """

    message: str
    type: ResponseType = ResponseType.TEXT
    success: bool = True
    rejected: bool = False
    suggestions: List[str] = Field(default_factory=list)
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)

