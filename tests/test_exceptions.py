# tests/test_exceptions.py
"""
Tests for the govflow.exceptions module.

Covers the hierarchy that lets callers tell a request rejected by policy
apart from a request that was allowed but failed to execute.
"""

import pytest

from govflow.exceptions import (
    AuditLogError,
    ConfigError,
    EmbeddingError,
    GenerationError,
    GitOperationError,
    GovernanceError,
    GovFlowError,
    PolicyViolationError,
    ProviderError,
    QuotaExceededError,
    RateLimitExceededError,
    StorageError,
    TenantExistsError,
    TenantNotFoundError,
    VectorStorageError,
    WorkflowError,
)
from govflow.models import Severity, ValidationVerdict, Violation, ViolationKind, ViolationSource


class TestGovFlowError:
    """Tests for the base GovFlowError exception."""

    def test_default_message(self):
        """Default message mentions an unspecified error."""
        assert "unspecified error" in str(GovFlowError()).lower()

    def test_custom_message(self):
        """Custom message is kept verbatim."""
        assert str(GovFlowError("boom")) == "boom"

    def test_can_be_raised(self):
        """It can be raised and caught as an Exception."""
        with pytest.raises(Exception):
            raise GovFlowError("x")


class TestProviderErrors:
    """Tests for provider and generation failures."""

    def test_provider_name_in_message(self):
        """ProviderError prefixes the provider name."""
        error = ProviderError("ollama", "down")
        assert error.provider_name == "ollama"
        assert "ollama" in str(error) and "down" in str(error)

    def test_generation_error_code(self):
        """GenerationError carries the GENERATION_FAILED code and the model."""
        error = GenerationError("ollama", "timed out", model="deepseek-coder:6.7b")
        assert error.code == "GENERATION_FAILED"
        assert error.model == "deepseek-coder:6.7b"
        assert isinstance(error, ProviderError)

    def test_generation_error_is_not_governance(self):
        """An execution failure is never a governance rejection."""
        assert not isinstance(GenerationError(), GovernanceError)


class TestStorageErrors:
    """Tests for storage error subclasses."""

    def test_vector_storage_inherits_storage(self):
        assert isinstance(VectorStorageError(), StorageError)

    def test_audit_log_inherits_storage(self):
        assert isinstance(AuditLogError(), StorageError)

    def test_embedding_error_keeps_model(self):
        error = EmbeddingError("nomic-embed-text", "no vector")
        assert error.model_name == "nomic-embed-text"
        assert isinstance(error, GovFlowError)


class TestGovernanceErrors:
    """Tests for rejection errors."""

    def _verdict(self) -> ValidationVerdict:
        violation = Violation(
            kind=ViolationKind.CODE_INJECTION_ATTEMPT,
            severity=Severity.CRITICAL,
            message="Potential script tag detected",
            source=ViolationSource.SECURITY,
        )
        return ValidationVerdict.from_violations([violation], ["Sanitize input to prevent code injection"])

    def test_policy_violation_carries_verdict(self):
        """PolicyViolationError exposes the verdict, violations and recommendations."""
        verdict = self._verdict()
        error = PolicyViolationError(verdict)
        assert error.verdict is verdict
        assert error.violations == verdict.violations
        assert error.recommendations == ["Sanitize input to prevent code injection"]
        assert "CODE_INJECTION_ATTEMPT" in str(error)

    def test_quota_exceeded_lists_budgets(self):
        """QuotaExceededError names the tenant and the exceeded budgets."""
        error = QuotaExceededError("acme", ["tokens_per_hour"])
        assert error.budgets == ["tokens_per_hour"]
        assert "acme" in str(error) and "tokens_per_hour" in str(error)
        assert error.recommendations

    def test_rate_limit_names_user(self):
        """RateLimitExceededError names the user and the limit."""
        error = RateLimitExceededError("acme", "alice", 100)
        assert error.limit == 100
        assert "alice" in str(error) and "100" in str(error)

    @pytest.mark.parametrize(
        "error",
        [
            PolicyViolationError(ValidationVerdict(is_valid=False)),
            QuotaExceededError("t"),
            RateLimitExceededError("t", "u", 1),
        ],
    )
    def test_all_rejections_are_governance_errors(self, error):
        assert isinstance(error, GovernanceError)
        assert isinstance(error, GovFlowError)


class TestOtherErrors:
    """Tests for tenant, workflow, git and config errors."""

    def test_tenant_not_found(self):
        error = TenantNotFoundError("ghost")
        assert error.tenant_id == "ghost"
        assert "ghost" in str(error)

    def test_tenant_exists(self):
        assert "acme" in str(TenantExistsError("acme"))

    def test_workflow_error_stage(self):
        error = WorkflowError("PARSED", "nothing parsed")
        assert error.stage == "PARSED"
        assert "PARSED" in str(error)

    def test_git_operation_error_path(self):
        error = GitOperationError("/tmp/repo", "Not a git repository.")
        assert error.repo_path == "/tmp/repo"
        assert "/tmp/repo" in str(error)

    def test_config_error_default(self):
        assert "configuration error" in str(ConfigError()).lower()
