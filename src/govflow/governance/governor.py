# src/govflow/governance/governor.py
"""
RequestGovernor: the mandatory gate in front of every model-backed action.

A governed generation runs these steps in order:

1. ``PolicyEngine.validate`` (security, compliance, tenant resources).
2. Per-user sliding rate limit.
3. ``UsageLedger.check_and_reserve`` for the prompt's token estimate.
4. One ``GenerationClient.generate`` call, with tenant sampling overrides
   merged under the request's own overrides.
5. Output scan of the generated text.
6. ``UsageLedger.commit`` with the real token count, or ``release`` when
   the call never completed.

Each call into the governor writes exactly one audit entry tagged
``<ACTION>_SUCCESS`` or ``<ACTION>_FAILURE``.  Rejections raise a
:class:`~govflow.exceptions.GovernanceError` subclass; execution failures
raise :class:`~govflow.exceptions.GenerationError`.  Callers can therefore
always tell "rejected by policy" apart from "allowed but failed".
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

from ..audit import AuditLog
from ..exceptions import (
    GovernanceError,
    PolicyViolationError,
    QuotaExceededError,
    RateLimitExceededError,
)
from ..models import (
    ArtifactType,
    GenerationRequest,
    GenerationResult,
    GovernedResult,
    SamplingOverrides,
    ValidationVerdict,
    Violation,
)
from ..observability import PerformanceMonitor
from ..prompts import build_chat_prompt, build_explain_feature_prompt, build_generation_prompt
from ..providers import GenerationClient
from .policy import PolicyEngine, estimate_tokens
from .tenants import TenantDirectory
from .usage import UsageLedger, UserRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_ACTION = "CODE_GENERATION"
VALIDATION_ACTION = "REQUEST_VALIDATION"
CHAT_ACTION = "CHAT_GENERATION"
EXPLAIN_ACTION = "FEATURE_EXPLANATION"
UPDATE_ACTION = "CODE_UPDATE"


def violation_details(violations: List[Violation]) -> List[Dict[str, str]]:
    """Audit-friendly form of a violation list."""
    return [
        {"kind": v.kind.value, "severity": v.severity.value, "message": v.message, "source": v.source.value}
        for v in violations
    ]


class RequestGovernor:
    """Runs policy, quota, generation and audit around one request."""

    def __init__(
        self,
        policy: PolicyEngine,
        ledger: UsageLedger,
        audit: AuditLog,
        generator: GenerationClient,
        rate_limiter: Optional[UserRateLimiter] = None,
        monitor: Optional[PerformanceMonitor] = None,
    ):
        self.policy = policy
        self.ledger = ledger
        self.audit = audit
        self.generator = generator
        self.rate_limiter = rate_limiter or UserRateLimiter()
        self.monitor = monitor or PerformanceMonitor()

    @property
    def tenants(self) -> TenantDirectory:
        return self.policy.tenants

    # ------------------------------------------------------------------
    # Validation only
    # ------------------------------------------------------------------

    def validate(
        self,
        request: GenerationRequest,
        tenant_id: str,
        user_id: str,
        action: str = "create",
        audit_action: str = VALIDATION_ACTION,
    ) -> ValidationVerdict:
        """Run the policy checks without generating. Audited, never raises on an invalid verdict."""
        verdict = self.policy.validate(request, tenant_id, action)
        details: Dict[str, Any] = {
            "input_length": len(request.user_input),
            "violations": violation_details(verdict.violations),
            "recommendations": verdict.recommendations,
        }
        if request.artifact_type is not None:
            details["artifact_type"] = request.artifact_type.value
        suffix = "SUCCESS" if verdict.is_valid else "FAILURE"
        self.audit.record(
            f"{audit_action}_{suffix}",
            details,
            tenant_id=tenant_id,
            user_id=user_id,
            resource=self._resource(request),
        )
        return verdict

    # ------------------------------------------------------------------
    # Governed generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        request: GenerationRequest,
        tenant_id: str,
        user_id: str,
        *,
        prompt: Optional[str] = None,
        overrides: Optional[SamplingOverrides] = None,
        profile: Optional[str] = "code_generation",
        audit_action: str = DEFAULT_ACTION,
        action: str = "create",
        timeout: Optional[float] = None,
    ) -> GovernedResult:
        """
        Validate, reserve, generate, scan and account for one request.

        Args:
            request: What the user asked for. Only ``user_input`` is scanned
                by the input policy; ``existing_code_context`` is trusted.
            prompt: Full prompt text. Built from ``request`` when omitted.
            overrides: Request-level sampling options; they win over the
                tenant's own overrides.
            profile: Generation profile name.
            audit_action: Tag prefix for the single audit entry.
            action: Permission action checked on the artifact's resource.
            timeout: Inference timeout in seconds.

        Raises:
            PolicyViolationError: Input or output failed policy.
            RateLimitExceededError: The user hit the hourly action ceiling.
            QuotaExceededError: The tenant's budgets cannot cover the request.
            GenerationError: The allowed request failed to execute.
        """
        started = time.perf_counter()
        text = prompt if prompt is not None else build_generation_prompt(request)
        estimate = estimate_tokens(text)
        details: Dict[str, Any] = {
            "profile": profile,
            "estimated_tokens": estimate,
            "input_length": len(request.user_input),
        }
        if request.artifact_type is not None:
            details["artifact_type"] = request.artifact_type.value
        if request.file_path:
            details["file_path"] = request.file_path

        try:
            verdict, result, findings = await self._run(
                request, tenant_id, user_id, text, estimate, overrides, profile, action, timeout
            )
        except Exception as e:
            elapsed_ms = (time.perf_counter() - started) * 1000
            details.update(self._failure_details(e))
            details["execution_time_ms"] = round(elapsed_ms, 2)
            self.audit.record(
                f"{audit_action}_FAILURE",
                details,
                tenant_id=tenant_id,
                user_id=user_id,
                resource=self._resource(request),
            )
            self.monitor.record_metric(
                audit_action.lower(), elapsed_ms, success=False, error=type(e).__name__, tenant_id=tenant_id
            )
            raise

        elapsed_ms = (time.perf_counter() - started) * 1000
        details.update(
            {
                "tokens_used": result.tokens_used,
                "model": result.model,
                "latency_ms": round(result.latency_ms, 2),
                "execution_time_ms": round(elapsed_ms, 2),
                "output_length": len(result.text),
                "violations": violation_details(verdict.violations),
                "output_findings": violation_details(findings),
            }
        )
        entry = self.audit.record(
            f"{audit_action}_SUCCESS",
            details,
            tenant_id=tenant_id,
            user_id=user_id,
            resource=self._resource(request),
        )
        self.monitor.record_metric(audit_action.lower(), elapsed_ms, success=True, tenant_id=tenant_id)
        return GovernedResult(
            text=result.text,
            tokens_used=result.tokens_used,
            latency_ms=result.latency_ms,
            model=result.model,
            verdict=verdict,
            output_findings=findings,
            audit_id=entry.id,
        )

    async def _run(
        self,
        request: GenerationRequest,
        tenant_id: str,
        user_id: str,
        prompt: str,
        estimate: int,
        overrides: Optional[SamplingOverrides],
        profile: Optional[str],
        action: str,
        timeout: Optional[float],
    ) -> tuple[ValidationVerdict, GenerationResult, List[Violation]]:
        verdict = self.policy.validate(request, tenant_id, action)
        if not verdict.is_valid:
            raise PolicyViolationError(verdict)

        if not self.rate_limiter.check(tenant_id, user_id):
            raise RateLimitExceededError(tenant_id, user_id, self.rate_limiter.limit)

        if not self.ledger.check_and_reserve(tenant_id, estimate):
            self.rate_limiter.refund(tenant_id, user_id)
            budgets = [b.value for b in self.ledger.exceeded_budgets(tenant_id, estimate)]
            raise QuotaExceededError(tenant_id, budgets)

        tenant = self.tenants.get_tenant(tenant_id)
        merged = overrides.merged_over(tenant.sampling_overrides) if overrides else tenant.sampling_overrides
        try:
            result = await self.generator.generate(prompt, merged, profile, timeout)
        except BaseException:
            self.ledger.release(tenant_id, estimate)
            raise

        actual = result.tokens_used or estimate_tokens(result.text)
        self.ledger.commit(tenant_id, actual, reserved=estimate, storage_bytes=len(result.text.encode("utf-8")))

        output_verdict = self.policy.validate_output(result.text)
        if not output_verdict.is_valid:
            raise PolicyViolationError(output_verdict, "Generated output rejected by policy.")
        return verdict, result, output_verdict.violations

    @staticmethod
    def _failure_details(error: Exception) -> Dict[str, Any]:
        details: Dict[str, Any] = {"error": str(error), "error_type": type(error).__name__}
        if isinstance(error, GovernanceError):
            details["rejected"] = True
            details["violations"] = violation_details(error.violations)
            details["recommendations"] = error.recommendations
        else:
            details["rejected"] = False
            code = getattr(error, "code", None)
            if code:
                details["error_code"] = code
        return details

    @staticmethod
    def _resource(request: GenerationRequest) -> str:
        if request.file_path:
            return request.file_path
        if request.artifact_type is not None:
            return request.artifact_type.resource
        return "ai_system"

    # ------------------------------------------------------------------
    # Convenience entry points
    # ------------------------------------------------------------------

    async def chat(
        self,
        question: str,
        tenant_id: str,
        user_id: str,
        context: Optional[str] = None,
        overrides: Optional[SamplingOverrides] = None,
    ) -> GovernedResult:
        """Free-form answer, optionally grounded in retrieved repository context."""
        return await self.generate(
            GenerationRequest(user_input=question, existing_code_context=context),
            tenant_id,
            user_id,
            prompt=build_chat_prompt(question, context),
            overrides=overrides,
            profile="rag" if context else "chat",
            audit_action=CHAT_ACTION,
        )

    async def explain_feature(
        self,
        path: str,
        content: str,
        tenant_id: str,
        user_id: str,
        question: Optional[str] = None,
    ) -> GovernedResult:
        """Plain-language walkthrough of a Cucumber feature file."""
        return await self.generate(
            GenerationRequest(user_input=question or f"explain feature {path}", existing_code_context=content, file_path=path),
            tenant_id,
            user_id,
            prompt=build_explain_feature_prompt(path, content),
            profile="analysis",
            audit_action=EXPLAIN_ACTION,
        )

    async def update_existing(
        self,
        path: str,
        existing: str,
        instructions: str,
        tenant_id: str,
        user_id: str,
        artifact_type: ArtifactType = ArtifactType.TEST,
        overrides: Optional[SamplingOverrides] = None,
    ) -> GovernedResult:
        """
        Rewrite ``existing`` (the content of ``path``) following ``instructions``.

        Checked against the tenant's ``update`` grant on the artifact's
        resource and audited as ``CODE_UPDATE_*``.
        """
        return await self.generate(
            GenerationRequest(
                user_input=instructions,
                artifact_type=artifact_type,
                existing_code_context=existing,
                file_path=path,
            ),
            tenant_id,
            user_id,
            overrides=overrides,
            audit_action=UPDATE_ACTION,
            action="update",
        )
