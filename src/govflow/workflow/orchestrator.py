# src/govflow/workflow/orchestrator.py
"""
Workflow state machine: PARSED -> BRANCHED -> GENERATING -> COMMITTED -> PUSHED.

Any stage can end the run in FAILED(stage).  Earlier stages are never
rolled back: a failed commit leaves the created branch behind and a failed
push leaves the local commit in place.  The returned
:class:`~govflow.models.WorkflowResult` carries the branch, the files
written so far and the commit hash so a caller can resume or clean up.

The whole run holds the repository lock, so two workflows against the same
working tree never interleave.  Each stage writes one audit entry
(``WORKFLOW_<STAGE>_SUCCESS|FAILURE``) and every run ends with
``WORKFLOW_SUCCESS`` or ``WORKFLOW_FAILURE``.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Dict, List, Optional

from ..exceptions import GovFlowError, PolicyViolationError
from ..governance import RequestGovernor
from ..logging_config import log_display
from ..models import GenerationRequest, WorkflowRequest, WorkflowResult, WorkflowStage
from .git_ops import GitOperations
from .parsing import WorkflowParser
from .templates import build_file_prompt, classify, fallback_content

logger = logging.getLogger(__name__)

VALIDATION_ACTION = "WORKFLOW_VALIDATION"
PARSE_ACTION = "WORKFLOW_PARSE"
FILE_ACTION = "WORKFLOW_FILE_GENERATION"

_FENCE = re.compile(r"^```[\w.+-]*[ \t]*\n(.*?)\n?```\s*$", re.DOTALL)


def strip_code_fences(text: str) -> str:
    """Unwrap a reply that is a single fenced code block."""
    stripped = text.strip()
    match = _FENCE.match(stripped)
    return match.group(1) if match else stripped


class _Run:
    """Mutable bookkeeping for one workflow invocation."""

    def __init__(self, text: str, tenant_id: str, user_id: str):
        self.text = text
        self.tenant_id = tenant_id
        self.user_id = user_id
        self.request: Optional[WorkflowRequest] = None
        self.stages: List[WorkflowStage] = []
        self.written: List[str] = []
        self.fallbacks: List[str] = []
        self.commit_hash: Optional[str] = None
        self.pushed = False

    def result(self, success: bool, error: Optional[str] = None, failed: Optional[WorkflowStage] = None) -> WorkflowResult:
        stages = list(self.stages)
        if failed is not None:
            stages.append(WorkflowStage.FAILED)
        return WorkflowResult(
            success=success,
            branch_name=self.request.branch_name if self.request else "",
            files_generated=list(self.written),
            fallback_files=list(self.fallbacks),
            commit_hash=self.commit_hash,
            pushed=self.pushed,
            error=error,
            failed_stage=failed,
            stages=stages,
            request=self.request,
        )


class WorkflowOrchestrator:
    """Drives one natural-language request through branch, generate, commit and push."""

    def __init__(
        self,
        governor: RequestGovernor,
        git_ops: GitOperations,
        parser: Optional[WorkflowParser] = None,
        push: bool = True,
    ):
        self.governor = governor
        self.git = git_ops
        self._parser = parser
        self._push = push

    async def run(self, text: str, tenant_id: str, user_id: str) -> WorkflowResult:
        """
        Execute the workflow for ``text``.

        Raises:
            PolicyViolationError: The request itself was rejected; nothing ran.
        """
        verdict = self.governor.validate(
            GenerationRequest(user_input=text), tenant_id, user_id, audit_action=VALIDATION_ACTION
        )
        if not verdict.is_valid:
            self._audit_final(_Run(text, tenant_id, user_id).result(False, "Rejected by policy"), tenant_id, user_id)
            raise PolicyViolationError(verdict, "Workflow request rejected by policy.")

        started = time.perf_counter()
        run = _Run(text, tenant_id, user_id)
        async with self.git.exclusive():
            result = await self._drive(run)

        elapsed_ms = (time.perf_counter() - started) * 1000
        self.governor.monitor.record_metric(
            "workflow", elapsed_ms, success=result.success, error=result.error, tenant_id=tenant_id
        )
        self._audit_final(result, tenant_id, user_id, elapsed_ms)
        return result

    async def _drive(self, run: _Run) -> WorkflowResult:
        # PARSED
        parser = self._parser or WorkflowParser.default(lambda prompt: self._parse_text(prompt, run))
        try:
            run.request, strategy = await parser.parse(run.text)
        except GovFlowError as e:
            return self._fail(run, WorkflowStage.PARSED, str(e))
        self._advance(
            run,
            WorkflowStage.PARSED,
            {
                "strategy": strategy,
                "branch_name": run.request.branch_name,
                "files_to_generate": run.request.files_to_generate,
            },
        )
        log_display(
            logger,
            logging.INFO,
            "Workflow plan: branch '%s', %d file(s)",
            run.request.branch_name,
            len(run.request.files_to_generate),
        )

        # BRANCHED
        branch = await self.git.create_branch(run.request.branch_name)
        if not branch.success:
            return self._fail(run, WorkflowStage.BRANCHED, branch.error or branch.message)
        self._advance(run, WorkflowStage.BRANCHED, {"branch_name": run.request.branch_name})

        # GENERATING
        write_errors: Dict[str, str] = {}
        for path in run.request.files_to_generate:
            content = await self._generate_file(run, path)
            written = await self.git.write_file(path, content)
            if written.success:
                run.written.append(path)
            else:
                write_errors[path] = written.error or written.message
                logger.warning(f"Could not write '{path}': {write_errors[path]}")
        self._advance(
            run,
            WorkflowStage.GENERATING,
            {"files_generated": run.written, "fallback_files": run.fallbacks, "write_errors": write_errors},
            success=bool(run.written),
        )

        # COMMITTED
        if not run.written:
            return self._fail(run, WorkflowStage.COMMITTED, "No files were written; refusing to create an empty commit")
        commit = await self.git.commit(run.written, run.request.commit_message)
        if not commit.success:
            return self._fail(run, WorkflowStage.COMMITTED, commit.error or commit.message)
        run.commit_hash = commit.commit_hash
        self._advance(run, WorkflowStage.COMMITTED, {"commit_hash": commit.commit_hash, "files": commit.files_changed})

        # PUSHED
        if not self._push:
            logger.info(f"Push disabled; branch '{run.request.branch_name}' left local at {run.commit_hash}")
            return run.result(True)
        pushed = await self.git.push(run.request.branch_name)
        if not pushed.success:
            return self._fail(run, WorkflowStage.PUSHED, pushed.error or pushed.message)
        run.pushed = True
        self._advance(run, WorkflowStage.PUSHED, {"remote": self.git.remote})
        return run.result(True)

    async def _parse_text(self, prompt: str, run: _Run) -> str:
        governed = await self.governor.generate(
            GenerationRequest(user_input=run.text),
            run.tenant_id,
            run.user_id,
            prompt=prompt,
            profile="analysis",
            audit_action=PARSE_ACTION,
        )
        return governed.text

    async def _generate_file(self, run: _Run, path: str) -> str:
        kind = classify(path)
        description = run.request.feature_description or run.text
        try:
            governed = await self.governor.generate(
                GenerationRequest(user_input=description, artifact_type=kind.artifact_type, file_path=path),
                run.tenant_id,
                run.user_id,
                prompt=build_file_prompt(kind, path, description),
                audit_action=FILE_ACTION,
            )
            content = strip_code_fences(governed.text)
            if content:
                return content
            reason = "empty output"
        except GovFlowError as e:
            reason = str(e)
        logger.warning(f"Using built-in {kind.value} template for '{path}': {reason}")
        run.fallbacks.append(path)
        return fallback_content(kind, path, description)

    # ------------------------------------------------------------------
    # Bookkeeping
    # ------------------------------------------------------------------

    def _advance(self, run: _Run, stage: WorkflowStage, details: Dict[str, Any], success: bool = True) -> None:
        if success:
            run.stages.append(stage)
        self.governor.audit.record(
            f"WORKFLOW_{stage.value}_{'SUCCESS' if success else 'FAILURE'}",
            details,
            tenant_id=run.tenant_id,
            user_id=run.user_id,
            resource=str(self.git.repo_path),
        )

    def _fail(self, run: _Run, stage: WorkflowStage, error: str) -> WorkflowResult:
        logger.error(f"Workflow failed at {stage.value}: {error}")
        self._advance(run, stage, {"error": error}, success=False)
        return run.result(False, error, stage)

    def _audit_final(
        self, result: WorkflowResult, tenant_id: str, user_id: str, elapsed_ms: Optional[float] = None
    ) -> None:
        details: Dict[str, Any] = {
            "branch_name": result.branch_name,
            "files_generated": result.files_generated,
            "fallback_files": result.fallback_files,
            "commit_hash": result.commit_hash,
            "pushed": result.pushed,
        }
        if result.failed_stage is not None:
            details["failed_stage"] = result.failed_stage.value
        if result.error:
            details["error"] = result.error
        if elapsed_ms is not None:
            details["execution_time_ms"] = round(elapsed_ms, 2)
        self.governor.audit.record(
            f"WORKFLOW_{'SUCCESS' if result.success else 'FAILURE'}",
            details,
            tenant_id=tenant_id,
            user_id=user_id,
            resource=str(self.git.repo_path),
        )
