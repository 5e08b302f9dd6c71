# src/govflow/commands/handlers.py
"""
Handlers for every :class:`~govflow.commands.catalogue.CommandKind`.

The handler table is checked for completeness when :class:`CommandHandlers`
is constructed, so adding a command kind without a handler fails at
startup rather than at dispatch time.
"""

from __future__ import annotations

import asyncio
import logging
import re
import time
import webbrowser
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..governance import RequestGovernor
from ..models import CommandResponse, ResponseType
from ..workflow import GitOperations, WorkflowOrchestrator
from .catalogue import CommandKind
from .framework import FrameworkScanner
from .interpreter import ParsedCommand

logger = logging.getLogger(__name__)

LOGIN_FEATURE_COMMAND = [
    "npx", "cucumber-js", "tests/features/login.feature", "--config", "cucumber.js", "--format", "summary",
]

_WORKFLOW_WORDS = {"create", "generate", "add", "commit", "push", "workflow"}
_NOT_FEATURE_NAMES = {"the", "this", "that", "a", "an", "explain", "describe", "read", "understand", "cucumber"}
_OUTPUT_TAIL = 4000


@dataclass
class CommandContext:
    text: str
    tenant_id: str
    user_id: str
    parsed: ParsedCommand


@dataclass
class ProcessResult:
    returncode: int
    stdout: str
    stderr: str


Handler = Callable[[CommandContext], Awaitable[CommandResponse]]
ProcessRunner = Callable[[Sequence[str], Path, float], Awaitable[ProcessResult]]


async def run_process(args: Sequence[str], cwd: Path, timeout: float) -> ProcessResult:
    """Run ``args`` in ``cwd`` and capture its output. Kills the process on timeout."""
    process = await asyncio.create_subprocess_exec(
        *args,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=str(cwd),
    )
    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise
    return ProcessResult(
        returncode=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


def _error(message: str, suggestions: Optional[List[str]] = None, rejected: bool = False) -> CommandResponse:
    return CommandResponse(
        message=message,
        type=ResponseType.ERROR,
        success=False,
        rejected=rejected,
        suggestions=suggestions or [],
    )


class CommandHandlers:
    """Exhaustive dispatch table from command kind to coroutine handler."""

    def __init__(
        self,
        governor: RequestGovernor,
        scanner: FrameworkScanner,
        git_ops: Optional[GitOperations] = None,
        orchestrator: Optional[WorkflowOrchestrator] = None,
        runner: ProcessRunner = run_process,
        opener: Callable[[str], bool] = webbrowser.open,
        run_timeout: float = 600.0,
    ):
        self.governor = governor
        self.scanner = scanner
        self.git = git_ops
        self.orchestrator = orchestrator
        self._runner = runner
        self._opener = opener
        self._run_timeout = run_timeout
        self._handlers: Dict[CommandKind, Handler] = {
            CommandKind.COUNT_TESTS: self.count_tests,
            CommandKind.COUNT_FEATURES: self.count_features,
            CommandKind.RUN_LOGIN: self.run_login,
            CommandKind.EXPLAIN_FEATURE: self.explain_feature,
            CommandKind.VIEW_RESULTS: self.view_results,
            CommandKind.OPEN_REPORT: self.open_report,
            CommandKind.GIT_OPERATIONS: self.git_operations,
            CommandKind.COVERAGE: self.coverage,
            CommandKind.ANALYZE_FRAMEWORK: self.analyze_framework,
        }
        missing = [kind.value for kind in CommandKind if kind not in self._handlers]
        if missing:
            raise ValueError(f"No handler registered for command(s): {', '.join(missing)}")

    async def dispatch(self, kind: CommandKind, ctx: CommandContext) -> CommandResponse:
        """Run the handler for ``kind`` and audit the outcome as a user action."""
        tag = f"COMMAND_{kind.value.upper()}"
        try:
            response = await self._handlers[kind](ctx)
        except Exception as e:
            self.governor.audit.log_user_action(
                f"{tag}_FAILURE", {"error": str(e)}, tenant_id=ctx.tenant_id, user_id=ctx.user_id
            )
            raise
        self.governor.audit.log_user_action(
            f"{tag}_{'SUCCESS' if response.success else 'FAILURE'}",
            {"matched_by": ctx.parsed.matched_by.value, "rejected": response.rejected},
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
        )
        return response

    def _permission_denied(self, ctx: CommandContext, resource: str, action: str) -> Optional[CommandResponse]:
        if self.governor.tenants.has_permission(ctx.tenant_id, resource, action):
            return None
        self.governor.audit.log_security_event(
            "PERMISSION_DENIED",
            {"resource": resource, "action": action},
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
        )
        return _error(
            f"Request rejected: tenant '{ctx.tenant_id}' lacks '{action}' permission on '{resource}'.",
            rejected=True,
        )

    def _missing_framework(self) -> CommandResponse:
        return _error(f"Automation framework not found at {self.scanner.root}")

    # ------------------------------------------------------------------
    # Inventory commands
    # ------------------------------------------------------------------

    async def count_tests(self, ctx: CommandContext) -> CommandResponse:
        if not self.scanner.exists():
            return self._missing_framework()
        counts = await asyncio.to_thread(self.scanner.count_tests)
        lines = [
            f"Found {counts['test_cases']} Playwright test(s) in {counts['spec_files']} spec file(s) "
            f"and {counts['scenarios']} Cucumber scenario(s).",
        ]
        lines.extend(f"  {path}: {n}" for path, n in counts["by_file"].items())
        return CommandResponse(message="\n".join(lines), type=ResponseType.COMMAND, data=counts)

    async def count_features(self, ctx: CommandContext) -> CommandResponse:
        if not self.scanner.exists():
            return self._missing_framework()
        counts = await asyncio.to_thread(self.scanner.count_features)
        lines = [f"Found {counts['feature_files']} feature file(s) with {counts['scenarios']} scenario(s)."]
        lines.extend(f"  {path} ({n} scenarios)" for path, n in counts["by_file"].items())
        return CommandResponse(message="\n".join(lines), type=ResponseType.COMMAND, data=counts)

    async def analyze_framework(self, ctx: CommandContext) -> CommandResponse:
        if not self.scanner.exists():
            return self._missing_framework()
        summary = await asyncio.to_thread(self.scanner.analyze)
        message = (
            f"Framework at {summary['root']}: {summary['spec_files']} spec file(s), "
            f"{summary['feature_files']} feature file(s), {summary['step_definition_files']} step definition file(s), "
            f"{len(summary['page_objects'])} page object(s), {summary['test_cases']} test case(s), "
            f"{summary['scenarios']} scenario(s)."
        )
        return CommandResponse(message=message, type=ResponseType.COMMAND, data=summary)

    async def coverage(self, ctx: CommandContext) -> CommandResponse:
        if not self.scanner.exists():
            return self._missing_framework()
        report = await asyncio.to_thread(self.scanner.coverage)
        message = (
            f"Page object coverage: {report['coverage_percent']}% "
            f"({len(report['covered'])} of {report['page_objects']} referenced by tests)."
        )
        if report["uncovered"]:
            message += "\nNot referenced: " + ", ".join(report["uncovered"])
        return CommandResponse(message=message, type=ResponseType.COMMAND, data=report)

    # ------------------------------------------------------------------
    # Execution and results
    # ------------------------------------------------------------------

    async def run_login(self, ctx: CommandContext) -> CommandResponse:
        denied = self._permission_denied(ctx, "tests", "execute")
        if denied:
            return denied
        if self.scanner.find_feature("login") is None:
            return _error("login.feature not found in the automation framework.")
        started = time.perf_counter()
        try:
            result = await self._runner(LOGIN_FEATURE_COMMAND, self.scanner.root, self._run_timeout)
        except asyncio.TimeoutError:
            return _error(f"Login feature run timed out after {self._run_timeout:.0f}s.")
        except OSError as e:
            return _error(f"Could not start the Cucumber runner: {e}")
        output = (result.stdout + result.stderr)[-_OUTPUT_TAIL:]
        passed = result.returncode == 0
        status = "PASS" if passed else "FAIL"
        self.governor.monitor.record_metric(
            "test_execution", (time.perf_counter() - started) * 1000, success=passed, tenant_id=ctx.tenant_id
        )
        return CommandResponse(
            message=f"Login feature run: {status}\n{output}".rstrip(),
            type=ResponseType.ACTION,
            success=passed,
            data={"status": status, "returncode": result.returncode},
        )

    async def view_results(self, ctx: CommandContext) -> CommandResponse:
        denied = self._permission_denied(ctx, "results", "read")
        if denied:
            return denied
        reports = await asyncio.to_thread(self.scanner.reports)
        if not reports:
            return CommandResponse(
                message="No execution results found. Run the tests first.",
                type=ResponseType.COMMAND,
                success=False,
                suggestions=["run login feature"],
            )
        lines = []
        if "cucumber_html" in reports:
            lines.append(f"Cucumber HTML report: {reports['cucumber_html']}")
        if "cucumber_summary" in reports:
            s = reports["cucumber_summary"]
            lines.append(f"Cucumber: {s['scenarios']} scenario(s), {s['passed']} passed, {s['failed']} failed")
        if "playwright_html" in reports:
            lines.append(f"Playwright HTML report: {reports['playwright_html']}")
        if "test_results" in reports:
            lines.append(f"Test results: {len(reports['test_results'])} item(s)")
        return CommandResponse(message="\n".join(lines), type=ResponseType.COMMAND, data=reports)

    async def open_report(self, ctx: CommandContext) -> CommandResponse:
        denied = self._permission_denied(ctx, "results", "read")
        if denied:
            return denied
        report = self.scanner.report_to_open()
        if report is None:
            return _error("No HTML report found to open.", suggestions=["run login feature"])
        opened = await asyncio.to_thread(self._opener, report.resolve().as_uri())
        return CommandResponse(
            message=f"Opened {report}" if opened else f"Report available at {report}",
            type=ResponseType.ACTION,
            data={"path": str(report), "opened": bool(opened)},
        )

    # ------------------------------------------------------------------
    # Model-backed commands
    # ------------------------------------------------------------------

    @staticmethod
    def feature_name(ctx: CommandContext) -> str:
        target = ctx.parsed.intent.target if ctx.parsed.intent else ""
        for source in (target, ctx.text):
            match = re.search(r"([\w-]+)\.feature\b", source)
            if match:
                return match.group(1)
        for match in re.finditer(r"\b([\w-]+)\s+feature\b", ctx.text.lower()):
            if match.group(1) not in _NOT_FEATURE_NAMES:
                return match.group(1)
        return "login"

    async def explain_feature(self, ctx: CommandContext) -> CommandResponse:
        name = self.feature_name(ctx)
        path = self.scanner.find_feature(name)
        if path is None:
            return _error(
                f"Feature file '{name}.feature' not found.",
                suggestions=["count feature files", "list features"],
            )
        content = await asyncio.to_thread(path.read_text, encoding="utf-8")
        result = await self.governor.explain_feature(
            self.scanner.rel(path), content, ctx.tenant_id, ctx.user_id, question=ctx.text
        )
        return CommandResponse(
            message=result.text,
            type=ResponseType.TEXT,
            data={"path": self.scanner.rel(path), "tokens_used": result.tokens_used, "audit_id": result.audit_id},
        )

    async def git_operations(self, ctx: CommandContext) -> CommandResponse:
        if self.git is None:
            return _error("No git repository is configured.")
        lower = ctx.text.lower()
        tokens = set(re.findall(r"[a-z]+", lower))

        if "status" in tokens and not tokens & _WORKFLOW_WORDS:
            status = await self.git.status()
            if not status.success:
                return _error(f"git status failed: {status.error}")
            return CommandResponse(
                message=f"On branch {status.branch_name or '(detached)'}\n{status.message}",
                type=ResponseType.COMMAND,
                data=status.model_dump(),
            )
        if "branches" in tokens and not tokens & _WORKFLOW_WORDS:
            branches = await self.git.branches()
            return CommandResponse(message="\n".join(branches), type=ResponseType.COMMAND, data={"branches": branches})
        if tokens & {"log", "history", "commits"} and not tokens & {"create", "generate", "add"}:
            commits = await self.git.recent_commits()
            lines = [f"{c['hash'][:8]} {c['summary']} ({c['author']})" for c in commits]
            return CommandResponse(
                message="\n".join(lines) or "No commits yet.", type=ResponseType.COMMAND, data={"commits": commits}
            )

        if self.orchestrator is None:
            return _error("Workflows are not enabled for this repository.")
        result = await self.orchestrator.run(ctx.text, ctx.tenant_id, ctx.user_id)
        if result.success:
            message = (
                f"Workflow completed on branch '{result.branch_name}': {len(result.files_generated)} file(s), "
                f"commit {(result.commit_hash or '')[:8]}"
                + (", pushed." if result.pushed else ", not pushed.")
            )
        else:
            stage = result.failed_stage.value if result.failed_stage else "UNKNOWN"
            message = f"Workflow failed at {stage}: {result.error}"
        if result.fallback_files:
            message += f"\nBuilt-in templates used for: {', '.join(result.fallback_files)}"
        return CommandResponse(
            message=message,
            type=ResponseType.ACTION,
            success=result.success,
            data=result.model_dump(mode="json"),
        )
