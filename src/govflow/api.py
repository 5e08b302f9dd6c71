# src/govflow/api.py
"""
Core API facade for the govflow library.

:class:`GovFlow` wires the governance pipeline together: tenant directory,
usage ledger, policy engine, audit trail, generation client, retrieval,
command interpreter, command handlers and the git workflow orchestrator.
It is initialized asynchronously using the ``GovFlow.create()`` classmethod
and released with ``shutdown()`` (or ``async with``).

Usage:
    >>> async with await GovFlow.create(config_dict={"workflow": {"repo_path": "."}}) as flow:
    ...     response = await flow.handle("count tests", tenant_id="default", user_id="alice")
    ...     print(response.message)
"""

from __future__ import annotations

import asyncio
import importlib.resources
import logging
import tomllib
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .audit import AuditLog
from .commands import (
    CommandContext,
    CommandHandlers,
    CommandInterpreter,
    FrameworkScanner,
)
from .config import GovFlowConfig, load_config
from .embedding import OllamaEmbedding
from .exceptions import (
    ConfigError,
    EmbeddingError,
    GitOperationError,
    GovernanceError,
    GovFlowError,
    VectorStorageError,
)
from .governance import (
    PolicyEngine,
    RequestGovernor,
    TenantDirectory,
    UsageLedger,
    UserRateLimiter,
    violation_details,
)
from .governance.compliance import ComplianceCheck
from .logging_config import configure_logging, log_display
from .models import (
    AuditQuery,
    AuditSummary,
    ArtifactType,
    CommandResponse,
    GenerationRequest,
    GovernedResult,
    ResponseType,
    SamplingOverrides,
    Tenant,
)
from .observability import PerformanceMonitor
from .providers import GenerationClient
from .retrieval import ContextRetriever
from .storage import ChromaVectorStore
from .workflow import GitOperations, WorkflowOrchestrator, classify

logger = logging.getLogger(__name__)

REJECTED_MESSAGE = "Request rejected by policy"
FAILED_MESSAGE = "Request was allowed but failed to execute"
EMPTY_INPUT_SUGGESTIONS = ("count tests", "view results", "git status")


def _packaged_defaults() -> Dict[str, Any]:
    """The ``default_config.toml`` shipped inside the package."""
    resource = importlib.resources.files("govflow.config").joinpath("default_config.toml")
    try:
        with resource.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        raise ConfigError(f"Could not read packaged default configuration: {e}")


class GovFlow:
    """
    Governed natural-language front end for a linked test-automation repository.

    Every model-backed action goes through the :class:`RequestGovernor`; every
    command and workflow step lands in the :class:`AuditLog`.
    """

    config: GovFlowConfig
    tenants: TenantDirectory
    ledger: UsageLedger
    policy: PolicyEngine
    audit: AuditLog
    monitor: PerformanceMonitor
    generator: GenerationClient
    embedder: OllamaEmbedding
    vector_store: ChromaVectorStore
    retriever: ContextRetriever
    governor: RequestGovernor
    interpreter: CommandInterpreter
    git: GitOperations
    orchestrator: WorkflowOrchestrator
    scanner: FrameworkScanner
    handlers: CommandHandlers

    def __init__(self):
        """
        Private constructor. Use ``GovFlow.create()`` for initialization.
        """
        self._initialized = False

    @classmethod
    async def create(
        cls,
        config_dict: Optional[Dict[str, Any]] = None,
        config_path: Optional[str | Path] = None,
        *,
        configure_logs: bool = True,
        generator: Optional[GenerationClient] = None,
        embedder: Optional[OllamaEmbedding] = None,
        vector_store: Optional[ChromaVectorStore] = None,
        audit: Optional[AuditLog] = None,
    ) -> "GovFlow":
        """
        Asynchronously create and initialize a GovFlow instance.

        The service arguments replace the instances that would otherwise be
        built from configuration.

        Raises:
            ConfigError: Invalid configuration.
            VectorStorageError: The vector store could not be opened.
        """
        instance = cls()
        instance._initialize_from_config(
            config_dict, config_path, configure_logs,
            generator=generator, embedder=embedder, vector_store=vector_store, audit=audit,
        )
        await instance.init()
        return instance

    def _initialize_from_config(
        self,
        config_dict: Optional[Dict[str, Any]],
        config_path: Optional[str | Path],
        configure_logs: bool,
        *,
        generator: Optional[GenerationClient] = None,
        embedder: Optional[OllamaEmbedding] = None,
        vector_store: Optional[ChromaVectorStore] = None,
        audit: Optional[AuditLog] = None,
    ) -> None:
        self.config = load_config(config_dict=config_dict, config_path=config_path, defaults=_packaged_defaults())
        if configure_logs:
            configure_logging(app_name="govflow", config=self.config.logging)
        logger.info("Initializing govflow components from configuration...")

        cfg = self.config
        self.tenants = TenantDirectory(
            default_tenant_id=cfg.governance.default_tenant_id,
            default_limits=cfg.governance.default_tenant_limits,
        )
        self.ledger = UsageLedger(self.tenants)
        self.policy = PolicyEngine(self.tenants, self.ledger)
        self.compliance = self.policy.compliance
        self.audit = audit or AuditLog(
            directory=cfg.audit.directory if cfg.audit.enabled else None,
            redact_keys=cfg.audit.redact_keys,
        )
        self.monitor = PerformanceMonitor()

        self.generator = generator or GenerationClient(cfg.ollama, cfg.generation)
        self.embedder = embedder or OllamaEmbedding(cfg.embedding)
        self.vector_store = vector_store or ChromaVectorStore(cfg.vector_store)
        self.retriever = ContextRetriever(self.vector_store, self.embedder, cfg.retrieval)

        self.governor = RequestGovernor(
            self.policy,
            self.ledger,
            self.audit,
            self.generator,
            rate_limiter=UserRateLimiter(cfg.governance.user_actions_per_hour),
            monitor=self.monitor,
        )
        self.interpreter = CommandInterpreter(self.generator)

        repo_path = Path(cfg.workflow.repo_path).expanduser()
        self.git = GitOperations(repo_path, remote=cfg.workflow.remote, timeout=cfg.workflow.git_timeout)
        self.orchestrator = WorkflowOrchestrator(self.governor, self.git, push=cfg.workflow.push)
        self.scanner = FrameworkScanner(repo_path / cfg.workflow.automation_dir)
        self.handlers = CommandHandlers(
            self.governor,
            self.scanner,
            git_ops=self.git,
            orchestrator=self.orchestrator,
            run_timeout=cfg.workflow.run_timeout,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def init(self) -> None:
        """Open clients and load persisted audit history. Safe to call twice."""
        if self._initialized:
            return
        await self.generator.initialize()
        await self.embedder.initialize()
        await self.vector_store.initialize()
        loaded = await asyncio.to_thread(self.audit.load)
        removed = await asyncio.to_thread(self.audit.purge_expired, self.config.audit.retention_days)
        if removed:
            logger.info(f"Purged {removed} expired audit entries")
        self._initialized = True
        self.audit.log_system_event("STARTUP", {"audit_entries_loaded": loaded})
        log_display(logger, logging.INFO, "govflow ready: %d tenant(s), repository %s", len(self.tenants), self.git.repo_path)

    async def shutdown(self) -> None:
        """Close all clients. Errors from individual clients are logged, not raised."""
        logger.info("Closing govflow resources...")
        results = await asyncio.gather(
            self.generator.close(),
            self.embedder.close(),
            self.vector_store.close(),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.warning(f"Error while closing a govflow client: {result}")
        if self._initialized:
            self.audit.log_system_event("SHUTDOWN")
        self._initialized = False
        logger.info("govflow resources cleanup complete.")

    async def close(self) -> None:
        await self.shutdown()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    # ------------------------------------------------------------------
    # Free-text entry point
    # ------------------------------------------------------------------

    async def handle(
        self,
        text: str,
        tenant_id: Optional[str] = None,
        user_id: str = "anonymous",
        overrides: Optional[SamplingOverrides] = None,
    ) -> CommandResponse:
        """
        Interpret ``text`` and run it: a special command, a workflow, or chat.

        Never raises for governance rejections or execution failures; both
        come back as error responses, distinguished by ``rejected``.
        """
        tenant_id = tenant_id or self.tenants.default_tenant_id
        if not text or not text.strip():
            return CommandResponse(
                message="Please enter a request.",
                type=ResponseType.ERROR,
                success=False,
                suggestions=list(EMPTY_INPUT_SUGGESTIONS),
            )

        parsed = await self.interpreter.parse(text)
        try:
            if parsed.is_special and parsed.command is not None:
                logger.debug(f"'{text}' matched {parsed.command.value} by {parsed.matched_by.value}")
                return await self.handlers.dispatch(
                    parsed.command, CommandContext(text=text, tenant_id=tenant_id, user_id=user_id, parsed=parsed)
                )
            return await self._chat(text, tenant_id, user_id, overrides)
        except GovernanceError as e:
            logger.info(f"Request from '{user_id}' of tenant '{tenant_id}' rejected: {e}")
            return CommandResponse(
                message=f"{REJECTED_MESSAGE}: {e}",
                type=ResponseType.ERROR,
                success=False,
                rejected=True,
                suggestions=e.recommendations,
                data={"violations": violation_details(e.violations), "error_type": type(e).__name__},
            )
        except GovFlowError as e:
            logger.error(f"Request from '{user_id}' of tenant '{tenant_id}' failed: {e}")
            data: Dict[str, Any] = {"error_type": type(e).__name__}
            code = getattr(e, "code", None)
            if code:
                data["error_code"] = code
            return CommandResponse(
                message=f"{FAILED_MESSAGE}: {e}",
                type=ResponseType.ERROR,
                success=False,
                suggestions=self.interpreter.suggestions(text),
                data=data,
            )

    async def _chat(
        self, text: str, tenant_id: str, user_id: str, overrides: Optional[SamplingOverrides]
    ) -> CommandResponse:
        context, sources = await self._retrieval_context(text, tenant_id)
        result = await self.governor.chat(text, tenant_id, user_id, context=context, overrides=overrides)
        return CommandResponse(
            message=result.text,
            type=ResponseType.TEXT,
            suggestions=self.interpreter.suggestions(text),
            data={"tokens_used": result.tokens_used, "model": result.model, "sources": sources, "audit_id": result.audit_id},
        )

    async def _retrieval_context(self, text: str, tenant_id: str) -> tuple[Optional[str], List[str]]:
        tenant = self.tenants.find_tenant(tenant_id)
        if tenant is None or not tenant.features.get("context_retrieval", False):
            return None, []
        try:
            if await self.retriever.count(tenant_id) == 0:
                return None, []
            assembled = await self.retriever.assemble_context(tenant_id, text)
        except (EmbeddingError, VectorStorageError) as e:
            logger.warning(f"Context retrieval unavailable for tenant '{tenant_id}', answering without it: {e}")
            return None, []
        sources = sorted({r.chunk.metadata.file_path for r in assembled.chunks})
        return assembled.text or None, sources

    # ------------------------------------------------------------------
    # Artifact generation
    # ------------------------------------------------------------------

    async def generate(
        self,
        request: GenerationRequest,
        tenant_id: Optional[str] = None,
        user_id: str = "anonymous",
        overrides: Optional[SamplingOverrides] = None,
    ) -> GovernedResult:
        """
        Governed generation of one test artifact.

        Unlike :meth:`handle`, governance rejections and execution failures
        are raised (``GovernanceError`` / ``GenerationError``).
        """
        return await self.governor.generate(
            request, tenant_id or self.tenants.default_tenant_id, user_id, overrides=overrides
        )

    async def update_existing(
        self,
        path: str,
        instructions: str,
        tenant_id: Optional[str] = None,
        user_id: str = "anonymous",
        overrides: Optional[SamplingOverrides] = None,
    ) -> GovernedResult:
        """
        Have the model rewrite ``path`` (relative to the linked repository)
        following ``instructions``.  Returns the new content; the file itself
        is left untouched.

        Raises:
            GitOperationError: ``path`` is outside the working tree or unreadable.
            GovernanceError: The tenant lacks the ``update`` grant or a budget.
            GenerationError: The allowed request failed to execute.
        """
        tenant_id = tenant_id or self.tenants.default_tenant_id
        try:
            existing = await asyncio.to_thread(self._read_repository_file, path)
        except GitOperationError as e:
            self.audit.record(
                "CODE_UPDATE_FAILURE",
                {"error": str(e), "error_type": type(e).__name__, "rejected": False},
                tenant_id=tenant_id,
                user_id=user_id,
                resource=path,
            )
            raise
        artifact_type = classify(path).artifact_type or ArtifactType.TEST
        return await self.governor.update_existing(
            path, existing, instructions, tenant_id, user_id, artifact_type=artifact_type, overrides=overrides
        )

    def _read_repository_file(self, path: str) -> str:
        root = self.git.repo_path
        target = (root / path).resolve()
        if not target.is_relative_to(root) or not target.is_file():
            raise GitOperationError(str(root), f"No file '{path}' in the working tree.")
        try:
            return target.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise GitOperationError(str(root), f"Could not read '{path}': {e}")

    # ------------------------------------------------------------------
    # Repository context
    # ------------------------------------------------------------------

    async def index_repository(self, tenant_id: str, root_path: Optional[str | Path] = None) -> int:
        """Index ``root_path`` (default: the linked repository) into the tenant's collection."""
        self.tenants.get_tenant(tenant_id)
        root = Path(root_path).expanduser() if root_path else self.git.repo_path
        count = await self.retriever.index(tenant_id, root)
        self.audit.log_system_event("REPOSITORY_INDEXED", {"path": str(root), "chunks": count}, tenant_id=tenant_id)
        return count

    async def drop_repository_index(self, tenant_id: str) -> bool:
        dropped = await self.retriever.drop(tenant_id)
        self.audit.log_system_event("REPOSITORY_INDEX_DROPPED", {"dropped": dropped}, tenant_id=tenant_id)
        return dropped

    # ------------------------------------------------------------------
    # Tenant administration
    # ------------------------------------------------------------------

    def create_tenant(self, tenant: Tenant, user_id: str = "system") -> Tenant:
        created = self.tenants.create_tenant(tenant)
        self.audit.log_system_event(
            "TENANT_CREATED", {"name": created.name}, tenant_id=created.id, user_id=user_id, resource="tenants"
        )
        return created

    def get_tenant(self, tenant_id: str) -> Tenant:
        return self.tenants.get_tenant(tenant_id)

    def list_tenants(self) -> List[Tenant]:
        return self.tenants.list_tenants()

    def update_tenant(self, tenant_id: str, updates: Dict[str, Any], user_id: str = "system") -> Tenant:
        updated = self.tenants.update_tenant(tenant_id, updates)
        self.audit.log_system_event(
            "TENANT_UPDATED", {"fields": sorted(updates)}, tenant_id=tenant_id, user_id=user_id, resource="tenants"
        )
        return updated

    async def delete_tenant(self, tenant_id: str, user_id: str = "system") -> Tenant:
        """Remove the tenant, its usage counters and its retrieval collection. Audit history is kept."""
        tenant = self.tenants.delete_tenant(tenant_id)
        try:
            await self.retriever.drop(tenant_id)
        except VectorStorageError as e:
            logger.warning(f"Could not drop retrieval collection of deleted tenant '{tenant_id}': {e}")
        self.audit.log_system_event(
            "TENANT_DELETED", {"name": tenant.name}, severity="MEDIUM",
            tenant_id=tenant_id, user_id=user_id, resource="tenants",
        )
        return tenant

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def compliance_status(self, tenant_id: str) -> Dict[str, Any]:
        return ComplianceCheck.compliance_status(self.tenants.get_tenant(tenant_id))

    def compliance_report(
        self, tenant_id: str, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> Dict[str, Any]:
        report = self.compliance.compliance_report(self.audit, self.tenants.get_tenant(tenant_id), start, end)
        self.audit.log_compliance_event(
            "REPORT_GENERATED", {"status": report["status"]}, severity="LOW", tenant_id=tenant_id
        )
        return report

    def audit_summary(self, filters: Optional[AuditQuery] = None) -> AuditSummary:
        return self.audit.summarize(filters)

    def performance_report(self) -> Dict[str, Any]:
        return self.monitor.performance_report()

    async def health_check(self) -> Dict[str, Any]:
        """Inference service reachability plus a count of retrieval collections."""
        status = await self.generator.health_check()
        try:
            status["collections"] = len(await self.vector_store.list_collections())
        except VectorStorageError as e:
            status["collections_error"] = str(e)
        return status
