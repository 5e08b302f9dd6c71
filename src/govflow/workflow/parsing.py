# src/govflow/workflow/parsing.py
"""
Turning a free-text request into a :class:`~govflow.models.WorkflowRequest`.

Parsing is an ordered list of strategies, each an async callable returning
``Optional[WorkflowRequest]``.  The first strategy that returns a request
wins.  The default chain asks the model for JSON first and falls back to
keyword extraction, which always produces a valid, non-empty request.
"""

from __future__ import annotations

import logging
import re
from pathlib import PurePosixPath
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..exceptions import GovFlowError, WorkflowError
from ..models import WorkflowRequest, WorkflowStage
from ..prompts import build_workflow_parse_prompt, extract_json_object

logger = logging.getLogger(__name__)

ParseStrategy = Callable[[str], Awaitable[Optional[WorkflowRequest]]]
TextGenerator = Callable[[str], Awaitable[str]]

BRANCH_PATTERN = re.compile(r"branch\s+(?:(?:called|named)\s+)?['\"`]?([^'\"`\s,]+)['\"`]?", re.IGNORECASE)
_NOT_BRANCH_NAMES = {"for", "to", "and", "with", "that", "which", "from", "on", "in", "off"}
_REF_FORBIDDEN = re.compile(r"[\x00-\x20\x7f~^:?*\[\\]|\.\.|@\{|//")

FEATURE_FILES = ["automation/tests/features/cart.feature", "automation/tests/steps/cartSteps.ts"]
SPEC_FILE = "automation/tests/cart.spec.ts"
PAGE_OBJECT_FILE = "automation/src/pages/shop/CartPage.ts"


def commit_message_for(description: str) -> str:
    return f"Add {description.lower()}"


def _safe_relative(path: str) -> bool:
    p = PurePosixPath(path.replace("\\", "/"))
    return bool(path.strip()) and not p.is_absolute() and ".." not in p.parts


def is_valid_branch_name(name: str) -> bool:
    """Branch names that ``git check-ref-format --branch`` accepts."""
    if not name or name == "@" or name.startswith(("-", "/")) or name.endswith(("/", ".")):
        return False
    if _REF_FORBIDDEN.search(name):
        return False
    return all(part and not part.startswith(".") and not part.endswith(".lock") for part in name.split("/"))


# =============================================================================
# STRATEGIES
# =============================================================================


class ModelJsonStrategy:
    """Ask the model for ``{branchName, featureDescription, filesToGenerate, commitMessage}``."""

    name = "model"

    def __init__(self, generate: TextGenerator):
        self._generate = generate

    async def __call__(self, text: str) -> Optional[WorkflowRequest]:
        try:
            reply = await self._generate(build_workflow_parse_prompt(text))
        except GovFlowError as e:
            logger.warning(f"Model workflow parsing unavailable, falling back: {e}")
            return None
        data = extract_json_object(reply)
        if data is None:
            logger.info("Model reply for workflow parsing contained no JSON object")
            return None
        return self.from_json(data)

    @staticmethod
    def from_json(data: Dict[str, Any]) -> Optional[WorkflowRequest]:
        files = data.get("filesToGenerate") or data.get("files_to_generate") or []
        if not isinstance(files, list) or not all(isinstance(f, str) and _safe_relative(f) for f in files):
            logger.info(f"Rejecting model workflow plan with unusable file list: {files!r}")
            return None
        description = str(data.get("featureDescription") or data.get("feature_description") or "").strip()
        branch = str(data.get("branchName") or data.get("branch_name") or "").strip()
        if branch and not is_valid_branch_name(branch):
            logger.info(f"Rejecting model workflow plan with invalid branch name: {branch!r}")
            return None
        try:
            return WorkflowRequest(
                branch_name=branch,
                feature_description=description,
                files_to_generate=files,
                commit_message=str(
                    data.get("commitMessage") or data.get("commit_message") or commit_message_for(description or "generated files")
                ),
            )
        except ValidationError as e:
            logger.info(f"Rejecting model workflow plan: {e.errors()[0].get('msg')}")
            return None


def keyword_parse(text: str) -> WorkflowRequest:
    """Deterministic extraction from keywords. Never fails, never returns an empty file list."""
    lower = text.lower()

    branch = None
    match = BRANCH_PATTERN.search(text)
    if match and match.group(1).lower() not in _NOT_BRANCH_NAMES and is_valid_branch_name(match.group(1)):
        branch = match.group(1)
    if not branch:
        if "cart" in lower:
            branch = "feature/add-cart"
        elif "login" in lower:
            branch = "feature/login-enhancement"
        else:
            branch = "feature/ai-generated"

    if "cart" in lower and "login" in lower:
        description = "Login and add to cart functionality"
    elif "cart" in lower:
        description = "Shopping cart functionality"
    elif "login" in lower:
        description = "Login functionality"
    else:
        description = text.strip() or "AI generated changes"

    files: List[str] = []
    if "feature" in lower or "cucumber" in lower:
        files.extend(FEATURE_FILES)
    if "test" in lower or "spec" in lower:
        files.append(SPEC_FILE)
    if "page" in lower or "object" in lower:
        files.append(PAGE_OBJECT_FILE)
    if not files:
        files = list(FEATURE_FILES)

    return WorkflowRequest(
        branch_name=branch,
        feature_description=description,
        files_to_generate=files,
        commit_message=commit_message_for(description),
    )


class KeywordStrategy:
    name = "keywords"

    async def __call__(self, text: str) -> Optional[WorkflowRequest]:
        return keyword_parse(text)


# =============================================================================
# PARSER
# =============================================================================


class WorkflowParser:
    """First-success-wins composition of parse strategies."""

    def __init__(self, strategies: Sequence[ParseStrategy]):
        if not strategies:
            raise ValueError("WorkflowParser needs at least one strategy")
        self._strategies = list(strategies)

    @classmethod
    def default(cls, generate: Optional[TextGenerator] = None) -> WorkflowParser:
        strategies: List[ParseStrategy] = []
        if generate is not None:
            strategies.append(ModelJsonStrategy(generate))
        strategies.append(KeywordStrategy())
        return cls(strategies)

    async def parse(self, text: str) -> Tuple[WorkflowRequest, str]:
        """
        Returns:
            The request and the name of the strategy that produced it.

        Raises:
            WorkflowError: If every strategy declined.
        """
        for strategy in self._strategies:
            request = await strategy(text)
            if request is not None:
                name = getattr(strategy, "name", type(strategy).__name__)
                logger.debug(f"Workflow request parsed by '{name}': branch={request.branch_name}")
                return request, name
        raise WorkflowError(WorkflowStage.PARSED.value, "No parse strategy produced a workflow request.")
