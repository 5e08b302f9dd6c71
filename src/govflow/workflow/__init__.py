# src/govflow/workflow/__init__.py
"""Branch, generate, commit and push workflows over a git working tree."""

from .git_ops import GitOperations, GitResult, RepositoryLock, lock_for
from .orchestrator import WorkflowOrchestrator, strip_code_fences
from .parsing import KeywordStrategy, ModelJsonStrategy, WorkflowParser, keyword_parse
from .templates import FileKind, build_file_prompt, classify, fallback_content

__all__ = [
    "FileKind",
    "GitOperations",
    "GitResult",
    "KeywordStrategy",
    "ModelJsonStrategy",
    "RepositoryLock",
    "WorkflowOrchestrator",
    "WorkflowParser",
    "build_file_prompt",
    "classify",
    "fallback_content",
    "keyword_parse",
    "lock_for",
    "strip_code_fences",
]
