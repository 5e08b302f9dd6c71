# tests/conftest.py
"""
Shared fixtures for govflow tests.

Provides a scripted generation client, a fully wired governance stack
backed by an in-memory audit log, and real git repositories (with a bare
remote) in temporary directories.
"""

import sys
from pathlib import Path
from typing import Callable, List, Optional, Union

import git
import pytest

# Add source to path for testing
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from govflow.audit import AuditLog  # noqa: E402
from govflow.exceptions import GenerationError  # noqa: E402
from govflow.governance import (  # noqa: E402
    PolicyEngine,
    RequestGovernor,
    TenantDirectory,
    UsageLedger,
    UserRateLimiter,
)
from govflow.models import GenerationResult  # noqa: E402
from govflow.observability import PerformanceMonitor  # noqa: E402

Reply = Union[str, Exception, Callable[[str], str]]


class ScriptedGenerator:
    """
    Stand-in for GenerationClient.

    ``reply`` is returned for every prompt: a string, an exception to raise,
    or a callable mapping the prompt to a string.  Every call is recorded.
    """

    def __init__(self, reply: Reply = "generated text", tokens: int = 42):
        self.reply = reply
        self.tokens = tokens
        self.calls: List[dict] = []

    async def generate(self, prompt, overrides=None, profile=None, timeout=None) -> GenerationResult:
        self.calls.append({"prompt": prompt, "overrides": overrides, "profile": profile, "timeout": timeout})
        reply = self.reply
        if isinstance(reply, Exception):
            raise reply
        text = reply(prompt) if callable(reply) else reply
        return GenerationResult(text=text, tokens_used=self.tokens, latency_ms=5.0, model="test-model")

    @property
    def prompts(self) -> List[str]:
        return [c["prompt"] for c in self.calls]


@pytest.fixture
def generator():
    return ScriptedGenerator()


@pytest.fixture
def failing_generator():
    return ScriptedGenerator(GenerationError("ollama", "connection refused"))


@pytest.fixture
def tenants():
    return TenantDirectory()


@pytest.fixture
def ledger(tenants):
    return UsageLedger(tenants)


@pytest.fixture
def audit():
    """In-memory audit log."""
    return AuditLog()


@pytest.fixture
def make_governor(tenants, ledger, audit):
    """Factory building a RequestGovernor around a given generator."""

    def _make(gen, rate_limit: int = 100) -> RequestGovernor:
        return RequestGovernor(
            PolicyEngine(tenants, ledger),
            ledger,
            audit,
            gen,
            rate_limiter=UserRateLimiter(rate_limit),
            monitor=PerformanceMonitor(),
        )

    return _make


@pytest.fixture
def governor(make_governor, generator):
    return make_governor(generator)


def init_repo(path: Path, remote: Optional[Path] = None) -> git.Repo:
    """Working tree with one commit and, optionally, a bare 'origin' remote."""
    repo = git.Repo.init(path)
    with repo.config_writer() as cw:
        cw.set_value("user", "name", "Test User")
        cw.set_value("user", "email", "test@example.com")
        cw.set_value("commit", "gpgsign", "false")
    (path / "README.md").write_text("# automation\n", encoding="utf-8")
    repo.index.add(["README.md"])
    repo.index.commit("Initial commit")
    if remote is not None:
        git.Repo.init(remote, bare=True)
        repo.create_remote("origin", str(remote))
    return repo


@pytest.fixture
def git_repo(tmp_path):
    """(repo, bare_remote_path) for a fresh working tree under tmp_path."""
    work = tmp_path / "work"
    work.mkdir()
    remote = tmp_path / "remote.git"
    return init_repo(work, remote), remote


LOGIN_FEATURE = """Feature: Login

  Scenario: Valid credentials
    Given I am on the login page
    When I log in as "standard_user"
    Then I see the inventory

  Scenario Outline: Locked users
    Given I am on the login page
    When I log in as "<user>"
    Then I see an error
"""

LOGIN_SPEC = """import { test, expect } from '@playwright/test';
import { LoginPage } from '../src/pages/LoginPage';

test.describe('login', () => {
  test('accepts valid credentials', async ({ page }) => {});
  test.skip('rejects locked users', async ({ page }) => {});
  it("keeps the session", async () => {});
});
"""


@pytest.fixture
def automation_tree(tmp_path):
    """A small Playwright + Cucumber project: 3 test cases, 2 scenarios, 2 page objects (1 referenced)."""
    root = tmp_path / "automation"
    files = {
        "tests/features/login.feature": LOGIN_FEATURE,
        "tests/steps/loginSteps.ts": "import { Given } from '@cucumber/cucumber';\nGiven('I am on the login page', () => {});\n",
        "tests/login.spec.ts": LOGIN_SPEC,
        "src/pages/LoginPage.ts": "export class LoginPage {\n  async open() {}\n}\n",
        "src/pages/CartPage.ts": "export class CartPage {\n  async open() {}\n}\n",
        "node_modules/pkg/vendor.spec.ts": "test('ignored', () => {});\n",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
    return root
