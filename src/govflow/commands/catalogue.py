# src/govflow/commands/catalogue.py
"""
The closed catalogue of special commands: their identifiers, known
phrasings, descriptions and the model-action map.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional


class CommandKind(str, Enum):
    COUNT_TESTS = "count_tests"
    COUNT_FEATURES = "count_features"
    RUN_LOGIN = "run_login"
    EXPLAIN_FEATURE = "explain_feature"
    VIEW_RESULTS = "view_results"
    OPEN_REPORT = "open_report"
    GIT_OPERATIONS = "git_operations"
    COVERAGE = "coverage"
    ANALYZE_FRAMEWORK = "analyze_framework"


# Table order breaks ties between equally long phrasings.
PHRASES: Dict[CommandKind, List[str]] = {
    CommandKind.COUNT_TESTS: [
        "count tests", "count test", "how many tests", "number of tests",
        "total tests", "test count", "list tests", "show tests",
        "analyze tests", "test analysis", "framework analysis",
    ],
    CommandKind.COUNT_FEATURES: [
        "count feature files", "how many feature files", "feature files count",
        "list features", "show features", "feature count", "cucumber files",
        "bdd files", "gherkin files", "list feature files",
    ],
    CommandKind.RUN_LOGIN: [
        "run login feature", "run cucumber login", "execute login",
        "test login", "run login tests", "execute login feature",
        "run login.feature", "test login functionality", "login test execution",
    ],
    CommandKind.EXPLAIN_FEATURE: [
        "explain login feature", "describe login feature", "what does login feature do",
        "explain login steps", "describe login functionality", "login feature explanation",
        "what are the login validations", "explain login test cases", "login feature analysis",
        "read login feature", "understand login feature", "login feature breakdown",
    ],
    CommandKind.VIEW_RESULTS: [
        "view results", "show results", "last execution results", "test results",
        "show last results", "view last results", "execution results", "recent results",
        "test execution results", "show test results", "last test results", "cucumber results",
        "playwright results", "test report", "show report", "view report",
    ],
    CommandKind.OPEN_REPORT: [
        "open playwright report", "open report", "open test report", "open html report",
        "open playwright-report", "open playwright html", "open test results", "open results",
        "open browser report", "show playwright report", "view playwright report", "launch report",
    ],
    CommandKind.GIT_OPERATIONS: [
        "create branch", "new branch", "git branch", "create feature branch",
        "git status", "show git status", "check git status", "repository status",
        "git commit", "commit changes", "commit code", "save changes",
        "git push", "push changes", "push to remote", "upload changes",
        "git workflow", "complete workflow", "ai workflow", "automated workflow",
    ],
    CommandKind.COVERAGE: [
        "coverage", "test coverage", "show coverage", "coverage report",
        "coverage analysis", "test coverage analysis", "coverage stats",
    ],
    CommandKind.ANALYZE_FRAMEWORK: [
        "analyze framework", "analyse framework", "framework analysis",
        "analyze automation", "automation analysis", "framework overview",
        "show framework", "framework stats", "automation stats",
    ],
}

DESCRIPTIONS: Dict[CommandKind, str] = {
    CommandKind.COUNT_TESTS: "Count and analyze test files in the framework",
    CommandKind.COUNT_FEATURES: "Count and list Cucumber feature files",
    CommandKind.RUN_LOGIN: "Execute the login.feature Cucumber tests",
    CommandKind.EXPLAIN_FEATURE: "Read and explain feature file content and validations",
    CommandKind.VIEW_RESULTS: "View last execution results and test reports",
    CommandKind.OPEN_REPORT: "Open test reports in the default browser",
    CommandKind.GIT_OPERATIONS: "Git operations (create branch, commit, push)",
    CommandKind.COVERAGE: "Show test coverage analysis",
    CommandKind.ANALYZE_FRAMEWORK: "Analyze the automation framework structure",
}

# Model-proposed action names accepted for each command.
ACTION_MAP: Dict[str, CommandKind] = {kind.value: kind for kind in CommandKind}


def command_for_action(action: Optional[str]) -> Optional[CommandKind]:
    if not action:
        return None
    return ACTION_MAP.get(action.strip().lower())


def describe(kind: CommandKind) -> str:
    return DESCRIPTIONS.get(kind, "Unknown command")
