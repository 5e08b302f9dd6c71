# src/govflow/commands/framework.py
"""
Read-only inspection of a Playwright + Cucumber test framework tree:
test and scenario counts, page-object coverage and execution reports.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

EXCLUDED_DIRS = {"node_modules", ".git", "dist", "build", "playwright-report", "test-results", "coverage"}

TEST_CASE = re.compile(r"\b(?:test|it)(?:\.only|\.skip)?\s*\(\s*['\"`]")
SCENARIO = re.compile(r"^\s*Scenario(?: Outline)?:", re.MULTILINE)
PAGE_CLASS = re.compile(r"export\s+class\s+(\w+)")


class FrameworkScanner:
    """Inspects the automation project rooted at ``root``."""

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def exists(self) -> bool:
        return self.root.is_dir()

    def _files(self, pattern: str) -> List[Path]:
        if not self.exists():
            return []
        return sorted(
            p for p in self.root.rglob(pattern)
            if p.is_file() and not EXCLUDED_DIRS.intersection(p.relative_to(self.root).parts)
        )

    def rel(self, path: Path) -> str:
        return path.relative_to(self.root).as_posix()

    def _read(self, path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning(f"Could not read {path}: {e}")
            return ""

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    def spec_files(self) -> List[Path]:
        return self._files("*.spec.ts") + self._files("*.test.ts")

    def feature_files(self) -> List[Path]:
        return self._files("*.feature")

    def step_files(self) -> List[Path]:
        return [p for p in self._files("*.ts") if "steps" in p.relative_to(self.root).parts]

    def page_objects(self) -> List[Path]:
        return [
            p for p in self._files("*.ts")
            if "pages" in p.relative_to(self.root).parts and not p.name.endswith((".spec.ts", ".test.ts"))
        ]

    def count_tests(self) -> Dict[str, Any]:
        per_file = {self.rel(p): len(TEST_CASE.findall(self._read(p))) for p in self.spec_files()}
        scenarios = self.count_features()["scenarios"]
        return {
            "spec_files": len(per_file),
            "test_cases": sum(per_file.values()),
            "scenarios": scenarios,
            "total": sum(per_file.values()) + scenarios,
            "by_file": per_file,
        }

    def count_features(self) -> Dict[str, Any]:
        per_file = {self.rel(p): len(SCENARIO.findall(self._read(p))) for p in self.feature_files()}
        return {"feature_files": len(per_file), "scenarios": sum(per_file.values()), "by_file": per_file}

    def find_feature(self, name: str) -> Optional[Path]:
        wanted = name if name.endswith(".feature") else f"{name}.feature"
        for path in self.feature_files():
            if path.name.lower() == wanted.lower():
                return path
        return None

    def analyze(self) -> Dict[str, Any]:
        return {
            "root": str(self.root),
            "spec_files": len(self.spec_files()),
            "feature_files": len(self.feature_files()),
            "step_definition_files": len(self.step_files()),
            "page_objects": [self.rel(p) for p in self.page_objects()],
            "test_cases": self.count_tests()["test_cases"],
            "scenarios": self.count_features()["scenarios"],
        }

    def coverage(self) -> Dict[str, Any]:
        """
        Page-object coverage: a page object is covered when any spec or
        step-definition file references its exported class.
        """
        consumers = "\n".join(self._read(p) for p in self.spec_files() + self.step_files())
        covered: List[str] = []
        uncovered: List[str] = []
        for path in self.page_objects():
            classes = PAGE_CLASS.findall(self._read(path)) or [path.stem]
            target = covered if any(re.search(rf"\b{re.escape(c)}\b", consumers) for c in classes) else uncovered
            target.append(self.rel(path))
        total = len(covered) + len(uncovered)
        return {
            "page_objects": total,
            "covered": covered,
            "uncovered": uncovered,
            "coverage_percent": round(100.0 * len(covered) / total, 1) if total else 0.0,
        }

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def reports(self) -> Dict[str, Any]:
        found: Dict[str, Any] = {}
        html = self.root / "cucumber-report.html"
        if html.is_file():
            found["cucumber_html"] = str(html)
        report_json = self.root / "cucumber-report.json"
        if report_json.is_file():
            found["cucumber_json"] = str(report_json)
            found["cucumber_summary"] = self._cucumber_summary(report_json)
        playwright = self.root / "playwright-report" / "index.html"
        if playwright.is_file():
            found["playwright_html"] = str(playwright)
        results_dir = self.root / "test-results"
        if results_dir.is_dir():
            found["test_results"] = sorted(p.name for p in results_dir.iterdir())
        return found

    def _cucumber_summary(self, path: Path) -> Dict[str, int]:
        try:
            features = json.loads(self._read(path) or "[]")
        except json.JSONDecodeError as e:
            logger.warning(f"Unreadable cucumber report {path}: {e}")
            return {"features": 0, "scenarios": 0, "passed": 0, "failed": 0}
        scenarios = passed = failed = 0
        for feature in features if isinstance(features, list) else []:
            for element in feature.get("elements", []):
                scenarios += 1
                statuses = [s.get("result", {}).get("status") for s in element.get("steps", [])]
                if statuses and all(status == "passed" for status in statuses):
                    passed += 1
                elif "failed" in statuses:
                    failed += 1
        return {
            "features": len(features) if isinstance(features, list) else 0,
            "scenarios": scenarios,
            "passed": passed,
            "failed": failed,
        }

    def report_to_open(self) -> Optional[Path]:
        for candidate in (self.root / "playwright-report" / "index.html", self.root / "cucumber-report.html"):
            if candidate.is_file():
                return candidate
        return None
