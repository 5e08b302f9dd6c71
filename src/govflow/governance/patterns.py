# src/govflow/governance/patterns.py
"""
Regex pattern definitions shared by the security and compliance checks.

Detection is pattern-based, not semantic: false positives and false
negatives are expected.  Each :class:`PolicyPattern` yields at most one
violation per scanned text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from re import Pattern
from typing import Iterable, List

from ..models import Severity, Violation, ViolationKind, ViolationSource

logger = logging.getLogger(__name__)


@dataclass
class PolicyPattern:
    """A compiled regex mapped to a violation kind and severity."""

    pattern: str
    kind: ViolationKind
    severity: Severity
    description: str
    source: ViolationSource = ViolationSource.SECURITY
    ignore_case: bool = True
    compiled: Pattern | None = field(default=None, repr=False)

    def __post_init__(self):
        try:
            self.compiled = re.compile(self.pattern, re.IGNORECASE if self.ignore_case else 0)
        except re.error as e:
            logger.warning(f"Invalid policy pattern '{self.pattern}': {e}")
            self.compiled = None

    def count(self, text: str) -> int:
        if not self.compiled:
            return 0
        return sum(1 for _ in self.compiled.finditer(text))

    def matches(self, text: str) -> bool:
        return bool(self.compiled and self.compiled.search(text))

    def violation(self, occurrences: int) -> Violation:
        suffix = f" ({occurrences} occurrences)" if occurrences > 1 else ""
        return Violation(
            kind=self.kind,
            severity=self.severity,
            message=f"Potential {self.description} detected{suffix}",
            source=self.source,
        )


def scan(text: str, patterns: Iterable[PolicyPattern]) -> List[Violation]:
    """Run ``patterns`` over ``text`` in order, one violation per matching pattern."""
    violations: List[Violation] = []
    if not text:
        return violations
    for p in patterns:
        hits = p.count(text)
        if hits:
            violations.append(p.violation(hits))
    return violations


# =============================================================================
# PERSONAL DATA
# =============================================================================

EMAIL = r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"
SSN = r"\b\d{3}-\d{2}-\d{4}\b"
CARD_NUMBER = r"\b\d{4}[\s-]?\d{4}[\s-]?\d{4}[\s-]?\d{4}\b"
IBAN = r"\b[A-Z]{2}\d{2}[A-Z0-9]{10,30}\b"
PHONE = r"(?:\b\d{10,11}\b|\(\d{3}\)\s*\d{3}-\d{4}\b|\+\d{1,3}[\s-]\d{3}[\s-]\d{3}[\s-]\d{4}\b)"


def pii_patterns(kind: ViolationKind, severity: Severity, source: ViolationSource) -> List[PolicyPattern]:
    """PII detectors parameterized by the check that reports them."""
    return [
        PolicyPattern(EMAIL, kind, severity, "email address", source),
        PolicyPattern(SSN, kind, severity, "social security number", source),
        PolicyPattern(CARD_NUMBER, kind, severity, "payment card number", source),
        PolicyPattern(IBAN, kind, severity, "IBAN bank account number", source, ignore_case=False),
        PolicyPattern(PHONE, kind, severity, "phone number", source),
    ]
