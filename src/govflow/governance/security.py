# src/govflow/governance/security.py
"""
Security check for user input and generated output.

Input side: credential-like ``key=value`` pairs, PII-shaped tokens,
script/code injection markers and destructive shell commands.

Output side: hard-coded credentials, unsafe process or file-system
operations, DOM injection sinks and data-exfiltration calls.
"""

from __future__ import annotations

from typing import List, Optional, Sequence

from ..models import Severity, Violation, ViolationKind, ViolationSource
from .patterns import PolicyPattern, pii_patterns, scan

_SENSITIVE = ViolationKind.SENSITIVE_DATA_EXPOSURE
_INJECTION = ViolationKind.CODE_INJECTION_ATTEMPT
_MALICIOUS = ViolationKind.MALICIOUS_PATTERN

DEFAULT_INPUT_PATTERNS: List[PolicyPattern] = [
    PolicyPattern(
        r"\b(?:password|passwd|pwd|api[_-]?key|secret|token|access[_-]?key|private[_-]?key)\s*[:=]\s*['\"]?[^\s'\",;]{3,}",
        _SENSITIVE, Severity.HIGH, "credential assignment",
    ),
    *pii_patterns(_SENSITIVE, Severity.HIGH, ViolationSource.SECURITY),
    PolicyPattern(r"<\s*script\b", _INJECTION, Severity.CRITICAL, "script tag"),
    PolicyPattern(r"\bjavascript\s*:", _INJECTION, Severity.CRITICAL, "javascript: URL scheme"),
    PolicyPattern(r"\beval\s*\(", _INJECTION, Severity.CRITICAL, "eval call"),
    PolicyPattern(r"\bFunction\s*\(", _INJECTION, Severity.CRITICAL, "Function constructor", ignore_case=False),
    PolicyPattern(r"<[^>]*\bon[a-z]+\s*=", _INJECTION, Severity.CRITICAL, "inline event handler"),
    PolicyPattern(r"\bdocument\.write(?:ln)?\s*\(", _INJECTION, Severity.CRITICAL, "document.write call"),
    PolicyPattern(r"\.(?:innerHTML|outerHTML)\s*=", _INJECTION, Severity.CRITICAL, "DOM sink assignment"),
    PolicyPattern(r"\brm\s+-(?:rf|fr)\b", _MALICIOUS, Severity.HIGH, "recursive delete command"),
    PolicyPattern(r"\bdel\s+/[sq]\b", _MALICIOUS, Severity.HIGH, "recursive delete command"),
    PolicyPattern(r"\bformat\s+[a-z]:", _MALICIOUS, Severity.HIGH, "disk format command"),
    PolicyPattern(r"\bmkfs\.", _MALICIOUS, Severity.HIGH, "filesystem format command"),
    PolicyPattern(r"\b(?:shutdown|reboot)\s+(?:-[hrs]\b|/[srt]\b|now\b)", _MALICIOUS, Severity.HIGH, "system shutdown command"),
    PolicyPattern(r"\bkill\s+-9\b", _MALICIOUS, Severity.HIGH, "forced process kill"),
    PolicyPattern(r"\btaskkill\b", _MALICIOUS, Severity.HIGH, "forced process kill"),
    PolicyPattern(r"\bdrop\s+(?:table|database)\b", _MALICIOUS, Severity.HIGH, "destructive SQL statement"),
]

DEFAULT_OUTPUT_PATTERNS: List[PolicyPattern] = [
    PolicyPattern(
        r"\b(?:password|passwd|api[_-]?key|secret|token|auth)\s*[:=]\s*['\"][^'\"]{3,}['\"]",
        ViolationKind.HARDCODED_CREDENTIALS, Severity.HIGH, "hard-coded credential",
    ),
    PolicyPattern(r"\beval\s*\(", ViolationKind.UNSAFE_OPERATION, Severity.CRITICAL, "eval call"),
    PolicyPattern(r"\bnew\s+Function\s*\(", ViolationKind.UNSAFE_OPERATION, Severity.CRITICAL, "Function constructor"),
    PolicyPattern(r"(?<!\.)\bexec(?:Sync)?\s*\(", ViolationKind.UNSAFE_OPERATION, Severity.CRITICAL, "process exec call"),
    PolicyPattern(r"(?<!\.)\bspawn(?:Sync)?\s*\(", ViolationKind.UNSAFE_OPERATION, Severity.CRITICAL, "process spawn call"),
    PolicyPattern(r"\bchild_process\b", ViolationKind.UNSAFE_OPERATION, Severity.CRITICAL, "child_process usage"),
    PolicyPattern(r"\bfs\.(?:writeFileSync|unlinkSync|rmSync|rmdirSync)\s*\(", ViolationKind.UNSAFE_OPERATION, Severity.CRITICAL, "synchronous file-system mutation"),
    PolicyPattern(r"\bos\.system\s*\(", ViolationKind.UNSAFE_OPERATION, Severity.CRITICAL, "os.system call"),
    PolicyPattern(r"\bsubprocess\.\w+\([^)]*shell\s*=\s*True", ViolationKind.UNSAFE_OPERATION, Severity.CRITICAL, "shell subprocess"),
    PolicyPattern(r"\.(?:innerHTML|outerHTML)\s*=", ViolationKind.INJECTION_VULNERABILITY, Severity.HIGH, "DOM sink assignment"),
    PolicyPattern(r"\bdocument\.write(?:ln)?\s*\(", ViolationKind.INJECTION_VULNERABILITY, Severity.HIGH, "document.write call"),
    PolicyPattern(r"(?<![.\w])alert\s*\(", ViolationKind.DATA_LEAKAGE, Severity.MEDIUM, "alert dialog"),
    PolicyPattern(r"(?<![.\w])confirm\s*\(", ViolationKind.DATA_LEAKAGE, Severity.MEDIUM, "confirm dialog"),
    PolicyPattern(r"(?<![.\w])prompt\s*\(", ViolationKind.DATA_LEAKAGE, Severity.MEDIUM, "prompt dialog"),
    PolicyPattern(r"\bwindow\.open\s*\(", ViolationKind.DATA_LEAKAGE, Severity.MEDIUM, "window.open call"),
    PolicyPattern(r"\blocation\.href\s*=(?!=)", ViolationKind.DATA_LEAKAGE, Severity.MEDIUM, "navigation redirect"),
]


class SecurityCheck:
    """Pattern-based scanner for raw input and for generated code."""

    def __init__(
        self,
        input_patterns: Optional[Sequence[PolicyPattern]] = None,
        output_patterns: Optional[Sequence[PolicyPattern]] = None,
    ):
        self.input_patterns = list(input_patterns or DEFAULT_INPUT_PATTERNS)
        self.output_patterns = list(output_patterns or DEFAULT_OUTPUT_PATTERNS)

    def scan_input(self, text: str) -> List[Violation]:
        return scan(text, self.input_patterns)

    def scan_output(self, code: str) -> List[Violation]:
        return scan(code, self.output_patterns)
