# src/govflow/audit/log.py
"""
Append-only audit trail for governed actions.

Every governed action, successful or not, produces exactly one
:class:`~govflow.models.AuditEntry`.  Failures carry a ``*_FAILURE`` action
tag so :meth:`AuditLog.summarize` can compute an error rate.

Persistence:
    Entries are written as JSON Lines, one file per UTC calendar day
    (``audit-YYYY-MM-DD.jsonl``).  Files are only ever appended to; the
    only deletion path is :meth:`AuditLog.purge_expired`, which removes
    whole day files that fell out of the retention window.

Querying:
    ``query`` is a full scan with predicate filtering.  Audit volume is
    bounded by governed-call volume, so no index is kept.

Usage:
    >>> audit = AuditLog(directory="~/.local/share/govflow/audit")
    >>> audit.record("CODE_GENERATION_SUCCESS", {"tenant_id": "acme", "tokens_used": 412})
    >>> audit.summarize(AuditQuery(tenant_id="acme")).error_rate
    0.0
"""

from __future__ import annotations

import csv
import io
import json
import logging
import threading
import uuid
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Sequence

from pydantic import ValidationError

from ..exceptions import AuditLogError
from ..models import AuditEntry, AuditQuery, AuditSeverityClass, AuditSummary

logger = logging.getLogger(__name__)

FILE_PREFIX = "audit-"
FILE_SUFFIX = ".jsonl"
REDACTED = "***REDACTED***"

_PREFIX_CLASSES = {
    "SECURITY": AuditSeverityClass.SECURITY,
    "COMPLIANCE": AuditSeverityClass.COMPLIANCE,
    "PERFORMANCE": AuditSeverityClass.PERFORMANCE,
    "USER": AuditSeverityClass.USER_ACTION,
    "SYSTEM": AuditSeverityClass.SYSTEM,
}

_ENTRY_FIELDS = ("tenant_id", "user_id", "resource")


def day_file_name(day: date) -> str:
    return f"{FILE_PREFIX}{day.isoformat()}{FILE_SUFFIX}"


def classify_action(action: str) -> AuditSeverityClass:
    """Derive the severity class from the action's prefix."""
    return _PREFIX_CLASSES.get(action.split("_", 1)[0], AuditSeverityClass.GOVERNANCE)


class AuditLog:
    """
    Thread-safe, append-only audit trail.

    Entries are kept in memory for querying and, when ``directory`` is set,
    appended to the current day's JSONL file.  A failed file write is logged
    and does not drop the in-memory entry.
    """

    def __init__(
        self,
        directory: Optional[str | Path] = None,
        redact_keys: Optional[Sequence[str]] = None,
        clock=None,
    ):
        """
        Args:
            directory: Where day files live. None keeps entries in memory only.
            redact_keys: Detail keys (case-insensitive exact match) whose
                values are replaced before the entry is stored.
            clock: Zero-argument callable returning an aware datetime.
        """
        self._directory = Path(directory).expanduser() if directory else None
        self._redact_keys = [k.lower() for k in (redact_keys or ())]
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.Lock()
        self._entries: List[AuditEntry] = []
        self._last_timestamp: Optional[datetime] = None

        if self._directory is not None:
            self._directory.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Optional[Path]:
        return self._directory

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def record(
        self,
        action: str,
        details: Optional[Dict[str, Any]] = None,
        *,
        tenant_id: Optional[str] = None,
        user_id: Optional[str] = None,
        resource: Optional[str] = None,
        severity_class: Optional[AuditSeverityClass] = None,
    ) -> AuditEntry:
        """
        Append one entry and return it.

        ``tenant_id``, ``user_id`` and ``resource`` may be passed either as
        keywords or inside ``details``; keywords win.  Missing values default
        to ``"system"``/``"ai_system"``.
        """
        if not action:
            raise AuditLogError("Audit action tag must not be empty.")

        payload = dict(details or {})
        fields = {name: payload.pop(name, None) for name in _ENTRY_FIELDS}
        if tenant_id is not None:
            fields["tenant_id"] = tenant_id
        if user_id is not None:
            fields["user_id"] = user_id
        if resource is not None:
            fields["resource"] = resource
        explicit_class = payload.pop("severity_class", None)

        with self._lock:
            timestamp = self._clock()
            if self._last_timestamp is not None and timestamp < self._last_timestamp:
                timestamp = self._last_timestamp
            self._last_timestamp = timestamp

            entry = AuditEntry(
                id=f"audit_{int(timestamp.timestamp() * 1000)}_{uuid.uuid4().hex[:9]}",
                timestamp=timestamp,
                action=action,
                details=self._redact(payload),
                severity_class=severity_class or explicit_class or classify_action(action),
                **{k: str(v) for k, v in fields.items() if v is not None},
            )
            self._entries.append(entry)
            self._append_to_file(entry)

        logger.debug(f"Audit: {entry.action} tenant={entry.tenant_id} user={entry.user_id} id={entry.id}")
        return entry

    def _append_to_file(self, entry: AuditEntry) -> None:
        if self._directory is None:
            return
        path = self._directory / day_file_name(entry.timestamp.astimezone(timezone.utc).date())
        try:
            with open(path, "a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")
        except OSError as e:
            logger.error(f"Failed to persist audit entry {entry.id} to {path}: {e}")

    def _redact(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                k: REDACTED if str(k).lower() in self._redact_keys else self._redact(v)
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [self._redact(v) for v in value]
        return value

    # ------------------------------------------------------------------
    # Category helpers
    # ------------------------------------------------------------------

    def log_security_event(self, event: str, details: Optional[Dict[str, Any]] = None, severity: str = "HIGH", **fields) -> AuditEntry:
        return self.record(f"SECURITY_{event}", {**(details or {}), "severity": severity}, **fields)

    def log_compliance_event(self, event: str, details: Optional[Dict[str, Any]] = None, severity: str = "MEDIUM", **fields) -> AuditEntry:
        return self.record(f"COMPLIANCE_{event}", {**(details or {}), "severity": severity}, **fields)

    def log_performance_event(self, metric: str, details: Optional[Dict[str, Any]] = None, **fields) -> AuditEntry:
        return self.record(f"PERFORMANCE_{metric}", {**(details or {}), "severity": "LOW"}, **fields)

    def log_user_action(self, action: str, details: Optional[Dict[str, Any]] = None, **fields) -> AuditEntry:
        return self.record(f"USER_{action}", {**(details or {}), "severity": "LOW"}, **fields)

    def log_system_event(self, event: str, details: Optional[Dict[str, Any]] = None, severity: str = "LOW", **fields) -> AuditEntry:
        return self.record(f"SYSTEM_{event}", {**(details or {}), "severity": severity}, **fields)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def query(self, filters: Optional[AuditQuery] = None) -> List[AuditEntry]:
        """Return matching entries in recording order (the newest ``limit`` if set)."""
        filters = filters or AuditQuery()
        with self._lock:
            matched = [e for e in self._entries if filters.matches(e)]
        if filters.limit is not None:
            matched = matched[-filters.limit:]
        return matched

    def summarize(self, filters: Optional[AuditQuery] = None) -> AuditSummary:
        entries = self.query(filters)
        summary = AuditSummary(total_events=len(entries))
        response_times: List[float] = []

        for entry in entries:
            event_type = entry.action.split("_", 1)[0]
            summary.events_by_type[event_type] = summary.events_by_type.get(event_type, 0) + 1
            summary.events_by_user[entry.user_id] = summary.events_by_user.get(entry.user_id, 0) + 1
            severity = str(entry.details.get("severity", entry.severity_class.value))
            summary.events_by_severity[severity] = summary.events_by_severity.get(severity, 0) + 1

            elapsed = entry.details.get("execution_time_ms")
            if isinstance(elapsed, (int, float)):
                response_times.append(float(elapsed))
            if entry.is_failure:
                summary.error_count += 1
            if entry.severity_class is AuditSeverityClass.SECURITY:
                summary.security_events += 1
            elif entry.severity_class is AuditSeverityClass.COMPLIANCE:
                summary.compliance_events += 1

        if response_times:
            summary.average_response_time_ms = sum(response_times) / len(response_times)
        if entries:
            summary.error_rate = summary.error_count / len(entries)
        return summary

    def export(self, fmt: Literal["json", "csv", "txt"] = "json", filters: Optional[AuditQuery] = None) -> str:
        entries = self.query(filters)
        if fmt == "json":
            return json.dumps([e.model_dump(mode="json") for e in entries], indent=2)
        if fmt == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer)
            writer.writerow(["id", "timestamp", "tenant_id", "user_id", "action", "resource", "severity_class", "details"])
            for e in entries:
                writer.writerow([
                    e.id, e.timestamp.isoformat(), e.tenant_id, e.user_id, e.action,
                    e.resource, e.severity_class.value, json.dumps(e.details, default=str),
                ])
            return buffer.getvalue()
        if fmt == "txt":
            return "\n".join(
                f"[{e.timestamp.isoformat()}] {e.action} - tenant={e.tenant_id} user={e.user_id} "
                f"resource={e.resource} details={json.dumps(e.details, default=str)}"
                for e in entries
            )
        raise ValueError(f"Unsupported audit export format: {fmt}")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def load(self) -> int:
        """
        Read existing day files into memory. Returns the number of entries loaded.

        Malformed lines are skipped with a warning.
        """
        if self._directory is None:
            return 0
        loaded: List[AuditEntry] = []
        for path in sorted(self._directory.glob(f"{FILE_PREFIX}*{FILE_SUFFIX}")):
            with open(path, "r", encoding="utf-8") as f:
                for line_no, line in enumerate(f, start=1):
                    if not line.strip():
                        continue
                    try:
                        loaded.append(AuditEntry.model_validate_json(line))
                    except ValidationError as e:
                        logger.warning(f"Skipping malformed audit line {path.name}:{line_no}: {e}")
        with self._lock:
            known = {e.id for e in self._entries}
            fresh = [e for e in loaded if e.id not in known]
            self._entries = sorted(fresh + self._entries, key=lambda e: e.timestamp)
            if self._entries:
                self._last_timestamp = max(self._last_timestamp or self._entries[-1].timestamp, self._entries[-1].timestamp)
        logger.info(f"Loaded {len(fresh)} audit entries from {self._directory}")
        return len(fresh)

    def purge_expired(self, retention_days: int, now: Optional[datetime] = None) -> int:
        """Delete day files (and their in-memory entries) older than the retention window."""
        cutoff = ((now or self._clock()) - timedelta(days=retention_days)).date()
        removed_files = 0
        with self._lock:
            before = len(self._entries)
            self._entries = [
                e for e in self._entries if e.timestamp.astimezone(timezone.utc).date() >= cutoff
            ]
            dropped = before - len(self._entries)
            if self._directory is not None:
                for path in self._directory.glob(f"{FILE_PREFIX}*{FILE_SUFFIX}"):
                    try:
                        day = date.fromisoformat(path.name[len(FILE_PREFIX):-len(FILE_SUFFIX)])
                    except ValueError:
                        continue
                    if day < cutoff:
                        path.unlink()
                        removed_files += 1
        if dropped or removed_files:
            logger.info(f"Purged {dropped} audit entries and {removed_files} day files older than {cutoff}")
        return dropped

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
