# src/govflow/audit/__init__.py
"""Audit trail for governed actions."""

from .log import AuditLog, classify_action, day_file_name

__all__ = ["AuditLog", "classify_action", "day_file_name"]
