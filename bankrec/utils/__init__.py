"""Utility modules."""

from .audit_logger import AuditLogger, SYSTEM_USER, utcnow

__all__ = ["AuditLogger", "SYSTEM_USER", "utcnow"]
