"""Audit entities package."""

from .audit_event import AuditEvent
from .protocols import AuditSink

__all__ = [
    "AuditEvent",
    "AuditSink",
]
