"""Audit feature for neo-storage.

Immutable records of permission decisions and lifecycle transitions:
- entities/: AuditEvent and the AuditSink protocol
- services/: AuditEmitter
"""

from .entities import AuditEvent, AuditSink
from .services import AuditEmitter

__all__ = [
    "AuditEvent",
    "AuditSink",
    "AuditEmitter",
]
