"""Audit sink implementations."""

from .sinks import InMemoryAuditSink, LoggingAuditSink

__all__ = [
    "InMemoryAuditSink",
    "LoggingAuditSink",
]
