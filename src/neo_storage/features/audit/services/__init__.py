"""Audit services package."""

from .audit_emitter import AuditEmitter

__all__ = ["AuditEmitter"]
