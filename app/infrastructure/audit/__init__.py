"""
Audit logging infrastructure for credential lifecycle and data access tracking.
"""

from app.infrastructure.audit.audit_logger import AuditAction, AuditLogger, audit_logger

__all__ = ["AuditAction", "AuditLogger", "audit_logger"]
