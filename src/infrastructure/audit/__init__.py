"""Audit infrastructure components.

This package provides the audit logger every service writes through.
"""

from src.infrastructure.audit.audit_logger import AUDIT_TABLE, AuditLogger

__all__ = ['AUDIT_TABLE', 'AuditLogger']
