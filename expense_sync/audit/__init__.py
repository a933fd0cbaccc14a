"""Audit logging package."""

from expense_sync.audit.logger import SyncAuditLogger, configure_logging

__all__ = ["SyncAuditLogger", "configure_logging"]
