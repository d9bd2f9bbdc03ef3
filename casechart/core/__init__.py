"""Core configuration and utilities."""

from casechart.core.audit import AuditAction, AuditEvent, log_audit, log_record_change
from casechart.core.config import Settings, settings
from casechart.core.logging import configure_logging

__all__ = [
    # Config
    "Settings",
    "settings",
    # Logging
    "configure_logging",
    # Audit
    "AuditAction",
    "AuditEvent",
    "log_audit",
    "log_record_change",
]
