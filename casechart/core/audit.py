"""Audit logging for case record mutations.

Every change to a case chart that needs persisting is recorded:
- Diagnosis list edits (add, remove, reorder, replace)
- Link rewrites on billing codes and orders/referrals
- Default rows materialized for diagnosis groups
- Measurement edits and region selection changes

This audit log should be shipped to an append-only store by the
embedding application.
"""

import logging
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

# Separate audit logger for record-change events
audit_logger = logging.getLogger("audit")


class AuditAction(str, Enum):
    """Types of auditable actions."""

    # Data access
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    # Chart structure
    REORDER = "reorder"
    RELINK = "relink"
    MATERIALIZE = "materialize"

    # System
    ERROR = "error"


class AuditEvent(BaseModel):
    """Audit event record.

    Contains all relevant context for an auditable action.
    """

    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    action: AuditAction = Field(..., description="Type of action performed")
    resource_type: str = Field(..., description="Part of the case record touched")
    resource_id: str | None = Field(None, description="Code or key of the touched item")
    case_id: str | None = Field(None, description="Case record ID if known")
    user_id: str | None = Field(None, description="User who performed action")
    details: dict | None = Field(None, description="Additional context")
    success: bool = Field(True, description="Whether action succeeded")


def log_audit(
    action: AuditAction,
    resource_type: str,
    resource_id: str | None = None,
    case_id: str | None = None,
    user_id: str | None = None,
    details: dict | None = None,
    success: bool = True,
) -> AuditEvent:
    """Log an audit event.

    Args:
        action: Type of action being audited
        resource_type: The part of the case record being changed
        resource_id: Specific code or key
        case_id: Case record the change belongs to
        user_id: User performing the action
        details: Additional context
        success: Whether the action succeeded

    Returns:
        The created AuditEvent
    """
    event = AuditEvent(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        case_id=case_id,
        user_id=user_id,
        details=details,
        success=success,
    )

    log_level = logging.INFO if success else logging.WARNING
    audit_logger.log(
        log_level,
        f"AUDIT: {action.value} {resource_type}"
        f"{f'/{resource_id}' if resource_id else ''}"
        f"{f' case={case_id}' if case_id else ''}"
        f" success={success}",
        extra={"audit_event": event.model_dump()},
    )

    return event


def log_record_change(
    action: AuditAction,
    resource_type: str,
    case_id: str | None = None,
    resource_id: str | None = None,
    **details: object,
) -> AuditEvent:
    """Log a change to a case record.

    Convenience wrapper used by the chart session service.

    Args:
        action: Type of change
        resource_type: e.g. "diagnosis_codes", "billing_codes", "arom"
        case_id: Case record ID
        resource_id: Code or key that changed
        **details: Extra context stored on the event

    Returns:
        The created AuditEvent
    """
    return log_audit(
        action=action,
        resource_type=resource_type,
        resource_id=resource_id,
        case_id=case_id,
        details=dict(details) or None,
    )
