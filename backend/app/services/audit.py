"""
Audit logging service for tracking-session lifecycle events.

Entries are flushed inside the caller's transaction so they commit
(or roll back) together with the change they describe.
"""

from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from backend.app.models.audit_log import AuditLog


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    TRACKING_TOKEN_CREATED = "TRACKING_TOKEN_CREATED"
    TRACKING_STARTED = "TRACKING_STARTED"
    TRACKING_COMPLETED = "TRACKING_COMPLETED"
    VEHICLE_SYNC_FAILED = "VEHICLE_SYNC_FAILED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor: Optional[str] = None,
    token_id: Optional[int] = None,
    booking_ref: Optional[str] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record a lifecycle event in the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor: Who triggered it ("driver", "staff", or None for system)
        token_id: Tracking token row the event concerns
        booking_ref: Booking reference the event concerns
        metadata: Additional context as JSON

    Returns:
        Flushed AuditLog instance (caller commits)
    """
    audit_log = AuditLog(
        actor=actor,
        action=action,
        token_id=token_id,
        booking_ref=booking_ref,
        meta_data=metadata
    )

    db.add(audit_log)
    await db.flush()

    return audit_log


async def get_audit_trail(
    db: AsyncSession,
    booking_ref: Optional[str] = None,
    token_id: Optional[int] = None,
    action: Optional[str] = None,
    limit: int = 100
) -> list[AuditLog]:
    """Retrieve audit entries, newest first, with optional filtering."""
    query = select(AuditLog)

    if booking_ref:
        query = query.where(AuditLog.booking_ref == booking_ref)
    if token_id:
        query = query.where(AuditLog.token_id == token_id)
    if action:
        query = query.where(AuditLog.action == action)

    query = query.order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
