"""
Audit Log Database Model.

Tracks tracking-session lifecycle events for operations review.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking lifecycle events.

    Events logged:
    - TRACKING_TOKEN_CREATED
    - TRACKING_STARTED / TRACKING_COMPLETED
    - VEHICLE_SYNC_FAILED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (driver device, staff member, or None for system)
    actor = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Which session the action touched
    token_id = Column(Integer, index=True, nullable=True)
    booking_ref = Column(String(50), index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', booking_ref={self.booking_ref})>"
