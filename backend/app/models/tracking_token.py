"""
Driver Tracking Token database model.

One row per trackable job session (driver + vehicle + booking assignment).
"""

from sqlalchemy import Column, Integer, String, Text, ForeignKey, DateTime, Enum, Index, text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.tracking_enums import TokenStatus, CompletionType


class TrackingToken(Base):
    """
    Tracking Token model.

    The token string is a bearer capability held by the driver's device.
    Status moves pending -> active -> completed and never backwards.
    total_locations_sent always equals the number of location rows for the token.
    """
    __tablename__ = "driver_tracking_tokens"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    token = Column(String(64), unique=True, nullable=False, index=True)

    # References
    booking_ref = Column(String(50), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False, index=True)
    assignment_id = Column(Integer, ForeignKey('driver_vehicle_assignments.id'), nullable=False, index=True)

    # Partner-side vehicle key
    vehicle_identifier = Column(String(100), nullable=False)

    # Lifecycle
    status = Column(Enum(TokenStatus), default=TokenStatus.PENDING, nullable=False, index=True)
    tracking_interval = Column(Integer, nullable=False, default=30)  # seconds

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    completion_type = Column(Enum(CompletionType), nullable=True)
    completion_notes = Column(Text, nullable=True)

    # Ingest counters
    total_locations_sent = Column(Integer, nullable=False, default=0)
    last_location_at = Column(DateTime(timezone=True), nullable=True)

    # At most one pending or active token per assignment (enum stored by name)
    __table_args__ = (
        Index(
            "uq_driver_tracking_tokens_open_assignment",
            "assignment_id",
            unique=True,
            postgresql_where=text("status <> 'COMPLETED'"),
            sqlite_where=text("status <> 'COMPLETED'"),
        ),
    )

    def __repr__(self):
        return f"<TrackingToken(id={self.id}, booking_ref='{self.booking_ref}', status='{self.status.value}')>"
