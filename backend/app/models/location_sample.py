"""
Location Sample database model.

Stores every accepted driver location ping together with its partner delivery state.
"""

from sqlalchemy import Column, Integer, String, Float, Boolean, Text, ForeignKey, DateTime, Enum, Index
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.tracking_enums import TrackingStatus


class LocationSample(Base):
    """
    Location Sample model.

    Coordinates and tracked_at never change after insert.
    Only the sync_* / synced_to_partner fields are revised (ingest or backfill).
    """
    __tablename__ = "driver_location_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # References
    token_id = Column(Integer, ForeignKey('driver_tracking_tokens.id'), nullable=False, index=True)
    booking_ref = Column(String(50), nullable=False, index=True)  # Denormalized for reporting

    # GPS coordinates
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    accuracy = Column(Float, nullable=True)  # GPS accuracy in meters

    tracking_status = Column(Enum(TrackingStatus), nullable=False)
    tracked_at = Column(DateTime(timezone=True), nullable=False)  # Capture time

    # Partner delivery
    synced_to_partner = Column(Boolean, nullable=False, default=False)
    sync_http_code = Column(Integer, nullable=True)
    sync_response = Column(Text, nullable=True)
    sync_attempts = Column(Integer, nullable=False, default=0)
    last_sync_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('ix_driver_location_logs_undelivered', 'synced_to_partner', 'tracked_at'),
    )

    def __repr__(self):
        return f"<LocationSample(token_id={self.token_id}, lat={self.latitude}, lng={self.longitude}, synced={self.synced_to_partner})>"
