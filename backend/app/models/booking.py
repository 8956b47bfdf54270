"""
Booking and Assignment database models.

Both are owned by the wider staff portal. The tracking core only
propagates lifecycle status into them.
"""

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.tracking_enums import AssignmentStatus, BookingInternalStatus


class Booking(Base):
    """
    Booking model.

    booking_ref correlates the local booking with the partner platform's record.
    """
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_ref = Column(String(50), unique=True, nullable=False, index=True)
    passenger_name = Column(String(255), nullable=True)
    pickup_date = Column(DateTime(timezone=True), nullable=True)

    internal_status = Column(Enum(BookingInternalStatus), default=BookingInternalStatus.PENDING, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Booking(ref='{self.booking_ref}', internal_status='{self.internal_status.value}')>"


class DriverVehicleAssignment(Base):
    """Pairing of a driver and vehicle to a booking."""
    __tablename__ = "driver_vehicle_assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    booking_ref = Column(String(50), nullable=False, index=True)
    driver_id = Column(Integer, ForeignKey('drivers.id'), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey('vehicles.id'), nullable=False, index=True)

    status = Column(Enum(AssignmentStatus), default=AssignmentStatus.ASSIGNED, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<DriverVehicleAssignment(id={self.id}, booking_ref='{self.booking_ref}', status='{self.status.value}')>"
