"""
Tracking-related enumerations.
"""

import enum


class TokenStatus(str, enum.Enum):
    """Tracking token lifecycle. Only moves forward."""
    PENDING = "pending"  # Created, driver has not started the job
    ACTIVE = "active"  # Job started, location pings accepted
    COMPLETED = "completed"  # Terminal

    @property
    def rank(self) -> int:
        return _TOKEN_STATUS_ORDER.index(self)


_TOKEN_STATUS_ORDER = [TokenStatus.PENDING, TokenStatus.ACTIVE, TokenStatus.COMPLETED]


class TrackingStatus(str, enum.Enum):
    """Status the driver reports with each location ping (partner vocabulary)."""
    BEFORE_PICKUP = "BEFORE_PICKUP"
    WAITING_FOR_CUSTOMER = "WAITING_FOR_CUSTOMER"
    AFTER_PICKUP = "AFTER_PICKUP"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


class CompletionType(str, enum.Enum):
    """How a job ended."""
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"


class AssignmentStatus(str, enum.Enum):
    """Driver/vehicle assignment status."""
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BookingInternalStatus(str, enum.Enum):
    """Operator-side booking lifecycle flag."""
    PENDING = "pending"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    NO_SHOW = "no_show"


# Terminal status propagated to the owning assignment and booking
ASSIGNMENT_STATUS_ON_COMPLETION = {
    CompletionType.COMPLETED: AssignmentStatus.COMPLETED,
    CompletionType.NO_SHOW: AssignmentStatus.CANCELLED,
}

BOOKING_STATUS_ON_COMPLETION = {
    CompletionType.COMPLETED: BookingInternalStatus.COMPLETED,
    CompletionType.NO_SHOW: BookingInternalStatus.NO_SHOW,
}
