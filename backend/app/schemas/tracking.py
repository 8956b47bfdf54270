"""
Driver tracking schemas.
"""

from pydantic import AliasChoices, BaseModel, Field
from datetime import datetime
from typing import Any, Dict, List, Optional

from backend.app.models.tracking_enums import TokenStatus, TrackingStatus, CompletionType


class TokenRequest(BaseModel):
    """Request carrying only the device's tracking token."""
    token: str = Field(..., min_length=1, max_length=64)


class VehicleSyncResult(BaseModel):
    """Diagnostics of the driver/vehicle descriptor push."""
    success: bool
    error: Optional[str] = None
    http_code: Optional[int] = None
    response: Any = None


class TrackingStartResponse(BaseModel):
    """Response after starting a tracking session."""
    status: str  # active
    started_at: datetime
    tracking_interval: int
    environment: str
    message: str
    vehicle_sync: Optional[VehicleSyncResult] = None  # None when already started


class LocationSubmitRequest(BaseModel):
    """Schema for a location ping."""
    token: str = Field(..., min_length=1, max_length=64)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    accuracy: Optional[float] = Field(None, ge=0)
    status: TrackingStatus


class LocationSubmitResponse(BaseModel):
    """Response after a location ping. Durability and delivery are separate flags."""
    location_saved: bool
    synced_to_partner: bool
    sync_error: Optional[str] = None
    http_code: Optional[int] = None
    total_locations_sent: int


class TrackingCompleteRequest(BaseModel):
    """Schema for completing a tracking session."""
    token: str = Field(..., min_length=1, max_length=64)
    status: CompletionType
    notes: Optional[str] = Field(None, max_length=2000)


class TrackingCompleteResponse(BaseModel):
    """Response after completing a tracking session."""
    status: str  # completed
    completed_at: datetime
    completion_type: CompletionType


class TrackingTokenCreate(BaseModel):
    """Schema for making an assignment trackable."""
    assignment_id: int = Field(..., gt=0)
    vehicle_identifier: str = Field(..., min_length=1, max_length=100)
    tracking_interval: Optional[int] = Field(None, gt=0, le=3600)


class TrackingTokenResponse(BaseModel):
    """Tracking token details."""
    token: str
    booking_ref: str
    driver_id: int
    vehicle_id: int
    assignment_id: int
    vehicle_identifier: str
    status: TokenStatus
    tracking_interval: int
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    completion_type: Optional[CompletionType] = None
    total_locations_sent: int
    last_location_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LocationSampleResponse(BaseModel):
    """Stored location sample with its delivery state."""
    id: int
    latitude: float
    longitude: float
    accuracy: Optional[float] = None
    tracking_status: TrackingStatus
    tracked_at: datetime
    synced_to_partner: bool
    sync_http_code: Optional[int] = None
    sync_response: Optional[str] = None
    sync_attempts: int

    class Config:
        from_attributes = True


class SyncStatistics(BaseModel):
    total: int
    synced: int
    failed: int
    last_tracked_at: Optional[datetime] = None


class PartnerProfileSummary(BaseModel):
    """Partner profile with the API key masked."""
    environment: str
    endpoint: str
    version: str
    api_key: str


class AuditEntryResponse(BaseModel):
    """One audit log entry for a tracking session."""
    action: str
    actor: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = Field(None, validation_alias=AliasChoices("meta_data", "metadata"))
    timestamp: datetime

    class Config:
        from_attributes = True


class TrackingDiagnosticsResponse(BaseModel):
    """Diagnostic view of one tracking session."""
    token: TrackingTokenResponse
    latest_locations: List[LocationSampleResponse]
    sync_stats: SyncStatistics
    audit_trail: List[AuditEntryResponse]
    partner_profiles: List[PartnerProfileSummary]
