"""
Pydantic Schemas for the Alert Review API.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class AlertResponse(BaseModel):
    """Schema for an alert notification."""
    id: Optional[int] = None
    symbol: str
    severity: str
    domain: str
    alert_type: str
    message: str
    affected_sources: List[str] = []
    recommendation: str = ""
    variance: Optional[float] = None
    threshold: Optional[float] = None
    details: Dict[str, Any] = {}
    requires_human_review: bool
    timestamp: datetime
    
    # Review state
    reviewed: bool
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None


class AlertListResponse(BaseModel):
    alerts: List[AlertResponse]
    count: int


class AlertStatisticsResponse(BaseModel):
    total: int
    pending: int
    reviewed: int
    by_severity: Dict[str, int] = {}
    by_type: Dict[str, int] = {}


class ReviewRequest(BaseModel):
    """Schema for marking an alert reviewed."""
    reviewed_by: str = Field(..., min_length=1, max_length=128)
    notes: Optional[str] = Field(None, max_length=2000)
