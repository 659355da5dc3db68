"""Pydantic schemas shared across the API."""
from __future__ import annotations

import datetime as dt
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Role(str, Enum):
    PARENT = "parent"
    ADMIN = "admin"


class ChildTag(str, Enum):
    DISABILITY = "⚠️"
    UNDER_FIVE = "🥸"
    MINOR = "👦"


CHILD_TAG_DESCRIPTIONS = {
    ChildTag.DISABILITY: "Child with a disability; guardian stays on site, entry is free",
    ChildTag.UNDER_FIVE: "Under 5; must be accompanied by an adult the whole visit",
    ChildTag.MINOR: "Under 18",
}


class Profile(BaseModel):
    id: str
    email: Optional[str] = None
    full_name: Optional[str] = None
    phone: Optional[str] = None
    role: Role = Role.PARENT
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class Child(BaseModel):
    id: str
    parent_id: str
    name: str
    birth_date: date
    medical_notes: Optional[str] = None
    has_disability: bool = False
    emergency_contact: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    visits: int = 0
    age: Optional[int] = Field(default=None, description="Whole years, derived at read time")
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class QRSession(BaseModel):
    id: str
    child_id: str
    parent_id: Optional[str] = None
    token: str
    is_active: bool = False
    is_free: bool = False
    has_disability: bool = False
    entry_time: Optional[datetime] = None
    exit_time: Optional[datetime] = None
    expires_at: datetime
    created_at: Optional[datetime] = None


class ScanAction(str, Enum):
    CHECK_IN = "check_in"
    CHECK_OUT = "check_out"


class ScanRejection(str, Enum):
    INVALID_FORMAT = "invalid_format"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    CLOSED = "closed"


class ScanResult(BaseModel):
    valid: bool
    reason: Optional[ScanRejection] = None
    action: Optional[ScanAction] = None
    session: Optional[QRSession] = None
    child: Optional[Child] = None


class LoyaltyProgram(BaseModel):
    id: Optional[str] = None
    parent_id: str
    seals: int = Field(default=0, ge=0)
    free_entries: int = Field(default=0, ge=0)
    last_updated: Optional[datetime] = None


class PartyStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


class PartyBooking(BaseModel):
    id: str
    parent_id: str
    child_name: str
    date: dt.date
    time: str
    guests: int
    package_type: str
    total_price: float
    notes: Optional[str] = None
    status: PartyStatus = PartyStatus.PENDING
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TicketType(str, Enum):
    DOUBT = "doubt"
    SUGGESTION = "suggestion"
    COMPLAINT = "complaint"


class TicketStatus(str, Enum):
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    CLOSED = "closed"


class TicketPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SupportTicket(BaseModel):
    id: str
    parent_id: str
    type: TicketType
    subject: str
    description: str
    priority: TicketPriority = TicketPriority.MEDIUM
    status: TicketStatus = TicketStatus.OPEN
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AlertStatus(str, Enum):
    ACTIVE = "active"
    RESOLVED = "resolved"


class EmergencyAlert(BaseModel):
    id: str
    child_id: str
    type: str
    message: str
    operator_id: str
    status: AlertStatus = AlertStatus.ACTIVE
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None


class DailyStats(BaseModel):
    day: date
    total_entries: int = 0
    paid_entries: int = 0
    free_entries: int = 0
    disability_entries: int = 0
    active_entries: int = 0
    completed_entries: int = 0
    average_stay_minutes: Optional[float] = None


class SessionWithChild(BaseModel):
    session: QRSession
    child: Child
