# eshaafi/schemas.py
from datetime import datetime, date, time
from typing import List, Optional
from pydantic import BaseModel, Field, field_validator, model_validator
from .models import AuditAction, BookingStatus, BookingType


def parse_clock(value) -> str:
    """Normalize 'H:MM', 'HH:MM' or 'HH:MM:SS' (or a time) to 'HH:MM'."""
    if isinstance(value, time):
        return value.strftime("%H:%M")
    if not isinstance(value, str):
        raise ValueError("Time must be a string in HH:MM format")
    parts = value.strip().split(":")
    if len(parts) not in (2, 3) or not all(p.isdigit() for p in parts):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    hour, minute = int(parts[0]), int(parts[1])
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise ValueError(f"Invalid time '{value}', expected HH:MM")
    return f"{hour:02d}:{minute:02d}"


def minutes_between(start: str, end: str) -> int:
    sh, sm = map(int, start.split(":"))
    eh, em = map(int, end.split(":"))
    return (eh * 60 + em) - (sh * 60 + sm)


# --- Base Schemas ---
class BaseSchema(BaseModel):
    class Config:
        from_attributes = True


# --- Availability Slot Schemas ---
class SlotCreate(BaseSchema):
    date: date
    start_time: str
    end_time: str
    duration: Optional[int] = Field(None, gt=0, description="Minutes; derived from the window when omitted")
    location: Optional[str] = Field(None, max_length=255)
    custom: bool = False

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def normalize_clock(cls, v):
        return parse_clock(v)

    @field_validator("location", mode="before")
    @classmethod
    def empty_location_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @model_validator(mode='after')
    def check_window(self):
        window = minutes_between(self.start_time, self.end_time)
        if window <= 0:
            raise ValueError('end_time must be after start_time')
        if self.duration is None:
            self.duration = window
        return self

class SlotBatchCreate(BaseSchema):
    slots: List[SlotCreate] = Field(..., min_length=1)

class SlotResponse(BaseSchema):
    id: int
    doctor_id: int
    date: date
    start_time: str
    end_time: str
    duration: int
    location: Optional[str] = None
    custom: bool = False

class SlotAvailability(SlotResponse):
    is_booked: bool = False

class SlotBatchResult(BaseSchema):
    created: int
    skipped: int
    slots: List[SlotResponse] = []


# --- Booking Schemas ---
class BookingCreate(BaseSchema):
    doctor_id: int
    date_time: datetime
    reason: Optional[str] = None
    symptoms: Optional[str] = None
    type: BookingType = BookingType.PHYSICAL

class BookingStatusUpdate(BaseSchema):
    status: BookingStatus
    rejection_reason: Optional[str] = None

class BookingStatusResponse(BaseSchema):
    id: int
    status: BookingStatus
    rejection_reason: Optional[str] = None

class FollowUpCreate(BaseSchema):
    date_time: datetime
    type: BookingType = BookingType.PHYSICAL
    reason: Optional[str] = None

class BookingResponse(BaseSchema):
    id: int
    patient_id: int
    doctor_id: int
    date_time: datetime
    reason: Optional[str] = None
    symptoms: Optional[str] = None
    type: BookingType
    status: BookingStatus
    rejection_reason: Optional[str] = None
    video_room_id: Optional[str] = None
    original_booking_id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class VideoInfoResponse(BaseSchema):
    room_code: str
    date_time: datetime
    type: BookingType


# --- Prescription Schemas ---
class PrescriptionBase(BaseSchema):
    medications: str = Field(..., min_length=1)
    dosage: str = Field(..., min_length=1)
    frequency: str = Field(..., min_length=1)
    duration: str = Field(..., min_length=1)
    notes: Optional[str] = None

class PrescriptionCreate(PrescriptionBase):
    pass

class PrescriptionResponse(PrescriptionBase):
    id: int
    booking_id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# --- Review Schemas ---
class ReviewCreate(BaseSchema):
    appointment_id: int
    behaviour_rating: int = Field(..., ge=1, le=5)
    recommendation_rating: int = Field(..., ge=1, le=5)
    review_text: Optional[str] = None

class ReviewResponse(BaseSchema):
    id: int
    appointment_id: int
    doctor_id: int
    patient_id: int
    behaviour_rating: int
    recommendation_rating: int
    review_text: Optional[str] = None
    created_at: Optional[datetime] = None

class ReviewSummary(BaseSchema):
    doctor_id: int
    total_reviews: int = 0
    avg_behaviour: float = 0.0
    avg_recommendation: float = 0.0
    overall: float = 0.0


# --- Reporting Schemas ---
class DoctorStats(BaseSchema):
    doctor_id: int
    name: str
    email: str
    specialty: Optional[str] = None
    total: int = 0
    pending: int = 0
    booked: int = 0
    completed: int = 0
    rejected: int = 0
    review_count: int = 0
    average_rating: float = 0.0

class SystemStatsResponse(BaseSchema):
    total_users: int
    total_doctors: int
    total_patients: int
    total_appointments: int
    pending_appointments: int
    completed_appointments: int

class AuditLogResponse(BaseSchema):
    id: int
    user_id: Optional[int] = None
    action: AuditAction
    category: str
    severity: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[int] = None
    details: Optional[str] = None
    timestamp: Optional[datetime] = None


# --- Health Check Schemas ---
class BookingInconsistency(BaseModel):
    booking_id: int
    doctor_id: int
    date_time: datetime
    status: str
    issue: str

class ConsistencyReport(BaseModel):
    checked_at: datetime
    virtual_bookings_without_room: List[BookingInconsistency] = []
    physical_bookings_with_room: List[BookingInconsistency] = []
    rejections_without_reason: List[BookingInconsistency] = []
    cross_doctor_follow_ups: List[BookingInconsistency] = []
    reviews_on_incomplete_bookings: List[BookingInconsistency] = []
