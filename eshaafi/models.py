# eshaafi/models.py
from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Text, Date,
    Enum as SQLAlchemyEnum, Boolean, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from .database import Base
import enum


class UserRole(str, enum.Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    CLINIC_ADMIN = "CLINIC_ADMIN"
    ADMIN = "ADMIN"


class BookingStatus(str, enum.Enum):
    PENDING = "PENDING"
    BOOKED = "BOOKED"
    REJECTED = "REJECTED"
    COMPLETED = "COMPLETED"


class BookingType(str, enum.Enum):
    PHYSICAL = "PHYSICAL"
    VIRTUAL = "VIRTUAL"


class AuditAction(str, enum.Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


# ==================== Identity / Directory Models ====================

class User(Base):
    """Marketplace account. Patients are users with the PATIENT role."""
    __tablename__ = "users"
    __table_args__ = (
        Index('idx_users_role_active', 'role', 'is_active'),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    role = Column(SQLAlchemyEnum(UserRole, name='user_role'), default=UserRole.PATIENT, nullable=False)
    is_active = Column(Boolean, default=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    doctor_profile = relationship("Doctor", back_populates="user", uselist=False)
    bookings = relationship("Booking", back_populates="patient", foreign_keys="Booking.patient_id")
    audit_logs = relationship("AuditLog", back_populates="user")


class Clinic(Base):
    __tablename__ = "clinics"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    admin_user_id = Column(Integer, ForeignKey("users.id"), nullable=True, unique=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    doctors = relationship("Doctor", back_populates="clinic")
    admin = relationship("User")


class Doctor(Base):
    """Doctor profile attached to a DOCTOR user."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    specialty = Column(String(100), nullable=True)
    location = Column(String(255), nullable=True)
    clinic_id = Column(Integer, ForeignKey("clinics.id"), nullable=True, index=True)

    user = relationship("User", back_populates="doctor_profile")
    clinic = relationship("Clinic", back_populates="doctors")
    slots = relationship("AvailabilitySlot", back_populates="doctor", cascade="all, delete-orphan")
    bookings = relationship("Booking", back_populates="doctor")
    reviews = relationship("Review", back_populates="doctor")


# ==================== Booking Engine Models ====================

class AvailabilitySlot(Base):
    """A doctor-declared window on one calendar day. Never edited in place."""
    __tablename__ = "availability_slots"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'date', 'start_time', 'end_time', name='uq_slot_doctor_date_window'),
        Index('idx_slot_doctor_date', 'doctor_id', 'date', 'start_time'),
    )

    id = Column(Integer, primary_key=True, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    duration = Column(Integer, nullable=False)  # minutes
    location = Column(String(255), nullable=True)
    custom = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    doctor = relationship("Doctor", back_populates="slots")


class Booking(Base):
    """A patient's request for a doctor's time, tracked through its status lifecycle."""
    __tablename__ = "bookings"
    __table_args__ = (
        Index('idx_bookings_doctor_datetime', 'doctor_id', 'date_time'),
        Index('idx_bookings_patient_datetime', 'patient_id', 'date_time'),
        Index('idx_bookings_status', 'status'),
    )

    id = Column(Integer, primary_key=True, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)

    # Clinic-local wall time, see services.booking_service.normalize_date_time
    date_time = Column(DateTime, nullable=False)
    reason = Column(Text, nullable=True)
    symptoms = Column(Text, nullable=True)
    type = Column(SQLAlchemyEnum(BookingType, name='booking_type'), default=BookingType.PHYSICAL, nullable=False)
    status = Column(SQLAlchemyEnum(BookingStatus, name='booking_status'), default=BookingStatus.PENDING, nullable=False)
    rejection_reason = Column(Text, nullable=True)

    # Guest join code from the video provider, never the raw room id
    video_room_id = Column(String(255), nullable=True)

    original_booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="SET NULL"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    patient = relationship("User", back_populates="bookings", foreign_keys=[patient_id])
    doctor = relationship("Doctor", back_populates="bookings")
    original_booking = relationship("Booking", remote_side=[id], back_populates="follow_ups")
    follow_ups = relationship("Booking", back_populates="original_booking")
    prescription = relationship("Prescription", back_populates="booking", uselist=False, cascade="all, delete-orphan")
    review = relationship("Review", back_populates="appointment", uselist=False, cascade="all, delete-orphan")


class Prescription(Base):
    """One prescription per booking, upserted by the booking's doctor."""
    __tablename__ = "prescriptions"

    id = Column(Integer, primary_key=True, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)

    medications = Column(Text, nullable=False)
    dosage = Column(Text, nullable=False)
    frequency = Column(Text, nullable=False)
    duration = Column(Text, nullable=False)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    booking = relationship("Booking", back_populates="prescription")


class Review(Base):
    """Post-completion patient feedback, exactly one per appointment."""
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint('doctor_id', 'patient_id', 'appointment_id', name='uq_review_doctor_patient_appointment'),
        CheckConstraint('behaviour_rating BETWEEN 1 AND 5', name='ck_review_behaviour_rating'),
        CheckConstraint('recommendation_rating BETWEEN 1 AND 5', name='ck_review_recommendation_rating'),
        Index('idx_reviews_doctor', 'doctor_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, unique=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    behaviour_rating = Column(Integer, nullable=False)
    recommendation_rating = Column(Integer, nullable=False)
    review_text = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    appointment = relationship("Booking", back_populates="review")
    doctor = relationship("Doctor", back_populates="reviews")
    patient = relationship("User")


class AuditLog(Base):
    """Audit trail for booking engine mutations"""
    __tablename__ = "audit_logs"
    __table_args__ = (
        Index('idx_audit_user_date', 'user_id', 'timestamp'),
        Index('idx_audit_resource', 'resource_type', 'resource_id'),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    action = Column(SQLAlchemyEnum(AuditAction, name='audit_action'), nullable=False)
    category = Column(String(50), nullable=False, default="GENERAL", index=True)
    severity = Column(String(20), default="INFO", index=True)  # INFO, WARN, ERROR
    resource_type = Column(String(50), nullable=True)
    resource_id = Column(Integer, nullable=True)
    details = Column(Text, nullable=True)
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), index=True)

    user = relationship("User", back_populates="audit_logs")
