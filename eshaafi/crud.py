# eshaafi/crud.py - shared query helpers for the booking engine
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm import aliased
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timedelta, date, timezone
from typing import Optional, List, Dict, Any
import logging

from . import models
from .exceptions import CRUDError, NotFoundError

logger = logging.getLogger(__name__)


# ==================== USER / DOCTOR LOOKUPS ====================

def get_user(db: Session, user_id: int) -> Optional[models.User]:
    """Get user by ID with error handling."""
    try:
        return db.query(models.User).filter(models.User.id == user_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching user {user_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def get_doctor(db: Session, doctor_id: int) -> Optional[models.Doctor]:
    try:
        return db.query(models.Doctor).options(joinedload(models.Doctor.user)).filter(models.Doctor.id == doctor_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching doctor {doctor_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def get_doctor_by_user_id(db: Session, user_id: int) -> Optional[models.Doctor]:
    """Resolve the doctor profile that belongs to an authenticated user."""
    try:
        return db.query(models.Doctor).filter(models.Doctor.user_id == user_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching doctor for user {user_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def get_clinic_by_admin(db: Session, user_id: int) -> models.Clinic:
    try:
        clinic = db.query(models.Clinic).filter(models.Clinic.admin_user_id == user_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching clinic for admin {user_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")
    if not clinic:
        raise NotFoundError("Clinic not found for this administrator")
    return clinic


# ==================== BOOKING LOOKUPS ====================

def get_booking(db: Session, booking_id: int) -> Optional[models.Booking]:
    try:
        return db.query(models.Booking).filter(models.Booking.id == booking_id).first()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching booking {booking_id}: {str(e)}")
        raise CRUDError(f"Database error: {str(e)}")

def get_booking_or_404(db: Session, booking_id: int) -> models.Booking:
    booking = get_booking(db, booking_id)
    if not booking:
        raise NotFoundError(f"Booking {booking_id} not found")
    return booking

def get_bookings_for_doctor(db: Session, doctor_id: int) -> List[models.Booking]:
    try:
        return db.query(models.Booking).options(
            joinedload(models.Booking.patient)
        ).filter(models.Booking.doctor_id == doctor_id).order_by(models.Booking.date_time.asc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching bookings for doctor {doctor_id}: {e}")
        raise CRUDError("A database error occurred while fetching bookings.")

def get_bookings_for_patient(db: Session, patient_id: int) -> List[models.Booking]:
    try:
        return db.query(models.Booking).options(
            joinedload(models.Booking.doctor).joinedload(models.Doctor.user)
        ).filter(models.Booking.patient_id == patient_id).order_by(models.Booking.date_time.asc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching bookings for patient {patient_id}: {e}")
        raise CRUDError("A database error occurred while fetching bookings.")

def get_bookings_for_doctor_on_date(db: Session, doctor_id: int, target_date: date) -> List[models.Booking]:
    """Bookings whose date_time falls on target_date, any status."""
    day_start = datetime.combine(target_date, datetime.min.time())
    day_end = day_start + timedelta(days=1)
    try:
        return db.query(models.Booking).filter(
            models.Booking.doctor_id == doctor_id,
            models.Booking.date_time >= day_start,
            models.Booking.date_time < day_end
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching bookings for doctor {doctor_id} on {target_date}: {e}")
        raise CRUDError("A database error occurred while fetching bookings.")


# ==================== AUDIT LOGS ====================

def get_audit_logs(
    db: Session,
    skip: int = 0,
    limit: int = 100,
    user_id: Optional[int] = None,
    category: Optional[str] = None,
    severity: Optional[str] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> List[models.AuditLog]:
    """Retrieve audit logs with filtering."""
    try:
        query = db.query(models.AuditLog)

        if user_id:
            query = query.filter(models.AuditLog.user_id == user_id)
        if category:
            query = query.filter(models.AuditLog.category == category)
        if severity:
            query = query.filter(models.AuditLog.severity == severity)
        if start_date:
            query = query.filter(models.AuditLog.timestamp >= start_date)
        if end_date:
            # Add one day to end_date to include the entire day
            query = query.filter(models.AuditLog.timestamp < (end_date + timedelta(days=1)))

        return query.order_by(models.AuditLog.timestamp.desc(), models.AuditLog.id.desc()).offset(skip).limit(limit).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching audit logs: {e}")
        raise CRUDError("A database error occurred while fetching audit logs.")


# ==================== HEALTH CHECK FUNCTIONS ====================

def run_consistency_checks(db: Session) -> Dict[str, Any]:
    """Scans stored bookings and reviews for invariant violations and returns a report."""
    report = {
        "checked_at": datetime.now(timezone.utc),
        "virtual_bookings_without_room": [],
        "physical_bookings_with_room": [],
        "rejections_without_reason": [],
        "cross_doctor_follow_ups": [],
        "reviews_on_incomplete_bookings": [],
    }

    def _entry(booking: models.Booking, issue: str) -> Dict[str, Any]:
        return {
            "booking_id": booking.id,
            "doctor_id": booking.doctor_id,
            "date_time": booking.date_time,
            "status": booking.status.value,
            "issue": issue,
        }

    # Check 1: VIRTUAL bookings must carry a join code
    for booking in db.query(models.Booking).filter(
        models.Booking.type == models.BookingType.VIRTUAL,
        models.Booking.video_room_id.is_(None)
    ).all():
        report["virtual_bookings_without_room"].append(_entry(booking, "Virtual booking has no video room."))

    # Check 2: only VIRTUAL bookings may carry one
    for booking in db.query(models.Booking).filter(
        models.Booking.type == models.BookingType.PHYSICAL,
        models.Booking.video_room_id.isnot(None)
    ).all():
        report["physical_bookings_with_room"].append(_entry(booking, "Physical booking has a video room."))

    # Check 3: rejected without a reason
    for booking in db.query(models.Booking).filter(
        models.Booking.status == models.BookingStatus.REJECTED
    ).all():
        if not (booking.rejection_reason or "").strip():
            report["rejections_without_reason"].append(_entry(booking, "Rejected booking has no rejection reason."))

    # Check 4: follow-ups must stay with the original's doctor
    original = aliased(models.Booking)
    for booking in db.query(models.Booking).join(
        original, models.Booking.original_booking_id == original.id
    ).filter(models.Booking.doctor_id != original.doctor_id).all():
        report["cross_doctor_follow_ups"].append(_entry(booking, f"Follow-up of booking {booking.original_booking_id} belongs to a different doctor."))

    # Check 5: reviews only on completed appointments
    for booking in db.query(models.Booking).join(
        models.Review, models.Review.appointment_id == models.Booking.id
    ).filter(models.Booking.status != models.BookingStatus.COMPLETED).all():
        report["reviews_on_incomplete_bookings"].append(_entry(booking, "Review attached to a booking that is not completed."))

    return report
