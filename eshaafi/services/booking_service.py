# eshaafi/services/booking_service.py
# Booking lifecycle: creation (with video room provisioning for virtual visits),
# status transitions, deletion, follow-up linkage and prescriptions.
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional
from zoneinfo import ZoneInfo

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..compliance_logger import compliance_logger
from ..config import get_settings
from ..exceptions import (
    CRUDError,
    ForbiddenError,
    InvalidStateError,
    InvalidTransitionError,
    NotFoundError,
    ValidationError,
)
from .video_service import VideoRoomProvisioner

logger = logging.getLogger(__name__)

BookingStatus = models.BookingStatus

ALLOWED_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.BOOKED, BookingStatus.REJECTED},
    BookingStatus.BOOKED: {BookingStatus.REJECTED, BookingStatus.COMPLETED},
    BookingStatus.REJECTED: set(),
    BookingStatus.COMPLETED: set(),
}

FOLLOW_UP_SOURCE_STATUSES = {BookingStatus.BOOKED, BookingStatus.COMPLETED}


def normalize_date_time(value: datetime) -> datetime:
    """Aware datetimes are converted to clinic-local wall time; naive ones are taken as already local."""
    if value.tzinfo is None:
        return value.replace(microsecond=0)
    local = value.astimezone(ZoneInfo(get_settings().clinic_timezone))
    return local.replace(tzinfo=None, microsecond=0)


def room_seed(patient_id: int, doctor_id: int) -> str:
    return f"booking_{patient_id}_{doctor_id}_{int(time.time() * 1000)}"


# ==================== CREATE ====================

async def create_booking(
    db: Session,
    provisioner: VideoRoomProvisioner,
    patient_id: int,
    doctor_id: int,
    date_time: datetime,
    reason: Optional[str] = None,
    symptoms: Optional[str] = None,
    type: models.BookingType = models.BookingType.PHYSICAL,
    original_booking_id: Optional[int] = None,
    actor_id: Optional[int] = None,
) -> models.Booking:
    """
    Persist a new PENDING booking.

    For VIRTUAL bookings the video room is provisioned first; if that fails
    nothing is written. Slots are not touched: whether a slot is taken is
    computed from bookings when availability is read.
    """
    patient = crud.get_user(db, patient_id)
    if not patient:
        raise NotFoundError(f"Patient {patient_id} not found")
    doctor = crud.get_doctor(db, doctor_id)
    if not doctor:
        raise NotFoundError(f"Doctor {doctor_id} not found")

    video_room_id = None
    if type == models.BookingType.VIRTUAL:
        video_room_id = await provisioner.provision_room(room_seed(patient_id, doctor_id))

    booking = models.Booking(
        patient_id=patient_id,
        doctor_id=doctor_id,
        date_time=normalize_date_time(date_time),
        reason=reason,
        symptoms=symptoms,
        type=type,
        status=BookingStatus.PENDING,
        video_room_id=video_room_id,
        original_booking_id=original_booking_id,
    )

    try:
        db.add(booking)
        db.flush()
        compliance_logger.record(
            db,
            models.AuditAction.CREATE,
            "BOOKING",
            resource=booking,
            actor_id=actor_id or patient_id,
            details=f"{type.value} booking with doctor {doctor_id} at {booking.date_time}"
                    + (f" (follow-up of {original_booking_id})" if original_booking_id else ""),
        )
        db.commit()
        db.refresh(booking)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error creating booking for patient {patient_id} with doctor {doctor_id}: {e}")
        raise CRUDError("A database error occurred while creating the booking.")

    logger.info(f"Booking {booking.id} created: patient {patient_id}, doctor {doctor_id}, {booking.date_time}, {type.value}")
    return booking


# ==================== STATUS ====================

def _check_transition(current: BookingStatus, new_status: BookingStatus) -> None:
    if get_settings().strict_status_transitions:
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise InvalidTransitionError(f"Cannot move booking from {current.value} to {new_status.value}")
    elif new_status == BookingStatus.PENDING:
        # Lenient mode still never re-opens a booking.
        raise InvalidTransitionError("A booking cannot be moved back to PENDING")


def change_status(
    db: Session,
    booking_id: int,
    new_status: BookingStatus,
    rejection_reason: Optional[str] = None,
    doctor_id: Optional[int] = None,
) -> Dict[str, Any]:
    booking = crud.get_booking_or_404(db, booking_id)

    if doctor_id is not None and booking.doctor_id != doctor_id:
        logger.warning(f"Doctor {doctor_id} attempted to change status of booking {booking_id} owned by doctor {booking.doctor_id}")
        raise ForbiddenError("You can only update your own appointments")

    reason = (rejection_reason or "").strip()
    if new_status == BookingStatus.REJECTED and not reason:
        raise ValidationError("Rejection reason is required when rejecting an appointment")

    _check_transition(booking.status, new_status)

    previous = booking.status
    booking.status = new_status
    if new_status == BookingStatus.REJECTED:
        booking.rejection_reason = reason

    try:
        compliance_logger.record(
            db,
            models.AuditAction.UPDATE,
            "BOOKING",
            resource=booking,
            actor_id=booking.doctor.user_id if booking.doctor else None,
            details=f"Status {previous.value} -> {new_status.value}" + (f": {reason}" if new_status == BookingStatus.REJECTED else ""),
        )
        db.commit()
        db.refresh(booking)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error updating status of booking {booking_id}: {e}")
        raise CRUDError("A database error occurred while updating the booking.")

    logger.info(f"Booking {booking_id} status changed {previous.value} -> {new_status.value}")
    return {"id": booking.id, "status": booking.status, "rejection_reason": booking.rejection_reason}


# ==================== DELETE ====================

def delete_booking(db: Session, booking_id: int, patient_id: Optional[int] = None) -> None:
    """Patients may withdraw a request while it is still PENDING."""
    booking = crud.get_booking_or_404(db, booking_id)
    owner_id = booking.patient_id

    if patient_id is not None and owner_id != patient_id:
        raise ForbiddenError("You can only delete your own appointments")
    if booking.status != BookingStatus.PENDING:
        raise InvalidTransitionError(f"Only pending appointments can be deleted (current status: {booking.status.value})")

    try:
        db.delete(booking)
        compliance_logger.record(
            db,
            models.AuditAction.DELETE,
            "BOOKING",
            resource=booking,
            actor_id=owner_id,
            details=f"Withdrawn booking with doctor {booking.doctor_id} at {booking.date_time}",
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error deleting booking {booking_id}: {e}")
        raise CRUDError("A database error occurred while deleting the booking.")

    logger.info(f"Booking {booking_id} deleted by patient {owner_id}")


# ==================== FOLLOW-UP ====================

async def create_follow_up(
    db: Session,
    provisioner: VideoRoomProvisioner,
    doctor_user_id: int,
    original_booking_id: int,
    date_time: datetime,
    type: models.BookingType = models.BookingType.PHYSICAL,
    reason: Optional[str] = None,
) -> models.Booking:
    """A doctor schedules a new PENDING booking for the patient of one of their own bookings."""
    doctor = crud.get_doctor_by_user_id(db, doctor_user_id)
    if not doctor:
        raise NotFoundError("Doctor profile not found for this user")

    original = crud.get_booking(db, original_booking_id)
    if not original:
        raise NotFoundError(f"Original appointment {original_booking_id} not found")
    if original.doctor_id != doctor.id:
        logger.warning(f"Doctor {doctor.id} attempted a follow-up on booking {original_booking_id} of doctor {original.doctor_id}")
        raise ForbiddenError("You can only create follow-ups for your own appointments")
    if original.status not in FOLLOW_UP_SOURCE_STATUSES:
        raise InvalidStateError(f"Follow-ups can only be scheduled from booked or completed appointments (current status: {original.status.value})")

    return await create_booking(
        db,
        provisioner,
        patient_id=original.patient_id,
        doctor_id=original.doctor_id,
        date_time=date_time,
        reason=reason or f"Follow-up for appointment #{original.id}",
        type=type,
        original_booking_id=original.id,
        actor_id=doctor_user_id,
    )


# ==================== READS ====================

def get_booking_for_user(db: Session, booking_id: int, user: models.User) -> models.Booking:
    """The booking, if the user is its patient or its doctor."""
    booking = crud.get_booking_or_404(db, booking_id)
    if booking.patient_id == user.id:
        return booking
    if booking.doctor and booking.doctor.user_id == user.id:
        return booking
    raise ForbiddenError("You do not have access to this appointment")


def list_bookings_for_patient(db: Session, patient_id: int) -> List[models.Booking]:
    return crud.get_bookings_for_patient(db, patient_id)


def list_bookings_for_doctor(db: Session, doctor_id: int) -> List[models.Booking]:
    return crud.get_bookings_for_doctor(db, doctor_id)


def get_video_info(booking: models.Booking) -> Dict[str, Any]:
    if not booking.video_room_id:
        raise NotFoundError("No video room found for this appointment")
    return {"room_code": booking.video_room_id, "date_time": booking.date_time, "type": booking.type}


# ==================== PRESCRIPTIONS ====================

def upsert_prescription(db: Session, booking_id: int, doctor_id: int, data: schemas.PrescriptionCreate) -> models.Prescription:
    booking = crud.get_booking_or_404(db, booking_id)
    if booking.doctor_id != doctor_id:
        raise ForbiddenError("You can only write prescriptions for your own appointments")

    fields = data.model_dump()
    prescription = booking.prescription
    created = prescription is None
    try:
        if created:
            prescription = models.Prescription(booking_id=booking_id, **fields)
            db.add(prescription)
        else:
            for key, value in fields.items():
                setattr(prescription, key, value)
        db.flush()
        compliance_logger.record(
            db,
            models.AuditAction.CREATE if created else models.AuditAction.UPDATE,
            "PRESCRIPTION",
            resource=prescription,
            actor_id=booking.doctor.user_id if booking.doctor else None,
            details=f"Prescription {'created' if created else 'updated'} for booking {booking_id}",
        )
        db.commit()
        db.refresh(prescription)
    except IntegrityError:
        db.rollback()
        # Lost a race with another writer; update the row it created.
        existing = db.query(models.Prescription).filter(models.Prescription.booking_id == booking_id).first()
        if not existing:
            raise CRUDError("Could not save prescription due to a database integrity issue.")
        for key, value in fields.items():
            setattr(existing, key, value)
        db.commit()
        db.refresh(existing)
        prescription = existing
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error saving prescription for booking {booking_id}: {e}")
        raise CRUDError("A database error occurred while saving the prescription.")

    logger.info(f"Prescription {prescription.id} {'created' if created else 'updated'} for booking {booking_id}")
    return prescription


def get_prescription(db: Session, booking_id: int) -> models.Prescription:
    prescription = db.query(models.Prescription).filter(models.Prescription.booking_id == booking_id).first()
    if not prescription:
        raise NotFoundError("Prescription not found")
    return prescription
