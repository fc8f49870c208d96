# eshaafi/services/slot_service.py
# Slot store and conflict resolver. Slots are declarative: whether a slot is
# taken is computed from bookings at read time, never stored on the slot.
import logging
from datetime import date
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..compliance_logger import compliance_logger
from ..exceptions import CRUDError, NotOwnedError, ValidationError

logger = logging.getLogger(__name__)


def _find_slot(db: Session, doctor_id: int, slot_date: date, start_time: str, end_time: str) -> Optional[models.AvailabilitySlot]:
    return db.query(models.AvailabilitySlot).filter(
        models.AvailabilitySlot.doctor_id == doctor_id,
        models.AvailabilitySlot.date == slot_date,
        models.AvailabilitySlot.start_time == start_time,
        models.AvailabilitySlot.end_time == end_time
    ).first()


def add_slot(
    db: Session,
    doctor_id: int,
    slot_date: date,
    start_time: str,
    end_time: str,
    duration: Optional[int] = None,
    location: Optional[str] = None,
    custom: bool = False,
) -> Tuple[models.AvailabilitySlot, bool]:
    """
    Create one availability slot. Returns (slot, created).

    An identical (doctor, date, start, end) window is never duplicated: the
    existing row comes back with created=False. A concurrent insert that wins
    the race trips the unique constraint and is treated the same way.
    """
    try:
        start_time = schemas.parse_clock(start_time)
        end_time = schemas.parse_clock(end_time)
    except ValueError as e:
        raise ValidationError(str(e))
    window = schemas.minutes_between(start_time, end_time)
    if window <= 0:
        raise ValidationError("end_time must be after start_time")
    if duration is not None and duration <= 0:
        raise ValidationError("duration must be a positive number of minutes")

    existing = _find_slot(db, doctor_id, slot_date, start_time, end_time)
    if existing:
        logger.debug(f"Slot already exists for doctor {doctor_id} on {slot_date} {start_time}-{end_time}. Skipping.")
        return existing, False

    new_slot = models.AvailabilitySlot(
        doctor_id=doctor_id,
        date=slot_date,
        start_time=start_time,
        end_time=end_time,
        duration=duration or window,
        location=location or None,
        custom=bool(custom),
    )
    try:
        db.add(new_slot)
        db.commit()
        db.refresh(new_slot)
    except IntegrityError:
        db.rollback()
        existing = _find_slot(db, doctor_id, slot_date, start_time, end_time)
        if existing:
            logger.info(f"Concurrent insert won for doctor {doctor_id} on {slot_date} {start_time}-{end_time}. Skipping.")
            return existing, False
        raise CRUDError("Could not create slot due to a database integrity issue.")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error creating slot for doctor {doctor_id}: {e}")
        raise CRUDError("A database error occurred while creating the slot.")

    logger.info(f"Created slot {new_slot.id} for doctor {doctor_id}: {slot_date} {start_time}-{end_time} ({new_slot.duration} min)")
    return new_slot, True


def add_slots(db: Session, doctor_id: int, slots: List[schemas.SlotCreate], user_id: Optional[int] = None) -> dict:
    """Batch path used by the availability editor. Safe to resubmit."""
    results = []
    created = 0
    for entry in slots:
        slot, was_created = add_slot(
            db,
            doctor_id=doctor_id,
            slot_date=entry.date,
            start_time=entry.start_time,
            end_time=entry.end_time,
            duration=entry.duration,
            location=entry.location,
            custom=entry.custom,
        )
        created += int(was_created)
        results.append(slot)

    skipped = len(results) - created
    if created:
        compliance_logger.record(
            db,
            models.AuditAction.CREATE,
            "SLOTS",
            actor_id=user_id,
            resource_type="Doctor",
            resource_id=doctor_id,
            details=f"Added {created} slots ({skipped} already existed)",
        )
        db.commit()
    return {"created": created, "skipped": skipped, "slots": results}


def list_slots(db: Session, doctor_id: int, slot_date: Optional[date] = None) -> List[models.AvailabilitySlot]:
    """All slots of a doctor, optionally for one date, ordered by date then start time."""
    try:
        query = db.query(models.AvailabilitySlot).filter(models.AvailabilitySlot.doctor_id == doctor_id)
        if slot_date is not None:
            query = query.filter(models.AvailabilitySlot.date == slot_date)
        return query.order_by(models.AvailabilitySlot.date.asc(), models.AvailabilitySlot.start_time.asc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Error listing slots for doctor {doctor_id}: {e}")
        raise CRUDError("A database error occurred while fetching slots.")


def delete_slot(db: Session, slot_id: int, doctor_id: int, user_id: Optional[int] = None) -> None:
    """
    Remove a slot. A slot that is already gone is not an error; a slot owned
    by another doctor is.
    """
    slot = db.query(models.AvailabilitySlot).filter(models.AvailabilitySlot.id == slot_id).first()
    if not slot:
        logger.info(f"Slot {slot_id} already absent; nothing to delete.")
        return
    if slot.doctor_id != doctor_id:
        logger.warning(f"Doctor {doctor_id} attempted to delete slot {slot_id} owned by doctor {slot.doctor_id}")
        raise NotOwnedError("You can only delete your own slots")

    try:
        db.delete(slot)
        compliance_logger.record(
            db,
            models.AuditAction.DELETE,
            "SLOTS",
            resource=slot,
            actor_id=user_id,
            details=f"Deleted slot {slot.date} {slot.start_time}-{slot.end_time}",
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting slot {slot_id}: {e}")
        raise CRUDError("A database error occurred while deleting the slot.")


def annotate_availability(db: Session, doctor_id: int, target_date: date) -> List[schemas.SlotAvailability]:
    """
    Mark every slot on target_date as booked or free.

    A slot is booked when some booking of the doctor on that date starts at
    exactly the slot's start time (HH:MM). Bookings that land inside a window
    without matching its start do not mark anything.
    """
    slots = list_slots(db, doctor_id, target_date)
    if not slots:
        return []

    booked_starts = {
        booking.date_time.strftime("%H:%M")
        for booking in crud.get_bookings_for_doctor_on_date(db, doctor_id, target_date)
    }

    return [
        schemas.SlotAvailability(
            id=slot.id,
            doctor_id=slot.doctor_id,
            date=slot.date,
            start_time=slot.start_time,
            end_time=slot.end_time,
            duration=slot.duration,
            location=slot.location,
            custom=slot.custom,
            is_booked=slot.start_time in booked_starts,
        )
        for slot in slots
    ]
