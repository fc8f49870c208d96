# eshaafi/routers/availability.py
# A doctor's own slots and appointments.
from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas, security
from ..database import get_db
from ..services import booking_service, slot_service

router = APIRouter(
    prefix="/doctor",
    tags=["Doctor Availability"],
    dependencies=[Depends(security.require_doctor)],
)


@router.get("/availability", response_model=List[schemas.SlotResponse])
def read_my_slots(
    date: Optional[date] = None,
    db: Session = Depends(get_db),
    doctor: models.Doctor = Depends(security.get_current_doctor)
):
    return slot_service.list_slots(db, doctor.id, date)


@router.post("/availability", response_model=schemas.SlotResponse, status_code=status.HTTP_201_CREATED)
def add_slot(
    slot: schemas.SlotCreate,
    response: Response,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_doctor),
    doctor: models.Doctor = Depends(security.get_current_doctor)
):
    """Adds one slot. An identical slot that already exists is returned with 200."""
    created_slot, created = slot_service.add_slot(
        db,
        doctor_id=doctor.id,
        slot_date=slot.date,
        start_time=slot.start_time,
        end_time=slot.end_time,
        duration=slot.duration,
        location=slot.location,
        custom=slot.custom,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return created_slot


@router.post("/availability/slots", response_model=schemas.SlotBatchResult, status_code=status.HTTP_201_CREATED)
def add_slots(
    batch: schemas.SlotBatchCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_doctor),
    doctor: models.Doctor = Depends(security.get_current_doctor)
):
    return slot_service.add_slots(db, doctor.id, batch.slots, user_id=current_user.id)


@router.delete("/availability/{slot_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_doctor),
    doctor: models.Doctor = Depends(security.get_current_doctor)
):
    slot_service.delete_slot(db, slot_id, doctor.id, user_id=current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/appointments", response_model=List[schemas.BookingResponse])
def read_my_appointments(
    db: Session = Depends(get_db),
    doctor: models.Doctor = Depends(security.get_current_doctor)
):
    return booking_service.list_bookings_for_doctor(db, doctor.id)
