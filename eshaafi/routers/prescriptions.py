from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from .. import schemas, security, models
from ..database import get_db
from ..services import booking_service

router = APIRouter(
    prefix="/bookings",
    tags=["Prescriptions"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


@router.post("/{booking_id}/prescription", response_model=schemas.PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def create_prescription(
    booking_id: int,
    prescription: schemas.PrescriptionCreate,
    db: Session = Depends(get_db),
    doctor: models.Doctor = Depends(security.get_current_doctor)
):
    """
    Write the prescription for one of your appointments.
    Posting again replaces the existing one.
    """
    return booking_service.upsert_prescription(db, booking_id, doctor.id, prescription)


@router.put("/{booking_id}/prescription", response_model=schemas.PrescriptionResponse)
def update_prescription(
    booking_id: int,
    prescription: schemas.PrescriptionCreate,
    db: Session = Depends(get_db),
    doctor: models.Doctor = Depends(security.get_current_doctor)
):
    return booking_service.upsert_prescription(db, booking_id, doctor.id, prescription)


@router.get("/{booking_id}/prescription", response_model=schemas.PrescriptionResponse)
def read_prescription(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    booking_service.get_booking_for_user(db, booking_id, current_user)
    return booking_service.get_prescription(db, booking_id)
