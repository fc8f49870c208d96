# eshaafi/routers/doctors.py
# Public (any signed-in user) views of a doctor: free/booked slots and reviews.
from datetime import date
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .. import crud, models, schemas, security
from ..database import get_db
from ..services import review_service, slot_service

router = APIRouter(
    prefix="/doctors",
    tags=["Doctors"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


def get_doctor_or_404(doctor_id: int, db: Session = Depends(get_db)) -> models.Doctor:
    doctor = crud.get_doctor(db, doctor_id)
    if not doctor:
        raise HTTPException(status_code=404, detail="Doctor not found")
    return doctor


@router.get("/{doctor_id}/availability", response_model=List[schemas.SlotAvailability])
def read_doctor_availability(
    target_date: date = Query(..., alias="date"),
    doctor: models.Doctor = Depends(get_doctor_or_404),
    db: Session = Depends(get_db)
):
    """
    Slots for one day, each marked as booked or free.
    A slot counts as booked when a booking starts exactly at its start time.
    """
    return slot_service.annotate_availability(db, doctor.id, target_date)


@router.get("/{doctor_id}/reviews", response_model=List[schemas.ReviewResponse])
def read_doctor_reviews(
    doctor: models.Doctor = Depends(get_doctor_or_404),
    db: Session = Depends(get_db)
):
    return review_service.list_reviews_for_doctor(db, doctor.id)


@router.get("/{doctor_id}/reviews/summary", response_model=schemas.ReviewSummary)
def read_doctor_review_summary(
    doctor: models.Doctor = Depends(get_doctor_or_404),
    db: Session = Depends(get_db)
):
    return review_service.review_summary_for_doctor(db, doctor.id)
