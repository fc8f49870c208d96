# eshaafi/routers/clinics.py
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import crud, models, schemas
from ..database import get_db
from ..security import require_clinic_admin
from ..services import review_service

router = APIRouter(
    prefix="/clinic",
    tags=["Clinic Reporting"],
)


@router.get("/doctors/stats", response_model=List[schemas.DoctorStats])
def read_clinic_doctor_stats(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(require_clinic_admin)
):
    """Booking counts per status and average rating for every doctor of the admin's clinic."""
    clinic = crud.get_clinic_by_admin(db, current_user.id)
    return review_service.clinic_doctor_stats(db, clinic.id)
