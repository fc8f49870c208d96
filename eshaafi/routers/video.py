from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from .. import models, schemas, security
from ..database import get_db
from ..services import booking_service

router = APIRouter(
    prefix="/video",
    tags=["Video"],
    responses={404: {"description": "No video room for this appointment"}},
)


@router.get("/info/{booking_id}", response_model=schemas.VideoInfoResponse)
def read_video_info(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    """Join code, time and type of a virtual appointment, for its patient or doctor."""
    booking = booking_service.get_booking_for_user(db, booking_id, current_user)
    return booking_service.get_video_info(booking)
