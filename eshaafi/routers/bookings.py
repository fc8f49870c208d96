# eshaafi/routers/bookings.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlalchemy.orm import Session

from .. import models, schemas, security
from ..database import get_db
from ..limiter import booking_rate_limit, limiter
from ..services import booking_service
from ..services.video_service import VideoRoomProvisioner

router = APIRouter(
    prefix="/bookings",
    tags=["Bookings"],
    dependencies=[Depends(security.get_current_user)],
    responses={404: {"description": "Not found"}},
)


def get_video_provisioner(request: Request) -> VideoRoomProvisioner:
    """The provisioner built at startup and kept on app.state."""
    return request.app.state.video_provisioner


@router.post("", response_model=schemas.BookingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(booking_rate_limit)
async def create_booking(
    request: Request,
    booking_in: schemas.BookingCreate,
    db: Session = Depends(get_db),
    provisioner: VideoRoomProvisioner = Depends(get_video_provisioner),
    current_user: models.User = Depends(security.require_patient)
):
    """
    Request an appointment with a doctor. The booking starts PENDING.
    Virtual bookings get a video join code before anything is saved.
    """
    return await booking_service.create_booking(
        db,
        provisioner,
        patient_id=current_user.id,
        doctor_id=booking_in.doctor_id,
        date_time=booking_in.date_time,
        reason=booking_in.reason,
        symptoms=booking_in.symptoms,
        type=booking_in.type,
    )


@router.get("/mine", response_model=List[schemas.BookingResponse])
def read_my_bookings(
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_patient)
):
    return booking_service.list_bookings_for_patient(db, current_user.id)


@router.get("/{booking_id}", response_model=schemas.BookingResponse)
def read_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.get_current_user)
):
    return booking_service.get_booking_for_user(db, booking_id, current_user)


@router.put("/{booking_id}/status", response_model=schemas.BookingStatusResponse)
def update_booking_status(
    booking_id: int,
    update: schemas.BookingStatusUpdate,
    db: Session = Depends(get_db),
    doctor: models.Doctor = Depends(security.get_current_doctor)
):
    """Approve, reject (reason required) or complete one of your appointments."""
    if update.status == models.BookingStatus.REJECTED and not (update.rejection_reason or "").strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Rejection reason is required when rejecting an appointment"
        )
    return booking_service.change_status(
        db,
        booking_id,
        update.status,
        rejection_reason=update.rejection_reason,
        doctor_id=doctor.id,
    )


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_patient)
):
    booking_service.delete_booking(db, booking_id, patient_id=current_user.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{booking_id}/follow-up", response_model=schemas.BookingResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(booking_rate_limit)
async def create_follow_up(
    request: Request,
    booking_id: int,
    follow_up: schemas.FollowUpCreate,
    db: Session = Depends(get_db),
    provisioner: VideoRoomProvisioner = Depends(get_video_provisioner),
    current_user: models.User = Depends(security.require_doctor)
):
    """Schedule a follow-up for the patient of one of your appointments."""
    return await booking_service.create_follow_up(
        db,
        provisioner,
        doctor_user_id=current_user.id,
        original_booking_id=booking_id,
        date_time=follow_up.date_time,
        type=follow_up.type,
        reason=follow_up.reason,
    )
