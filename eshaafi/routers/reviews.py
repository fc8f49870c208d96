from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from .. import models, schemas, security
from ..database import get_db
from ..services import review_service

router = APIRouter(
    prefix="/reviews",
    tags=["Reviews"],
)


@router.post("", response_model=schemas.ReviewResponse, status_code=status.HTTP_201_CREATED)
def create_review(
    review: schemas.ReviewCreate,
    db: Session = Depends(get_db),
    current_user: models.User = Depends(security.require_patient)
):
    """Rate a completed appointment. Each appointment can be reviewed once."""
    return review_service.create_review(
        db,
        patient_id=current_user.id,
        appointment_id=review.appointment_id,
        behaviour_rating=review.behaviour_rating,
        recommendation_rating=review.recommendation_rating,
        review_text=review.review_text,
    )
