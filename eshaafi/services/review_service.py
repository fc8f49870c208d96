# eshaafi/services/review_service.py
# Reviews on completed appointments and the rollups built from reviews and bookings.
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import case, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from .. import crud, models
from ..compliance_logger import compliance_logger
from ..exceptions import ConflictError, CRUDError, ForbiddenError, InvalidStateError, NotFoundError

logger = logging.getLogger(__name__)


def create_review(
    db: Session,
    patient_id: int,
    appointment_id: int,
    behaviour_rating: int,
    recommendation_rating: int,
    review_text: Optional[str] = None,
) -> models.Review:
    """Patients review an appointment once, after it is COMPLETED."""
    booking = crud.get_booking(db, appointment_id)
    if not booking:
        raise NotFoundError("Appointment not found")
    if booking.patient_id != patient_id:
        raise ForbiddenError("You can only review your own appointments")
    if booking.status != models.BookingStatus.COMPLETED:
        raise InvalidStateError("Only completed appointments can be reviewed")

    existing = db.query(models.Review).filter(models.Review.appointment_id == appointment_id).first()
    if existing:
        raise ConflictError("This appointment has already been reviewed")

    review = models.Review(
        appointment_id=appointment_id,
        doctor_id=booking.doctor_id,
        patient_id=patient_id,
        behaviour_rating=behaviour_rating,
        recommendation_rating=recommendation_rating,
        review_text=review_text,
    )
    try:
        db.add(review)
        db.flush()
        compliance_logger.record(
            db,
            models.AuditAction.CREATE,
            "REVIEW",
            resource=review,
            actor_id=patient_id,
            details=f"Review for appointment {appointment_id} ({behaviour_rating}/{recommendation_rating})",
        )
        db.commit()
        db.refresh(review)
    except IntegrityError:
        db.rollback()
        raise ConflictError("This appointment has already been reviewed")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Database error creating review for appointment {appointment_id}: {e}")
        raise CRUDError("A database error occurred while saving the review.")

    logger.info(f"Review {review.id} created for doctor {booking.doctor_id} by patient {patient_id}")
    return review


def list_reviews_for_doctor(db: Session, doctor_id: int) -> List[models.Review]:
    try:
        return db.query(models.Review).filter(
            models.Review.doctor_id == doctor_id
        ).order_by(models.Review.created_at.desc(), models.Review.id.desc()).all()
    except SQLAlchemyError as e:
        logger.error(f"Error fetching reviews for doctor {doctor_id}: {e}")
        raise CRUDError("A database error occurred while fetching reviews.")


def review_summary_for_doctor(db: Session, doctor_id: int) -> Dict[str, Any]:
    total, avg_behaviour, avg_recommendation = db.query(
        func.count(models.Review.id),
        func.avg(models.Review.behaviour_rating),
        func.avg(models.Review.recommendation_rating),
    ).filter(models.Review.doctor_id == doctor_id).one()

    avg_behaviour = round(float(avg_behaviour or 0), 2)
    avg_recommendation = round(float(avg_recommendation or 0), 2)
    return {
        "doctor_id": doctor_id,
        "total_reviews": total or 0,
        "avg_behaviour": avg_behaviour,
        "avg_recommendation": avg_recommendation,
        "overall": round((avg_behaviour + avg_recommendation) / 2, 2) if total else 0.0,
    }


def clinic_doctor_stats(db: Session, clinic_id: int) -> List[Dict[str, Any]]:
    """Per-doctor booking counts by status and review averages for one clinic."""
    doctors = db.query(models.Doctor).options(
        joinedload(models.Doctor.user)
    ).filter(models.Doctor.clinic_id == clinic_id).order_by(models.Doctor.id).all()
    if not doctors:
        return []
    doctor_ids = [d.id for d in doctors]

    Booking = models.Booking
    booking_rows = db.query(
        Booking.doctor_id,
        func.count(Booking.id),
        func.sum(case((Booking.status == models.BookingStatus.PENDING, 1), else_=0)),
        func.sum(case((Booking.status == models.BookingStatus.BOOKED, 1), else_=0)),
        func.sum(case((Booking.status == models.BookingStatus.COMPLETED, 1), else_=0)),
        func.sum(case((Booking.status == models.BookingStatus.REJECTED, 1), else_=0)),
    ).filter(Booking.doctor_id.in_(doctor_ids)).group_by(Booking.doctor_id).all()
    bookings_by_doctor = {row[0]: row[1:] for row in booking_rows}

    review_rows = db.query(
        models.Review.doctor_id,
        func.count(models.Review.id),
        func.avg((models.Review.behaviour_rating + models.Review.recommendation_rating) / 2.0),
    ).filter(models.Review.doctor_id.in_(doctor_ids)).group_by(models.Review.doctor_id).all()
    reviews_by_doctor = {row[0]: row[1:] for row in review_rows}

    stats = []
    for doctor in doctors:
        total, pending, booked, completed, rejected = bookings_by_doctor.get(doctor.id, (0, 0, 0, 0, 0))
        review_count, average = reviews_by_doctor.get(doctor.id, (0, None))
        stats.append({
            "doctor_id": doctor.id,
            "name": doctor.user.name if doctor.user else "",
            "email": doctor.user.email if doctor.user else "",
            "specialty": doctor.specialty,
            "total": total or 0,
            "pending": pending or 0,
            "booked": booked or 0,
            "completed": completed or 0,
            "rejected": rejected or 0,
            "review_count": review_count or 0,
            "average_rating": round(float(average or 0), 2),
        })
    return stats


def system_stats(db: Session) -> Dict[str, int]:
    User, Booking = models.User, models.Booking
    return {
        "total_users": db.query(func.count(User.id)).scalar() or 0,
        "total_doctors": db.query(func.count(models.Doctor.id)).scalar() or 0,
        "total_patients": db.query(func.count(User.id)).filter(User.role == models.UserRole.PATIENT).scalar() or 0,
        "total_appointments": db.query(func.count(Booking.id)).scalar() or 0,
        "pending_appointments": db.query(func.count(Booking.id)).filter(Booking.status == models.BookingStatus.PENDING).scalar() or 0,
        "completed_appointments": db.query(func.count(Booking.id)).filter(Booking.status == models.BookingStatus.COMPLETED).scalar() or 0,
    }
