# tests/test_reviews.py
from datetime import datetime

import pytest
from httpx import AsyncClient

from eshaafi import models
from eshaafi.exceptions import ConflictError, ForbiddenError, InvalidStateError, NotFoundError
from eshaafi.services import review_service
from tests.helpers import auth_headers


def _booking(db, patient, doctor, status=models.BookingStatus.COMPLETED, hour=10):
    booking = models.Booking(
        patient_id=patient.id, doctor_id=doctor.id, date_time=datetime(2030, 5, 1, hour, 0), status=status
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)
    return booking


def test_one_review_per_completed_appointment(db, patient, doctor):
    booking = _booking(db, patient, doctor)
    review = review_service.create_review(db, patient.id, booking.id, 4, 5, "Very attentive")

    assert review.doctor_id == doctor.id
    with pytest.raises(ConflictError):
        review_service.create_review(db, patient.id, booking.id, 1, 1)
    assert db.query(models.Review).count() == 1


@pytest.mark.parametrize("status", [
    models.BookingStatus.PENDING,
    models.BookingStatus.BOOKED,
    models.BookingStatus.REJECTED,
])
def test_review_requires_completed_status(db, patient, doctor, status):
    booking = _booking(db, patient, doctor, status=status)
    with pytest.raises(InvalidStateError):
        review_service.create_review(db, patient.id, booking.id, 5, 5)


def test_review_by_other_patient(db, make_user, patient, doctor):
    booking = _booking(db, patient, doctor)
    other = make_user(models.UserRole.PATIENT)
    with pytest.raises(ForbiddenError):
        review_service.create_review(db, other.id, booking.id, 5, 5)
    with pytest.raises(NotFoundError):
        review_service.create_review(db, patient.id, 31337, 5, 5)


def test_summary_and_clinic_stats(db, make_user, make_doctor):
    clinic = models.Clinic(name="Shifa Clinic", city="Lahore")
    db.add(clinic)
    db.commit()
    busy, quiet = make_doctor(clinic=clinic), make_doctor(clinic=clinic)
    outsider = make_doctor()
    first, second = make_user(), make_user()

    b1 = _booking(db, first, busy, hour=9)
    b2 = _booking(db, second, busy, hour=10)
    _booking(db, first, busy, status=models.BookingStatus.PENDING, hour=11)
    _booking(db, second, busy, status=models.BookingStatus.BOOKED, hour=12)
    _booking(db, first, busy, status=models.BookingStatus.REJECTED, hour=13)
    _booking(db, first, outsider, hour=14)

    review_service.create_review(db, first.id, b1.id, 5, 4)
    review_service.create_review(db, second.id, b2.id, 3, 2)

    summary = review_service.review_summary_for_doctor(db, busy.id)
    assert summary["total_reviews"] == 2
    assert summary["avg_behaviour"] == 4.0
    assert summary["avg_recommendation"] == 3.0
    assert summary["overall"] == 3.5

    empty = review_service.review_summary_for_doctor(db, quiet.id)
    assert empty["total_reviews"] == 0
    assert empty["overall"] == 0.0

    stats = {row["doctor_id"]: row for row in review_service.clinic_doctor_stats(db, clinic.id)}
    assert set(stats) == {busy.id, quiet.id}
    assert stats[busy.id]["total"] == 5
    assert (stats[busy.id]["pending"], stats[busy.id]["booked"]) == (1, 1)
    assert (stats[busy.id]["completed"], stats[busy.id]["rejected"]) == (2, 1)
    assert stats[busy.id]["review_count"] == 2
    # mean of (5+4)/2 and (3+2)/2
    assert stats[busy.id]["average_rating"] == 3.5
    assert stats[quiet.id]["total"] == 0
    assert stats[quiet.id]["average_rating"] == 0.0


def test_system_stats(db, make_user, make_doctor):
    patient = make_user()
    doctor = make_doctor()
    make_user(models.UserRole.ADMIN)
    _booking(db, patient, doctor)
    _booking(db, patient, doctor, status=models.BookingStatus.PENDING, hour=11)

    stats = review_service.system_stats(db)
    assert stats == {
        "total_users": 3,
        "total_doctors": 1,
        "total_patients": 1,
        "total_appointments": 2,
        "pending_appointments": 1,
        "completed_appointments": 1,
    }


@pytest.mark.asyncio
async def test_review_endpoints(async_client: AsyncClient, db, patient, doctor):
    booking = _booking(db, patient, doctor)
    pending = _booking(db, patient, doctor, status=models.BookingStatus.PENDING, hour=15)
    headers = auth_headers(patient)

    response = await async_client.post("/api/v1/reviews", json={
        "appointment_id": pending.id, "behaviour_rating": 5, "recommendation_rating": 5,
    }, headers=headers)
    assert response.status_code == 400

    response = await async_client.post("/api/v1/reviews", json={
        "appointment_id": booking.id, "behaviour_rating": 6, "recommendation_rating": 5,
    }, headers=headers)
    assert response.status_code == 422

    body = {"appointment_id": booking.id, "behaviour_rating": 4, "recommendation_rating": 3, "review_text": "Good"}
    response = await async_client.post("/api/v1/reviews", json=body, headers=headers)
    assert response.status_code == 201
    response = await async_client.post("/api/v1/reviews", json=body, headers=headers)
    assert response.status_code == 409

    response = await async_client.get(f"/api/v1/doctors/{doctor.id}/reviews", headers=headers)
    assert [r["review_text"] for r in response.json()] == ["Good"]

    response = await async_client.get(f"/api/v1/doctors/{doctor.id}/reviews/summary", headers=headers)
    assert response.json()["overall"] == 3.5

    response = await async_client.post("/api/v1/reviews", json=body, headers=auth_headers(doctor.user))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_reporting_endpoints_require_roles(async_client: AsyncClient, db, make_user, patient, doctor):
    clinic_admin = make_user(models.UserRole.CLINIC_ADMIN)
    admin = make_user(models.UserRole.ADMIN)

    response = await async_client.get("/api/v1/clinic/doctors/stats", headers=auth_headers(clinic_admin))
    assert response.status_code == 404

    clinic = models.Clinic(name="City Care", admin_user_id=clinic_admin.id)
    db.add(clinic)
    db.commit()
    doctor.clinic_id = clinic.id
    db.commit()
    _booking(db, patient, doctor)

    response = await async_client.get("/api/v1/clinic/doctors/stats", headers=auth_headers(clinic_admin))
    assert response.status_code == 200
    assert response.json()[0]["completed"] == 1

    response = await async_client.get("/api/v1/admin/stats", headers=auth_headers(patient))
    assert response.status_code == 403

    response = await async_client.get("/api/v1/admin/stats", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["total_appointments"] == 1
