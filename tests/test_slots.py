# tests/test_slots.py
from datetime import date, datetime

import pytest
from httpx import AsyncClient

from eshaafi import models
from eshaafi.exceptions import NotOwnedError, ValidationError
from eshaafi.services import slot_service
from tests.helpers import auth_headers

DAY = date(2030, 5, 1)


def test_add_slot_is_idempotent(db, doctor):
    first, created = slot_service.add_slot(db, doctor.id, DAY, "10:00", "10:30")
    again, created_again = slot_service.add_slot(db, doctor.id, DAY, "10:00", "10:30")

    assert created is True
    assert created_again is False
    assert again.id == first.id
    assert first.duration == 30
    assert db.query(models.AvailabilitySlot).count() == 1


def test_add_slot_normalizes_clock_strings(db, doctor):
    slot, created = slot_service.add_slot(db, doctor.id, DAY, "9:00", "09:45:00", location="Room 2")
    assert created
    assert (slot.start_time, slot.end_time, slot.duration) == ("09:00", "09:45", 45)
    assert slot.location == "Room 2"


def test_add_slot_rejects_inverted_window(db, doctor):
    with pytest.raises(ValidationError):
        slot_service.add_slot(db, doctor.id, DAY, "11:00", "10:30")
    assert db.query(models.AvailabilitySlot).count() == 0


def test_delete_slot_ownership(db, make_doctor):
    owner = make_doctor()
    other = make_doctor()
    slot, _ = slot_service.add_slot(db, owner.id, DAY, "10:00", "10:30")
    slot_id = slot.id

    with pytest.raises(NotOwnedError):
        slot_service.delete_slot(db, slot_id, other.id)

    slot_service.delete_slot(db, slot_id, owner.id)
    # Already gone is not an error
    slot_service.delete_slot(db, slot_id, owner.id)
    assert db.query(models.AvailabilitySlot).count() == 0


def test_annotate_matches_exact_start_time_only(db, doctor, patient):
    slot_service.add_slot(db, doctor.id, DAY, "10:00", "10:15")
    slot_service.add_slot(db, doctor.id, DAY, "10:15", "10:45")
    slot_service.add_slot(db, doctor.id, DAY, "11:00", "11:30")
    db.add_all([
        models.Booking(patient_id=patient.id, doctor_id=doctor.id, date_time=datetime(2030, 5, 1, 10, 0)),
        # Inside the 11:00 window but not at its start
        models.Booking(patient_id=patient.id, doctor_id=doctor.id, date_time=datetime(2030, 5, 1, 11, 10)),
        # Same clock time on another day
        models.Booking(patient_id=patient.id, doctor_id=doctor.id, date_time=datetime(2030, 5, 2, 10, 15)),
    ])
    db.commit()

    annotated = {s.start_time: s.is_booked for s in slot_service.annotate_availability(db, doctor.id, DAY)}
    assert annotated == {"10:00": True, "10:15": False, "11:00": False}


def test_annotate_counts_every_status(db, doctor, patient):
    slot_service.add_slot(db, doctor.id, DAY, "14:00", "14:30")
    db.add(models.Booking(
        patient_id=patient.id,
        doctor_id=doctor.id,
        date_time=datetime(2030, 5, 1, 14, 0),
        status=models.BookingStatus.REJECTED,
        rejection_reason="Clinic closed",
    ))
    db.commit()

    [slot] = slot_service.annotate_availability(db, doctor.id, DAY)
    assert slot.is_booked is True


def test_annotate_without_slots_is_empty(db, doctor):
    assert slot_service.annotate_availability(db, doctor.id, DAY) == []


@pytest.mark.asyncio
async def test_batch_slots_endpoint_skips_duplicates(async_client: AsyncClient, doctor):
    payload = {
        "slots": [
            {"date": "2030-05-01", "start_time": "10:00", "end_time": "10:30", "location": ""},
            {"date": "2030-05-01", "start_time": "10:30", "end_time": "11:30", "custom": True},
        ]
    }
    headers = auth_headers(doctor.user)

    response = await async_client.post("/api/v1/doctor/availability/slots", json=payload, headers=headers)
    assert response.status_code == 201
    data = response.json()
    assert data["created"] == 2
    assert data["skipped"] == 0
    assert data["slots"][1]["duration"] == 60
    assert data["slots"][0]["location"] is None

    response = await async_client.post("/api/v1/doctor/availability/slots", json=payload, headers=headers)
    assert response.json()["created"] == 0
    assert response.json()["skipped"] == 2

    response = await async_client.get("/api/v1/doctor/availability", params={"date": "2030-05-01"}, headers=headers)
    assert [s["start_time"] for s in response.json()] == ["10:00", "10:30"]


@pytest.mark.asyncio
async def test_single_slot_endpoint_reports_existing(async_client: AsyncClient, doctor):
    headers = auth_headers(doctor.user)
    body = {"date": "2030-05-01", "start_time": "09:00", "end_time": "09:30"}

    first = await async_client.post("/api/v1/doctor/availability", json=body, headers=headers)
    second = await async_client.post("/api/v1/doctor/availability", json=body, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 200
    assert second.json()["id"] == first.json()["id"]


@pytest.mark.asyncio
async def test_slot_endpoints_reject_bad_windows(async_client: AsyncClient, doctor):
    response = await async_client.post(
        "/api/v1/doctor/availability",
        json={"date": "2030-05-01", "start_time": "12:00", "end_time": "11:00"},
        headers=auth_headers(doctor.user),
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_delete_foreign_slot_is_forbidden(async_client: AsyncClient, db, make_doctor):
    owner = make_doctor()
    intruder = make_doctor()
    slot, _ = slot_service.add_slot(db, owner.id, DAY, "10:00", "10:30")

    response = await async_client.delete(f"/api/v1/doctor/availability/{slot.id}", headers=auth_headers(intruder.user))
    assert response.status_code == 403

    response = await async_client.delete(f"/api/v1/doctor/availability/{slot.id}", headers=auth_headers(owner.user))
    assert response.status_code == 204


@pytest.mark.asyncio
async def test_patient_cannot_manage_slots(async_client: AsyncClient, patient):
    response = await async_client.post(
        "/api/v1/doctor/availability",
        json={"date": "2030-05-01", "start_time": "10:00", "end_time": "10:30"},
        headers=auth_headers(patient),
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_public_availability_marks_booked_slots(async_client: AsyncClient, db, doctor, patient):
    slot_service.add_slot(db, doctor.id, DAY, "10:00", "10:15")
    slot_service.add_slot(db, doctor.id, DAY, "10:15", "10:30")
    db.add(models.Booking(patient_id=patient.id, doctor_id=doctor.id, date_time=datetime(2030, 5, 1, 10, 0)))
    db.commit()

    response = await async_client.get(
        f"/api/v1/doctors/{doctor.id}/availability", params={"date": "2030-05-01"}, headers=auth_headers(patient)
    )
    assert response.status_code == 200
    assert [(s["start_time"], s["is_booked"]) for s in response.json()] == [("10:00", True), ("10:15", False)]

    response = await async_client.get(
        "/api/v1/doctors/9999/availability", params={"date": "2030-05-01"}, headers=auth_headers(patient)
    )
    assert response.status_code == 404
