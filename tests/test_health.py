# tests/test_health.py
from datetime import datetime

import pytest
from httpx import AsyncClient

from eshaafi import crud, models
from eshaafi.services import booking_service
from tests.helpers import FakeProvisioner, auth_headers


@pytest.mark.asyncio
async def test_health_check(async_client: AsyncClient):
    response = await async_client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_consistency_checks_find_broken_rows(db, make_user, make_doctor):
    patient = make_user()
    doctor, other = make_doctor(), make_doctor()
    when = datetime(2030, 5, 1, 10, 0)

    ok = models.Booking(patient_id=patient.id, doctor_id=doctor.id, date_time=when)
    virtual = models.Booking(patient_id=patient.id, doctor_id=doctor.id, date_time=when, type=models.BookingType.VIRTUAL)
    physical = models.Booking(patient_id=patient.id, doctor_id=doctor.id, date_time=when, video_room_id="stray")
    rejected = models.Booking(patient_id=patient.id, doctor_id=doctor.id, date_time=when, status=models.BookingStatus.REJECTED)
    db.add_all([ok, virtual, physical, rejected])
    db.commit()
    foreign = models.Booking(patient_id=patient.id, doctor_id=other.id, date_time=when, original_booking_id=ok.id)
    db.add(foreign)
    db.add(models.Review(appointment_id=ok.id, doctor_id=doctor.id, patient_id=patient.id,
                         behaviour_rating=5, recommendation_rating=5))
    db.commit()

    report = crud.run_consistency_checks(db)
    assert [e["booking_id"] for e in report["virtual_bookings_without_room"]] == [virtual.id]
    assert [e["booking_id"] for e in report["physical_bookings_with_room"]] == [physical.id]
    assert [e["booking_id"] for e in report["rejections_without_reason"]] == [rejected.id]
    assert [e["booking_id"] for e in report["cross_doctor_follow_ups"]] == [foreign.id]
    assert [e["booking_id"] for e in report["reviews_on_incomplete_bookings"]] == [ok.id]


@pytest.mark.asyncio
async def test_consistency_check_and_logs_are_admin_only(async_client: AsyncClient, db, make_user, doctor):
    admin = make_user(models.UserRole.ADMIN)
    patient = make_user()

    response = await async_client.get("/api/v1/health/consistency-check", headers=auth_headers(patient))
    assert response.status_code == 403

    response = await async_client.get("/api/v1/health/consistency-check", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["virtual_bookings_without_room"] == []

    # Any booking action leaves an audit entry behind
    response = await async_client.post("/api/v1/bookings", json={
        "doctor_id": doctor.id, "date_time": "2030-05-01T10:00:00",
    }, headers=auth_headers(patient))
    assert response.status_code == 201

    response = await async_client.get("/api/v1/admin/logs", params={"category": "BOOKING"}, headers=auth_headers(admin))
    assert response.status_code == 200
    [entry] = response.json()
    assert entry["action"] == "CREATE"
    assert entry["user_id"] == patient.id
    assert entry["resource_type"] == "Booking"

    response = await async_client.get("/api/v1/admin/logs", headers=auth_headers(patient))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_persistence_failures_surface_as_500(async_client: AsyncClient, make_user, monkeypatch):
    admin = make_user(models.UserRole.ADMIN)

    def broken_query(*args, **kwargs):
        raise crud.CRUDError("A database error occurred while fetching audit logs.")

    monkeypatch.setattr(crud, "get_audit_logs", broken_query)
    response = await async_client.get("/api/v1/admin/logs", headers=auth_headers(admin))
    assert response.status_code == 500
    assert response.json() == {"detail": "A database error occurred while fetching audit logs."}


async def test_audit_trail_uses_write_actions_only(db, patient, doctor):
    assert {action.value for action in models.AuditAction} == {"CREATE", "UPDATE", "DELETE"}

    provisioner = FakeProvisioner()
    kept = await booking_service.create_booking(db, provisioner, patient_id=patient.id, doctor_id=doctor.id,
                                                date_time=datetime(2030, 5, 1, 10, 0))
    dropped = await booking_service.create_booking(db, provisioner, patient_id=patient.id, doctor_id=doctor.id,
                                                   date_time=datetime(2030, 5, 1, 11, 0))
    booking_service.change_status(db, kept.id, models.BookingStatus.BOOKED, doctor_id=doctor.id)
    booking_service.delete_booking(db, dropped.id, patient_id=patient.id)

    actions = [log.action for log in db.query(models.AuditLog).order_by(models.AuditLog.id)]
    assert actions == [
        models.AuditAction.CREATE,
        models.AuditAction.CREATE,
        models.AuditAction.UPDATE,
        models.AuditAction.DELETE,
    ]
