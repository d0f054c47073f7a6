from datetime import date
from uuid import uuid4

import pytest

from receipt_tracker.models.receipt import ReceiptCreate, ReceiptStatus
from receipt_tracker.storage.blob_storage import permanent_path

from conftest import TRAVEL_ID


@pytest.fixture
def admin_headers(admin, auth_headers):
    return auth_headers(admin)


@pytest.fixture
def pending_receipt(receipt_repository, employee):
    fields = ReceiptCreate(
        user_id=str(employee.user_id), receipt_date=date(2024, 3, 1), amount="12.00", category_id=TRAVEL_ID
    )
    return receipt_repository.insert(fields, image_path=f"{employee.user_id}/temp_aaaa1111_1.jpg")


def test_admin_routes_refuse_employees(api_client, employee, auth_headers):
    headers = auth_headers(employee)

    assert api_client.get("/api/admin/receipts", headers=headers).status_code == 403
    assert api_client.get("/api/admin/users", headers=headers).status_code == 403


def test_list_all_receipts_with_status_filter(api_client, admin_headers, pending_receipt, receipt_repository):
    receipt_repository.update(pending_receipt.id, status=ReceiptStatus.APPROVED)

    approved = api_client.get("/api/admin/receipts", params={"status": "Approved"}, headers=admin_headers)
    pending = api_client.get("/api/admin/receipts", params={"status": "Pending"}, headers=admin_headers)

    assert [r["id"] for r in approved.json()] == [pending_receipt.id]
    assert pending.json() == []


def test_status_change_follows_lifecycle(api_client, admin_headers, pending_receipt):
    url = f"/api/admin/receipts/{pending_receipt.id}/status"

    approved = api_client.patch(url, json={"status": "Approved"}, headers=admin_headers)
    backwards = api_client.patch(url, json={"status": "Pending"}, headers=admin_headers)

    assert approved.status_code == 200
    assert approved.json()["status"] == "Approved"
    assert backwards.status_code == 409


def test_status_change_on_missing_receipt(api_client, admin_headers):
    response = api_client.patch("/api/admin/receipts/nope/status", json={"status": "Approved"}, headers=admin_headers)

    assert response.status_code == 404


def test_reconciliation_queue_and_repair(api_client, admin_headers, pending_receipt, receipt_repository, storage):
    receipt_repository.update(pending_receipt.id, needs_reconciliation=True)
    final_path = permanent_path(pending_receipt.user_id, pending_receipt.id, pending_receipt.image_path)
    storage.upload(final_path, b"\xff\xd8moved", "image/jpeg")

    queue = api_client.get("/api/admin/receipts/reconciliation", headers=admin_headers).json()
    assert [r["id"] for r in queue] == [pending_receipt.id]

    repaired = api_client.post(f"/api/admin/receipts/{pending_receipt.id}/reconcile", headers=admin_headers)

    assert repaired.status_code == 200
    assert repaired.json()["image_path"] == final_path
    assert repaired.json()["needs_reconciliation"] is False
    assert api_client.get("/api/admin/receipts/reconciliation", headers=admin_headers).json() == []


def test_user_management(api_client, admin_headers):
    created = api_client.post(
        "/api/admin/users",
        json={"name": "New Hire", "email": "hire@example.com", "password": "long-enough"},
        headers=admin_headers,
    )
    assert created.status_code == 201
    user_id = created.json()["user_id"]

    duplicate = api_client.post(
        "/api/admin/users",
        json={"name": "Again", "email": "hire@example.com", "password": "long-enough"},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409

    renamed = api_client.put(f"/api/admin/users/{user_id}", json={"name": "Hired"}, headers=admin_headers)
    assert renamed.json()["name"] == "Hired"

    emails = [u["email"] for u in api_client.get("/api/admin/users", headers=admin_headers).json()]
    assert "hire@example.com" in emails


def test_update_unknown_user(api_client, admin_headers):
    response = api_client.put(f"/api/admin/users/{uuid4()}", json={"name": "Ghost"}, headers=admin_headers)

    assert response.status_code == 404


def test_ban_and_unban(api_client, admin_headers, employee, auth_headers):
    banned = api_client.post(f"/api/admin/users/{employee.user_id}/ban", json={"hours": 4}, headers=admin_headers)

    assert banned.status_code == 200
    assert banned.json()["banned_until"] is not None
    assert banned.json()["banned"] is True
    assert api_client.get("/api/receipts", headers=auth_headers(employee)).status_code == 403

    unbanned = api_client.post(f"/api/admin/users/{employee.user_id}/unban", headers=admin_headers)

    assert unbanned.json()["banned_until"] is None
    assert unbanned.json()["banned"] is False
    assert api_client.get("/api/receipts", headers=auth_headers(employee)).status_code == 200


def test_admin_cannot_ban_self(api_client, admin, admin_headers):
    response = api_client.post(f"/api/admin/users/{admin.user_id}/ban", json={}, headers=admin_headers)

    assert response.status_code == 400


def test_audit_trail(api_client, admin_headers, pending_receipt):
    api_client.patch(
        f"/api/admin/receipts/{pending_receipt.id}/status", json={"status": "Rejected"}, headers=admin_headers
    )

    trail = api_client.get(f"/api/admin/audits/receipt/{pending_receipt.id}", headers=admin_headers).json()
    recent = api_client.get("/api/admin/audits/recent", params={"limit": 5}, headers=admin_headers).json()

    assert [e["event_type"] for e in trail] == ["RECEIPT_STATUS_CHANGED"]
    assert trail[0]["data"] == {"from": "Pending", "to": "Rejected"}
    assert recent[0]["receipt_id"] == pending_receipt.id


def test_recent_audits_filter_by_type_and_actor(api_client, admin, admin_headers, pending_receipt):
    api_client.patch(
        f"/api/admin/receipts/{pending_receipt.id}/status", json={"status": "Approved"}, headers=admin_headers
    )

    by_type = api_client.get(
        "/api/admin/audits/recent", params={"event_type": "RECEIPT_STATUS_CHANGED"}, headers=admin_headers
    ).json()
    by_other_actor = api_client.get(
        "/api/admin/audits/recent", params={"actor": "SYSTEM"}, headers=admin_headers
    ).json()

    assert [e["actor"] for e in by_type] == [str(admin.user_id)]
    assert by_other_actor == []


def test_email_intake_creates_receipts_for_the_sender(api_client, admin_headers, employee, extractor,
                                                      receipt_repository):
    extractor.returns(date="2024-03-01", amount="18.40", category_name="Meals")

    response = api_client.post(
        "/api/admin/email-intake",
        data={"sender_email": employee.email, "subject": "Team lunch"},
        files=[("attachments", ("lunch.jpg", b"\xff\xd8fake-jpeg", "image/jpeg"))],
        headers=admin_headers,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["error"] is None
    [outcome] = body["receipts"]
    assert outcome["success"] is True
    receipt = receipt_repository.get(outcome["receipt_id"])
    assert receipt.user_id == str(employee.user_id)
    assert receipt.description == "Email: Team lunch"
    assert receipt.submission_source.value == "email"


def test_email_intake_unknown_sender(api_client, admin_headers):
    response = api_client.post(
        "/api/admin/email-intake",
        data={"sender_email": "stranger@example.com", "subject": "Hi"},
        files=[("attachments", ("a.jpg", b"\xff\xd8fake-jpeg", "image/jpeg"))],
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json()["receipts"] == []
    assert "stranger@example.com" in response.json()["error"]


def test_email_intake_is_admin_only(api_client, employee, auth_headers):
    response = api_client.post(
        "/api/admin/email-intake",
        data={"sender_email": employee.email},
        files=[("attachments", ("a.jpg", b"\xff\xd8fake-jpeg", "image/jpeg"))],
        headers=auth_headers(employee),
    )

    assert response.status_code == 403
