from datetime import datetime, timedelta
from uuid import uuid4

import pytest
from passlib.hash import bcrypt as bcrypt_hash

from receipt_tracker.auth.jwt import create_access_token, verify_access_token
from receipt_tracker.auth.password import hash_password, verify_password
from receipt_tracker.models.audit import AuditEventType
from receipt_tracker.models.user import User, UserCreate, UserRole, UserUpdate
from receipt_tracker.utils.helpers.exceptions import UserConflictError, UserNotFoundError

from conftest import TEST_PASSWORD


def test_password_hash_roundtrip():
    hashed = hash_password("s3cret-pass")

    assert hashed != "s3cret-pass"
    assert verify_password("s3cret-pass", hashed)
    assert not verify_password("wrong", hashed)


def test_token_roundtrip(employee):
    token = create_access_token(employee)

    data = verify_access_token(token)

    assert data.user_id == employee.user_id
    assert data.email == employee.email
    assert data.role == UserRole.EMPLOYEE


def test_expired_or_tampered_token_is_rejected(employee):
    expired = create_access_token(employee, expires_delta=timedelta(seconds=-1))

    assert verify_access_token(expired) is None
    assert verify_access_token("not-a-token") is None


def test_authenticate(user_service, employee):
    assert user_service.authenticate("ERIN@example.com", TEST_PASSWORD).user_id == employee.user_id
    assert user_service.authenticate(employee.email, "wrong-password") is None
    assert user_service.authenticate("nobody@example.com", TEST_PASSWORD) is None


def test_create_user_is_audited(user_service, admin, audit_repository):
    user = user_service.create_user(
        admin, UserCreate(name="New Hire", email="new@example.com", password="long-enough")
    )

    assert user_service.authenticate("new@example.com", "long-enough").user_id == user.user_id
    [event] = audit_repository.get_events_by_type(AuditEventType.USER_CREATED)
    assert event.actor == str(admin.user_id)
    assert event.data["email"] == "new@example.com"


def test_create_user_rejects_taken_email(user_service, admin, employee):
    with pytest.raises(UserConflictError):
        user_service.create_user(
            admin, UserCreate(name="Copy", email=employee.email, password="long-enough")
        )


def test_update_user(user_service, admin, employee):
    updated = user_service.update_user(admin, employee.user_id, UserUpdate(name="Erin E.", role=UserRole.ADMIN))

    assert updated.name == "Erin E."
    assert updated.is_admin


def test_update_user_email_conflict(user_service, admin, employee, other_employee):
    with pytest.raises(UserConflictError):
        user_service.update_user(admin, employee.user_id, UserUpdate(email=other_employee.email))


def test_update_missing_user(user_service, admin):
    with pytest.raises(UserNotFoundError):
        user_service.update_user(admin, uuid4(), UserUpdate(name="Ghost"))


def test_indefinite_ban_and_unban(user_service, admin, employee, audit_repository):
    banned = user_service.ban_user(admin, employee.user_id)

    assert banned.is_active is False
    assert banned.is_banned()

    restored = user_service.unban_user(admin, employee.user_id)

    assert restored.is_active is True
    assert not restored.is_banned()
    types = [e.event_type for e in audit_repository.get_recent_events()]
    assert AuditEventType.USER_BANNED in types
    assert AuditEventType.USER_UNBANNED in types


def test_timed_ban_expires(user_service, admin, employee):
    banned = user_service.ban_user(admin, employee.user_id, hours=2)

    assert banned.is_active is True
    assert banned.is_banned()
    assert not banned.is_banned(now=datetime.utcnow() + timedelta(hours=3))


def test_unrecognized_stored_hash_is_a_mismatch():
    assert verify_password("anything", "not-a-bcrypt-hash") is False


def test_weak_hash_is_upgraded_on_login(user_service, user_repository):
    weak = bcrypt_hash.using(rounds=4).hash("legacy-pass")
    user = user_repository.create_user(User(name="Legacy", email="legacy@example.com", password_hash=weak))

    assert user_service.authenticate("legacy@example.com", "legacy-pass") is not None

    stored = user_repository.get_user_by_id(user.user_id).password_hash
    assert stored != weak
    assert verify_password("legacy-pass", stored)
