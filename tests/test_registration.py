from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from backend.registration import (
    DUPLICATE_LINE_ID_MESSAGE,
    MISSING_LINE_ID_MESSAGE,
    USER_CREATION_FAILED_MESSAGE,
    DuplicateIdentifierError,
    IdentityCreationFailedError,
    LookupFailedError,
    MissingIdentifierError,
    ProfileInsertFailedError,
    RegistrationService,
    RegistrationState,
    ValidationFailedError,
)
from backend.supabase_client import SupabaseError
from backend.liff import TokenVerificationError
from backend.validation import GENDER_ERROR, PHONE_ERROR

FIXED_NOW = datetime(2024, 5, 1, 8, 30, 0, tzinfo=timezone.utc)


@pytest.fixture()
def service(fake_supabase) -> RegistrationService:
    return RegistrationService(fake_supabase, clock=lambda: FIXED_NOW)


def test_successful_registration_creates_identity_and_customer(service, fake_supabase, valid_payload) -> None:
    user = service.register(valid_payload)

    assert user.id in fake_supabase.identities
    assert user.email == "a@b.com"
    assert user.line_id == "U123"
    assert fake_supabase.calls == ["lookup", "create_identity", "insert"]

    (row,) = fake_supabase.tables["customers"]
    assert row["id"] == user.id
    assert row["line_id"] == "U123"
    assert row["name"] == "王小明"
    assert row["nickname"] is None
    assert row["membership_level"] == "basic"
    assert row["points"] == 0
    assert row["total_spent"] == 0
    assert row["last_purchase_date"] is None
    assert row["created_at"] == row["updated_at"] == "2024-05-01T08:30:00.000Z"
    assert "password" not in row


def test_missing_line_id_is_rejected_before_any_backend_call(service, fake_supabase, valid_payload) -> None:
    valid_payload.pop("line_id")

    with pytest.raises(MissingIdentifierError) as excinfo:
        service.register(valid_payload)

    assert excinfo.value.message == MISSING_LINE_ID_MESSAGE
    assert excinfo.value.status_code == 400
    assert fake_supabase.calls == []


def test_invalid_profile_is_rejected_before_any_backend_call(service, fake_supabase, valid_payload) -> None:
    valid_payload["phone"] = "12345"

    with pytest.raises(ValidationFailedError) as excinfo:
        service.register(valid_payload)

    assert excinfo.value.message == PHONE_ERROR
    assert excinfo.value.state is RegistrationState.VALIDATING
    assert fake_supabase.calls == []


def test_server_validation_can_be_disabled(fake_supabase, valid_payload) -> None:
    service = RegistrationService(fake_supabase, validate=False)
    valid_payload["phone"] = "12345"

    user = service.register(valid_payload)

    assert fake_supabase.tables["customers"][0]["phone"] == "12345"
    assert user.line_id == "U123"


def test_duplicate_line_id_does_not_create_identity(service, fake_supabase, valid_payload) -> None:
    service.register(valid_payload)
    fake_supabase.calls.clear()
    second = dict(valid_payload, email="other@b.com")

    with pytest.raises(DuplicateIdentifierError) as excinfo:
        service.register(second)

    assert excinfo.value.message == DUPLICATE_LINE_ID_MESSAGE
    assert excinfo.value.status_code == 400
    assert fake_supabase.calls == ["lookup"]
    assert len(fake_supabase.identities) == 1


def test_lookup_failure_aborts(service, fake_supabase, valid_payload) -> None:
    fake_supabase.lookup_error = SupabaseError("permission denied for table customers", code="42501")

    with pytest.raises(LookupFailedError) as excinfo:
        service.register(valid_payload)

    assert excinfo.value.status_code == 500
    assert "permission denied" in excinfo.value.message
    assert excinfo.value.state is RegistrationState.CHECKING_DUPLICATE
    assert fake_supabase.calls == ["lookup"]


def test_identity_creation_failure_leaves_nothing_behind(service, fake_supabase, valid_payload) -> None:
    fake_supabase.signup_error = SupabaseError("User already registered", code="user_already_exists")

    with pytest.raises(IdentityCreationFailedError) as excinfo:
        service.register(valid_payload)

    assert excinfo.value.message == "User already registered"
    assert fake_supabase.tables["customers"] == []
    assert "insert" not in fake_supabase.calls


def test_signup_without_user_is_a_creation_failure(service, fake_supabase, valid_payload) -> None:
    fake_supabase.signup_returns_none = True

    with pytest.raises(IdentityCreationFailedError) as excinfo:
        service.register(valid_payload)

    assert excinfo.value.message == USER_CREATION_FAILED_MESSAGE


def test_insert_failure_deletes_created_identity(service, fake_supabase, valid_payload) -> None:
    fake_supabase.insert_error = SupabaseError(
        'duplicate key value violates unique constraint "customers_line_id_key"', code="23505"
    )

    with pytest.raises(ProfileInsertFailedError) as excinfo:
        service.register(valid_payload)

    assert excinfo.value.message.startswith("duplicate key value")
    assert excinfo.value.rolled_back is True
    assert excinfo.value.state is RegistrationState.ROLLING_BACK
    assert fake_supabase.calls == ["lookup", "create_identity", "insert", "delete_identity"]
    assert fake_supabase.identities == {}


def test_failed_rollback_keeps_insert_error_and_logs(service, fake_supabase, valid_payload, caplog) -> None:
    fake_supabase.insert_error = SupabaseError("insert failed")
    fake_supabase.delete_error = SupabaseError("admin api unavailable")

    with caplog.at_level(logging.ERROR, logger="backend.registration"):
        with pytest.raises(ProfileInsertFailedError) as excinfo:
            service.register(valid_payload)

    assert excinfo.value.message == "insert failed"
    assert excinfo.value.rolled_back is False
    assert len(fake_supabase.identities) == 1
    orphan_id = next(iter(fake_supabase.identities))
    assert any(orphan_id in record.getMessage() for record in caplog.records)


def test_unexpected_backend_exception_during_insert_still_rolls_back(service, fake_supabase, valid_payload) -> None:
    fake_supabase.insert_error = RuntimeError("")

    with pytest.raises(ProfileInsertFailedError) as excinfo:
        service.register(valid_payload)

    assert excinfo.value.message == "註冊失敗"
    assert fake_supabase.identities == {}


def test_custom_customers_table(fake_supabase, valid_payload) -> None:
    service = RegistrationService(fake_supabase, customers_table="members")

    service.register(valid_payload)

    assert fake_supabase.tables["customers"] == []
    assert fake_supabase.tables["members"][0]["line_id"] == "U123"


def test_unknown_gender_is_rejected_before_any_backend_call(service, fake_supabase, valid_payload) -> None:
    valid_payload["gender"] = "robot"

    with pytest.raises(ValidationFailedError) as excinfo:
        service.register(valid_payload)

    assert excinfo.value.message == GENDER_ERROR
    assert fake_supabase.calls == []


class _Verifier:
    def __init__(self, *, enabled: bool = True, error: Exception | None = None) -> None:
        self.enabled = enabled
        self.error = error
        self.calls: list[tuple[str | None, str]] = []

    def verify(self, access_token, line_id) -> None:
        self.calls.append((access_token, line_id))
        if self.error:
            raise self.error


def test_token_is_verified_after_validation_and_before_lookup(fake_supabase, valid_payload) -> None:
    verifier = _Verifier()
    service = RegistrationService(fake_supabase, token_verifier=verifier)

    service.register(valid_payload, access_token="liff-token")

    assert verifier.calls == [("liff-token", "U123")]
    assert fake_supabase.calls == ["lookup", "create_identity", "insert"]


def test_invalid_form_never_reaches_token_verifier(fake_supabase, valid_payload) -> None:
    verifier = _Verifier(error=TokenVerificationError("LINE 存取權杖無效"))
    service = RegistrationService(fake_supabase, token_verifier=verifier)
    valid_payload["phone"] = "123"

    with pytest.raises(ValidationFailedError):
        service.register(valid_payload, access_token="liff-token")

    assert verifier.calls == []


def test_rejected_token_stops_before_duplicate_lookup(fake_supabase, valid_payload) -> None:
    verifier = _Verifier(error=TokenVerificationError("LINE 帳號與註冊資料不符"))
    service = RegistrationService(fake_supabase, token_verifier=verifier)

    with pytest.raises(TokenVerificationError) as excinfo:
        service.register(valid_payload, access_token="liff-token")

    assert excinfo.value.status_code == 401
    assert fake_supabase.calls == []


def test_disabled_verifier_is_skipped(fake_supabase, valid_payload) -> None:
    verifier = _Verifier(enabled=False)
    service = RegistrationService(fake_supabase, token_verifier=verifier)

    service.register(valid_payload)

    assert verifier.calls == []
