"""Member registration: auth identity + linked customer row, with rollback."""
from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Protocol

from .validation import RegistrationForm, validate_registration_form

_LOGGER = logging.getLogger(__name__)

DEFAULT_MEMBERSHIP_LEVEL = "basic"

MISSING_LINE_ID_MESSAGE = "LINE ID 是必須的"
DUPLICATE_LINE_ID_MESSAGE = "此 LINE 帳號已經註冊"
USER_CREATION_FAILED_MESSAGE = "用戶創建失敗"
REGISTRATION_FAILED_MESSAGE = "註冊失敗"
REGISTRATION_SUCCESS_MESSAGE = "註冊成功"


class RegistrationState(str, Enum):
    VALIDATING = "validating"
    CHECKING_DUPLICATE = "checking_duplicate"
    CREATING_IDENTITY = "creating_identity"
    INSERTING_PROFILE = "inserting_profile"
    ROLLING_BACK = "rolling_back"
    SUCCESS = "success"
    FAILED = "failed"


class RegistrationError(Exception):
    """Base class for failures surfaced to the caller as ``{message}``."""

    status_code = 500

    def __init__(self, message: str, *, state: RegistrationState | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.state = state


class MissingIdentifierError(RegistrationError):
    status_code = 400


class ValidationFailedError(RegistrationError):
    status_code = 400


class DuplicateIdentifierError(RegistrationError):
    status_code = 400


class LookupFailedError(RegistrationError):
    pass


class IdentityCreationFailedError(RegistrationError):
    pass


class ProfileInsertFailedError(RegistrationError):
    def __init__(
        self,
        message: str,
        *,
        state: RegistrationState | None = None,
        rolled_back: bool = False,
    ) -> None:
        super().__init__(message, state=state)
        self.rolled_back = rolled_back


class IdentityUser(Protocol):
    id: str
    email: str | None


class RegistrationBackend(Protocol):
    def lookup(
        self, table: str, filters: Mapping[str, str], *, columns: str = "id"
    ) -> dict[str, Any] | None: ...

    def insert(self, table: str, record: Mapping[str, Any]) -> None: ...

    def create_identity(self, email: str, password: str) -> IdentityUser | None: ...

    def delete_identity(self, user_id: str) -> None: ...


class TokenVerifier(Protocol):
    enabled: bool

    def verify(self, access_token: str | None, line_id: str) -> None: ...


@dataclass
class RegistrationRequest:
    email: str
    password: str
    line_id: str
    form: RegistrationForm

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RegistrationRequest":
        form = RegistrationForm.from_mapping(data)
        line_id = data.get("line_id")
        password = data.get("password")
        return cls(
            email=form.email,
            password="" if password is None else str(password),
            line_id="" if line_id is None else str(line_id).strip(),
            form=form,
        )


@dataclass
class Customer:
    """Row written to the customers table at registration time."""

    id: str
    name: str
    email: str
    phone: str
    gender: str
    birthday: str
    city: str
    district: str
    line_id: str
    nickname: str | None = None
    membership_level: str = DEFAULT_MEMBERSHIP_LEVEL
    points: int = 0
    total_spent: float = 0
    last_purchase_date: str | None = None
    created_at: str = ""
    updated_at: str = ""

    def to_record(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class RegisteredUser:
    id: str
    email: str | None
    line_id: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "line_id": self.line_id}


def _utc_timestamp(now: datetime) -> str:
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _error_message(exc: Exception) -> str:
    return str(exc) or REGISTRATION_FAILED_MESSAGE


@dataclass
class _Compensations:
    """Reverse actions for steps that already committed, run newest first."""

    actions: list[tuple[str, Callable[[], None]]] = field(default_factory=list)

    def add(self, description: str, action: Callable[[], None]) -> None:
        self.actions.append((description, action))

    def run(self) -> bool:
        all_ok = True
        for description, action in reversed(self.actions):
            try:
                action()
                _LOGGER.info("Rolled back: %s", description)
            except Exception as exc:  # pylint: disable=broad-except
                all_ok = False
                _LOGGER.error("Rollback failed, manual cleanup needed: %s (%s)", description, exc)
        self.actions.clear()
        return all_ok


class RegistrationService:
    """Create the auth identity and customer row for a new LINE member."""

    def __init__(
        self,
        backend: RegistrationBackend,
        *,
        customers_table: str = "customers",
        validate: bool = True,
        strict_district: bool = False,
        token_verifier: TokenVerifier | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._backend = backend
        self._customers_table = customers_table
        self._validate = validate
        self._strict_district = strict_district
        self._token_verifier = token_verifier
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def register(self, data: Mapping[str, Any], *, access_token: str | None = None) -> RegisteredUser:
        """Run the registration steps for one request.

        The LINE access token is only checked once the form has passed
        validation, so an invalid form never reaches LINE or Supabase.
        """
        request = RegistrationRequest.from_mapping(data)
        state = RegistrationState.VALIDATING

        if not request.line_id:
            raise MissingIdentifierError(MISSING_LINE_ID_MESSAGE, state=state)

        if self._validate:
            result = validate_registration_form(request.form, strict_district=self._strict_district)
            if not result.ok:
                raise ValidationFailedError(result.message or REGISTRATION_FAILED_MESSAGE, state=state)

        if self._token_verifier is not None and self._token_verifier.enabled:
            self._token_verifier.verify(access_token, request.line_id)

        state = RegistrationState.CHECKING_DUPLICATE
        try:
            existing = self._backend.lookup(self._customers_table, {"line_id": request.line_id})
        except Exception as exc:  # pylint: disable=broad-except
            raise LookupFailedError(_error_message(exc), state=state) from exc
        if existing:
            _LOGGER.info("Rejected registration for already registered LINE user")
            raise DuplicateIdentifierError(DUPLICATE_LINE_ID_MESSAGE, state=state)

        state = RegistrationState.CREATING_IDENTITY
        try:
            user = self._backend.create_identity(request.email, request.password)
        except Exception as exc:  # pylint: disable=broad-except
            raise IdentityCreationFailedError(_error_message(exc), state=state) from exc
        if user is None or not user.id:
            raise IdentityCreationFailedError(USER_CREATION_FAILED_MESSAGE, state=state)

        compensations = _Compensations()
        compensations.add(
            f"auth identity {user.id}",
            lambda: self._backend.delete_identity(user.id),
        )

        state = RegistrationState.INSERTING_PROFILE
        customer = self._build_customer(user.id, request)
        try:
            self._backend.insert(self._customers_table, customer.to_record())
        except Exception as exc:  # pylint: disable=broad-except
            _LOGGER.warning("Customer insert failed for identity %s: %s", user.id, exc)
            rolled_back = compensations.run()
            raise ProfileInsertFailedError(
                _error_message(exc),
                state=RegistrationState.ROLLING_BACK,
                rolled_back=rolled_back,
            ) from exc

        _LOGGER.info("Registered customer %s", user.id)
        return RegisteredUser(id=user.id, email=user.email or request.email, line_id=request.line_id)

    def _build_customer(self, user_id: str, request: RegistrationRequest) -> Customer:
        form = request.form
        timestamp = _utc_timestamp(self._clock())
        return Customer(
            id=user_id,
            name=form.name,
            nickname=form.nickname or None,
            email=request.email,
            phone=form.phone,
            gender=form.gender,
            birthday=form.birthday,
            city=form.city,
            district=form.district,
            line_id=request.line_id,
            created_at=timestamp,
            updated_at=timestamp,
        )
