"""Field checks for the member registration form."""
from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Mapping

from .districts import is_valid_district

NAME_MAX_LENGTH = 5
NICKNAME_MAX_LENGTH = 15

PHONE_PATTERN = re.compile(r"^09[0-9]{8}$")
EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

NAME_ERROR = "姓名為必填且長度不能超過5個字"
NICKNAME_ERROR = "暱稱長度不能超過15個字"
GENDER_ERROR = "性別選項錯誤"
PHONE_ERROR = "手機號碼格式錯誤"
EMAIL_ERROR = "電子郵件格式錯誤"
BIRTHDAY_ERROR = "請選擇生日"
ADDRESS_ERROR = "請選擇完整的地址"
DISTRICT_MISMATCH_ERROR = "鄉鎮市區與縣市不符"


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


_GENDERS = frozenset(gender.value for gender in Gender)


@dataclass(frozen=True)
class RegistrationForm:
    """Profile fields entered on the registration page."""

    name: str
    phone: str
    email: str
    birthday: str
    city: str
    district: str
    gender: str = Gender.MALE.value
    nickname: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "RegistrationForm":
        def _text(key: str) -> str:
            value = data.get(key)
            return "" if value is None else str(value).strip()

        return cls(
            name=_text("name"),
            nickname=_text("nickname"),
            gender=_text("gender") or Gender.MALE.value,
            phone=_text("phone"),
            email=_text("email"),
            birthday=_text("birthday"),
            city=_text("city"),
            district=_text("district"),
        )


@dataclass(frozen=True)
class ValidationResult:
    ok: bool
    message: str | None = None

    def __bool__(self) -> bool:
        return self.ok


def validate_registration_form(
    form: RegistrationForm, *, strict_district: bool = False
) -> ValidationResult:
    """Check *form* and report the first failing rule.

    Rules run in a fixed order (name, nickname, gender, phone, email, birthday,
    address) so the message shown above the form is stable. The district is
    only required to be non-empty unless ``strict_district`` is set, in which
    case it must also belong to the chosen city.
    """
    if not form.name or len(form.name) > NAME_MAX_LENGTH:
        return ValidationResult(False, NAME_ERROR)
    if form.nickname and len(form.nickname) > NICKNAME_MAX_LENGTH:
        return ValidationResult(False, NICKNAME_ERROR)
    if form.gender not in _GENDERS:
        return ValidationResult(False, GENDER_ERROR)
    if not PHONE_PATTERN.fullmatch(form.phone):
        return ValidationResult(False, PHONE_ERROR)
    if not EMAIL_PATTERN.fullmatch(form.email):
        return ValidationResult(False, EMAIL_ERROR)
    if not form.birthday:
        return ValidationResult(False, BIRTHDAY_ERROR)
    if not form.city or not form.district:
        return ValidationResult(False, ADDRESS_ERROR)
    if strict_district and not is_valid_district(form.city, form.district):
        return ValidationResult(False, DISTRICT_MISMATCH_ERROR)
    return ValidationResult(True)
