"""HTML pages served inside the LINE in-app browser."""
from __future__ import annotations

from flask import Blueprint, current_app, render_template

from ..districts import as_json_table
from ..liff import LIFF_SDK_URL, initial_page_state
from ..validation import (
    EMAIL_PATTERN,
    NAME_MAX_LENGTH,
    NICKNAME_MAX_LENGTH,
    PHONE_PATTERN,
)

pages_blueprint = Blueprint("pages", __name__)


def _liff_page_context() -> dict[str, object]:
    config = current_app.config["REGISTRATION_CONFIG"]
    state, error = initial_page_state(config)
    return {
        "liff_id": config.liff_id,
        "liff_sdk_url": LIFF_SDK_URL,
        "page_state": state.value,
        "page_error": error,
    }


@pages_blueprint.get("/")
def index() -> str:
    return render_template("index.html")


@pages_blueprint.get("/register")
def register_form() -> str:
    return render_template(
        "register.html",
        city_districts=as_json_table(),
        name_max_length=NAME_MAX_LENGTH,
        nickname_max_length=NICKNAME_MAX_LENGTH,
        phone_pattern=PHONE_PATTERN.pattern,
        email_pattern=EMAIL_PATTERN.pattern,
        **_liff_page_context(),
    )


@pages_blueprint.get("/verify-email")
def verify_email() -> str:
    """Post-registration confirmation; hands control back to LINE."""
    return render_template("verify_email.html", **_liff_page_context())
