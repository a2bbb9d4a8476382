"""Environment-derived settings for the registration service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

_TRUTHY = {"1", "true", "yes"}
_FALSY = {"0", "false", "no"}


def _first(environ: Mapping[str, str], *names: str, default: str = "") -> str:
    for name in names:
        value = environ.get(name, "").strip()
        if value:
            return value
    return default


def _flag(environ: Mapping[str, str], name: str, default: bool) -> bool:
    value = environ.get(name, "").strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    return default


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    value = environ.get(name, "").strip()
    if not value:
        return default
    try:
        return float(value)
    except ValueError:
        raise ValueError(f"環境變數 {name} 必須是數字") from None


@dataclass(frozen=True)
class AppConfig:
    supabase_url: str = ""
    supabase_service_key: str = ""
    liff_id: str = ""
    line_channel_id: str = ""
    validate_on_server: bool = True
    strict_district: bool = False
    request_timeout: float = 10.0
    customers_table: str = "customers"

    @property
    def supabase_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_service_key)

    @property
    def liff_configured(self) -> bool:
        return bool(self.liff_id)

    @property
    def verify_line_token(self) -> bool:
        return bool(self.line_channel_id)


def load_config(environ: Mapping[str, str] | None = None) -> AppConfig:
    """Build an :class:`AppConfig` from environment variables.

    The ``NEXT_PUBLIC_*`` names are accepted as fallbacks so an existing
    deployment's environment keeps working unchanged.
    """
    env = os.environ if environ is None else environ
    return AppConfig(
        supabase_url=_first(env, "SUPABASE_URL", "NEXT_PUBLIC_SUPABASE_URL").rstrip("/"),
        supabase_service_key=_first(env, "SUPABASE_SERVICE_ROLE_KEY"),
        liff_id=_first(env, "LIFF_ID", "NEXT_PUBLIC_LIFF_ID"),
        line_channel_id=_first(env, "LINE_CHANNEL_ID"),
        validate_on_server=_flag(env, "REGISTRATION_VALIDATE_ON_SERVER", True),
        strict_district=_flag(env, "REGISTRATION_STRICT_DISTRICT", False),
        request_timeout=_float(env, "SUPABASE_TIMEOUT", 10.0),
        customers_table=_first(env, "CUSTOMERS_TABLE", default="customers"),
    )
