"""Thin wrapper around the hosted Supabase REST and auth APIs."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import requests

from .config import AppConfig

_LOGGER = logging.getLogger(__name__)


class SupabaseError(RuntimeError):
    """Raised when a Supabase call fails or the client is not configured."""

    def __init__(self, message: str, *, code: str | None = None, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status


@dataclass
class AuthUser:
    """The subset of a GoTrue user the registration flow needs."""

    id: str
    email: str | None = None


def _error_from_response(response: requests.Response, fallback: str) -> SupabaseError:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    message = None
    code = None
    if isinstance(payload, dict):
        # PostgREST uses message/code, GoTrue uses msg/error_code or error/error_description
        for key in ("message", "msg", "error_description", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value:
                message = value
                break
        raw_code = payload.get("code") or payload.get("error_code")
        code = str(raw_code) if raw_code is not None else None
    if not message:
        message = (response.text or "").strip() or fallback
    return SupabaseError(message, code=code, status=response.status_code)


class SupabaseService:
    """Table lookups/inserts and admin identity management for one project.

    Uses the service-role key, so it must only ever run server side.
    """

    def __init__(self, config: AppConfig, *, session: requests.Session | None = None) -> None:
        self._base_url = config.supabase_url.rstrip("/")
        self._service_key = config.supabase_service_key
        self._timeout = config.request_timeout
        self._session = session or requests.Session()
        if not self.is_configured:
            _LOGGER.info("SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not set. Registration disabled.")

    # ------------------------------------------------------------------
    @property
    def is_configured(self) -> bool:
        return bool(self._base_url and self._service_key)

    def _headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        headers = {
            "apikey": self._service_key,
            "Authorization": f"Bearer {self._service_key}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if extra:
            headers.update(extra)
        return headers

    def _request(self, method: str, path: str, *, action: str, **kwargs: Any) -> requests.Response:
        if not self.is_configured:
            raise SupabaseError("Supabase 連線尚未設定", code="not_configured")
        url = f"{self._base_url}{path}"
        try:
            response = self._session.request(method, url, timeout=self._timeout, **kwargs)
        except requests.RequestException as exc:
            _LOGGER.error("Supabase %s transport failure: %s", action, exc)
            raise SupabaseError(f"Supabase {action} failed: {exc}") from exc
        if response.status_code >= 400:
            error = _error_from_response(response, f"Supabase {action} failed")
            _LOGGER.warning(
                "Supabase %s returned %s (%s): %s",
                action,
                response.status_code,
                error.code,
                error.message,
            )
            raise error
        return response

    # ------------------------------------------------------------------
    def lookup(
        self, table: str, filters: Mapping[str, str], *, columns: str = "id"
    ) -> dict[str, Any] | None:
        """Return the first row of *table* matching every equality filter, or ``None``."""

        params = {"select": columns, "limit": "1"}
        for column, value in filters.items():
            params[column] = f"eq.{value}"
        response = self._request(
            "GET",
            f"/rest/v1/{table}",
            action=f"lookup on {table}",
            params=params,
            headers=self._headers(),
        )
        try:
            rows = response.json()
        except ValueError as exc:
            raise SupabaseError(f"Supabase lookup on {table} returned invalid JSON") from exc
        if isinstance(rows, list):
            return rows[0] if rows else None
        if isinstance(rows, dict):
            return rows
        return None

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        self._request(
            "POST",
            f"/rest/v1/{table}",
            action=f"insert into {table}",
            json=[dict(record)],
            headers=self._headers({"Prefer": "return=minimal"}),
        )

    def create_identity(self, email: str, password: str) -> AuthUser | None:
        """Sign up a new auth user; ``None`` when the response carries no user."""

        response = self._request(
            "POST",
            "/auth/v1/signup",
            action="signup",
            json={"email": email, "password": password},
            headers=self._headers(),
        )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SupabaseError("Supabase signup returned invalid JSON") from exc
        if not isinstance(payload, dict):
            return None
        # With email confirmation enabled GoTrue returns the user itself,
        # otherwise a session object with a nested user.
        user = payload.get("user") if isinstance(payload.get("user"), dict) else payload
        user_id = user.get("id")
        if not user_id:
            return None
        return AuthUser(id=str(user_id), email=user.get("email"))

    def delete_identity(self, user_id: str) -> None:
        self._request(
            "DELETE",
            f"/auth/v1/admin/users/{user_id}",
            action="delete user",
            headers=self._headers(),
        )
