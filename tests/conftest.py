from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import pytest

from backend.app import create_app
from backend.config import AppConfig


@dataclass
class FakeUser:
    id: str
    email: str | None


class FakeSupabase:
    """In-memory stand-in for :class:`backend.supabase_client.SupabaseService`."""

    def __init__(self) -> None:
        self.tables: dict[str, list[dict[str, Any]]] = {"customers": []}
        self.identities: dict[str, str] = {}
        self.calls: list[str] = []
        self.lookup_error: Exception | None = None
        self.signup_error: Exception | None = None
        self.insert_error: Exception | None = None
        self.delete_error: Exception | None = None
        self.signup_returns_none = False
        self._next_id = 1

    def lookup(self, table: str, filters: Mapping[str, str], *, columns: str = "id"):
        self.calls.append("lookup")
        if self.lookup_error:
            raise self.lookup_error
        for row in self.tables.get(table, []):
            if all(row.get(key) == value for key, value in filters.items()):
                return {"id": row["id"]}
        return None

    def insert(self, table: str, record: Mapping[str, Any]) -> None:
        self.calls.append("insert")
        if self.insert_error:
            raise self.insert_error
        self.tables.setdefault(table, []).append(dict(record))

    def create_identity(self, email: str, password: str):
        self.calls.append("create_identity")
        if self.signup_error:
            raise self.signup_error
        if self.signup_returns_none:
            return None
        user_id = f"user-{self._next_id:04d}"
        self._next_id += 1
        self.identities[user_id] = email
        return FakeUser(id=user_id, email=email)

    def delete_identity(self, user_id: str) -> None:
        self.calls.append("delete_identity")
        if self.delete_error:
            raise self.delete_error
        self.identities.pop(user_id, None)


VALID_PAYLOAD: dict[str, str] = {
    "email": "a@b.com",
    "password": "x",
    "name": "王小明",
    "phone": "0912345678",
    "gender": "male",
    "birthday": "1990-01-01",
    "city": "台北市",
    "district": "大安區",
    "line_id": "U123",
}


@pytest.fixture()
def valid_payload() -> dict[str, str]:
    return dict(VALID_PAYLOAD)


@pytest.fixture()
def fake_supabase() -> FakeSupabase:
    return FakeSupabase()


@pytest.fixture()
def app_config() -> AppConfig:
    return AppConfig(
        supabase_url="https://example.supabase.co",
        supabase_service_key="service-role-key",
        liff_id="1234567890-AbCdEfGh",
    )


@pytest.fixture()
def client(app_config: AppConfig, fake_supabase: FakeSupabase):
    flask_app = create_app(app_config, backend=fake_supabase)
    flask_app.config.update(TESTING=True)
    with flask_app.test_client() as test_client:
        yield test_client

