"""Server-side helpers for pages embedded in the LINE in-app browser (LIFF)."""
from __future__ import annotations

import logging
from enum import Enum

import requests

from .config import AppConfig
from .registration import RegistrationError

_LOGGER = logging.getLogger(__name__)

LIFF_SDK_URL = "https://static.line-scdn.net/liff/edge/2/sdk.js"
LINE_VERIFY_URL = "https://api.line.me/oauth2/v2.1/verify"
LINE_PROFILE_URL = "https://api.line.me/v2/profile"

INIT_FAILED_MESSAGE = "系統初始化失敗，請重新整理頁面"


class ConfirmationState(str, Enum):
    INITIALIZING = "initializing"
    ERROR = "error"
    READY = "ready"


class TokenVerificationError(RegistrationError):
    status_code = 401


def initial_page_state(config: AppConfig) -> tuple[ConfirmationState, str | None]:
    """State a LIFF page is rendered in before its script runs.

    Without a LIFF id the browser cannot initialise the SDK at all, so the
    page starts in the error state and the user can only reload.
    """
    if not config.liff_configured:
        _LOGGER.warning("LIFF_ID is not configured; LIFF pages render in error state")
        return ConfirmationState.ERROR, INIT_FAILED_MESSAGE
    return ConfirmationState.INITIALIZING, None


class LineTokenVerifier:
    """Check a LIFF access token against LINE and resolve the user it belongs to."""

    def __init__(self, config: AppConfig, *, session: requests.Session | None = None) -> None:
        self._channel_id = config.line_channel_id
        self._timeout = config.request_timeout
        self._session = session or requests.Session()

    @property
    def enabled(self) -> bool:
        return bool(self._channel_id)

    def verify(self, access_token: str | None, line_id: str) -> None:
        if not access_token:
            raise TokenVerificationError("缺少 LINE 存取權杖")

        try:
            verify_response = self._session.get(
                LINE_VERIFY_URL,
                params={"access_token": access_token},
                timeout=self._timeout,
            )
            if verify_response.status_code != 200:
                raise TokenVerificationError("LINE 存取權杖無效")
            token_info = _json_object(verify_response)
            if str(token_info.get("client_id")) != self._channel_id:
                raise TokenVerificationError("LINE 存取權杖不屬於此頻道")
            if int(token_info.get("expires_in") or 0) <= 0:
                raise TokenVerificationError("LINE 存取權杖已過期")

            profile_response = self._session.get(
                LINE_PROFILE_URL,
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=self._timeout,
            )
            if profile_response.status_code != 200:
                raise TokenVerificationError("無法取得 LINE 使用者資料")
            profile = _json_object(profile_response)
        except requests.RequestException as exc:
            _LOGGER.error("LINE token verification transport failure: %s", exc)
            raise TokenVerificationError("LINE 驗證服務暫時無法使用") from exc
        except ValueError as exc:
            raise TokenVerificationError("LINE 驗證回應格式錯誤") from exc

        if profile.get("userId") != line_id:
            _LOGGER.warning("LINE token user does not match submitted line_id")
            raise TokenVerificationError("LINE 帳號與註冊資料不符")


def _json_object(response: requests.Response) -> dict:
    body = response.json()
    if not isinstance(body, dict):
        raise ValueError(f"expected a JSON object, got {type(body).__name__}")
    return body


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()
