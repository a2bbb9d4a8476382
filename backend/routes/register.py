"""JSON endpoint that registers a LINE user as a member."""
from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from werkzeug.exceptions import MethodNotAllowed

from ..liff import bearer_token
from ..registration import (
    REGISTRATION_FAILED_MESSAGE,
    REGISTRATION_SUCCESS_MESSAGE,
    RegistrationError,
    RegistrationService,
)

register_blueprint = Blueprint("register", __name__)

REGISTER_PATH = "/api/auth/register"

# 非 POST 也要進到 handler，才能回傳 JSON 格式的 405
_ACCEPTED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def _method_not_allowed():
    return jsonify({"message": "Method not allowed"}), 405, {"Allow": "POST"}


@register_blueprint.app_errorhandler(MethodNotAllowed)
def method_not_allowed(exc: MethodNotAllowed):
    # 路由層拒絕的方法（例如 TRACE）不會進到 view，在這裡補上 JSON 回應
    if request.path == REGISTER_PATH:
        return _method_not_allowed()
    return exc


@register_blueprint.route(REGISTER_PATH, methods=_ACCEPTED_METHODS, provide_automatic_options=False)
def register_member():
    if request.method != "POST":
        return _method_not_allowed()

    payload = request.get_json(silent=True) or {}
    if not isinstance(payload, dict):
        payload = {}

    service: RegistrationService = current_app.extensions["registration"]

    try:
        user = service.register(
            payload,
            access_token=bearer_token(request.headers.get("Authorization")),
        )
    except RegistrationError as exc:
        if exc.status_code >= 500:
            current_app.logger.error("註冊錯誤 (%s): %s", exc.state, exc.message)
        return jsonify({"message": exc.message}), exc.status_code
    except Exception as exc:  # pylint: disable=broad-except
        current_app.logger.exception("Unexpected registration failure")
        return jsonify({"message": str(exc) or REGISTRATION_FAILED_MESSAGE}), 500

    return jsonify({"message": REGISTRATION_SUCCESS_MESSAGE, "user": user.to_dict()}), 200
