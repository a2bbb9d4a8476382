"""Flask backend for LINE member registration."""
from __future__ import annotations

import logging
from pathlib import Path

from flask import Flask, jsonify

from .config import AppConfig, load_config
from .liff import LineTokenVerifier
from .registration import RegistrationBackend, RegistrationService
from .routes import districts_blueprint, pages_blueprint, register_blueprint
from .supabase_client import SupabaseService

# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent


def create_app(
    config: AppConfig | None = None,
    *,
    backend: RegistrationBackend | None = None,
    token_verifier: LineTokenVerifier | None = None,
) -> Flask:
    """Build the application.

    ``backend`` replaces the Supabase client (tests pass an in-memory fake);
    settings otherwise come from the environment via :func:`load_config`.
    """
    config = config or load_config()

    app = Flask(__name__, template_folder=str(BASE_DIR / "templates"))
    app.config["JSON_AS_ASCII"] = False
    app.json.ensure_ascii = False
    app.config["REGISTRATION_CONFIG"] = config

    if backend is None:
        backend = SupabaseService(config)
    if not config.liff_configured:
        logger.warning("LIFF_ID is not set; registration pages cannot initialise LIFF")

    token_verifier = token_verifier or LineTokenVerifier(config)
    app.extensions["line_token_verifier"] = token_verifier
    app.extensions["registration"] = RegistrationService(
        backend,
        customers_table=config.customers_table,
        validate=config.validate_on_server,
        strict_district=config.strict_district,
        token_verifier=token_verifier,
    )

    app.register_blueprint(pages_blueprint)
    app.register_blueprint(register_blueprint)
    app.register_blueprint(districts_blueprint)

    @app.get("/healthz")
    def healthz():
        return jsonify(
            {
                "status": "ok",
                "supabase_configured": config.supabase_configured,
                "liff_configured": config.liff_configured,
            }
        )

    return app


app = create_app()


if __name__ == "__main__":
    # 開發模式直接啟動；部署請用 gunicorn 並帶入 SUPABASE_URL / LIFF_ID 等
    app.run(host="0.0.0.0", port=8000, debug=True)
