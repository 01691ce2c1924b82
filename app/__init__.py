from __future__ import annotations

from dotenv import load_dotenv
from flask import Flask
from flask_cors import CORS

from app.config import get_config
from app.db import ensure_indexes, get_db, init_mongo
from app.middlewares.error_handler import init_error_handlers
from app.middlewares.logging import init_request_logging
from app.middlewares.rate_limit import init_rate_limiting
from app.middlewares.request_id import init_request_id
from app.middlewares.security_headers import init_security_headers
from app.onboarding.context import OnboardingContext, build_context
from app.routes.admin_onboardings import admin_onboardings_bp
from app.routes.auth import auth_bp
from app.routes.core import core_bp
from app.routes.employee_onboarding import employee_onboarding_bp
from app.utils.logging import setup_logging


def create_app(context: OnboardingContext | None = None) -> Flask:
    """Build the application.

    ``context`` replaces the onboarding collaborators built from config; tests
    pass one with a frozen clock and a recording mailer.
    """
    load_dotenv()

    cfg = context.cfg if context is not None else get_config()
    setup_logging(cfg.LOG_LEVEL)

    app = Flask(__name__)
    app.config["CFG"] = cfg

    CORS(
        app,
        origins=cfg.CORS_ORIGINS,
        supports_credentials=cfg.CORS_ALLOW_CREDENTIALS,
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        max_age=3600,
    )

    init_request_id(app)
    init_security_headers(app)
    init_rate_limiting(app)
    init_request_logging(app)
    init_error_handlers(app)

    if context is None:
        init_mongo(app)
        context = build_context(cfg, get_db(app))
    else:
        # HR users live in the same database as the supplied context.
        app.extensions["mongo_db"] = context.db
        ensure_indexes(context.db)
    context.ensure_indexes()
    app.extensions["onboarding"] = context

    app.register_blueprint(core_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/v1/auth")
    app.register_blueprint(admin_onboardings_bp, url_prefix="/api/v1/admin/onboardings")
    app.register_blueprint(employee_onboarding_bp, url_prefix="/api/v1/onboarding")

    return app
