from __future__ import annotations

from flask import Flask, request

from app.utils.rate_limiter import InMemoryRateLimiter, client_ip

_limiter = InMemoryRateLimiter()


def init_rate_limiting(app: Flask) -> None:
    cfg = app.config["CFG"]

    @app.before_request
    def _rate_limit():
        path = request.path or ""
        if path in {"/health", "/version"}:
            return None

        ip = client_ip(request.headers, request.remote_addr, trust_proxy_headers=cfg.TRUST_PROXY_HEADERS)

        if path.startswith("/api/v1/auth/login"):
            _limiter.check(f"{ip}:LOGIN", cfg.RATE_LIMIT_LOGIN)
            return None

        if path.startswith(("/api/v1/onboarding/invite/", "/api/v1/onboarding/otp/")):
            _limiter.check(f"{ip}:OTP", cfg.RATE_LIMIT_OTP)
            return None

        if path.startswith("/api/v1/"):
            _limiter.check(f"{ip}:GLOBAL", cfg.RATE_LIMIT_GLOBAL)
            _limiter.check(f"{ip}:PATH:{path}", cfg.RATE_LIMIT_DEFAULT)
            return None

        return None
