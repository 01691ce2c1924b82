from __future__ import annotations

import json
import logging
import time
from typing import Any

from flask import Flask, g, request

from app.utils.rate_limiter import client_ip


def init_request_logging(app: Flask) -> None:
    logger = logging.getLogger("app.request")
    cfg = app.config["CFG"]

    @app.after_request
    def _log(resp):
        start = getattr(g, "start_ts", None)
        latency_ms = (
            int((time.monotonic() - start) * 1000) if isinstance(start, (int, float)) else None
        )

        ip = client_ip(request.headers, request.remote_addr, trust_proxy_headers=cfg.TRUST_PROXY_HEADERS)

        data: dict[str, Any] = {
            "type": "request",
            "request_id": getattr(g, "request_id", ""),
            "method": request.method,
            "path": request.path,
            "status": resp.status_code,
            "latency_ms": latency_ms,
            "ip": ip,
        }
        onboarding_id = (request.view_args or {}).get("onboarding_id")
        if onboarding_id:
            data["onboarding_id"] = onboarding_id

        logger.info(json.dumps(data, separators=(",", ":")))
        return resp
