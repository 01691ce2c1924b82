import os


def _env_int(name: str, default: int) -> int:
    try:
        return int(str(os.getenv(name, "") or "").strip() or default)
    except Exception:
        return default


wsgi_app = "wsgi:app"
bind = f"0.0.0.0:{_env_int('PORT', 8000)}"

# Mail sends block the request thread; threads keep other requests moving.
workers = max(1, _env_int("WEB_CONCURRENCY", 2))
threads = max(1, _env_int("PYTHON_THREADS", 8))

# Must exceed MAIL_TIMEOUT_SECONDS so a slow provider reaches the rollback path.
timeout = max(_env_int("MAIL_TIMEOUT_SECONDS", 10) + 20, _env_int("GUNICORN_TIMEOUT", 60))
graceful_timeout = max(5, _env_int("GUNICORN_GRACEFUL_TIMEOUT", 30))
keepalive = max(1, _env_int("GUNICORN_KEEPALIVE", 5))

accesslog = "-"
errorlog = "-"
