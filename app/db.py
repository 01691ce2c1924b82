from __future__ import annotations

from datetime import timezone

from flask import Flask
from pymongo import MongoClient


def _create_client(mongodb_uri: str, *, server_selection_timeout_ms: int) -> MongoClient:
    if mongodb_uri.startswith("mongomock://"):
        import mongomock  # type: ignore[import-not-found]

        return mongomock.MongoClient(tz_aware=True, tzinfo=timezone.utc)

    return MongoClient(
        mongodb_uri,
        serverSelectionTimeoutMS=server_selection_timeout_ms,
        tz_aware=True,
        tzinfo=timezone.utc,
        retryWrites=True,
    )


def get_db(app: Flask):
    return app.extensions["mongo_db"]


def ping_db(db) -> bool:
    try:
        db.command("ping")
        return True
    except Exception:
        try:
            # Fallback for test doubles (e.g. mongomock) and restricted environments.
            _ = db.list_collection_names()
            return True
        except Exception:
            return False


def ensure_indexes(db) -> None:
    db.users.create_index([("email", 1)], unique=True, name="users_email_unique")


def init_mongo(app: Flask) -> None:
    """Create this app's client and database handle.

    The client lives in ``app.extensions`` rather than in a module global, so
    every app (and every test) owns its own connection pool.
    """
    cfg = app.config["CFG"]
    client = _create_client(cfg.MONGODB_URI, server_selection_timeout_ms=cfg.MONGO_SERVER_SELECTION_TIMEOUT_MS)
    db = client[cfg.DB_NAME]
    app.extensions["mongo_client"] = client
    app.extensions["mongo_db"] = db
    ensure_indexes(db)
