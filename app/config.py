from __future__ import annotations

import os
from dataclasses import dataclass


def _csv(value: str) -> list[str]:
    items: list[str] = []
    for part in (value or "").split(","):
        item = part.strip()
        if item:
            items.append(item)
    return items


def _env_bool(name: str, default: bool = False) -> bool:
    raw = str(os.getenv(name, "") or "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


@dataclass(frozen=True)
class BaseConfig:
    ENV: str = "development"
    DEBUG: bool = False
    TESTING: bool = False

    APP_VERSION: str = "dev"

    MONGODB_URI: str = "mongodb://localhost:27017"
    DB_NAME: str = "onboarding"
    MONGO_SERVER_SELECTION_TIMEOUT_MS: int = 5000

    JWT_SECRET: str = "dev-secret"
    JWT_EXP_MINUTES: int = 720

    CORS_ORIGINS: list[str] | str = (
        "http://localhost:5173,http://127.0.0.1:5173,http://localhost:3000,http://127.0.0.1:3000"
    )
    CORS_ALLOW_CREDENTIALS: bool = False

    LOG_LEVEL: str = "INFO"

    RATE_LIMIT_GLOBAL: str = "1200 per minute"
    RATE_LIMIT_DEFAULT: str = "300 per minute"
    RATE_LIMIT_LOGIN: str = "30 per minute"
    RATE_LIMIT_OTP: str = "20 per minute"

    TRUST_PROXY_HEADERS: bool = False

    INVITE_TTL_HOURS: int = 168
    OTP_TTL_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 3
    OTP_LOCK_MINUTES: int = 15
    OTP_RESEND_INTERVAL_SECONDS: int = 60
    HASH_SECRET: str = "dev-hash-secret"
    FORM_ENC_KEY: str = ""

    ONBOARDING_SESSION_COOKIE_NAME: str = "onboarding_session"
    SESSION_COOKIE_SECURE: bool = True
    PUBLIC_BASE_URL: str = "http://localhost:3000"

    MAIL_MODE: str = "log"
    MAIL_API_URL: str = ""
    MAIL_API_KEY: str = ""
    MAIL_FROM: str = "onboarding@localhost"
    MAIL_TIMEOUT_SECONDS: int = 10

    ASSET_STORE_MODE: str = "log"
    ASSET_API_URL: str = ""
    ASSET_API_KEY: str = ""
    ASSET_TIMEOUT_SECONDS: int = 10

    ENABLED_SUBSIDIARIES: list[str] | str = "IN"

    def __post_init__(self) -> None:
        object.__setattr__(self, "APP_VERSION", str(os.getenv("APP_VERSION", self.APP_VERSION) or self.APP_VERSION))

        object.__setattr__(self, "MONGODB_URI", str(os.getenv("MONGODB_URI", self.MONGODB_URI) or self.MONGODB_URI))
        object.__setattr__(self, "DB_NAME", str(os.getenv("DB_NAME", self.DB_NAME) or self.DB_NAME))
        object.__setattr__(
            self,
            "MONGO_SERVER_SELECTION_TIMEOUT_MS",
            _env_int("MONGO_SERVER_SELECTION_TIMEOUT_MS", self.MONGO_SERVER_SELECTION_TIMEOUT_MS),
        )

        object.__setattr__(self, "JWT_SECRET", str(os.getenv("JWT_SECRET", self.JWT_SECRET) or self.JWT_SECRET))
        object.__setattr__(self, "JWT_EXP_MINUTES", _env_int("JWT_EXP_MINUTES", self.JWT_EXP_MINUTES))

        cors_raw = os.getenv("CORS_ORIGINS")
        if cors_raw is not None:
            cors_raw = str(cors_raw or "").strip()
            if cors_raw == "*":
                object.__setattr__(self, "CORS_ORIGINS", "*")
            else:
                object.__setattr__(self, "CORS_ORIGINS", _csv(cors_raw))
        else:
            object.__setattr__(self, "CORS_ORIGINS", _csv(str(self.CORS_ORIGINS)))

        object.__setattr__(
            self, "CORS_ALLOW_CREDENTIALS", _env_bool("CORS_ALLOW_CREDENTIALS", self.CORS_ALLOW_CREDENTIALS)
        )

        object.__setattr__(self, "LOG_LEVEL", str(os.getenv("LOG_LEVEL", self.LOG_LEVEL) or self.LOG_LEVEL).upper())

        object.__setattr__(
            self, "RATE_LIMIT_GLOBAL", str(os.getenv("RATE_LIMIT_GLOBAL", self.RATE_LIMIT_GLOBAL) or self.RATE_LIMIT_GLOBAL)
        )
        object.__setattr__(
            self, "RATE_LIMIT_DEFAULT", str(os.getenv("RATE_LIMIT_DEFAULT", self.RATE_LIMIT_DEFAULT) or self.RATE_LIMIT_DEFAULT)
        )
        object.__setattr__(
            self, "RATE_LIMIT_LOGIN", str(os.getenv("RATE_LIMIT_LOGIN", self.RATE_LIMIT_LOGIN) or self.RATE_LIMIT_LOGIN)
        )
        object.__setattr__(
            self, "RATE_LIMIT_OTP", str(os.getenv("RATE_LIMIT_OTP", self.RATE_LIMIT_OTP) or self.RATE_LIMIT_OTP)
        )

        object.__setattr__(self, "TRUST_PROXY_HEADERS", _env_bool("TRUST_PROXY_HEADERS", self.TRUST_PROXY_HEADERS))

        object.__setattr__(self, "INVITE_TTL_HOURS", _env_int("INVITE_TTL_HOURS", self.INVITE_TTL_HOURS))
        object.__setattr__(self, "OTP_TTL_MINUTES", _env_int("OTP_TTL_MINUTES", self.OTP_TTL_MINUTES))
        object.__setattr__(self, "OTP_MAX_ATTEMPTS", _env_int("OTP_MAX_ATTEMPTS", self.OTP_MAX_ATTEMPTS))
        object.__setattr__(self, "OTP_LOCK_MINUTES", _env_int("OTP_LOCK_MINUTES", self.OTP_LOCK_MINUTES))
        object.__setattr__(
            self,
            "OTP_RESEND_INTERVAL_SECONDS",
            _env_int("OTP_RESEND_INTERVAL_SECONDS", self.OTP_RESEND_INTERVAL_SECONDS),
        )
        object.__setattr__(self, "HASH_SECRET", str(os.getenv("HASH_SECRET", self.HASH_SECRET) or self.HASH_SECRET))
        # Falls back to HASH_SECRET so form data is never stored in plaintext.
        object.__setattr__(
            self, "FORM_ENC_KEY", str(os.getenv("FORM_ENC_KEY", self.FORM_ENC_KEY) or "").strip() or self.HASH_SECRET
        )

        object.__setattr__(
            self,
            "ONBOARDING_SESSION_COOKIE_NAME",
            str(
                os.getenv("ONBOARDING_SESSION_COOKIE_NAME", self.ONBOARDING_SESSION_COOKIE_NAME)
                or self.ONBOARDING_SESSION_COOKIE_NAME
            ),
        )
        object.__setattr__(
            self, "SESSION_COOKIE_SECURE", _env_bool("SESSION_COOKIE_SECURE", self.SESSION_COOKIE_SECURE)
        )
        object.__setattr__(
            self,
            "PUBLIC_BASE_URL",
            str(os.getenv("PUBLIC_BASE_URL", self.PUBLIC_BASE_URL) or self.PUBLIC_BASE_URL).rstrip("/"),
        )

        object.__setattr__(
            self, "MAIL_MODE", str(os.getenv("MAIL_MODE", self.MAIL_MODE) or self.MAIL_MODE).strip().lower()
        )
        object.__setattr__(self, "MAIL_API_URL", str(os.getenv("MAIL_API_URL", self.MAIL_API_URL) or "").strip())
        object.__setattr__(self, "MAIL_API_KEY", str(os.getenv("MAIL_API_KEY", self.MAIL_API_KEY) or "").strip())
        object.__setattr__(self, "MAIL_FROM", str(os.getenv("MAIL_FROM", self.MAIL_FROM) or self.MAIL_FROM))
        object.__setattr__(self, "MAIL_TIMEOUT_SECONDS", _env_int("MAIL_TIMEOUT_SECONDS", self.MAIL_TIMEOUT_SECONDS))

        object.__setattr__(
            self,
            "ASSET_STORE_MODE",
            str(os.getenv("ASSET_STORE_MODE", self.ASSET_STORE_MODE) or self.ASSET_STORE_MODE).strip().lower(),
        )
        object.__setattr__(self, "ASSET_API_URL", str(os.getenv("ASSET_API_URL", self.ASSET_API_URL) or "").strip())
        object.__setattr__(self, "ASSET_API_KEY", str(os.getenv("ASSET_API_KEY", self.ASSET_API_KEY) or "").strip())
        object.__setattr__(
            self, "ASSET_TIMEOUT_SECONDS", _env_int("ASSET_TIMEOUT_SECONDS", self.ASSET_TIMEOUT_SECONDS)
        )

        subsidiaries_raw = os.getenv("ENABLED_SUBSIDIARIES")
        if subsidiaries_raw is None:
            subsidiaries_raw = str(self.ENABLED_SUBSIDIARIES)
        object.__setattr__(self, "ENABLED_SUBSIDIARIES", [s.upper() for s in _csv(subsidiaries_raw)])

    @property
    def IS_PRODUCTION(self) -> bool:
        return str(self.ENV or "").lower() == "production"

    def validate(self) -> None:
        if self.IS_PRODUCTION and str(self.JWT_SECRET or "").strip() in {"", "dev-secret"}:
            raise RuntimeError("JWT_SECRET must be set in production")
        if self.IS_PRODUCTION and (not str(self.MONGODB_URI or "").strip() or not str(self.DB_NAME or "").strip()):
            raise RuntimeError("MONGODB_URI and DB_NAME must be set in production")
        if self.IS_PRODUCTION and str(self.HASH_SECRET or "").strip() in {"", "dev-hash-secret"}:
            raise RuntimeError("HASH_SECRET must be set in production")
        if self.MAIL_MODE not in {"log", "http"}:
            raise RuntimeError("MAIL_MODE must be 'log' or 'http'")
        if self.MAIL_MODE == "http" and not self.MAIL_API_URL:
            raise RuntimeError("MAIL_API_URL must be set when MAIL_MODE=http")
        if self.ASSET_STORE_MODE not in {"log", "http"}:
            raise RuntimeError("ASSET_STORE_MODE must be 'log' or 'http'")
        if self.ASSET_STORE_MODE == "http" and not self.ASSET_API_URL:
            raise RuntimeError("ASSET_API_URL must be set when ASSET_STORE_MODE=http")
        if self.IS_PRODUCTION and self.ASSET_STORE_MODE != "http":
            raise RuntimeError("ASSET_STORE_MODE=http is required in production (deleted onboardings must remove their files)")
        if self.INVITE_TTL_HOURS <= 0 or self.OTP_TTL_MINUTES <= 0 or self.OTP_MAX_ATTEMPTS <= 0:
            raise RuntimeError("Invite/OTP lifetimes and OTP_MAX_ATTEMPTS must be positive")


@dataclass(frozen=True)
class DevelopmentConfig(BaseConfig):
    ENV: str = "development"
    DEBUG: bool = True


@dataclass(frozen=True)
class ProductionConfig(BaseConfig):
    ENV: str = "production"
    DEBUG: bool = False


@dataclass(frozen=True)
class TestingConfig(BaseConfig):
    ENV: str = "testing"
    TESTING: bool = True
    JWT_SECRET: str = "test-secret"
    HASH_SECRET: str = "test-hash-secret"
    SESSION_COOKIE_SECURE: bool = False


def get_config() -> BaseConfig:
    env = str(os.getenv("ENV") or os.getenv("APP_ENV") or "development").strip().lower()
    if env in {"prod", "production"}:
        cfg: BaseConfig = ProductionConfig()
    elif env in {"test", "testing"}:
        cfg = TestingConfig()
    else:
        cfg = DevelopmentConfig()

    cfg.validate()
    return cfg
