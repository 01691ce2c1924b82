from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from app.config import BaseConfig
from app.onboarding.assets import AssetStore, HttpAssetStore, LogAssetStore
from app.onboarding.audit import AuditRecorder
from app.onboarding.compensation import TransactionalActionRunner
from app.onboarding.encryption import FieldCipher
from app.onboarding.invites import InviteTokenManager
from app.onboarding.mailer import HttpMailer, LogMailer, Mailer
from app.onboarding.otp import OtpChallengeManager, OtpPolicy
from app.onboarding.repository import OnboardingRepository
from app.onboarding.security import Clock, Hasher, RandomSource
from app.onboarding.session import SessionGuard, SessionIssuer
from app.onboarding.transitions import StatusTransitionAuthority


@dataclass
class OnboardingContext:
    """Every collaborator the onboarding core needs, built once per app."""

    cfg: BaseConfig
    db: Any
    repo: OnboardingRepository
    audit: AuditRecorder
    mailer: Mailer
    clock: Clock
    random: RandomSource
    hasher: Hasher
    sessions: SessionIssuer
    session_guard: SessionGuard
    invites: InviteTokenManager
    otps: OtpChallengeManager
    transitions: StatusTransitionAuthority
    runner: TransactionalActionRunner
    assets: AssetStore

    def ensure_indexes(self) -> None:
        self.repo.ensure_indexes()
        self.audit.ensure_indexes()


def build_mailer(cfg: BaseConfig) -> Mailer:
    if cfg.MAIL_MODE == "http":
        return HttpMailer(
            base_url=cfg.PUBLIC_BASE_URL,
            api_url=cfg.MAIL_API_URL,
            api_key=cfg.MAIL_API_KEY,
            sender=cfg.MAIL_FROM,
            timeout_seconds=cfg.MAIL_TIMEOUT_SECONDS,
        )
    return LogMailer(base_url=cfg.PUBLIC_BASE_URL)


def build_asset_store(cfg: BaseConfig) -> AssetStore:
    if cfg.ASSET_STORE_MODE == "http":
        return HttpAssetStore(
            api_url=cfg.ASSET_API_URL, api_key=cfg.ASSET_API_KEY, timeout_seconds=cfg.ASSET_TIMEOUT_SECONDS
        )
    return LogAssetStore()


def build_context(
    cfg: BaseConfig,
    db,
    *,
    mailer: Mailer | None = None,
    clock: Clock | None = None,
    random: RandomSource | None = None,
    assets: AssetStore | None = None,
) -> OnboardingContext:
    clock = clock or Clock()
    random = random or RandomSource()
    hasher = Hasher(cfg.HASH_SECRET)

    repo = OnboardingRepository(db, FieldCipher(cfg.FORM_ENC_KEY))
    audit = AuditRecorder(db, clock)
    sessions = SessionIssuer(
        clock=clock, cookie_name=cfg.ONBOARDING_SESSION_COOKIE_NAME, secure=cfg.SESSION_COOKIE_SECURE
    )
    invites = InviteTokenManager(
        repo, clock=clock, random=random, hasher=hasher, ttl=timedelta(hours=cfg.INVITE_TTL_HOURS)
    )
    policy = OtpPolicy(
        ttl=timedelta(minutes=cfg.OTP_TTL_MINUTES),
        max_attempts=cfg.OTP_MAX_ATTEMPTS,
        lock_duration=timedelta(minutes=cfg.OTP_LOCK_MINUTES),
        resend_interval=timedelta(seconds=cfg.OTP_RESEND_INTERVAL_SECONDS),
    )

    return OnboardingContext(
        cfg=cfg,
        db=db,
        repo=repo,
        audit=audit,
        mailer=mailer or build_mailer(cfg),
        clock=clock,
        random=random,
        hasher=hasher,
        sessions=sessions,
        session_guard=SessionGuard(repo, clock=clock, hasher=hasher),
        invites=invites,
        otps=OtpChallengeManager(repo, clock=clock, random=random, hasher=hasher, sessions=sessions, policy=policy),
        transitions=StatusTransitionAuthority(repo, clock=clock, invites=invites),
        runner=TransactionalActionRunner(audit),
        assets=assets or build_asset_store(cfg),
    )
