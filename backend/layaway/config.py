# backend/layaway/config.py
from __future__ import annotations
import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/layaway.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///layaway.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Deposit order policy (see DepositPolicy)
    DEPOSIT_OVERPAYMENT_TOLERANCE_CENTS = _env_int("DEPOSIT_OVERPAYMENT_TOLERANCE_CENTS", 0)
    DEPOSIT_ALLOW_UNSET_CUSTOM_COST = _env_bool("DEPOSIT_ALLOW_UNSET_CUSTOM_COST", True)
    DEPOSIT_EXPIRY_OVERDUE_DAYS = _env_int("DEPOSIT_EXPIRY_OVERDUE_DAYS", 30)

    # Bounded wait for row locks before a request fails with ContentionError
    LOCK_TIMEOUT_SECONDS = _env_int("LOCK_TIMEOUT_SECONDS", 5)
    LOCK_RETRY_ATTEMPTS = _env_int("LOCK_RETRY_ATTEMPTS", 3)


@dataclass(frozen=True)
class DepositPolicy:
    """
    Tunables for the deposit order engine.

    Built once from app config and passed explicitly into the services that
    need it; services never read current_app.config themselves.
    """
    overpayment_tolerance_cents: int = 0
    allow_unset_custom_cost: bool = True
    expiry_overdue_days: int = 30
    lock_retry_attempts: int = 3

    @classmethod
    def from_config(cls, config) -> "DepositPolicy":
        return cls(
            overpayment_tolerance_cents=int(config.get("DEPOSIT_OVERPAYMENT_TOLERANCE_CENTS", 0)),
            allow_unset_custom_cost=bool(config.get("DEPOSIT_ALLOW_UNSET_CUSTOM_COST", True)),
            expiry_overdue_days=int(config.get("DEPOSIT_EXPIRY_OVERDUE_DAYS", 30)),
            lock_retry_attempts=int(config.get("LOCK_RETRY_ATTEMPTS", 3)),
        )
