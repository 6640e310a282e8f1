"""Runtime settings read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

from vendabot.domain.plans import DEFAULT_PACKAGE_ID
from vendabot.domain.reconciliation import (
    BURST_ATTEMPTS,
    BURST_INTERVAL_SECONDS,
    POLL_ATTEMPTS,
    POLL_INTERVAL_SECONDS,
)
from vendabot.domain.trial_cooldown import DEFAULT_COOLDOWN_DAYS

StoreBackend = Literal["memory", "postgres"]


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from e


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from e


@dataclass(frozen=True)
class Settings:
    """Process configuration.

    Secrets default to empty strings; adapters that need them raise when
    they are used without being configured.
    """

    app_env: str = "production"
    store_backend: StoreBackend = "memory"

    paghiper_api_key: str = ""
    paghiper_token: str = ""
    paghiper_base_url: str = "https://api.paghiper.com"
    paghiper_pix_base_url: str = "https://pix.paghiper.com"
    paghiper_notification_url: str = ""
    paghiper_webhook_secret: str = ""

    evolution_base_url: str = ""
    evolution_instance: str = ""
    evolution_api_key: str = ""
    evolution_webhook_secret: str = ""

    provisioning_base_url: str = ""
    provisioning_api_key: str = ""

    trial_cooldown_days: int = DEFAULT_COOLDOWN_DAYS
    default_package_id: int = DEFAULT_PACKAGE_ID
    burst_attempts: int = BURST_ATTEMPTS
    burst_interval_seconds: float = BURST_INTERVAL_SECONDS
    poll_attempts: int = POLL_ATTEMPTS
    poll_interval_seconds: float = POLL_INTERVAL_SECONDS

    @property
    def is_local(self) -> bool:
        return self.app_env in ("local", "dev", "test")

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment.

        STORE_BACKEND defaults to 'postgres' when DATABASE_URL is set.

        Raises:
            RuntimeError: On malformed numeric values or unknown backend.
        """
        default_backend = "postgres" if os.environ.get("DATABASE_URL") else "memory"
        backend = os.environ.get("STORE_BACKEND", default_backend)
        if backend not in ("memory", "postgres"):
            raise RuntimeError(f"STORE_BACKEND must be memory or postgres, got {backend!r}")

        return cls(
            app_env=os.environ.get("APP_ENV", "production"),
            store_backend=backend,  # type: ignore[arg-type]
            paghiper_api_key=os.environ.get("PAGHIPER_API_KEY", ""),
            paghiper_token=os.environ.get("PAGHIPER_TOKEN", ""),
            paghiper_base_url=os.environ.get(
                "PAGHIPER_BASE_URL", "https://api.paghiper.com"
            ).rstrip("/"),
            paghiper_pix_base_url=os.environ.get(
                "PAGHIPER_PIX_BASE_URL", "https://pix.paghiper.com"
            ).rstrip("/"),
            paghiper_notification_url=os.environ.get("PAGHIPER_NOTIFICATION_URL", ""),
            # PagHiper echoes the account apiKey in every notification.
            paghiper_webhook_secret=os.environ.get(
                "PAGHIPER_WEBHOOK_SECRET", os.environ.get("PAGHIPER_API_KEY", "")
            ),
            evolution_base_url=os.environ.get("EVOLUTION_BASE_URL", "").rstrip("/"),
            evolution_instance=os.environ.get("EVOLUTION_INSTANCE", ""),
            evolution_api_key=os.environ.get("EVOLUTION_API_KEY", ""),
            evolution_webhook_secret=os.environ.get("EVOLUTION_WEBHOOK_SECRET", ""),
            provisioning_base_url=os.environ.get("PROVISIONING_BASE_URL", "").rstrip("/"),
            provisioning_api_key=os.environ.get("PROVISIONING_API_KEY", ""),
            trial_cooldown_days=_int_env("TRIAL_COOLDOWN_DAYS", DEFAULT_COOLDOWN_DAYS),
            default_package_id=_int_env("DEFAULT_PACKAGE_ID", DEFAULT_PACKAGE_ID),
            burst_attempts=_int_env("BURST_ATTEMPTS", BURST_ATTEMPTS),
            burst_interval_seconds=_float_env("BURST_INTERVAL_SECONDS", BURST_INTERVAL_SECONDS),
            poll_attempts=_int_env("POLL_ATTEMPTS", POLL_ATTEMPTS),
            poll_interval_seconds=_float_env("POLL_INTERVAL_SECONDS", POLL_INTERVAL_SECONDS),
        )
