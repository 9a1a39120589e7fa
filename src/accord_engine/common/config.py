"""Accord-Engine configuration via pydantic-settings."""

import json
import warnings
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_INSECURE_DEFAULTS = {
    "secret_key": "insecure-dev-key-change-me",
    "hmac_key": "insecure-hmac-key-change-me",
    "api_key": "insecure-admin-key-change-me",
}

RESIGN_POLICIES = ("append", "reject")
STORE_BACKENDS = ("sql", "memory")


class AccordSettings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="ACCORD_")

    environment: str = "development"
    secret_key: str = "insecure-dev-key-change-me"
    hmac_key: str = "insecure-hmac-key-change-me"

    # HMAC keyring for the audit chain: JSON dict mapping version (int) to key string.
    # e.g. '{"0": "old-key", "1": "new-key"}'
    # When set, hmac_key is ignored.  When empty, hmac_key is used as version 0.
    hmac_keys: str = ""

    # Storage
    db_url: str = "sqlite+aiosqlite:///./data/accord.db"
    store_backend: str = "sql"
    cache_contracts: bool = True

    # API
    api_title: str = "Accord-Engine"
    api_version: str = "0.1.0"
    api_key: str = "insecure-admin-key-change-me"
    host: str = "0.0.0.0"
    port: int = 8080
    api_prefix: str = ""
    cors_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]
    log_level: str = "INFO"

    # Signing
    resign_policy: str = "append"
    image_signature_min_bytes: int = 100
    image_signature_max_bytes: int = 5 * 1024 * 1024
    typed_signature_min_length: int = 3

    # Trusted public keys for cryptographic signatures: JSON dict mapping
    # certificate reference to a PEM public key or X.509 certificate.
    trusted_keys: str = ""

    # Lifecycle
    default_search_limit: int = 10
    max_search_limit: int = 100
    sweep_interval: int = 0  # seconds, 0 disables the background sweeper
    outbox_max_events: int = 1000  # pending events kept when no dispatcher drains them

    # Notifications
    notify_webhook_url: str = ""
    notify_webhook_secret: str = ""
    notify_max_retries: int = 3
    notify_timeout: int = 10

    @field_validator("resign_policy")
    @classmethod
    def _check_resign_policy(cls, value: str) -> str:
        value = value.lower()
        if value not in RESIGN_POLICIES:
            raise ValueError(
                f"resign_policy must be one of {', '.join(RESIGN_POLICIES)}, got {value!r}"
            )
        return value

    @field_validator("store_backend")
    @classmethod
    def _check_store_backend(cls, value: str) -> str:
        value = value.lower()
        if value not in STORE_BACKENDS:
            raise ValueError(
                f"store_backend must be one of {', '.join(STORE_BACKENDS)}, got {value!r}"
            )
        return value

    @property
    def hmac_keyring(self) -> dict[int, str]:
        """Return HMAC keyring as {version_int: key_str}.

        If hmac_keys is set, parse it as JSON.
        Otherwise, fall back to scalar hmac_key as version 0.
        """
        if self.hmac_keys:
            try:
                raw = json.loads(self.hmac_keys)
            except (json.JSONDecodeError, TypeError) as exc:
                raise ValueError(
                    f"ACCORD_HMAC_KEYS must be valid JSON (e.g. '{{\"0\": \"key\"}}'), got: {self.hmac_keys!r}"
                ) from exc
            return {int(k): v for k, v in raw.items()}
        return {0: self.hmac_key}

    @property
    def current_hmac_version(self) -> int:
        """Return the highest version number in the keyring."""
        return max(self.hmac_keyring.keys())

    @property
    def current_hmac_key(self) -> str:
        """Return the HMAC key for the current (highest) version."""
        ring = self.hmac_keyring
        return ring[max(ring.keys())]

    @property
    def trusted_key_map(self) -> dict[str, str]:
        """Return trusted signing keys as {certificate_ref: pem}."""
        if not self.trusted_keys:
            return {}
        try:
            raw = json.loads(self.trusted_keys)
        except (json.JSONDecodeError, TypeError) as exc:
            raise ValueError(
                "ACCORD_TRUSTED_KEYS must be a JSON object mapping certificate "
                f"references to PEM text, got: {self.trusted_keys[:40]!r}"
            ) from exc
        if not isinstance(raw, dict):
            raise ValueError("ACCORD_TRUSTED_KEYS must be a JSON object")
        return {str(k): str(v) for k, v in raw.items()}

    def validate_for_production(self) -> None:
        """Raise if insecure defaults are used in non-development environments."""
        insecure_fields = [
            field
            for field, default in _INSECURE_DEFAULTS.items()
            if getattr(self, field) == default
        ]

        if self.environment != "development" and insecure_fields:
            env_vars = ", ".join(f"ACCORD_{f.upper()}" for f in insecure_fields)
            raise RuntimeError(
                f"Insecure default values detected in '{self.environment}' environment. "
                f"Set these environment variables to secure values: {env_vars}. "
                "Generate secrets with: python -c \"import secrets; print(secrets.token_urlsafe(48))\""
            )

        if insecure_fields:
            warnings.warn(
                "Using insecure default keys; set ACCORD_SECRET_KEY, ACCORD_HMAC_KEY, "
                "ACCORD_API_KEY for production",
                UserWarning,
                stacklevel=2,
            )


@lru_cache
def get_settings() -> AccordSettings:
    settings = AccordSettings()
    settings.validate_for_production()
    return settings
