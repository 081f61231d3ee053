import json
from typing import Any

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GatewayConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DISPATCH_API_")

    host: str = "0.0.0.0"
    port: int = 8000


class DispatchConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="DISPATCH_")

    log_level: str = "INFO"
    provider_timeout_seconds: float = 10.0
    # 1 keeps recipients strictly sequential within a run.
    max_workers: int = 1
    lock_timeout_seconds: int = 300


class AuthConfig(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="AUTH_")

    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_audience: str | None = None


class TwilioConfig(BaseSettings):
    """SMS provider credentials. All three must be set for live sends."""

    model_config = SettingsConfigDict(env_prefix="TWILIO_")

    account_sid: str | None = None
    auth_token: str | None = None
    phone_number: str | None = None
    api_base_url: str = "https://api.twilio.com"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_configured(self) -> bool:
        return bool(self.account_sid and self.auth_token and self.phone_number)


class FirebaseConfig(BaseSettings):
    """Push provider credentials as a service-account JSON document."""

    model_config = SettingsConfigDict(env_prefix="FIREBASE_")

    service_account: str | None = None
    token_url: str = "https://oauth2.googleapis.com/token"
    api_base_url: str = "https://fcm.googleapis.com"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_configured(self) -> bool:
        return bool(self.service_account)

    def service_account_info(self) -> dict[str, Any]:
        """Parse the service-account JSON.

        Raises ValueError if it is missing, malformed, or lacks the keys
        needed to mint an access token.
        """
        if not self.service_account:
            raise ValueError("FIREBASE_SERVICE_ACCOUNT is not set")
        try:
            info = json.loads(self.service_account)
        except json.JSONDecodeError as exc:
            raise ValueError("FIREBASE_SERVICE_ACCOUNT is not valid JSON") from exc

        missing = [
            key for key in ("private_key", "client_email", "project_id")
            if not info.get(key)
        ]
        if missing:
            raise ValueError(f"Service account is missing keys: {missing}")
        # Keys pasted into env files often carry literal "\n" sequences.
        info["private_key"] = info["private_key"].replace("\\n", "\n")
        return info
