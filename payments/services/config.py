from dataclasses import dataclass, fields
from typing import Any, Mapping, Optional

from django.conf import settings

from .errors import ConfigurationError

BASE_URLS = {
    "sandbox": "https://sandbox.safaricom.co.ke",
    "production": "https://api.safaricom.co.ke",
}

# DarajaConfig field -> Django setting
SETTINGS_NAMES = {
    "consumer_key": "MPESA_CONSUMER_KEY",
    "consumer_secret": "MPESA_CONSUMER_SECRET",
    "environment": "MPESA_ENV",
    "shortcode": "MPESA_SHORTCODE",
    "passkey": "MPESA_PASSKEY",
    "callback_url": "MPESA_CALLBACK_URL",
    "initiator_name": "MPESA_INITIATOR_NAME",
    "security_credential": "MPESA_SECURITY_CREDENTIAL",
    "result_url": "MPESA_RESULT_URL",
    "timeout_url": "MPESA_TIMEOUT_URL",
    "timeout": "MPESA_TIMEOUT",
}


@dataclass
class DarajaConfig:
    consumer_key: str = ""
    consumer_secret: str = ""
    environment: str = "sandbox"
    shortcode: str = ""
    passkey: str = ""
    callback_url: str = ""
    initiator_name: str = ""
    security_credential: str = ""
    result_url: str = ""
    timeout_url: str = ""
    timeout: float = 30

    REQUIRED = (
        "consumer_key",
        "consumer_secret",
        "shortcode",
        "passkey",
        "callback_url",
        "initiator_name",
        "security_credential",
    )

    @classmethod
    def resolve(cls, overrides=None, fallback: Optional[Mapping[str, Any]] = None) -> "DarajaConfig":
        """
        Build a validated config. Explicit ``overrides`` win; anything they
        leave empty is taken from ``fallback`` (Django settings by default).
        """
        if isinstance(overrides, DarajaConfig):
            overrides = {f.name: getattr(overrides, f.name) for f in fields(overrides)}
        overrides = overrides or {}
        if fallback is None:
            fallback = settings_fallback()

        values = {}
        for f in fields(cls):
            value = overrides.get(f.name)
            if value in (None, ""):
                value = fallback.get(f.name)
            if value not in (None, ""):
                values[f.name] = value

        config = cls(**values)
        config.validate()
        return config

    def validate(self):
        missing = [name for name in self.REQUIRED if not getattr(self, name)]
        if missing:
            raise ConfigurationError.for_missing(missing)
        self.environment = str(self.environment).lower()
        if self.environment not in BASE_URLS:
            raise ConfigurationError(
                f"environment must be 'sandbox' or 'production', got '{self.environment}'"
            )
        self.shortcode = str(self.shortcode)
        self.timeout = float(self.timeout)

    @property
    def base_url(self) -> str:
        return BASE_URLS[self.environment]


def settings_fallback() -> dict:
    if not settings.configured:
        return {}
    return {
        name: getattr(settings, setting, None)
        for name, setting in SETTINGS_NAMES.items()
    }
