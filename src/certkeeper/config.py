"""Centralized configuration management for certkeeper."""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

LETSENCRYPT_DIRECTORY_URL = "https://acme-v02.api.letsencrypt.org/directory"
LETSENCRYPT_STAGING_URL = "https://acme-staging-v02.api.letsencrypt.org/directory"


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _optional_float(value: Optional[str]) -> Optional[float]:
    return float(value) if value else None


class Config:
    """Configuration class with all environment variables."""

    # ACME Configuration
    ACME_DIRECTORY_URL: str = os.getenv('ACME_DIRECTORY_URL', LETSENCRYPT_DIRECTORY_URL)
    ACME_STAGING_URL: str = os.getenv('ACME_STAGING_URL', LETSENCRYPT_STAGING_URL)
    ACME_EMAIL: Optional[str] = os.getenv('ACME_EMAIL')
    ACME_WEBROOT: Optional[str] = os.getenv('ACME_WEBROOT')
    ACME_EXCLUDED_CHALLENGES: List[str] = _split_list(os.getenv('ACME_EXCLUDED_CHALLENGES', 'dns-01'))
    ACME_POLL_MAX_ATTEMPTS: int = int(os.getenv('ACME_POLL_MAX_ATTEMPTS', '60'))
    ACME_POLL_INTERVAL_SECONDS: float = float(os.getenv('ACME_POLL_INTERVAL_SECONDS', '2'))
    # Unset means no deadline beyond what the transport provides
    ACME_TIMEOUT_SECONDS: Optional[float] = _optional_float(os.getenv('ACME_TIMEOUT_SECONDS'))

    # Certificate Configuration
    RSA_KEY_SIZE: int = int(os.getenv('RSA_KEY_SIZE', '2048'))
    RENEW_DAYS_LIMIT: int = int(os.getenv('RENEW_DAYS_LIMIT', '45'))
    CERTS_DIR: str = os.getenv('CERTS_DIR', './certs')
    CERT_ATOMIC_WRITES: bool = os.getenv('CERT_ATOMIC_WRITES', 'false').lower() == 'true'

    # Certificate Management
    RENEWAL_CHECK_INTERVAL: int = int(os.getenv('RENEWAL_CHECK_INTERVAL', '86400'))  # 24 hours

    # Logging
    LOG_LEVEL: str = os.getenv('LOG_LEVEL', 'INFO').upper()

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration values."""
        errors = []

        if not cls.ACME_DIRECTORY_URL:
            errors.append("ACME_DIRECTORY_URL is required")

        if cls.RSA_KEY_SIZE < 2048:
            errors.append(f"RSA_KEY_SIZE must be at least 2048, got {cls.RSA_KEY_SIZE}")

        if cls.RENEW_DAYS_LIMIT < 0:
            errors.append(f"RENEW_DAYS_LIMIT must not be negative, got {cls.RENEW_DAYS_LIMIT}")

        if cls.ACME_POLL_MAX_ATTEMPTS < 1:
            errors.append(f"ACME_POLL_MAX_ATTEMPTS must be positive, got {cls.ACME_POLL_MAX_ATTEMPTS}")

        if cls.RENEWAL_CHECK_INTERVAL < 1:
            errors.append(f"RENEWAL_CHECK_INTERVAL must be positive, got {cls.RENEWAL_CHECK_INTERVAL}")

        if errors:
            raise ValueError(f"Configuration errors: {'; '.join(errors)}")


class Settings(BaseModel):
    """Explicit settings handed to the orchestrators and the ACME client."""

    directory_url: str = LETSENCRYPT_DIRECTORY_URL
    rsa_key_size: int = 2048
    renew_days_limit: int = 45
    excluded_challenges: List[str] = Field(default_factory=lambda: ["dns-01"])
    bundle: bool = True
    poll_max_attempts: int = 60
    poll_interval: float = 2.0
    timeout: Optional[float] = None
    agree_tos: bool = True
    user_agent: str = "certkeeper/0.1"

    @field_validator('directory_url')
    @classmethod
    def validate_directory_url(cls, v: str) -> str:
        v = v.strip()
        if not v.startswith(('https://', 'http://')):
            raise ValueError('Directory URL must be an http(s) URL')
        return v

    @field_validator('rsa_key_size')
    @classmethod
    def validate_rsa_key_size(cls, v: int) -> int:
        if v < 2048:
            raise ValueError('RSA key size must be at least 2048 bits')
        return v

    @field_validator('renew_days_limit')
    @classmethod
    def validate_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError('Value must not be negative')
        return v

    @field_validator('poll_max_attempts')
    @classmethod
    def validate_poll_max_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError('At least one poll attempt is required')
        return v

    @field_validator('excluded_challenges', mode='before')
    @classmethod
    def validate_excluded_challenges(cls, v):
        if isinstance(v, str):
            v = _split_list(v)
        return [challenge.strip().lower() for challenge in v if challenge.strip()]

    @classmethod
    def from_env(cls, staging: bool = False) -> "Settings":
        """Build settings from the environment backed ``Config``."""
        Config.validate()
        return cls(
            directory_url=Config.ACME_STAGING_URL if staging else Config.ACME_DIRECTORY_URL,
            rsa_key_size=Config.RSA_KEY_SIZE,
            renew_days_limit=Config.RENEW_DAYS_LIMIT,
            excluded_challenges=Config.ACME_EXCLUDED_CHALLENGES,
            poll_max_attempts=Config.ACME_POLL_MAX_ATTEMPTS,
            poll_interval=Config.ACME_POLL_INTERVAL_SECONDS,
            timeout=Config.ACME_TIMEOUT_SECONDS,
        )


@lru_cache()
def get_settings() -> Settings:
    """Get validated settings built from the environment."""
    return Settings.from_env()
