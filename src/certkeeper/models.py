"""Certificate-specific data models."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, field_serializer, field_validator


class CertificateResource(BaseModel):
    """Result of an issuance or renewal.

    Holds the PEM certificate (possibly a bundled chain), the PEM private key
    and the CA metadata needed to renew later. The private key is excluded
    from serialization; it is persisted on its own.
    """
    domain: str
    domains: List[str] = Field(default_factory=list)
    cert_url: Optional[str] = None
    cert_stable_url: Optional[str] = None
    account_ref: Optional[str] = None
    certificate: bytes = b""
    private_key: bytes = Field(default=b"", exclude=True)

    @field_validator('domains')
    @classmethod
    def validate_domains(cls, v: List[str]) -> List[str]:
        return [domain.strip().lower() for domain in v if domain.strip()]


class CertificateStatus(BaseModel):
    """Expiration summary of a certificate directory."""
    certs_dir: str
    available: bool
    expires_at: Optional[datetime] = None
    days_remaining: Optional[int] = None
    renewal_due: bool = False

    @field_serializer('expires_at')
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        return dt.isoformat() if dt else None
