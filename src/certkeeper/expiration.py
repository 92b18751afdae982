"""Certificate expiration lookups."""

from datetime import datetime, timezone
from typing import Optional

from cryptography import x509

from .errors import ParseError
from .storage import CertificateStore

SECONDS_PER_DAY = 24 * 60 * 60


def get_pem_cert_expiration(cert_bytes: bytes) -> datetime:
    """Return the NotAfter time of the first certificate in a PEM bundle."""
    try:
        cert = x509.load_pem_x509_certificate(cert_bytes)
    except ValueError as e:
        raise ParseError(f"Unable to parse PEM certificate: {e}") from e
    return cert.not_valid_after_utc


def get_cert_expiration_time(certs_dir: str) -> datetime:
    """Load the stored certificate and return its expiration time."""
    cert_bytes = CertificateStore(certs_dir).load_cert()
    return get_pem_cert_expiration(cert_bytes)


def days_until_expiry(expires_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days from ``now`` until ``expires_at``, truncated toward zero."""
    if now is None:
        now = datetime.now(timezone.utc)
    return int((expires_at - now).total_seconds() / SECONDS_PER_DAY)
