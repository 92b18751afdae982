"""Exception classes for certificate lifecycle operations.

Every failure in the core is raised to the immediate caller. Nothing here
retries; a scheduler invoking the orchestrators again is responsible for that.
"""

from typing import Any, Dict, Mapping, Optional


class CertKeeperError(Exception):
    """Base exception for all certificate lifecycle errors."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}

    def __str__(self):
        if self.error_code:
            return f"[{self.error_code}] {self.message}"
        return self.message


class ValidationError(CertKeeperError):
    """Raised when a domain name fails the syntactic checks."""

    def __init__(self, domain: str):
        super().__init__(f"Invalid domain name: {domain!r}", "INVALID_DOMAIN", {"domain": domain})
        self.domain = domain


class NotFoundError(CertKeeperError):
    """Raised when a certificate or metadata file is absent or unreadable."""

    def __init__(self, path: str, reason: Optional[str] = None):
        message = f"Unable to read {path}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, "NOT_FOUND", {"path": path})
        self.path = path


class ParseError(CertKeeperError):
    """Raised for malformed metadata JSON or a malformed PEM certificate."""

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message, "PARSE_FAILED", {"source": source})
        self.source = source


class ProtocolError(CertKeeperError):
    """Raised when the CA exchange fails.

    ``failures`` maps domain names to their individual causes when the error
    aggregates a multi-domain issuance.
    """

    def __init__(self, message: str, failures: Optional[Mapping[str, Exception]] = None):
        self.failures = dict(failures or {})
        super().__init__(message, "ACME_PROTOCOL", {"domains": sorted(self.failures)})

    @classmethod
    def from_failures(cls, failures: Mapping[str, Exception]) -> "ProtocolError":
        """Build one error reporting every failed domain and its cause."""
        domains = list(failures)
        causes = "; ".join(f"{domain}: {failures[domain]}" for domain in domains)
        message = (
            f"Failed to obtain certificates for domains: {', '.join(domains)}, "
            f"with following errors respectively: {causes}"
        )
        return cls(message, failures)


class PolicyError(CertKeeperError):
    """Raised when renewal is requested while the certificate is comfortably valid."""

    def __init__(self, days_remaining: int, renew_days_limit: int):
        super().__init__(
            f"Keys have not expired yet, please renew in {days_remaining} days.",
            "RENEWAL_NOT_DUE",
            {"days_remaining": days_remaining, "renew_days_limit": renew_days_limit},
        )
        self.days_remaining = days_remaining
        self.renew_days_limit = renew_days_limit


class StorageError(CertKeeperError):
    """Raised when writing certificate material to disk fails."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Failed to write {path}: {reason}", "STORAGE", {"path": path})
        self.path = path
