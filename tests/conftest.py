"""Shared fixtures for certkeeper tests."""

from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from certkeeper.config import Settings
from certkeeper.manager import CertificateManager
from certkeeper.models import CertificateResource

NOW = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session")
def cert_key() -> rsa.RSAPrivateKey:
    """One RSA key shared by every fixture certificate."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def make_cert(cert_key):
    """Build self-signed PEM certificates expiring ``days`` after NOW."""
    def build(days: float, domains: List[str] = ("example.com",), now: datetime = NOW) -> bytes:
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, domains[0])])
        cert = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(cert_key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(days=1))
            .not_valid_after(now + timedelta(days=days))
            .add_extension(x509.SubjectAlternativeName([x509.DNSName(d) for d in domains]), critical=False)
            .sign(cert_key, hashes.SHA256())
        )
        return cert.public_bytes(serialization.Encoding.PEM)
    return build


@pytest.fixture
def settings() -> Settings:
    return Settings(directory_url="https://ca.test/directory", poll_interval=0)


class FakeAcmeClient:
    """In-memory stand-in for a CA client that records every call."""

    def __init__(
        self,
        settings,
        account,
        failures: Optional[Dict[str, Exception]] = None,
        register_error: Optional[Exception] = None,
        renew_error: Optional[Exception] = None,
        certificate: bytes = b"-----BEGIN CERTIFICATE-----\nISSUED\n-----END CERTIFICATE-----\n",
    ):
        self.settings = settings
        self.account = account
        self.failures = failures or {}
        self.register_error = register_error
        self.renew_error = renew_error
        self.certificate = certificate
        self.calls = []

    @property
    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    def exclude_challenges(self, challenge_types):
        self.calls.append(("exclude_challenges", list(challenge_types)))

    def register(self):
        self.calls.append(("register", None))
        if self.register_error:
            raise self.register_error
        return "registration"

    def accept_agreement(self):
        self.calls.append(("accept_agreement", None))

    def obtain_certificate(self, domains, bundle):
        self.calls.append(("obtain_certificate", (list(domains), bundle)))
        if self.failures:
            return None, dict(self.failures)
        return CertificateResource(
            domain=domains[0],
            domains=list(domains),
            cert_url="https://ca.test/cert/1",
            certificate=self.certificate,
            private_key=b"PRIVATE KEY",
        ), {}

    def renew_certificate(self, resource, bundle):
        self.calls.append(("renew_certificate", (resource.model_copy(), bundle)))
        if self.renew_error:
            raise self.renew_error
        return CertificateResource(
            domain=resource.domain,
            domains=resource.domains,
            cert_url="https://ca.test/cert/2",
            certificate=self.certificate,
            private_key=b"RENEWED KEY",
        )


class FakeClientFactory:
    """Client factory handing out FakeAcmeClient instances."""

    def __init__(self, **options):
        self.options = options
        self.clients: List[FakeAcmeClient] = []

    def __call__(self, settings, account):
        fake = FakeAcmeClient(settings, account, **self.options)
        self.clients.append(fake)
        return fake


@pytest.fixture
def client_factory() -> FakeClientFactory:
    return FakeClientFactory()


@pytest.fixture
def manager(settings, client_factory) -> CertificateManager:
    return CertificateManager(settings, client_factory=client_factory, clock=lambda: NOW)


@pytest.fixture
def stored_cert(tmp_path, make_cert):
    """Write a certificate directory whose certificate expires in ``days``."""
    def write(days: float, domains: List[str] = ("example.com",), meta_certificate: Optional[bytes] = None):
        cert = make_cert(days, list(domains))
        resource = CertificateResource(
            domain=domains[0],
            domains=list(domains),
            cert_url="https://ca.test/cert/1",
            certificate=meta_certificate if meta_certificate is not None else cert,
        )
        (tmp_path / "public.crt").write_bytes(cert)
        (tmp_path / "private.key").write_bytes(b"PRIVATE KEY")
        (tmp_path / "certs.json").write_text(resource.model_dump_json(indent=4))
        return cert
    return write


@pytest.fixture
def now() -> datetime:
    """Fixed clock all fixture certificates are relative to."""
    return NOW


@pytest.fixture
def make_manager(settings, now):
    """Build a manager whose fake clients are created with ``options``."""
    def build(**options):
        factory = FakeClientFactory(**options)
        return CertificateManager(settings, client_factory=factory, clock=lambda: now), factory
    return build
