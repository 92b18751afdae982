"""Certificate Manager driving issuance and renewal."""

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from .acme_client import Account, AcmeProtocol, default_client_factory, generate_rsa_key
from .config import Settings
from .domains import build_domain_set, ensure_valid_domains
from .errors import PolicyError, ProtocolError
from .expiration import days_until_expiry, get_pem_cert_expiration
from .models import CertificateResource, CertificateStatus
from .storage import CertificateStore

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Settings, Account], AcmeProtocol]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CertificateManager:
    """Main certificate management class.

    Every call creates a brand new account (fresh key, registration and
    agreement). Nothing is cached between calls; the certificate directory is
    the only persistent state.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client_factory: Optional[ClientFactory] = None,
        clock: Callable[[], datetime] = utc_now,
        store_factory: Callable[..., CertificateStore] = CertificateStore,
    ):
        self.settings = settings or Settings()
        self.client_factory = client_factory or default_client_factory()
        self.clock = clock
        self.store_factory = store_factory

    def _new_session(self, email: str) -> AcmeProtocol:
        """Create a throwaway account and an authenticated protocol session."""
        private_key, _ = generate_rsa_key(self.settings.rsa_key_size)
        account = Account(email=email, key=private_key)

        acme_client = self.client_factory(self.settings, account)
        acme_client.exclude_challenges(self.settings.excluded_challenges)

        # New users will need to register before agreeing to the terms
        acme_client.register()
        acme_client.accept_agreement()
        return acme_client

    def generate_certificate(
        self, email: str, domain: str, sub_domains: Iterable[str] = ()
    ) -> CertificateResource:
        """Obtain one bundled certificate for ``domain`` and its subdomains.

        The resource is returned without being saved.
        """
        domains = ensure_valid_domains(build_domain_set(domain, sub_domains))
        logger.info(f"Generating certificate for domains: {', '.join(domains)}")

        acme_client = self._new_session(email)
        certificate, failures = acme_client.obtain_certificate(domains, self.settings.bundle)
        if failures:
            error = ProtocolError.from_failures(failures)
            logger.error(str(error))
            raise error
        if certificate is None:
            raise ProtocolError(f"CA returned no certificate for {', '.join(domains)}")

        logger.info(f"Certificate generated for {', '.join(domains)}")
        return certificate

    def renew_certificate(self, certs_dir: str, email: str) -> CertificateResource:
        """Renew the certificate stored in ``certs_dir`` once it is due."""
        store = self.store_factory(certs_dir)
        cert_bytes = store.load_cert()

        expires_at = get_pem_cert_expiration(cert_bytes)
        days_remaining = days_until_expiry(expires_at, self.clock())
        if days_remaining > self.settings.renew_days_limit:
            logger.info(f"Certificate in {certs_dir} expires in {days_remaining} days, renewal not due")
            raise PolicyError(days_remaining, self.settings.renew_days_limit)

        logger.info(f"Renewing certificate in {certs_dir}, {days_remaining} days remaining")
        acme_client = self._new_session(email)

        cert_meta = store.load_cert_meta()
        # The file on disk wins over whatever the metadata embedded
        cert_meta.certificate = cert_bytes

        renewed = acme_client.renew_certificate(cert_meta, self.settings.bundle)
        logger.info(f"Certificate renewed for {renewed.domain}")
        return renewed

    def issue_and_save(
        self, certs_dir: str, email: str, domain: str, sub_domains: Iterable[str] = (), atomic: bool = False
    ) -> CertificateResource:
        """Generate a certificate and persist it to ``certs_dir``."""
        certificate = self.generate_certificate(email, domain, sub_domains)
        self.store_factory(certs_dir, atomic=atomic).save_certs(certificate)
        return certificate

    def renew_and_save(self, certs_dir: str, email: str, atomic: bool = False) -> CertificateResource:
        """Renew the certificate in ``certs_dir`` and overwrite its files."""
        certificate = self.renew_certificate(certs_dir, email)
        self.store_factory(certs_dir, atomic=atomic).save_certs(certificate)
        return certificate

    def certificate_status(self, certs_dir: str) -> CertificateStatus:
        """Summarize availability and expiry of the certificate in ``certs_dir``."""
        store = self.store_factory(certs_dir)
        if not store.is_cert_available():
            return CertificateStatus(certs_dir=certs_dir, available=False)

        expires_at = get_pem_cert_expiration(store.load_cert())
        days_remaining = days_until_expiry(expires_at, self.clock())
        return CertificateStatus(
            certs_dir=certs_dir,
            available=True,
            expires_at=expires_at,
            days_remaining=days_remaining,
            renewal_due=days_remaining <= self.settings.renew_days_limit,
        )
