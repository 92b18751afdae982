"""ACME protocol client implementation.

The orchestrators only talk to :class:`AcmeProtocol`. :class:`AcmeClient`
implements it with certbot's ``acme`` library; tests substitute fakes.
"""

import logging
import re
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol, Tuple

import josepy as jose
import requests
from acme import client, crypto_util, errors, messages
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .challenges import ChallengeResponder
from .config import Settings
from .errors import ParseError, ProtocolError
from .models import CertificateResource

logger = logging.getLogger(__name__)

PEM_CERT_RE = re.compile(
    r"-----BEGIN CERTIFICATE-----\r?\n.+?\r?\n-----END CERTIFICATE-----\r?\n?",
    re.DOTALL,
)

Failures = Dict[str, Exception]


def generate_rsa_key(key_size: int) -> Tuple[rsa.RSAPrivateKey, bytes]:
    """Generate RSA key pair."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    return private_key, private_pem


def split_pem_chain(fullchain_pem: str) -> List[str]:
    """Split a PEM bundle into its certificates, leaf first."""
    return PEM_CERT_RE.findall(fullchain_pem)


def certificate_domains(cert_bytes: bytes) -> List[str]:
    """Return the DNS names of a PEM certificate, subject CN first."""
    try:
        cert = x509.load_pem_x509_certificate(cert_bytes)
    except ValueError as e:
        raise ParseError(f"Unable to parse PEM certificate: {e}") from e

    domains = [attr.value for attr in cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)]
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName)
    except x509.ExtensionNotFound:
        return domains
    for name in san.value.get_values_for_type(x509.DNSName):
        if name not in domains:
            domains.append(name)
    return domains


@dataclass
class Account:
    """A throwaway ACME identity; never persisted between calls."""
    email: str
    key: rsa.RSAPrivateKey
    registration: Optional[messages.RegistrationResource] = None


class AcmeProtocol(Protocol):
    """Capabilities the orchestrators need from a CA client."""

    def exclude_challenges(self, challenge_types: Iterable[str]) -> None:
        ...

    def register(self) -> Any:
        ...

    def accept_agreement(self) -> None:
        ...

    def obtain_certificate(
        self, domains: List[str], bundle: bool
    ) -> Tuple[Optional[CertificateResource], Failures]:
        ...

    def renew_certificate(self, resource: CertificateResource, bundle: bool) -> CertificateResource:
        ...


@contextmanager
def acme_errors(action: str):
    """Convert ACME library and transport errors into ProtocolError."""
    try:
        yield
    except (errors.Error, messages.Error, requests.exceptions.RequestException) as e:
        raise ProtocolError(f"{action} failed: {e}") from e


class AcmeClient:
    """ACME v2 client bound to one account and one CA directory."""

    def __init__(
        self,
        settings: Settings,
        account: Account,
        responder: Optional[ChallengeResponder] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.account = account
        self.responder = responder
        self.excluded_challenges: set = set()
        self._sleep = sleep
        self._acme: Optional[client.ClientV2] = None
        self._directory: Optional[messages.Directory] = None
        self._agreement_sent = False

    def _ensure_client(self) -> client.ClientV2:
        """Create the network session and fetch the CA directory once."""
        if self._acme is None:
            account_key = jose.JWKRSA(key=self.account.key)
            with acme_errors(f"Fetching ACME directory {self.settings.directory_url}"):
                net = client.ClientNetwork(account_key, user_agent=self.settings.user_agent)
                self._directory = messages.Directory.from_json(net.get(self.settings.directory_url).json())
                self._acme = client.ClientV2(self._directory, net=net)
            logger.debug(f"ACME directory loaded from {self.settings.directory_url}")
        return self._acme

    def _terms_of_service(self) -> Optional[str]:
        meta = getattr(self._directory, 'meta', None)
        return getattr(meta, 'terms_of_service', None) if meta is not None else None

    def _deadline(self) -> Optional[datetime]:
        if self.settings.timeout is None:
            return None
        return datetime.now() + timedelta(seconds=self.settings.timeout)

    def exclude_challenges(self, challenge_types: Iterable[str]) -> None:
        """Never answer challenges of the given types (e.g. ``dns-01``)."""
        self.excluded_challenges = {typ.lower() for typ in challenge_types}
        logger.debug(f"Excluded challenge types: {sorted(self.excluded_challenges)}")

    def register(self) -> messages.RegistrationResource:
        """Register the account, or look it up if the key is already known."""
        acme_client = self._ensure_client()
        email = self.account.email
        fields = {'email': email}
        if self.settings.agree_tos and self._terms_of_service():
            fields['terms_of_service_agreed'] = True

        logger.info(f"Registering ACME account for {email}")
        try:
            with acme_errors(f"Registering account for {email}"):
                regr = acme_client.new_account(messages.NewRegistration.from_data(**fields))
            self._agreement_sent = 'terms_of_service_agreed' in fields
        except ProtocolError as e:
            if not isinstance(e.__cause__, errors.ConflictError):
                raise
            # The Location of the conflict is the existing account URI
            logger.info(f"Account already exists for {email}, retrieving it")
            existing = messages.RegistrationResource(
                body=messages.Registration(key=acme_client.net.key.public_key()),
                uri=e.__cause__.location,
            )
            with acme_errors(f"Querying existing account for {email}"):
                regr = acme_client.query_registration(existing)

        self.account.registration = regr
        logger.info(f"Registered ACME account {regr.uri}")
        return regr

    def accept_agreement(self) -> None:
        """Make sure the account has agreed to the CA's subscriber agreement."""
        regr = self.account.registration
        if regr is None:
            raise ProtocolError("Cannot accept the subscriber agreement before registering")

        terms = self._terms_of_service()
        if not terms:
            logger.debug("CA does not publish terms of service")
            return
        if not self.settings.agree_tos:
            raise ProtocolError(f"Terms of service at {terms} must be accepted to continue")
        if self._agreement_sent or regr.body.terms_of_service_agreed:
            logger.info(f"Accepted terms of service {terms}")
            return

        with acme_errors("Accepting terms of service"):
            self.account.registration = self._acme.update_registration(
                regr, regr.body.update(terms_of_service_agreed=True)
            )
        self._agreement_sent = True
        logger.info(f"Accepted terms of service {terms}")

    def obtain_certificate(
        self, domains: List[str], bundle: bool = True
    ) -> Tuple[Optional[CertificateResource], Failures]:
        """Order one certificate covering every domain.

        Returns the resource and an empty failure map, or ``None`` and the
        failure cause of every domain whose challenge did not validate.
        """
        if self.account.registration is None:
            raise ProtocolError("Cannot request certificates before registering")
        acme_client = self._ensure_client()
        deadline = self._deadline()

        logger.info(f"Requesting certificate for domains: {', '.join(domains)}")
        cert_key, cert_key_pem = generate_rsa_key(self.settings.rsa_key_size)
        csr_pem = crypto_util.make_csr(cert_key_pem, domains)

        with acme_errors(f"Creating order for {', '.join(domains)}"):
            order = acme_client.new_order(csr_pem)

        failures: Failures = {}
        for authzr in order.authorizations:
            domain = authzr.body.identifier.value
            try:
                self._process_authorization(acme_client, authzr, deadline)
            except ProtocolError as e:
                logger.error(f"Authorization failed for {domain}: {e}")
                failures[domain] = e
        if failures:
            return None, failures

        finalize_kwargs = {'deadline': deadline} if deadline else {}
        with acme_errors(f"Finalizing order for {', '.join(domains)}"):
            order = acme_client.poll_and_finalize(order, **finalize_kwargs)

        chain = split_pem_chain(order.fullchain_pem)
        if not chain:
            raise ProtocolError("CA returned no certificate")
        cert_pem = "".join(chain) if bundle else chain[0]

        logger.info(f"Certificate issued for domains: {', '.join(domains)}")
        return CertificateResource(
            domain=domains[0],
            domains=list(domains),
            cert_url=order.body.certificate,
            cert_stable_url=order.body.certificate,
            account_ref=self.account.registration.uri,
            certificate=cert_pem.encode('ascii'),
            private_key=cert_key_pem,
        ), {}

    def renew_certificate(self, resource: CertificateResource, bundle: bool = True) -> CertificateResource:
        """Issue a fresh certificate for the names of ``resource``."""
        domains = certificate_domains(resource.certificate) if resource.certificate else []
        if resource.domain in domains:
            domains.remove(resource.domain)
        domains.insert(0, resource.domain)

        logger.info(f"Renewing certificate for {resource.domain}")
        renewed, failures = self.obtain_certificate(domains, bundle)
        if failures:
            raise ProtocolError.from_failures(failures)
        return renewed

    def _select_challenge(self, authzr: messages.AuthorizationResource) -> messages.ChallengeBody:
        offered = []
        for challb in authzr.body.challenges:
            typ = challb.chall.typ
            offered.append(typ)
            if typ in self.excluded_challenges:
                continue
            if self.responder is not None and self.responder.supports(typ):
                return challb
        raise ProtocolError(f"No supported challenge offered, CA offered: {', '.join(offered)}")

    def _process_authorization(
        self,
        acme_client: client.ClientV2,
        authzr: messages.AuthorizationResource,
        deadline: Optional[datetime],
    ) -> None:
        domain = authzr.body.identifier.value
        if authzr.body.status == messages.STATUS_VALID:
            logger.debug(f"Authorization for {domain} is already valid")
            return

        challb = self._select_challenge(authzr)
        response, validation = challb.response_and_validation(acme_client.net.key)
        try:
            try:
                self.responder.perform(domain, challb.chall, validation)
            except OSError as e:
                raise ProtocolError(f"Publishing challenge for {domain} failed: {e}") from e
            logger.info(f"Answering {challb.chall.typ} challenge for {domain}")
            with acme_errors(f"Answering challenge for {domain}"):
                acme_client.answer_challenge(challb, response)
            self._poll_authorization(acme_client, authzr, deadline)
        finally:
            self._cleanup_challenge(domain, challb.chall)

    def _cleanup_challenge(self, domain: str, challenge: Any) -> None:
        try:
            self.responder.cleanup(domain, challenge)
        except OSError as e:
            logger.warning(f"Failed to remove challenge response for {domain}: {e}")

    def _poll_authorization(
        self,
        acme_client: client.ClientV2,
        authzr: messages.AuthorizationResource,
        deadline: Optional[datetime],
    ) -> None:
        domain = authzr.body.identifier.value
        max_attempts = self.settings.poll_max_attempts
        for attempt in range(max_attempts):
            with acme_errors(f"Polling authorization for {domain}"):
                authzr, _ = acme_client.poll(authzr)

            status = authzr.body.status
            logger.debug(f"Authorization status for {domain}: {status} (attempt {attempt + 1}/{max_attempts})")
            if status == messages.STATUS_VALID:
                logger.info(f"Authorization validated for {domain}")
                return
            if status == messages.STATUS_INVALID:
                details = [str(challb.error) for challb in authzr.body.challenges if challb.error]
                raise ProtocolError(f"Authorization invalid for {domain}: {'; '.join(details) or status}")

            if deadline is not None and datetime.now() >= deadline:
                break
            if attempt < max_attempts - 1:
                self._sleep(self.settings.poll_interval)

        raise ProtocolError(f"Authorization validation timed out for {domain}")


def default_client_factory(
    responder: Optional[ChallengeResponder] = None,
) -> Callable[[Settings, Account], AcmeProtocol]:
    """Client factory building :class:`AcmeClient` with ``responder``."""
    def factory(settings: Settings, account: Account) -> AcmeProtocol:
        return AcmeClient(settings, account, responder=responder)
    return factory
