"""Certificate lifecycle management against an ACME CA."""

from .acme_client import AcmeClient, AcmeProtocol, Account
from .config import Settings
from .domains import build_domain_set, is_sub_domain, is_valid_domain
from .errors import (
    CertKeeperError,
    NotFoundError,
    ParseError,
    PolicyError,
    ProtocolError,
    StorageError,
    ValidationError,
)
from .expiration import get_cert_expiration_time
from .manager import CertificateManager
from .models import CertificateResource, CertificateStatus
from .storage import CertificateStore

__version__ = "0.1.0"

__all__ = [
    'Account',
    'AcmeClient',
    'AcmeProtocol',
    'CertKeeperError',
    'CertificateManager',
    'CertificateResource',
    'CertificateStatus',
    'CertificateStore',
    'NotFoundError',
    'ParseError',
    'PolicyError',
    'ProtocolError',
    'Settings',
    'StorageError',
    'ValidationError',
    'build_domain_set',
    'get_cert_expiration_time',
    'is_sub_domain',
    'is_valid_domain',
]
