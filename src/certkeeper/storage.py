"""Filesystem storage for certificate material and metadata.

A certificate directory is flat and holds three files:

    public.crt   PEM certificate, possibly a bundled chain
    private.key  PEM private key
    certs.json   indented JSON of the CertificateResource (embeds the certificate)

Writes happen one file after another and are not transactional. If a later
write fails, earlier files keep their new content. With ``atomic=True`` each
file is replaced through a temporary file and ``os.replace``, so readers
never see a half-written file, but the three files are still replaced
independently. The directory is never locked; two processes renewing the
same directory at once can interleave their writes.
"""

import logging
import os
import tempfile

from pydantic import ValidationError as PydanticValidationError

from .errors import NotFoundError, ParseError, StorageError
from .models import CertificateResource

logger = logging.getLogger(__name__)

CERT_FILE = "public.crt"
KEY_FILE = "private.key"
META_FILE = "certs.json"

FILE_MODE = 0o600
DIR_MODE = 0o700
JSON_INDENT = 4


class CertificateStore:
    """Reads and writes certificate files in one directory."""

    def __init__(self, certs_dir: str, atomic: bool = False):
        self.certs_dir = os.fspath(certs_dir)
        self.atomic = atomic

    @property
    def cert_path(self) -> str:
        return os.path.join(self.certs_dir, CERT_FILE)

    @property
    def key_path(self) -> str:
        return os.path.join(self.certs_dir, KEY_FILE)

    @property
    def meta_path(self) -> str:
        return os.path.join(self.certs_dir, META_FILE)

    def load_cert(self) -> bytes:
        """Read the certificate bytes."""
        return self._read_file(self.cert_path)

    def load_cert_meta(self) -> CertificateResource:
        """Read and deserialize the certificate metadata."""
        data = self._read_file(self.meta_path)
        try:
            return CertificateResource.model_validate_json(data)
        except PydanticValidationError as e:
            raise ParseError(f"Malformed certificate metadata in {self.meta_path}: {e}", self.meta_path) from e

    def save_certs(self, resource: CertificateResource) -> None:
        """Save the certificate, the private key and the JSON metadata, in that order."""
        try:
            os.makedirs(self.certs_dir, mode=DIR_MODE, exist_ok=True)
        except OSError as e:
            raise StorageError(self.certs_dir, str(e)) from e

        self._write_file(self.cert_path, resource.certificate)
        self._write_file(self.key_path, resource.private_key)
        meta = resource.model_dump_json(indent=JSON_INDENT).encode('utf-8')
        self._write_file(self.meta_path, meta)

        logger.info(f"Saved certificate for {resource.domain} to {self.certs_dir}")

    def is_cert_available(self) -> bool:
        """Check that both the certificate and the private key exist."""
        return os.path.exists(self.cert_path) and os.path.exists(self.key_path)

    def _read_file(self, path: str) -> bytes:
        try:
            with open(path, 'rb') as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFoundError(path, "file does not exist") from e
        except OSError as e:
            raise NotFoundError(path, e.strerror or str(e)) from e

    def _write_file(self, path: str, data: bytes) -> None:
        try:
            if self.atomic:
                self._replace_file(path, data)
            else:
                fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, FILE_MODE)
                with os.fdopen(fd, 'wb') as f:
                    f.write(data)
                # O_CREAT mode is ignored for files that already exist
                os.chmod(path, FILE_MODE)
        except OSError as e:
            raise StorageError(path, e.strerror or str(e)) from e
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    def _replace_file(self, path: str, data: bytes) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.certs_dir, prefix=f".{os.path.basename(path)}.")
        try:
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
