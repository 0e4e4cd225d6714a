"""Signing credentials for pass types.

Each pass type identifier has its own Pass Type ID certificate and private key,
stored side by side in the certificates directory:

    {PASSKIT_CERTS_DIR}/{passTypeId}{PASSKIT_CERT_EXT}
    {PASSKIT_CERTS_DIR}/{passTypeId}{PASSKIT_KEY_EXT}

The same credentials sign the pass manifest and authenticate the APNs
connection used to push updates for that pass type.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import structlog
from cryptography import x509
from cryptography.hazmat.primitives import serialization
from django.conf import settings

from wallet.exceptions import CredentialLoadError, CredentialNotFoundError

logger = structlog.get_logger(__name__)


def get_key_passphrase() -> str:
    """Read the private key passphrase from KEY_PASSPHRASE_FILE.

    Returns:
        The passphrase with line breaks removed, or an empty string when no
        passphrase file is configured.

    Raises:
        CredentialLoadError: If the configured file cannot be read.
    """
    passphrase_file = settings.KEY_PASSPHRASE_FILE
    if not passphrase_file:
        return ""
    try:
        content = Path(passphrase_file).read_text(encoding="utf-8")
    except OSError as e:
        raise CredentialLoadError(f"Cannot read passphrase file {passphrase_file}: {e}")
    return content.replace("\r", "").replace("\n", "")


@dataclass
class PassCredentials:
    """Certificate, key and passphrase for one pass type.

    The certificate and key are parsed lazily and cached.
    """

    pass_type_id: str
    cert_path: str
    key_path: str
    passphrase: str = ""
    wwdr_cert_path: str | None = None

    _certificate: x509.Certificate | None = field(default=None, init=False, repr=False)
    _private_key: Any = field(default=None, init=False, repr=False)

    def _load_certificate(self, path: str) -> x509.Certificate:
        """Load an X.509 certificate from a PEM file.

        Raises:
            CredentialNotFoundError: If the file does not exist.
            CredentialLoadError: If the certificate cannot be parsed.
        """
        try:
            return x509.load_pem_x509_certificate(Path(path).read_bytes())
        except FileNotFoundError:
            raise CredentialNotFoundError(f"Certificate not found: {path}")
        except Exception as e:
            raise CredentialLoadError(f"Failed to load certificate {path}: {e}")

    def _load_private_key(self, path: str, password: str | None = None) -> Any:
        """Load a private key from a PEM file.

        Raises:
            CredentialNotFoundError: If the file does not exist.
            CredentialLoadError: If the key cannot be parsed or decrypted.
        """
        try:
            key_data = Path(path).read_bytes()
            password_bytes = password.encode() if password else None
            return serialization.load_pem_private_key(key_data, password=password_bytes)
        except FileNotFoundError:
            raise CredentialNotFoundError(f"Private key not found: {path}")
        except Exception as e:
            raise CredentialLoadError(f"Failed to load private key {path}: {e}")

    @property
    def certificate(self) -> x509.Certificate:
        """Get the Pass Type ID certificate, loading if necessary."""
        if self._certificate is None:
            self._certificate = self._load_certificate(self.cert_path)
        return self._certificate

    @property
    def private_key(self) -> Any:
        """Get the private key, loading if necessary."""
        if self._private_key is None:
            self._private_key = self._load_private_key(self.key_path, self.passphrase)
        return self._private_key

    def validate(self) -> None:
        """Load the certificate and key to make sure they are usable.

        Raises:
            CredentialError: If either cannot be loaded.
        """
        _ = self.certificate
        _ = self.private_key
        if self.wwdr_cert_path:
            self._load_certificate(self.wwdr_cert_path)


class CredentialStore:
    """Resolves signing credentials by pass type identifier."""

    def __init__(
        self,
        certs_dir: str | None = None,
        cert_ext: str | None = None,
        key_ext: str | None = None,
        wwdr_cert_path: str | None = None,
    ) -> None:
        """Initialize the store.

        Args:
            certs_dir: Directory holding certificates and keys.
            cert_ext: Certificate file extension.
            key_ext: Private key file extension.
            wwdr_cert_path: Apple WWDR intermediate certificate, if any.

        If values are not provided, they are read from Django settings.
        """
        self.certs_dir = Path(certs_dir or settings.PASSKIT_CERTS_DIR)
        self.cert_ext = cert_ext or settings.PASSKIT_CERT_EXT
        self.key_ext = key_ext or settings.PASSKIT_KEY_EXT
        self.wwdr_cert_path = wwdr_cert_path if wwdr_cert_path is not None else settings.PASSKIT_WWDR_CERT_PATH

    def load(self, pass_type_id: str) -> PassCredentials:
        """Load and validate the credentials for a pass type.

        Args:
            pass_type_id: The pass type identifier (e.g. pass.com.example.demo).

        Returns:
            Validated credentials.

        Raises:
            CredentialNotFoundError: If the certificate or key is missing.
            CredentialLoadError: If either cannot be loaded.
        """
        if not pass_type_id or "/" in pass_type_id or "\\" in pass_type_id or pass_type_id.startswith("."):
            raise CredentialNotFoundError(f"No credentials for pass type {pass_type_id!r}")

        cert_path = self.certs_dir / f"{pass_type_id}{self.cert_ext}"
        key_path = self.certs_dir / f"{pass_type_id}{self.key_ext}"
        if not cert_path.is_file() or not key_path.is_file():
            logger.warning("credentials_not_found", pass_type_id=pass_type_id, certs_dir=str(self.certs_dir))
            raise CredentialNotFoundError(f"No credentials for pass type {pass_type_id!r}")

        credentials = PassCredentials(
            pass_type_id=pass_type_id,
            cert_path=str(cert_path),
            key_path=str(key_path),
            passphrase=get_key_passphrase(),
            wwdr_cert_path=self.wwdr_cert_path or None,
        )
        try:
            credentials.validate()
        except (CredentialNotFoundError, CredentialLoadError) as e:
            logger.error("credential_load_failed", pass_type_id=pass_type_id, error=str(e))
            raise
        return credentials
