"""Apple Wallet pass signing using PKCS#7.

A .pkpass file requires a PKCS#7 detached signature of the manifest.json
file, signed with the Pass Type ID certificate and, when configured, chained
to the Apple WWDR (Worldwide Developer Relations) intermediate certificate.

NOTE: Apple Wallet requires SHA-1 for PKCS#7 signatures. Since the Python
cryptography library doesn't support SHA-1 for PKCS#7 (deprecated for
security reasons), we use OpenSSL via subprocess for signing.
"""

import json
import subprocess
import tempfile
from collections.abc import Iterable
from pathlib import Path

import structlog

from wallet.apple.credentials import PassCredentials
from wallet.apple.manifest import build_manifest
from wallet.exceptions import PassSigningError

logger = structlog.get_logger(__name__)


class ApplePassSigner:
    """Signs Apple Wallet passes using PKCS#7.

    This class creates manifests and generates the PKCS#7 signature required
    for .pkpass files, using the credentials of one pass type.
    """

    def __init__(self, credentials: PassCredentials, openssl_bin: str = "openssl") -> None:
        """Initialize the signer.

        Args:
            credentials: Certificate, key and passphrase of the pass type.
            openssl_bin: OpenSSL executable to invoke.
        """
        self.credentials = credentials
        self.openssl_bin = openssl_bin

    def create_manifest(self, files: Iterable[tuple[str, bytes]]) -> bytes:
        """Create the manifest.json content for a pass.

        The manifest contains SHA-1 hashes of all files in the pass package.

        Args:
            files: (filename, content) pairs.

        Returns:
            The manifest.json content as bytes.
        """
        return json.dumps(build_manifest(files), indent=2).encode("utf-8")

    def _build_command(self, manifest_path: str, sig_path: str) -> list[str]:
        # openssl smime -sign -signer cert.pem -inkey key.pem [-certfile wwdr.pem]
        #   -in manifest.json -out signature -outform DER -binary
        cmd = [
            self.openssl_bin,
            "smime",
            "-sign",
            "-signer",
            self.credentials.cert_path,
            "-inkey",
            self.credentials.key_path,
        ]
        if self.credentials.wwdr_cert_path:
            cmd.extend(["-certfile", self.credentials.wwdr_cert_path])
        cmd.extend(["-in", manifest_path, "-out", sig_path, "-outform", "DER", "-binary"])
        if self.credentials.passphrase:
            cmd.extend(["-passin", f"pass:{self.credentials.passphrase}"])
        return cmd

    def sign_manifest(self, manifest_data: bytes) -> bytes:
        """Create a PKCS#7 detached signature of the manifest.

        Args:
            manifest_data: The manifest.json content to sign.

        Returns:
            The PKCS#7 signature in DER format.

        Raises:
            PassSigningError: If signing fails.
        """
        try:
            with (
                tempfile.NamedTemporaryFile(mode="wb", suffix=".json", delete=False) as manifest_file,
                tempfile.NamedTemporaryFile(mode="wb", suffix=".sig", delete=False) as sig_file,
            ):
                manifest_path = manifest_file.name
                sig_path = sig_file.name
                manifest_file.write(manifest_data)

            try:
                result = subprocess.run(
                    self._build_command(manifest_path, sig_path),
                    capture_output=True,
                    text=True,
                    check=False,
                )

                if result.returncode != 0:
                    logger.error(
                        "openssl_signing_failed",
                        pass_type_id=self.credentials.pass_type_id,
                        returncode=result.returncode,
                        stderr=result.stderr,
                    )
                    raise PassSigningError(f"OpenSSL signing failed: {result.stderr}")

                signature = Path(sig_path).read_bytes()

                logger.debug(
                    "manifest_signed",
                    pass_type_id=self.credentials.pass_type_id,
                    manifest_size=len(manifest_data),
                    signature_size=len(signature),
                )

                return signature

            finally:
                Path(manifest_path).unlink(missing_ok=True)
                Path(sig_path).unlink(missing_ok=True)

        except PassSigningError:
            raise
        except Exception as e:
            logger.error("manifest_signing_failed", pass_type_id=self.credentials.pass_type_id, error=str(e))
            raise PassSigningError(f"Failed to sign manifest: {e}")
