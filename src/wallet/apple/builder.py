"""Apple Wallet pass bundle builder.

A .pkpass file is a ZIP archive containing:
- pass.json: The pass definition
- <lang>.lproj/pass.strings: Localized strings
- Images: icon, logo, thumbnail, etc.
- manifest.json: SHA-1 hashes of all files above
- signature: PKCS#7 signature of the manifest
"""

import io
import typing as t
import zipfile

import structlog

from wallet.apple.credentials import PassCredentials
from wallet.apple.manifest import MANIFEST_FILENAME, SIGNATURE_FILENAME
from wallet.apple.signer import ApplePassSigner
from wallet.apple.template import WalletPass
from wallet.exceptions import PassServiceError, PassSigningError

logger = structlog.get_logger(__name__)


class PassBuilder:
    """Builds signed .pkpass bundles from candidate passes."""

    CONTENT_TYPE = "application/vnd.apple.pkpass"
    FILE_EXTENSION = "pkpass"

    def __init__(self, signer_factory: t.Callable[[PassCredentials], ApplePassSigner] = ApplePassSigner) -> None:
        """Initialize the builder.

        Args:
            signer_factory: Creates a signer for a set of credentials.
        """
        self.signer_factory = signer_factory

    def build(self, wallet_pass: WalletPass, credentials: PassCredentials) -> bytes:
        """Build the signed .pkpass bundle for a pass.

        Args:
            wallet_pass: The validated candidate pass.
            credentials: Signing credentials for the pass type.

        Returns:
            The .pkpass file as bytes.

        Raises:
            PassSigningError: If signing or packaging fails.
        """
        try:
            files = wallet_pass.files()
            signer = self.signer_factory(credentials)

            manifest = signer.create_manifest(files)
            signature = signer.sign_manifest(manifest)

            pkpass_bytes = self._create_pkpass_archive(
                [*files, (MANIFEST_FILENAME, manifest), (SIGNATURE_FILENAME, signature)]
            )

            logger.info(
                "pass_bundle_built",
                pass_type_id=wallet_pass.pass_type_identifier,
                serial_number=wallet_pass.serial_number,
                files=len(files),
                size=len(pkpass_bytes),
            )

            return pkpass_bytes

        except PassServiceError:
            raise
        except Exception as e:
            logger.error(
                "pass_bundle_build_failed",
                pass_type_id=wallet_pass.pass_type_identifier,
                serial_number=wallet_pass.serial_number,
                error=str(e),
            )
            raise PassSigningError(f"Failed to build pass bundle: {e}")

    def _create_pkpass_archive(self, files: list[tuple[str, bytes]]) -> bytes:
        """Create the .pkpass ZIP archive.

        Args:
            files: (filename, content) pairs, written in order.

        Returns:
            ZIP archive as bytes.
        """
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for filename, content in files:
                zf.writestr(filename, content)
        return buffer.getvalue()
