"""Apple Wallet pass issuing configuration.

Signing material lives under PASSKIT_CERTS_DIR as ``{passTypeId}.crt.pem`` and
``{passTypeId}.key.pem``; issued bundles are stored under PASSKIT_PASSES_DIR as
``{passTypeId}_{serialNumber}.pkpass``.

See: https://developer.apple.com/documentation/walletpasses
"""

from decouple import config

from .base import BASE_DIR

# Base URL of the pass web service, written into every pass as webServiceURL
PASSKIT_WEB_SERVICE_URL: str = config("PASSKIT_WEB_SERVICE_URL", default="http://localhost:8000/passkit")

PASSKIT_CERTS_DIR: str = config("PASSKIT_CERTS_DIR", default=str(BASE_DIR / "certs"))
PASSKIT_CERT_EXT: str = config("PASSKIT_CERT_EXT", default=".crt.pem")
PASSKIT_KEY_EXT: str = config("PASSKIT_KEY_EXT", default=".key.pem")
PASSKIT_WWDR_CERT_PATH: str = config("PASSKIT_WWDR_CERT_PATH", default="")
KEY_PASSPHRASE_FILE: str = config("KEY_PASSPHRASE_FILE", default="")

PASSKIT_PASSES_DIR: str = config("PASSKIT_PASSES_DIR", default=str(BASE_DIR / "passes"))
PASSKIT_PASS_EXT: str = config("PASSKIT_PASS_EXT", default=".pkpass")
PASSKIT_CONTENT_TYPE = "application/vnd.apple.pkpass"

PASSKIT_AUTH_TOKEN_BYTES: int = config("PASSKIT_AUTH_TOKEN_BYTES", default=24, cast=int)
PASSKIT_APNS_USE_SANDBOX: bool = config("PASSKIT_APNS_USE_SANDBOX", default=False, cast=bool)
