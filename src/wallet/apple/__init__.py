"""Apple Wallet pass components."""

from wallet.apple.builder import PassBuilder
from wallet.apple.credentials import CredentialStore, PassCredentials
from wallet.apple.push import ApplePushNotificationClient
from wallet.apple.signer import ApplePassSigner
from wallet.apple.template import PassTemplate, WalletPass

__all__ = [
    "ApplePassSigner",
    "ApplePushNotificationClient",
    "CredentialStore",
    "PassBuilder",
    "PassCredentials",
    "PassTemplate",
    "WalletPass",
]
