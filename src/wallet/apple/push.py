"""Apple Push Notification service client for Wallet pass updates.

When a pass changes we send an empty push notification to every device
registered for it; the device then asks our web service which passes changed
and fetches the new bundle.

Apple requires:
- HTTP/2 connection to api.push.apple.com (production) or api.sandbox.push.apple.com
- Authentication via Pass Type ID certificate (same cert used to sign passes)
- Empty JSON payload for wallet pass updates
- Topic header set to the Pass Type ID
"""

import ssl
from pathlib import Path

import httpx
import structlog

from wallet.apple.credentials import PassCredentials

logger = structlog.get_logger(__name__)


# APNs endpoints
APNS_PRODUCTION_HOST = "api.push.apple.com"
APNS_SANDBOX_HOST = "api.sandbox.push.apple.com"
APNS_PORT = 443


def _short(push_token: str) -> str:
    return push_token[:20] + "..."


class ApplePushError(Exception):
    """Raised when push notification fails.

    Attributes:
        status_code: HTTP status code from APNs, if available.
        reason: Error reason from APNs, if available.
    """

    def __init__(self, message: str, status_code: int | None = None, reason: str | None = None) -> None:
        """Initialize the error.

        Args:
            message: Error message describing what went wrong.
            status_code: HTTP status code from APNs, if available.
            reason: Error reason from APNs, if available.
        """
        super().__init__(message)
        self.status_code = status_code
        self.reason = reason


class ApplePushNotificationClient:
    """Client for sending Apple Push Notifications for wallet pass updates.

    One client serves one pass type: the pass type's certificate authenticates
    the connection and its identifier is the APNs topic.
    """

    def __init__(self, credentials: PassCredentials, use_sandbox: bool = False) -> None:
        """Initialize the push notification client.

        Args:
            credentials: Credentials of the pass type to push for.
            use_sandbox: Whether to use sandbox APNs (usually False for wallet).
        """
        self.credentials = credentials
        self.topic = credentials.pass_type_id
        self.use_sandbox = use_sandbox

        self._host = APNS_SANDBOX_HOST if use_sandbox else APNS_PRODUCTION_HOST
        self._client: httpx.Client | None = None

    def _get_ssl_context(self) -> ssl.SSLContext:
        """Create SSL context with client certificate authentication.

        Raises:
            ApplePushError: If certificates cannot be loaded.
        """
        try:
            context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
            context.minimum_version = ssl.TLSVersion.TLSv1_2

            cert_path = Path(self.credentials.cert_path)
            key_path = Path(self.credentials.key_path)

            if not cert_path.exists():
                raise ApplePushError(f"Certificate not found: {cert_path}")
            if not key_path.exists():
                raise ApplePushError(f"Key not found: {key_path}")

            context.load_cert_chain(
                certfile=str(cert_path),
                keyfile=str(key_path),
                password=self.credentials.passphrase or None,
            )

            # Load default CA certificates for verifying Apple's server
            context.load_default_certs()

            return context

        except ssl.SSLError as e:
            raise ApplePushError(f"SSL configuration failed: {e}")

    def _get_client(self) -> httpx.Client:
        """Get or create the HTTP/2 client."""
        if self._client is None:
            ssl_context = self._get_ssl_context()
            self._client = httpx.Client(
                http2=True,
                verify=ssl_context,
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._client

    def send_update_notification(self, push_token: str) -> bool:
        """Send a push notification to trigger pass update.

        Args:
            push_token: The device push token from registration.

        Returns:
            True if notification was sent successfully.

        Raises:
            ApplePushError: If the notification fails to send.
        """
        url = f"https://{self._host}:{APNS_PORT}/3/device/{push_token}"

        headers = {
            "apns-topic": self.topic,
            "apns-push-type": "background",
            "apns-priority": "5",  # Low priority for background updates
        }

        try:
            client = self._get_client()
            response = client.post(url, content="{}", headers=headers)

            if response.status_code == 200:
                logger.info(
                    "push_notification_sent",
                    push_token=_short(push_token),
                    topic=self.topic,
                )
                return True

            reason = None
            try:
                reason = response.json().get("reason")
            except ValueError:
                reason = None

            logger.warning(
                "push_notification_failed",
                push_token=_short(push_token),
                topic=self.topic,
                status=response.status_code,
                reason=reason,
                body=response.text[:200],
            )

            raise ApplePushError(
                f"APNs returned status {response.status_code}",
                status_code=response.status_code,
                reason=reason,
            )

        except httpx.RequestError as e:
            logger.error(
                "push_notification_request_error",
                push_token=_short(push_token),
                topic=self.topic,
                error=str(e),
            )
            raise ApplePushError(f"Request failed: {e}")

    def send_batch_notifications(self, push_tokens: list[str]) -> dict[str, bool]:
        """Send notifications to multiple devices.

        Failures are logged per token and never raised.

        Args:
            push_tokens: List of device push tokens.

        Returns:
            Dictionary mapping push_token to success status.
        """
        results: dict[str, bool] = {}

        for token in push_tokens:
            try:
                results[token] = self.send_update_notification(token)
            except ApplePushError as e:
                logger.warning(
                    "batch_notification_failed",
                    push_token=_short(token),
                    topic=self.topic,
                    error=str(e),
                    reason=e.reason,
                )
                results[token] = False

        success_count = sum(1 for v in results.values() if v)
        logger.info(
            "batch_notifications_complete",
            topic=self.topic,
            total=len(push_tokens),
            successful=success_count,
            failed=len(push_tokens) - success_count,
        )

        return results

    def close(self) -> None:
        """Close the HTTP client and release resources."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "ApplePushNotificationClient":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: object) -> None:
        """Context manager exit."""
        self.close()
