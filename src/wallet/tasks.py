"""Celery tasks for wallet pass operations."""

import structlog
from celery import shared_task
from django.conf import settings

logger = structlog.get_logger(__name__)


@shared_task(name="wallet.send_pass_update_push", ignore_result=True)
def send_pass_update_push(push_tokens: list[str], topic: str) -> dict[str, int]:
    """Send a silent update push to every device registered for a pass.

    Delivery is attempted once per token. Failures, including missing
    credentials for the topic, are logged and discarded.

    Args:
        push_tokens: Device push tokens to notify.
        topic: The pass type identifier, used as APNs topic.

    Returns:
        Dictionary with 'sent' and 'failed' counts.
    """
    from wallet.apple.credentials import CredentialStore
    from wallet.apple.push import ApplePushNotificationClient
    from wallet.exceptions import CredentialError

    logger.info("sending_pass_update_push", topic=topic, tokens=len(push_tokens))

    try:
        credentials = CredentialStore().load(topic)
    except CredentialError as e:
        logger.error("pass_update_push_skipped", topic=topic, error=str(e))
        return {"sent": 0, "failed": len(push_tokens)}

    try:
        with ApplePushNotificationClient(credentials, use_sandbox=settings.PASSKIT_APNS_USE_SANDBOX) as client:
            results = client.send_batch_notifications(push_tokens)
    except Exception:
        logger.exception("pass_update_push_failed", topic=topic, tokens=len(push_tokens))
        return {"sent": 0, "failed": len(push_tokens)}

    sent = sum(1 for ok in results.values() if ok)
    return {"sent": sent, "failed": len(results) - sent}
