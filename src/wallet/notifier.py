"""Push dispatch for pass updates."""

import structlog

logger = structlog.get_logger(__name__)


class CeleryNotifier:
    """Queues update pushes on the Celery worker.

    Enqueueing returns immediately; delivery and its failures are handled by
    the ``wallet.send_pass_update_push`` task.
    """

    def notify(self, push_tokens: list[str], topic: str) -> None:
        """Enqueue an update push for the given devices."""
        from wallet.tasks import send_pass_update_push

        if not push_tokens:
            return

        try:
            send_pass_update_push.delay(list(push_tokens), topic)
        except Exception as e:
            # Broker outages must not fail the request that changed the pass
            logger.error("push_dispatch_enqueue_failed", topic=topic, tokens=len(push_tokens), error=str(e))
            return

        logger.info("push_dispatch_enqueued", topic=topic, tokens=len(push_tokens))
