"""Protocol definitions for the pass service's collaborators.

The pass service only depends on these shapes, so test doubles can stand in
for the real implementations.
"""

from typing import Protocol


class Notifier(Protocol):
    """Delivers silent update pushes to devices."""

    def notify(self, push_tokens: list[str], topic: str) -> None:
        """Request delivery of an update push.

        Implementations must not raise for delivery failures; the caller has
        already persisted the change and does not wait for the outcome.

        Args:
            push_tokens: Device push tokens to notify.
            topic: The APNs topic, i.e. the pass type identifier.
        """
        ...
