"""Models for issued passes and device registrations.

A Pass row records the last issued version of a (pass type, serial number)
pair: its content fingerprint, the time that content last changed, and the
token devices use to fetch it. Devices register for update notifications on
individual passes through Registration rows.
"""

import secrets

from django.conf import settings
from django.db import models

from common.models import TimeStampedModel


def generate_auth_token() -> str:
    """Generate a secure authentication token for pass fetches."""
    return secrets.token_urlsafe(settings.PASSKIT_AUTH_TOKEN_BYTES)


class Pass(TimeStampedModel):
    """The last issued version of a pass.

    ``updated_at`` is refreshed on save; rows are only saved when they are
    created or when the pass content (``hash``) changes, so it doubles as
    the pass's last-modified time.
    """

    pass_type_id = models.CharField(max_length=255, db_index=True)
    serial_number = models.CharField(max_length=255)
    authentication_token = models.CharField(
        max_length=128,
        help_text="Token devices present to fetch this pass. Never changes once issued.",
    )
    hash = models.CharField(
        max_length=40,
        help_text="SHA-1 content fingerprint of the stored bundle.",
    )

    class Meta:
        verbose_name = "Pass"
        verbose_name_plural = "Passes"
        constraints = [
            models.UniqueConstraint(
                fields=["pass_type_id", "serial_number"],
                name="unique_pass_type_serial_number",
            )
        ]

    def __str__(self) -> str:
        return f"{self.pass_type_id}/{self.serial_number}"


class WalletPassDevice(TimeStampedModel):
    """A device registered for wallet pass updates.

    When a pass is added to Apple Wallet, the device registers with our
    server by providing a unique device library identifier and a push token
    for sending update notifications.
    """

    device_library_id = models.CharField(
        max_length=255,
        unique=True,
        db_index=True,
        help_text="Unique identifier provided by the wallet app for this device.",
    )
    push_token = models.CharField(
        max_length=255,
        help_text="Token used to send push notifications to this device.",
    )

    class Meta:
        verbose_name = "Wallet Pass Device"
        verbose_name_plural = "Wallet Pass Devices"

    def __str__(self) -> str:
        return f"Device {self.device_library_id[:8]}..."


class Registration(TimeStampedModel):
    """Links a pass to a device that wants to receive its updates.

    A pass can be registered on multiple devices (e.g. phone and watch), and
    a device can have multiple passes registered.
    """

    pass_record = models.ForeignKey(
        Pass,
        on_delete=models.CASCADE,
        related_name="registrations",
    )
    device = models.ForeignKey(
        WalletPassDevice,
        on_delete=models.CASCADE,
        related_name="registrations",
    )

    class Meta:
        verbose_name = "Registration"
        verbose_name_plural = "Registrations"
        constraints = [
            models.UniqueConstraint(
                fields=["pass_record", "device"],
                name="unique_pass_device_registration",
            )
        ]

    def __str__(self) -> str:
        return f"Registration: {self.pass_record} on {self.device}"
