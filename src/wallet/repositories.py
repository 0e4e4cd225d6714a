"""Persistence access for passes and registrations.

The pass service talks to these repositories instead of the ORM directly so
the stores can be constructed once and replaced in tests.
"""

import datetime as dt

from django.db.models import Max

from wallet.models import Pass, Registration, WalletPassDevice


class PassRepository:
    """Reads and writes Pass records."""

    def get(self, pass_type_id: str, serial_number: str) -> Pass | None:
        return Pass.objects.filter(pass_type_id=pass_type_id, serial_number=serial_number).first()

    def get_for_update(self, pass_type_id: str, serial_number: str) -> Pass | None:
        """Fetch a pass and lock its row until the surrounding transaction ends."""
        return (
            Pass.objects.select_for_update()
            .filter(pass_type_id=pass_type_id, serial_number=serial_number)
            .first()
        )

    def get_authorized(self, pass_type_id: str, serial_number: str, authentication_token: str) -> Pass | None:
        """Fetch a pass only if all three values match exactly."""
        if not authentication_token:
            return None
        return Pass.objects.filter(
            pass_type_id=pass_type_id,
            serial_number=serial_number,
            authentication_token=authentication_token,
        ).first()

    def create(self, pass_type_id: str, serial_number: str, authentication_token: str, content_hash: str) -> Pass:
        record = Pass(
            pass_type_id=pass_type_id,
            serial_number=serial_number,
            authentication_token=authentication_token,
            hash=content_hash,
        )
        record.save()
        return record

    def mark_changed(self, record: Pass, content_hash: str) -> Pass:
        """Store a new content hash; ``updated_at`` moves forward with it."""
        record.hash = content_hash
        record.save(update_fields=["hash", "updated_at"])
        return record

    def updated_for_device(
        self,
        device_library_id: str,
        pass_type_id: str,
        since: dt.datetime | None = None,
    ) -> tuple[list[str], dt.datetime | None]:
        """List serial numbers of a device's passes changed after ``since``.

        Returns:
            The serial numbers and the most recent ``updated_at`` among them.
        """
        passes = Pass.objects.filter(
            pass_type_id=pass_type_id,
            registrations__device__device_library_id=device_library_id,
        )
        if since is not None:
            passes = passes.filter(updated_at__gt=since)
        passes = passes.distinct()
        serial_numbers = list(passes.order_by("serial_number").values_list("serial_number", flat=True))
        last_updated = passes.aggregate(last=Max("updated_at"))["last"]
        return serial_numbers, last_updated


class RegistrationRepository:
    """Reads and writes device registrations."""

    def push_tokens_for(self, record: Pass) -> list[str]:
        """Return the distinct push tokens of every device registered for a pass."""
        tokens = (
            Registration.objects.filter(pass_record=record)
            .values_list("device__push_token", flat=True)
            .distinct()
        )
        return [token for token in tokens if token]

    def register(self, record: Pass, device_library_id: str, push_token: str) -> bool:
        """Register a device for a pass, refreshing its push token.

        Returns:
            True if the registration was created, False if it already existed.
        """
        device, _ = WalletPassDevice.objects.update_or_create(
            device_library_id=device_library_id,
            defaults={"push_token": push_token},
        )
        _, created = Registration.objects.get_or_create(pass_record=record, device=device)
        return created

    def unregister(self, record: Pass, device_library_id: str) -> bool:
        """Remove a device's registration for a pass.

        Devices left without registrations are deleted as well.

        Returns:
            True if a registration was removed.
        """
        deleted_count, _ = Registration.objects.filter(
            pass_record=record,
            device__device_library_id=device_library_id,
        ).delete()
        WalletPassDevice.objects.filter(device_library_id=device_library_id, registrations__isnull=True).delete()
        return deleted_count > 0
