"""Django admin configuration for wallet pass models."""

from django.contrib import admin
from unfold.admin import ModelAdmin

from wallet.models import Pass, Registration, WalletPassDevice


@admin.register(Pass)
class PassAdmin(ModelAdmin):  # type: ignore[misc]
    """Admin for issued passes.

    Passes are only changed through the web service, so every field is read-only.
    """

    list_display = ["pass_type_id", "serial_number", "hash_short", "updated_at", "registration_count"]
    list_filter = ["pass_type_id", "updated_at"]
    search_fields = ["pass_type_id", "serial_number"]
    readonly_fields = ["pass_type_id", "serial_number", "authentication_token", "hash", "created_at", "updated_at"]
    ordering = ["-updated_at"]

    @admin.display(description="Hash")
    def hash_short(self, obj: Pass) -> str:
        return obj.hash[:12]

    @admin.display(description="Registrations")
    def registration_count(self, obj: Pass) -> int:
        """Count of devices registered for this pass."""
        return obj.registrations.count()

    def has_add_permission(self, request: object) -> bool:
        """Passes are issued through the API only."""
        return False


@admin.register(WalletPassDevice)
class WalletPassDeviceAdmin(ModelAdmin):  # type: ignore[misc]
    """Admin for wallet pass devices."""

    list_display = ["device_library_id_short", "created_at", "registration_count"]
    list_filter = ["created_at"]
    search_fields = ["device_library_id", "push_token"]
    readonly_fields = ["created_at", "updated_at"]
    ordering = ["-created_at"]

    @admin.display(description="Device ID")
    def device_library_id_short(self, obj: WalletPassDevice) -> str:
        """Show truncated device ID."""
        return f"{obj.device_library_id[:20]}..."

    @admin.display(description="Registrations")
    def registration_count(self, obj: WalletPassDevice) -> int:
        """Count of pass registrations for this device."""
        return obj.registrations.count()


@admin.register(Registration)
class RegistrationAdmin(ModelAdmin):  # type: ignore[misc]
    """Admin for device registrations."""

    list_display = ["pass_record", "device_short", "created_at"]
    list_filter = ["pass_record__pass_type_id", "created_at"]
    search_fields = ["pass_record__serial_number", "device__device_library_id"]
    readonly_fields = ["created_at", "updated_at"]
    raw_id_fields = ["pass_record", "device"]
    ordering = ["-created_at"]

    @admin.display(description="Device")
    def device_short(self, obj: Registration) -> str:
        """Show truncated device ID."""
        return f"{obj.device.device_library_id[:12]}..."
