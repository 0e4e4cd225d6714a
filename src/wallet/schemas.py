"""Pydantic schemas for wallet pass API endpoints.

Field names follow the wallet web service protocol (camelCase).
"""

from ninja import Schema
from pydantic import Field


class PassCreatedResponse(Schema):
    """Descriptor of an issued pass."""

    passTypeIdentifier: str
    serialNumber: str
    authenticationToken: str
    passURL: str = Field(..., description="Fetch URL carrying the authentication token")


class PassUpdatePayload(Schema):
    """Replacement values for a pass's mutable fields.

    Omitted fields are cleared on the pass.
    """

    barcodeMessage: str | None = None
    barcodeAltText: str | None = None
    expirationDate: str | None = Field(None, description="ISO 8601 date-time; omit to remove the expiration")


class PassUpdatedResponse(Schema):
    passTypeIdentifier: str
    serialNumber: str


class DeviceRegistrationPayload(Schema):
    """Payload sent by device when registering for pass updates."""

    pushToken: str = Field(..., description="Push token for sending notifications")


class SerialNumbersResponse(Schema):
    """Response containing list of updated pass serial numbers."""

    serialNumbers: list[str] = Field(default_factory=list)
    lastUpdated: str = Field(..., description="Opaque tag to send back as passesUpdatedSince")


class LogPayload(Schema):
    """Payload for device error logging."""

    logs: list[str] = Field(default_factory=list)
