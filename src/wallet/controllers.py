"""Django Ninja controllers for wallet pass API endpoints.

This module provides two sets of endpoints:

1. Pass endpoints (at /v1/passes/...)
   - Issue a pass from an uploaded template
   - Replace the mutable fields of an issued pass
   - Serve the latest signed bundle to devices

2. Apple Wallet Web Service registration endpoints (at /v1/devices/..., /v1/log)
   - Device registration/unregistration
   - Serial numbers of changed passes
   - Error logging
   These are called by Apple Wallet on the device.
"""

import datetime as dt

import structlog
from django.conf import settings
from django.http import HttpRequest, HttpResponse
from django.utils.http import http_date, parse_http_date_safe
from ninja import File, Router
from ninja.files import UploadedFile
from ninja_extra import api_controller, route
from ninja_extra.controllers.base import ControllerBase
from ninja_extra.throttling import throttle

from common.schema import ErrorResponse, ValidationErrorResponse
from common.throttling import DeviceLogThrottle
from wallet.schemas import (
    DeviceRegistrationPayload,
    LogPayload,
    PassCreatedResponse,
    PassUpdatedResponse,
    PassUpdatePayload,
    SerialNumbersResponse,
)
from wallet.service import PassService, PassUpdate, PassWriteStatus, get_pass_service

logger = structlog.get_logger(__name__)

AUTH_SCHEME = "ApplePass"
AUTH_QUERY_PARAM = "authenticationToken"

PASS_ERRORS = {400: ValidationErrorResponse | ErrorResponse, 401: ErrorResponse, 403: ErrorResponse}


def _get_auth_token(request: HttpRequest) -> str | None:
    """Extract the pass authentication token from a request.

    Apple sends ``Authorization: ApplePass <authenticationToken>``; links
    handed out at issue time carry the token as a query parameter instead.

    Args:
        request: The HTTP request.

    Returns:
        The auth token or None if not present.
    """
    parts = request.headers.get("Authorization", "").split(" ")
    if len(parts) == 2 and parts[0] == AUTH_SCHEME:
        return parts[1]
    return request.GET.get(AUTH_QUERY_PARAM) or None


def _get_if_modified_since(request: HttpRequest) -> dt.datetime | None:
    """Parse the If-Modified-Since header; malformed values are ignored."""
    timestamp = parse_http_date_safe(request.headers.get("If-Modified-Since", ""))
    if timestamp is None:
        return None
    return dt.datetime.fromtimestamp(timestamp, tz=dt.timezone.utc)


@api_controller("/v1/passes", tags=["Passes"])
class PassController(ControllerBase):
    """Issues, updates and serves passes."""

    def __init__(self) -> None:
        """Initialize controller."""
        super().__init__()
        self._service: PassService | None = None

    @property
    def service(self) -> PassService:
        """Get pass service instance."""
        if self._service is None:
            self._service = get_pass_service()
        return self._service

    @route.post(
        "",
        url_name="pass_create",
        summary="Issue a pass",
        description="Build, sign and store a pass from an uploaded template archive.",
        response={201: PassCreatedResponse, 304: None, **PASS_ERRORS},
    )
    def create_pass(self, template: File[UploadedFile]) -> HttpResponse | tuple[int, PassCreatedResponse]:
        """Issue a pass from a template.

        Returns:
            201: The pass was issued or its content changed
            304: A pass with identical content already exists
            400: The template, pass or credentials are invalid
        """
        result = self.service.create_pass(template.read())
        if result.status is PassWriteStatus.UNCHANGED:
            return HttpResponse(status=304)

        record = result.record
        return 201, PassCreatedResponse(
            passTypeIdentifier=record.pass_type_id,
            serialNumber=record.serial_number,
            authenticationToken=record.authentication_token,
            passURL=self.service.pass_url(record),
        )

    @route.put(
        "/{pass_type_id}/{serial_number}",
        url_name="pass_update",
        summary="Update a pass",
        description="Replace the barcode message, barcode alternative text and expiration date of a pass. "
        "Omitted fields are cleared.",
        response={200: PassUpdatedResponse, 304: None, 404: ErrorResponse, **PASS_ERRORS},
    )
    def update_pass(
        self, pass_type_id: str, serial_number: str, payload: PassUpdatePayload
    ) -> HttpResponse | tuple[int, PassUpdatedResponse]:
        """Update an issued pass.

        Returns:
            200: The pass changed and devices were notified
            304: The update did not change the pass
            404: The pass does not exist
            400: The updated pass or credentials are invalid
        """
        result = self.service.update_pass(
            pass_type_id,
            serial_number,
            PassUpdate(
                barcode_message=payload.barcodeMessage,
                barcode_alt_text=payload.barcodeAltText,
                expiration_date=payload.expirationDate,
            ),
        )
        if result.status is PassWriteStatus.UNCHANGED:
            return HttpResponse(status=304)

        return 200, PassUpdatedResponse(passTypeIdentifier=pass_type_id, serialNumber=serial_number)

    @route.get(
        "/{pass_type_id}/{serial_number}",
        url_name="pass_fetch",
        summary="Get the latest version of a pass",
        description="Called by devices to download an updated pass.",
        response={304: None, 401: ErrorResponse, 403: ErrorResponse},
    )
    def get_latest_pass(self, pass_type_id: str, serial_number: str) -> HttpResponse:
        """Serve the stored bundle of a pass.

        Returns:
            200: The .pkpass file
            304: Pass not modified since If-Modified-Since
            401: Unknown pass or invalid authentication token
            403: The stored bundle cannot be read
        """
        request = self.context.request  # type: ignore[union-attr]
        result = self.service.get_pass(
            pass_type_id,
            serial_number,
            _get_auth_token(request),
            if_modified_since=_get_if_modified_since(request),
        )
        last_modified = http_date(result.last_modified.timestamp())

        if result.not_modified:
            response = HttpResponse(status=304)
            response["Last-Modified"] = last_modified
            return response

        response = HttpResponse(result.content, content_type=settings.PASSKIT_CONTENT_TYPE, status=200)
        response["Last-Modified"] = last_modified
        return response


# Router for Apple Wallet web service callbacks (no auth - uses pass auth token)
apple_router = Router(tags=["Apple Wallet Web Service"])


@apple_router.post(
    "/v1/devices/{device_library_id}/registrations/{pass_type_id}/{serial_number}",
    response={200: None, 201: None, 401: ErrorResponse},
    url_name="wallet_register_device",
)
def register_device(
    request: HttpRequest,
    device_library_id: str,
    pass_type_id: str,
    serial_number: str,
    payload: DeviceRegistrationPayload,
) -> HttpResponse:
    """Register a device to receive push notifications for a pass.

    Called by Apple Wallet when a pass is added to the wallet.

    Returns:
        200: Registration already exists
        201: Registration created successfully
        401: Invalid authorization
    """
    created = get_pass_service().register_device(
        device_library_id=device_library_id,
        pass_type_id=pass_type_id,
        serial_number=serial_number,
        authentication_token=_get_auth_token(request),
        push_token=payload.pushToken,
    )
    return HttpResponse(status=201 if created else 200)


@apple_router.delete(
    "/v1/devices/{device_library_id}/registrations/{pass_type_id}/{serial_number}",
    response={200: None, 401: ErrorResponse},
    url_name="wallet_unregister_device",
)
def unregister_device(
    request: HttpRequest,
    device_library_id: str,
    pass_type_id: str,
    serial_number: str,
) -> HttpResponse:
    """Unregister a device from receiving updates for a pass.

    Called by Apple Wallet when a pass is removed from the wallet.

    Returns:
        200: Unregistration successful (or already unregistered)
        401: Invalid authorization
    """
    get_pass_service().unregister_device(
        device_library_id=device_library_id,
        pass_type_id=pass_type_id,
        serial_number=serial_number,
        authentication_token=_get_auth_token(request),
    )
    return HttpResponse(status=200)


@apple_router.get(
    "/v1/devices/{device_library_id}/registrations/{pass_type_id}",
    response={200: SerialNumbersResponse, 204: None},
    url_name="wallet_get_serial_numbers",
)
def get_serial_numbers(
    request: HttpRequest,
    device_library_id: str,
    pass_type_id: str,
    passesUpdatedSince: str | None = None,
) -> HttpResponse | SerialNumbersResponse:
    """Get serial numbers of passes that need updating.

    Called by device after receiving a push notification.

    Args:
        request: The HTTP request.
        device_library_id: Unique identifier for the device.
        pass_type_id: Pass type identifier.
        passesUpdatedSince: Tag returned by a previous call (query param).

    Returns:
        200: JSON with serialNumbers array and lastUpdated tag
        204: No passes need updating
    """
    serial_numbers, last_updated = get_pass_service().get_updated_serial_numbers(
        device_library_id=device_library_id,
        pass_type_id=pass_type_id,
        passes_updated_since=passesUpdatedSince,
    )

    if not serial_numbers or last_updated is None:
        return HttpResponse(status=204)

    return SerialNumbersResponse(serialNumbers=serial_numbers, lastUpdated=last_updated)


@apple_router.post(
    "/v1/log",
    response={200: None},
    url_name="wallet_log",
)
@throttle(DeviceLogThrottle)
def log_errors(request: HttpRequest, payload: LogPayload) -> HttpResponse:
    """Receive error logs from devices.

    Apple Wallet sends logs here when it encounters errors with passes.

    Returns:
        200: Always (logs are best-effort)
    """
    for log_message in payload.logs:
        logger.info("apple_wallet_device_log", message=log_message)

    return HttpResponse(status=200)
