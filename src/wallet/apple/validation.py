"""Structural validation of candidate passes.

Checks the rules Apple Wallet enforces when it imports a pass, so a broken
pass is rejected at issue time rather than silently ignored by the device.

See: https://developer.apple.com/documentation/walletpasses/pass
"""

import io
import typing as t

from django.utils.dateparse import parse_datetime
from PIL import Image, UnidentifiedImageError

from wallet.apple.template import WalletPass
from wallet.exceptions import PassValidationError

REQUIRED_STRING_FIELDS = (
    "passTypeIdentifier",
    "serialNumber",
    "teamIdentifier",
    "organizationName",
    "description",
)

PASS_STYLES = ("boardingPass", "coupon", "eventTicket", "generic", "storeCard")

FIELD_GROUPS = ("headerFields", "primaryFields", "secondaryFields", "auxiliaryFields", "backFields")

BARCODE_FORMATS = frozenset(
    {
        "PKBarcodeFormatQR",
        "PKBarcodeFormatPDF417",
        "PKBarcodeFormatAztec",
        "PKBarcodeFormatCode128",
    }
)

TRANSIT_TYPES = frozenset(
    {
        "PKTransitTypeAir",
        "PKTransitTypeBoat",
        "PKTransitTypeBus",
        "PKTransitTypeGeneric",
        "PKTransitTypeTrain",
    }
)

DATE_FIELDS = ("expirationDate", "relevantDate")

ICON_NAMES = ("icon.png", "icon@2x.png", "icon@3x.png")

MIN_AUTH_TOKEN_LENGTH = 16

# Identifiers are stored in 255-character columns
IDENTIFIER_FIELDS = ("passTypeIdentifier", "serialNumber")
MAX_IDENTIFIER_LENGTH = 255


def _validate_barcode(barcode: t.Any, label: str) -> list[str]:
    if not isinstance(barcode, dict):
        return [f"{label} must be an object"]
    errors = []
    if barcode.get("format") not in BARCODE_FORMATS:
        errors.append(f"{label}.format must be one of {', '.join(sorted(BARCODE_FORMATS))}")
    if not isinstance(barcode.get("message"), str):
        errors.append(f"{label}.message must be a string")
    if "messageEncoding" in barcode and not isinstance(barcode["messageEncoding"], str):
        errors.append(f"{label}.messageEncoding must be a string")
    if "altText" in barcode and not isinstance(barcode["altText"], str):
        errors.append(f"{label}.altText must be a string")
    return errors


def _validate_style(pass_json: dict[str, t.Any]) -> list[str]:
    styles = [style for style in PASS_STYLES if style in pass_json]
    if len(styles) != 1:
        return [f"Pass must define exactly one style out of {', '.join(PASS_STYLES)} (found {len(styles)})"]

    style = styles[0]
    structure = pass_json[style]
    if not isinstance(structure, dict):
        return [f"{style} must be an object"]

    errors = []
    if style == "boardingPass" and structure.get("transitType") not in TRANSIT_TYPES:
        errors.append("boardingPass.transitType must be one of " + ", ".join(sorted(TRANSIT_TYPES)))

    seen_keys: set[str] = set()
    for group in FIELD_GROUPS:
        fields = structure.get(group, [])
        if not isinstance(fields, list):
            errors.append(f"{style}.{group} must be a list")
            continue
        for index, pass_field in enumerate(fields):
            label = f"{style}.{group}[{index}]"
            if not isinstance(pass_field, dict):
                errors.append(f"{label} must be an object")
                continue
            key = pass_field.get("key")
            if not isinstance(key, str) or not key:
                errors.append(f"{label}.key must be a non-empty string")
            elif key in seen_keys:
                errors.append(f"{label}.key '{key}' is not unique")
            else:
                seen_keys.add(key)
            if "value" not in pass_field:
                errors.append(f"{label}.value is required")
    return errors


def _validate_images(images: dict[str, bytes]) -> list[str]:
    errors = []
    if not any(name in images for name in ICON_NAMES):
        errors.append("Pass must include an icon.png image")
    for name, content in images.items():
        try:
            with Image.open(io.BytesIO(content)) as img:
                img.verify()
        except (UnidentifiedImageError, OSError, SyntaxError, ValueError):
            errors.append(f"Image {name} is not a valid PNG")
    return errors


def collect_errors(wallet_pass: WalletPass) -> list[str]:
    """Return every structural violation of the pass (empty when valid)."""
    pass_json = wallet_pass.pass_json
    errors: list[str] = []

    if pass_json.get("formatVersion") != 1:
        errors.append("formatVersion must be 1")

    for name in REQUIRED_STRING_FIELDS:
        value = pass_json.get(name)
        if not isinstance(value, str) or not value.strip():
            errors.append(f"{name} is required")

    for name in IDENTIFIER_FIELDS:
        value = pass_json.get(name)
        if isinstance(value, str) and len(value) > MAX_IDENTIFIER_LENGTH:
            errors.append(f"{name} must be at most {MAX_IDENTIFIER_LENGTH} characters")

    errors.extend(_validate_style(pass_json))

    if "barcodes" in pass_json:
        barcodes = pass_json["barcodes"]
        if not isinstance(barcodes, list):
            errors.append("barcodes must be a list")
        else:
            for index, barcode in enumerate(barcodes):
                errors.extend(_validate_barcode(barcode, f"barcodes[{index}]"))
    if "barcode" in pass_json:
        errors.extend(_validate_barcode(pass_json["barcode"], "barcode"))

    for name in DATE_FIELDS:
        if name not in pass_json:
            continue
        value = pass_json[name]
        try:
            parsed = parse_datetime(value) if isinstance(value, str) else None
        except ValueError:
            parsed = None
        if parsed is None:
            errors.append(f"{name} must be an ISO 8601 date-time")

    if pass_json.get("webServiceURL"):
        token = pass_json.get("authenticationToken")
        if not isinstance(token, str) or len(token) < MIN_AUTH_TOKEN_LENGTH:
            errors.append(f"authenticationToken must be at least {MIN_AUTH_TOKEN_LENGTH} characters")

    errors.extend(_validate_images(wallet_pass.images))

    return errors


def validate_pass(wallet_pass: WalletPass) -> None:
    """Validate a candidate pass.

    Raises:
        PassValidationError: With every violation found.
    """
    errors = collect_errors(wallet_pass)
    if errors:
        raise PassValidationError(errors)
