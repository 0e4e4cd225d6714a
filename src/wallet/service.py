"""Pass service: issue, update and serve wallet passes.

This module orchestrates the pass lifecycle. A candidate pass is built from a
template (or from the previously issued bundle), fingerprinted, and compared
with the stored fingerprint; only a changed pass is signed, written to
storage, recorded and pushed to registered devices.

All writes for one (pass type, serial number) key run in a single critical
section: an in-process lock serializes requests handled by this process, and
a database transaction holding the row lock serializes the rest. The bundle
is written inside that section, so a failed write rolls the record back and
the stored hash always describes the stored bundle.
"""

import datetime as dt
import enum
import typing as t
from dataclasses import dataclass
from urllib.parse import quote

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from wallet.apple.builder import PassBuilder
from wallet.apple.credentials import CredentialStore
from wallet.apple.template import PassTemplate, WalletPass
from wallet.apple.validation import validate_pass
from wallet.exceptions import (
    PassNotFoundError,
    PassStorageError,
    PassUnauthorizedError,
    PassValidationError,
)
from wallet.locks import KeyedLock
from wallet.models import Pass, generate_auth_token
from wallet.notifier import CeleryNotifier
from wallet.protocols import Notifier
from wallet.repositories import PassRepository, RegistrationRepository
from wallet.storage import PassBundleStorage

logger = structlog.get_logger(__name__)


class PassWriteStatus(enum.Enum):
    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class PassWriteResult:
    """Outcome of a create or update request."""

    status: PassWriteStatus
    record: Pass

    @property
    def changed(self) -> bool:
        return self.status is not PassWriteStatus.UNCHANGED


@dataclass(frozen=True)
class PassFetchResult:
    """Outcome of a fetch request.

    ``content`` is None when the client's copy is still current.
    """

    record: Pass
    content: bytes | None

    @property
    def not_modified(self) -> bool:
        return self.content is None

    @property
    def last_modified(self) -> dt.datetime:
        return self.record.updated_at


@dataclass(frozen=True)
class PassUpdate:
    """Replacement values for the mutable fields of a pass.

    Fields left as None are cleared, not preserved.
    """

    barcode_message: str | None = None
    barcode_alt_text: str | None = None
    expiration_date: str | None = None


class PassService:
    """Issues and serves passes and keeps registered devices informed."""

    def __init__(
        self,
        passes: PassRepository,
        registrations: RegistrationRepository,
        storage: PassBundleStorage,
        credentials: CredentialStore,
        notifier: Notifier,
        builder: PassBuilder,
        web_service_url: str,
    ) -> None:
        self.passes = passes
        self.registrations = registrations
        self.storage = storage
        self.credentials = credentials
        self.notifier = notifier
        self.builder = builder
        self.web_service_url = web_service_url.rstrip("/")
        self._locks = KeyedLock()

    # -------------------------------------------------------------------------
    # Pass issuing
    # -------------------------------------------------------------------------

    def create_pass(self, template_bytes: bytes) -> PassWriteResult:
        """Issue a pass from an uploaded template.

        The pass type identifier and serial number are taken from the
        template. Re-submitting a template for an existing pass keeps its
        authentication token; identical content is reported as unchanged.

        Args:
            template_bytes: The uploaded template archive.

        Returns:
            The write outcome with the pass record.

        Raises:
            PassTemplateError: If the template cannot be read.
            PassValidationError: If the candidate pass is malformed.
            CredentialError: If the signing credentials cannot be loaded.
            PassSigningError: If the bundle cannot be signed.
            PassStorageError: If the bundle cannot be written.
        """
        template = PassTemplate.from_bytes(template_bytes)
        candidate = template.create_pass()
        candidate.web_service_url = self.web_service_url

        pass_type_id = candidate.pass_type_identifier
        serial_number = candidate.serial_number
        if not pass_type_id or not serial_number:
            # Report the missing identifiers along with every other violation
            validate_pass(candidate)

        credentials = self.credentials.load(pass_type_id)

        with self._locks.hold((pass_type_id, serial_number)):
            try:
                with transaction.atomic():
                    existing = self.passes.get_for_update(pass_type_id, serial_number)
                    candidate.authentication_token = (
                        existing.authentication_token if existing else generate_auth_token()
                    )
                    validate_pass(candidate)
                    content_hash = candidate.content_hash()

                    if existing and existing.hash == content_hash:
                        logger.info("pass_unchanged", pass_type_id=pass_type_id, serial_number=serial_number)
                        return PassWriteResult(PassWriteStatus.UNCHANGED, existing)

                    bundle = self.builder.build(candidate, credentials)
                    if existing:
                        record = self.passes.mark_changed(existing, content_hash)
                        status = PassWriteStatus.UPDATED
                    else:
                        record = self.passes.create(
                            pass_type_id, serial_number, candidate.authentication_token, content_hash
                        )
                        status = PassWriteStatus.CREATED
                    self.storage.write(pass_type_id, serial_number, bundle)

                    if status is PassWriteStatus.UPDATED:
                        transaction.on_commit(lambda: self.dispatch_push(record))
            except ValidationError as e:
                if not _is_duplicate_key(e):
                    raise PassValidationError(e.messages) from e
                self._raise_conflict(pass_type_id, serial_number, e)
            except IntegrityError as e:
                self._raise_conflict(pass_type_id, serial_number, e)

        logger.info(
            "pass_created" if status is PassWriteStatus.CREATED else "pass_updated",
            pass_type_id=pass_type_id,
            serial_number=serial_number,
            hash=content_hash,
        )
        return PassWriteResult(status, record)

    def _raise_conflict(self, pass_type_id: str, serial_number: str, error: Exception) -> t.NoReturn:
        # Another process created the same pass between our read and insert
        logger.warning("pass_create_conflict", pass_type_id=pass_type_id, serial_number=serial_number, error=str(error))
        raise PassStorageError(f"Pass {pass_type_id}/{serial_number} was written concurrently, retry") from error

    def update_pass(
        self,
        pass_type_id: str,
        serial_number: str,
        update: PassUpdate | None = None,
    ) -> PassWriteResult:
        """Replace the mutable fields of an issued pass.

        The first barcode's message and alternative text and the expiration
        date are overwritten; values missing from ``update`` are cleared.

        Raises:
            PassNotFoundError: If the pass was never issued.
            PassStorageError: If the stored bundle cannot be read or written.
            PassTemplateError: If the stored bundle cannot be parsed.
            PassValidationError: If the updated pass is malformed.
            CredentialError: If the signing credentials cannot be loaded.
            PassSigningError: If the bundle cannot be signed.
        """
        update = update or PassUpdate()

        with self._locks.hold((pass_type_id, serial_number)):
            with transaction.atomic():
                record = self.passes.get_for_update(pass_type_id, serial_number)
                if record is None:
                    raise PassNotFoundError(f"Pass {pass_type_id}/{serial_number} does not exist")

                candidate = self._load_issued_pass(record)
                credentials = self.credentials.load(pass_type_id)

                candidate.apply_update(
                    barcode_message=update.barcode_message or "",
                    barcode_alt_text=update.barcode_alt_text or "",
                    expiration_date=update.expiration_date or "",
                )
                validate_pass(candidate)
                content_hash = candidate.content_hash()

                if content_hash == record.hash:
                    logger.info("pass_unchanged", pass_type_id=pass_type_id, serial_number=serial_number)
                    return PassWriteResult(PassWriteStatus.UNCHANGED, record)

                bundle = self.builder.build(candidate, credentials)
                record = self.passes.mark_changed(record, content_hash)
                self.storage.write(pass_type_id, serial_number, bundle)

                transaction.on_commit(lambda: self.dispatch_push(record))

        logger.info("pass_updated", pass_type_id=pass_type_id, serial_number=serial_number, hash=content_hash)
        return PassWriteResult(PassWriteStatus.UPDATED, record)

    def _load_issued_pass(self, record: Pass) -> WalletPass:
        """Re-open the stored bundle of a pass as a mutable candidate."""
        bundle = self.storage.read(record.pass_type_id, record.serial_number)
        candidate = PassTemplate.from_bytes(bundle).create_pass()
        candidate.authentication_token = record.authentication_token
        candidate.web_service_url = self.web_service_url
        return candidate

    # -------------------------------------------------------------------------
    # Pass delivery
    # -------------------------------------------------------------------------

    def get_pass(
        self,
        pass_type_id: str,
        serial_number: str,
        authentication_token: str | None,
        if_modified_since: dt.datetime | None = None,
    ) -> PassFetchResult:
        """Return the stored bundle of a pass to an authorized client.

        Args:
            pass_type_id: The pass type identifier.
            serial_number: The pass serial number.
            authentication_token: The token presented by the client.
            if_modified_since: Only return the bundle if the pass changed
                after this moment.

        Returns:
            The fetch outcome; ``content`` is None when not modified.

        Raises:
            PassUnauthorizedError: If no pass matches all three values.
            PassStorageError: If the stored bundle cannot be read.
        """
        record = self.passes.get_authorized(pass_type_id, serial_number, authentication_token or "")
        if record is None:
            logger.warning("pass_fetch_unauthorized", pass_type_id=pass_type_id, serial_number=serial_number)
            raise PassUnauthorizedError("Unknown pass or invalid authentication token")

        if if_modified_since is not None and record.updated_at <= if_modified_since:
            logger.debug("pass_not_modified", pass_type_id=pass_type_id, serial_number=serial_number)
            return PassFetchResult(record, None)

        content = self.storage.read(pass_type_id, serial_number)
        logger.info("pass_fetched", pass_type_id=pass_type_id, serial_number=serial_number, size=len(content))
        return PassFetchResult(record, content)

    def pass_url(self, record: Pass) -> str:
        """Return the fetch URL of a pass, carrying its authentication token."""
        return (
            f"{self.web_service_url}/v1/passes/{quote(record.pass_type_id, safe='')}/"
            f"{quote(record.serial_number, safe='')}?authenticationToken={record.authentication_token}"
        )

    # -------------------------------------------------------------------------
    # Push dispatch
    # -------------------------------------------------------------------------

    def dispatch_push(self, record: Pass) -> int:
        """Ask the notifier to push an update to every device registered for a pass.

        Returns:
            The number of push tokens handed to the notifier.
        """
        push_tokens = self.registrations.push_tokens_for(record)
        if not push_tokens:
            logger.debug("push_dispatch_skipped", pass_type_id=record.pass_type_id, serial_number=record.serial_number)
            return 0

        try:
            self.notifier.notify(push_tokens, record.pass_type_id)
        except Exception:
            logger.exception(
                "push_dispatch_failed", pass_type_id=record.pass_type_id, serial_number=record.serial_number
            )
            return 0
        return len(push_tokens)

    # -------------------------------------------------------------------------
    # Device registration
    # -------------------------------------------------------------------------

    def _authorize(self, pass_type_id: str, serial_number: str, authentication_token: str | None) -> Pass:
        record = self.passes.get_authorized(pass_type_id, serial_number, authentication_token or "")
        if record is None:
            raise PassUnauthorizedError("Unknown pass or invalid authentication token")
        return record

    def register_device(
        self,
        device_library_id: str,
        pass_type_id: str,
        serial_number: str,
        authentication_token: str | None,
        push_token: str,
    ) -> bool:
        """Register a device to receive update pushes for a pass.

        Returns:
            True if the registration was created, False if it already existed.

        Raises:
            PassUnauthorizedError: If the pass or token does not match.
        """
        record = self._authorize(pass_type_id, serial_number, authentication_token)
        with transaction.atomic():
            created = self.registrations.register(record, device_library_id, push_token)

        if created:
            logger.info(
                "device_registered",
                pass_type_id=pass_type_id,
                serial_number=serial_number,
                device_id=device_library_id[:20],
            )
        return created

    def unregister_device(
        self,
        device_library_id: str,
        pass_type_id: str,
        serial_number: str,
        authentication_token: str | None,
    ) -> bool:
        """Stop sending update pushes for a pass to a device.

        Raises:
            PassUnauthorizedError: If the pass or token does not match.
        """
        record = self._authorize(pass_type_id, serial_number, authentication_token)
        with transaction.atomic():
            removed = self.registrations.unregister(record, device_library_id)

        if removed:
            logger.info(
                "device_unregistered",
                pass_type_id=pass_type_id,
                serial_number=serial_number,
                device_id=device_library_id[:20],
            )
        return removed

    def get_updated_serial_numbers(
        self,
        device_library_id: str,
        pass_type_id: str,
        passes_updated_since: str | None = None,
    ) -> tuple[list[str], str | None]:
        """List the device's passes of a type that changed since a previous query.

        Args:
            device_library_id: The device asking.
            pass_type_id: The pass type identifier.
            passes_updated_since: The ``lastUpdated`` tag returned by a
                previous call, if any.

        Returns:
            The serial numbers and the new ``lastUpdated`` tag, which is None
            when there are no matching passes.
        """
        since = _parse_update_tag(passes_updated_since)
        serial_numbers, last_updated = self.passes.updated_for_device(device_library_id, pass_type_id, since)
        if not serial_numbers or last_updated is None:
            return [], None
        return serial_numbers, _format_update_tag(last_updated)


DUPLICATE_KEY_CODES = frozenset({"unique", "unique_together"})


def _is_duplicate_key(error: ValidationError) -> bool:
    """Whether a model validation error only reports a uniqueness violation."""
    if hasattr(error, "error_dict"):
        items = [item for errors in error.error_dict.values() for item in errors]
    else:
        items = error.error_list
    return bool(items) and all(item.code in DUPLICATE_KEY_CODES for item in items)


# Update tags count microseconds since the epoch so no change within a second is lost
_EPOCH = dt.datetime(1970, 1, 1, tzinfo=dt.timezone.utc)
_MICROSECOND = dt.timedelta(microseconds=1)


def _format_update_tag(moment: dt.datetime) -> str:
    return str((moment - _EPOCH) // _MICROSECOND)


def _parse_update_tag(value: str | None) -> dt.datetime | None:
    """Turn a ``passesUpdatedSince`` tag into a datetime; unknown tags mean "everything"."""
    if not value:
        return None
    try:
        return _EPOCH + int(value) * _MICROSECOND
    except (ValueError, OverflowError):
        logger.debug("invalid_passes_updated_since", value=value)
        return None


# Module-level singleton instance
_pass_service: PassService | None = None


def build_pass_service(**overrides: t.Any) -> PassService:
    """Wire a PassService from Django settings.

    Args:
        **overrides: Collaborators to use instead of the configured ones.
    """
    components: dict[str, t.Any] = {
        "passes": PassRepository(),
        "registrations": RegistrationRepository(),
        "storage": PassBundleStorage(),
        "credentials": CredentialStore(),
        "notifier": CeleryNotifier(),
        "builder": PassBuilder(),
        "web_service_url": settings.PASSKIT_WEB_SERVICE_URL,
    }
    components.update(overrides)
    return PassService(**components)


def get_pass_service() -> PassService:
    """Get the pass service singleton."""
    global _pass_service
    if _pass_service is None:
        _pass_service = build_pass_service()
    return _pass_service


def reset_pass_service() -> None:
    """Drop the singleton so the next call rebuilds it from settings."""
    global _pass_service
    _pass_service = None
