"""Tests for wallet/service.py."""

import datetime as dt
import io
import json
import zipfile
from collections.abc import Callable
from typing import Any
from unittest.mock import patch

import pytest
from django.core.exceptions import ValidationError as DjangoValidationError
from freezegun import freeze_time

from wallet.exceptions import (
    CredentialNotFoundError,
    PassNotFoundError,
    PassStorageError,
    PassTemplateError,
    PassUnauthorizedError,
    PassValidationError,
)
from wallet.models import Pass
from wallet.service import PassService, PassUpdate, PassWriteStatus
from wallet.tests.factories import PASS_TYPE_ID, SERIAL_NUMBER, RecordingNotifier, make_pass_json, make_template

pytestmark = pytest.mark.django_db

DEVICE_ID = "device-library-0001"


def _stored_pass_json(service: PassService, serial_number: str = SERIAL_NUMBER) -> dict[str, Any]:
    bundle = service.storage.read(PASS_TYPE_ID, serial_number)
    with zipfile.ZipFile(io.BytesIO(bundle)) as zf:
        return json.loads(zf.read("pass.json"))


def _register(service: PassService, record: Pass, device_id: str = DEVICE_ID, push_token: str = "push-1") -> None:
    service.register_device(device_id, record.pass_type_id, record.serial_number, record.authentication_token, push_token)


class TestCreatePass:
    def test_issues_new_pass(self, pass_service: PassService, template_bytes: bytes) -> None:
        result = pass_service.create_pass(template_bytes)

        record = result.record
        assert result.status is PassWriteStatus.CREATED
        assert (record.pass_type_id, record.serial_number) == (PASS_TYPE_ID, SERIAL_NUMBER)
        assert len(record.authentication_token) >= 20
        assert len(record.hash) == 40
        assert Pass.objects.count() == 1

        stored = _stored_pass_json(pass_service)
        assert stored["authenticationToken"] == record.authentication_token
        assert stored["webServiceURL"] == "https://passes.example.com/passkit"

    def test_pass_url_embeds_token(self, pass_service: PassService, template_bytes: bytes) -> None:
        record = pass_service.create_pass(template_bytes).record

        url = pass_service.pass_url(record)

        assert url == (
            f"https://passes.example.com/passkit/v1/passes/{PASS_TYPE_ID}/{SERIAL_NUMBER}"
            f"?authenticationToken={record.authentication_token}"
        )

    def test_identical_template_is_unchanged(
        self, pass_service: PassService, template_bytes: bytes, notifier: RecordingNotifier
    ) -> None:
        first = pass_service.create_pass(template_bytes).record

        with patch.object(pass_service.storage, "write") as mock_write:
            result = pass_service.create_pass(template_bytes)

        assert result.status is PassWriteStatus.UNCHANGED
        assert result.record.pk == first.pk
        mock_write.assert_not_called()
        assert notifier.calls == []

    def test_changed_template_reuses_token_and_pushes(
        self,
        pass_service: PassService,
        notifier: RecordingNotifier,
        django_capture_on_commit_callbacks: Callable[..., Any],
    ) -> None:
        first = pass_service.create_pass(make_template()).record
        _register(pass_service, first)

        with django_capture_on_commit_callbacks(execute=True):
            result = pass_service.create_pass(make_template(make_pass_json(description="Changed")))

        assert result.status is PassWriteStatus.UPDATED
        assert result.record.authentication_token == first.authentication_token
        assert result.record.hash != first.hash
        assert _stored_pass_json(pass_service)["description"] == "Changed"
        assert notifier.calls == [(["push-1"], PASS_TYPE_ID)]

    def test_first_issue_does_not_push(
        self,
        pass_service: PassService,
        template_bytes: bytes,
        notifier: RecordingNotifier,
        django_capture_on_commit_callbacks: Callable[..., Any],
    ) -> None:
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            pass_service.create_pass(template_bytes)

        assert callbacks == []
        assert notifier.calls == []

    def test_invalid_pass_is_rejected(self, pass_service: PassService) -> None:
        with pytest.raises(PassValidationError) as exc_info:
            pass_service.create_pass(make_template(make_pass_json(formatVersion=3)))

        assert "formatVersion must be 1" in exc_info.value.errors
        assert not Pass.objects.exists()
        assert not pass_service.storage.exists(PASS_TYPE_ID, SERIAL_NUMBER)

    def test_missing_identifiers_are_validation_errors(self, pass_service: PassService) -> None:
        with pytest.raises(PassValidationError) as exc_info:
            pass_service.create_pass(make_template(make_pass_json(serialNumber="")))

        assert "serialNumber is required" in exc_info.value.errors

    def test_unreadable_template(self, pass_service: PassService) -> None:
        with pytest.raises(PassTemplateError):
            pass_service.create_pass(b"not a zip")

    def test_missing_credentials(self, pass_service: PassService) -> None:
        template = make_template(make_pass_json(passTypeIdentifier="pass.com.example.other"))

        with pytest.raises(CredentialNotFoundError):
            pass_service.create_pass(template)

        assert not Pass.objects.exists()

    def test_storage_failure_rolls_back_record(self, pass_service: PassService, template_bytes: bytes) -> None:
        with patch.object(pass_service.storage, "write", side_effect=PassStorageError("disk full")):
            with pytest.raises(PassStorageError):
                pass_service.create_pass(template_bytes)

        assert not Pass.objects.exists()

    def test_storage_failure_keeps_previous_version(self, pass_service: PassService) -> None:
        first = pass_service.create_pass(make_template()).record

        with patch.object(pass_service.storage, "write", side_effect=PassStorageError("disk full")):
            with pytest.raises(PassStorageError):
                pass_service.create_pass(make_template(make_pass_json(description="Changed")))

        first.refresh_from_db()
        assert Pass.objects.get().hash == first.hash
        assert _stored_pass_json(pass_service)["description"] == "Demo pass"

    def test_overlong_serial_number_is_a_validation_error(self, pass_service: PassService) -> None:
        with pytest.raises(PassValidationError) as exc_info:
            pass_service.create_pass(make_template(make_pass_json(serialNumber="9" * 300)))

        assert "serialNumber must be at most 255 characters" in exc_info.value.errors
        assert not Pass.objects.exists()

    def test_concurrent_insert_is_a_storage_conflict(self, pass_service: PassService) -> None:
        pass_service.create_pass(make_template())

        # The row lock read misses a record another process just inserted
        with patch.object(pass_service.passes, "get_for_update", return_value=None):
            with pytest.raises(PassStorageError, match="written concurrently"):
                pass_service.create_pass(make_template(make_pass_json(description="Changed")))

        assert Pass.objects.count() == 1

    def test_other_model_errors_are_validation_errors(self, pass_service: PassService, template_bytes: bytes) -> None:
        error = DjangoValidationError({"hash": ["Ensure this value has at most 40 characters."]})

        with patch.object(pass_service.passes, "create", side_effect=error):
            with pytest.raises(PassValidationError) as exc_info:
                pass_service.create_pass(template_bytes)

        assert exc_info.value.errors == ["Ensure this value has at most 40 characters."]


class TestUpdatePass:
    def test_unknown_pass(self, pass_service: PassService) -> None:
        with pytest.raises(PassNotFoundError):
            pass_service.update_pass(PASS_TYPE_ID, "404", PassUpdate(barcode_message="x"))

    def test_change_pushes_once_to_all_devices(
        self,
        pass_service: PassService,
        template_bytes: bytes,
        notifier: RecordingNotifier,
        django_capture_on_commit_callbacks: Callable[..., Any],
    ) -> None:
        record = pass_service.create_pass(template_bytes).record
        _register(pass_service, record, "device-a", "push-a")
        _register(pass_service, record, "device-b", "push-b")

        with django_capture_on_commit_callbacks(execute=True):
            result = pass_service.update_pass(
                PASS_TYPE_ID, SERIAL_NUMBER, PassUpdate(expiration_date="2025-01-01T00:00:00Z")
            )

        assert result.status is PassWriteStatus.UPDATED
        assert len(notifier.calls) == 1
        tokens, topic = notifier.calls[0]
        assert sorted(tokens) == ["push-a", "push-b"]
        assert topic == PASS_TYPE_ID
        assert _stored_pass_json(pass_service)["expirationDate"] == "2025-01-01T00:00:00Z"

    def test_identical_update_is_unchanged(
        self,
        pass_service: PassService,
        template_bytes: bytes,
        notifier: RecordingNotifier,
        django_capture_on_commit_callbacks: Callable[..., Any],
    ) -> None:
        record = pass_service.create_pass(template_bytes).record
        _register(pass_service, record)
        update = PassUpdate(barcode_message="m", barcode_alt_text="a", expiration_date="2025-01-01T00:00:00Z")

        with django_capture_on_commit_callbacks(execute=True):
            pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, update)
        updated_at = Pass.objects.get().updated_at

        with django_capture_on_commit_callbacks(execute=True):
            result = pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, update)

        assert result.status is PassWriteStatus.UNCHANGED
        assert len(notifier.calls) == 1
        assert Pass.objects.get().updated_at == updated_at

    def test_omitted_fields_are_cleared(self, pass_service: PassService) -> None:
        pass_service.create_pass(make_template(make_pass_json(expirationDate="2030-01-01T00:00:00Z")))

        pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, PassUpdate(barcode_message="new"))

        stored = _stored_pass_json(pass_service)
        assert stored["barcodes"][0]["message"] == "new"
        assert stored["barcodes"][0]["altText"] == ""
        assert "expirationDate" not in stored

    def test_token_is_stable_across_updates(self, pass_service: PassService, template_bytes: bytes) -> None:
        token = pass_service.create_pass(template_bytes).record.authentication_token

        for index in range(3):
            result = pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, PassUpdate(barcode_message=f"m{index}"))
            assert result.record.authentication_token == token
            assert _stored_pass_json(pass_service)["authenticationToken"] == token

    def test_invalid_update_is_rejected(self, pass_service: PassService, template_bytes: bytes) -> None:
        record = pass_service.create_pass(template_bytes).record

        with pytest.raises(PassValidationError):
            pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, PassUpdate(expiration_date="not a date"))

        assert Pass.objects.get().hash == record.hash

    def test_missing_bundle(self, pass_service: PassService, template_bytes: bytes) -> None:
        pass_service.create_pass(template_bytes)
        pass_service.storage.path_for(PASS_TYPE_ID, SERIAL_NUMBER).unlink()

        with pytest.raises(PassStorageError):
            pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, PassUpdate(barcode_message="x"))


class TestGetPass:
    def test_returns_stored_bundle(self, pass_service: PassService, template_bytes: bytes) -> None:
        record = pass_service.create_pass(template_bytes).record

        result = pass_service.get_pass(PASS_TYPE_ID, SERIAL_NUMBER, record.authentication_token)

        assert result.content == pass_service.storage.read(PASS_TYPE_ID, SERIAL_NUMBER)
        assert result.last_modified == record.updated_at

    @pytest.mark.parametrize("token", [None, "", "wrong-token-wrong-token"])
    def test_wrong_token_is_unauthorized(
        self, pass_service: PassService, template_bytes: bytes, token: str | None
    ) -> None:
        pass_service.create_pass(template_bytes)

        with pytest.raises(PassUnauthorizedError):
            pass_service.get_pass(PASS_TYPE_ID, SERIAL_NUMBER, token)

    def test_unknown_pass_is_unauthorized(self, pass_service: PassService, template_bytes: bytes) -> None:
        record = pass_service.create_pass(template_bytes).record

        with pytest.raises(PassUnauthorizedError):
            pass_service.get_pass(PASS_TYPE_ID, "002", record.authentication_token)

    def test_not_modified_since_last_change(self, pass_service: PassService, template_bytes: bytes) -> None:
        with freeze_time("2024-05-01 12:00:00.750000"):
            record = pass_service.create_pass(template_bytes).record

        same_second = dt.datetime(2024, 5, 1, 12, 0, 0, tzinfo=dt.timezone.utc)
        exact = dt.datetime(2024, 5, 1, 12, 0, 0, 750000, tzinfo=dt.timezone.utc)
        later = same_second + dt.timedelta(hours=1)
        token = record.authentication_token

        assert pass_service.get_pass(PASS_TYPE_ID, SERIAL_NUMBER, token, exact).not_modified
        assert pass_service.get_pass(PASS_TYPE_ID, SERIAL_NUMBER, token, later).not_modified
        assert pass_service.get_pass(PASS_TYPE_ID, SERIAL_NUMBER, token, same_second).content is not None

    def test_second_change_within_same_second_is_served(
        self, pass_service: PassService, template_bytes: bytes
    ) -> None:
        with freeze_time("2024-05-01 12:00:00.200000"):
            record = pass_service.create_pass(template_bytes).record
        # The device saw Last-Modified: 12:00:00 after the first version
        last_modified = record.updated_at.replace(microsecond=0)
        with freeze_time("2024-05-01 12:00:00.800000"):
            pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, PassUpdate(barcode_message="changed"))

        result = pass_service.get_pass(PASS_TYPE_ID, SERIAL_NUMBER, record.authentication_token, last_modified)

        assert not result.not_modified
        assert result.content == pass_service.storage.read(PASS_TYPE_ID, SERIAL_NUMBER)

    def test_update_makes_pass_modified_again(self, pass_service: PassService, template_bytes: bytes) -> None:
        with freeze_time("2024-05-01 12:00:00"):
            record = pass_service.create_pass(template_bytes).record
        with freeze_time("2024-05-01 13:00:00"):
            pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, PassUpdate(barcode_message="changed"))

        since = dt.datetime(2024, 5, 1, 12, 30, tzinfo=dt.timezone.utc)
        result = pass_service.get_pass(PASS_TYPE_ID, SERIAL_NUMBER, record.authentication_token, since)

        assert not result.not_modified

    def test_unreadable_bundle(self, pass_service: PassService, template_bytes: bytes) -> None:
        record = pass_service.create_pass(template_bytes).record
        pass_service.storage.path_for(PASS_TYPE_ID, SERIAL_NUMBER).unlink()

        with pytest.raises(PassStorageError):
            pass_service.get_pass(PASS_TYPE_ID, SERIAL_NUMBER, record.authentication_token)


class TestDispatchPush:
    def test_no_registrations_no_push(
        self, pass_service: PassService, template_bytes: bytes, notifier: RecordingNotifier
    ) -> None:
        record = pass_service.create_pass(template_bytes).record

        assert pass_service.dispatch_push(record) == 0
        assert notifier.calls == []

    def test_notifier_failure_is_swallowed(self, pass_service: PassService, template_bytes: bytes) -> None:
        record = pass_service.create_pass(template_bytes).record
        _register(pass_service, record)

        with patch.object(pass_service.notifier, "notify", side_effect=RuntimeError("apns down")):
            assert pass_service.dispatch_push(record) == 0

    def test_push_failure_does_not_fail_update(
        self,
        pass_service: PassService,
        template_bytes: bytes,
        django_capture_on_commit_callbacks: Callable[..., Any],
    ) -> None:
        record = pass_service.create_pass(template_bytes).record
        _register(pass_service, record)

        with patch.object(pass_service.notifier, "notify", side_effect=RuntimeError("apns down")):
            with django_capture_on_commit_callbacks(execute=True):
                result = pass_service.update_pass(PASS_TYPE_ID, SERIAL_NUMBER, PassUpdate(barcode_message="x"))

        assert result.status is PassWriteStatus.UPDATED
        assert Pass.objects.get().hash == result.record.hash


class TestRegistrations:
    def test_register_and_unregister(self, pass_service: PassService, template_bytes: bytes) -> None:
        record = pass_service.create_pass(template_bytes).record
        token = record.authentication_token

        assert pass_service.register_device(DEVICE_ID, PASS_TYPE_ID, SERIAL_NUMBER, token, "push-1") is True
        assert pass_service.register_device(DEVICE_ID, PASS_TYPE_ID, SERIAL_NUMBER, token, "push-2") is False
        assert pass_service.registrations.push_tokens_for(record) == ["push-2"]

        assert pass_service.unregister_device(DEVICE_ID, PASS_TYPE_ID, SERIAL_NUMBER, token) is True
        assert pass_service.unregister_device(DEVICE_ID, PASS_TYPE_ID, SERIAL_NUMBER, token) is False
        assert pass_service.registrations.push_tokens_for(record) == []

    def test_register_requires_token(self, pass_service: PassService, template_bytes: bytes) -> None:
        pass_service.create_pass(template_bytes)

        with pytest.raises(PassUnauthorizedError):
            pass_service.register_device(DEVICE_ID, PASS_TYPE_ID, SERIAL_NUMBER, "bad-token", "push-1")

    def test_updated_serial_numbers(self, pass_service: PassService) -> None:
        with freeze_time("2024-05-01 12:00:00"):
            first = pass_service.create_pass(make_template()).record
            second = pass_service.create_pass(make_template(make_pass_json(serialNumber="002"))).record
        _register(pass_service, first)
        _register(pass_service, second)

        serials, last_updated = pass_service.get_updated_serial_numbers(DEVICE_ID, PASS_TYPE_ID)
        assert serials == ["001", "002"]
        assert last_updated == str(int(dt.datetime(2024, 5, 1, 12, tzinfo=dt.timezone.utc).timestamp()) * 1_000_000)

        with freeze_time("2024-05-01 13:00:00"):
            pass_service.update_pass(PASS_TYPE_ID, "002", PassUpdate(barcode_message="changed"))

        serials, newer = pass_service.get_updated_serial_numbers(DEVICE_ID, PASS_TYPE_ID, last_updated)
        assert serials == ["002"]
        assert newer is not None and int(newer) > int(last_updated)

        assert pass_service.get_updated_serial_numbers(DEVICE_ID, PASS_TYPE_ID, newer) == ([], None)

    def test_unknown_device_has_no_passes(self, pass_service: PassService) -> None:
        assert pass_service.get_updated_serial_numbers("unknown", PASS_TYPE_ID) == ([], None)

    def test_invalid_tag_lists_everything(self, pass_service: PassService, template_bytes: bytes) -> None:
        record = pass_service.create_pass(template_bytes).record
        _register(pass_service, record)

        serials, _ = pass_service.get_updated_serial_numbers(DEVICE_ID, PASS_TYPE_ID, "yesterday")

        assert serials == [SERIAL_NUMBER]
