"""Tests for wallet/tasks.py and wallet/notifier.py."""

import importlib
from pathlib import Path
from typing import Any
from unittest.mock import patch

import pytest

from wallet.notifier import CeleryNotifier
from wallet.tasks import send_pass_update_push
from wallet.tests.factories import PASS_TYPE_ID


class TestSendPassUpdatePush:
    def test_sends_to_every_token(self, credential_files: tuple[Path, Path]) -> None:
        with patch("wallet.apple.push.ApplePushNotificationClient.send_batch_notifications") as mock_send:
            mock_send.return_value = {"a": True, "b": False}

            result = send_pass_update_push(["a", "b"], PASS_TYPE_ID)

        mock_send.assert_called_once_with(["a", "b"])
        assert result == {"sent": 1, "failed": 1}

    def test_missing_credentials_are_logged_not_raised(self) -> None:
        result = send_pass_update_push(["a"], "pass.com.example.unknown")

        assert result == {"sent": 0, "failed": 1}

    def test_unexpected_failure_is_swallowed(self, credential_files: tuple[Path, Path]) -> None:
        with patch(
            "wallet.apple.push.ApplePushNotificationClient.send_batch_notifications",
            side_effect=RuntimeError("boom"),
        ):
            result = send_pass_update_push(["a", "b"], PASS_TYPE_ID)

        assert result == {"sent": 0, "failed": 2}

    def test_uses_sandbox_setting_and_closes_client(self, settings: Any, credential_files: tuple[Path, Path]) -> None:
        settings.PASSKIT_APNS_USE_SANDBOX = True

        with patch("wallet.apple.push.ApplePushNotificationClient") as MockClient:
            client = MockClient.return_value.__enter__.return_value
            client.send_batch_notifications.return_value = {"a": True}

            result = send_pass_update_push(["a"], PASS_TYPE_ID)

        assert result == {"sent": 1, "failed": 0}
        assert MockClient.call_args.kwargs["use_sandbox"] is True
        assert MockClient.call_args.args[0].pass_type_id == PASS_TYPE_ID
        MockClient.return_value.__exit__.assert_called_once()


class TestCeleryNotifier:
    def test_enqueues_task(self) -> None:
        with patch("wallet.tasks.send_pass_update_push.delay") as mock_delay:
            CeleryNotifier().notify(["a", "b"], PASS_TYPE_ID)

        mock_delay.assert_called_once_with(["a", "b"], PASS_TYPE_ID)

    def test_skips_empty_token_list(self) -> None:
        with patch("wallet.tasks.send_pass_update_push.delay") as mock_delay:
            CeleryNotifier().notify([], PASS_TYPE_ID)

        mock_delay.assert_not_called()

    def test_broker_failure_is_not_raised(self) -> None:
        with patch("wallet.tasks.send_pass_update_push.delay", side_effect=ConnectionError("broker down")) as mock_delay:
            CeleryNotifier().notify(["a"], PASS_TYPE_ID)

        mock_delay.assert_called_once()


def test_push_dispatch_is_queued_by_default(monkeypatch: pytest.MonkeyPatch) -> None:
    """Without an explicit override the push task goes to the broker, even in DEBUG."""
    monkeypatch.delenv("CELERY_TASK_ALWAYS_EAGER", raising=False)
    monkeypatch.setenv("DEBUG", "True")

    celery_settings = importlib.reload(importlib.import_module("passhub.settings.celery"))

    assert celery_settings.CELERY_TASK_ALWAYS_EAGER is False
