"""Tests for api/exception_handlers.py."""

from django.test import RequestFactory

from api.exception_handlers import SENSITIVE_KEYS, handle_pass_storage_error, obfuscate
from wallet.exceptions import PassStorageError


class TestObfuscate:
    def test_masks_sensitive_keys(self) -> None:
        data = {"Authorization": "ApplePass secret", "authenticationToken": "secret", "page": "1"}

        result = obfuscate(data)

        assert result["page"] == "1"
        assert "secret" not in result["Authorization"]
        assert "secret" not in result["authenticationToken"]

    def test_sensitive_keys_are_lowercase(self) -> None:
        assert all(key == key.lower() for key in SENSITIVE_KEYS)


class TestStorageErrorStatus:
    def test_read_is_forbidden(self, rf: RequestFactory) -> None:
        response = handle_pass_storage_error(rf.get("/passkit/v1/passes/a/b"), PassStorageError("gone"))

        assert response.status_code == 403

    def test_write_is_bad_request(self, rf: RequestFactory) -> None:
        response = handle_pass_storage_error(rf.post("/passkit/v1/passes"), PassStorageError("disk full"))

        assert response.status_code == 400
