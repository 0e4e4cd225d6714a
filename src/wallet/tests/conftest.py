"""Test fixtures for wallet app tests.

This module provides fixtures for testing pass issuing: throwaway signing
credentials written to the per-test certificates directory, template
archives, a signer that does not shell out to openssl and a notifier that
records dispatches instead of queueing them.
"""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone
from pathlib import Path
from typing import Any

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from wallet.apple.builder import PassBuilder
from wallet.service import PassService, build_pass_service
from wallet.tests.factories import (
    PASS_TYPE_ID,
    FakeSigner,
    RecordingNotifier,
    make_png,
    make_template,
    write_credentials,
)

# --- Certificate Fixtures ---


@pytest.fixture
def private_key() -> rsa.RSAPrivateKey:
    """Generate an RSA private key for testing."""
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture
def certificate(private_key: rsa.RSAPrivateKey) -> x509.Certificate:
    """Generate a self-signed Pass Type ID certificate for testing."""
    subject = issuer = x509.Name(
        [
            x509.NameAttribute(NameOID.COUNTRY_NAME, "US"),
            x509.NameAttribute(NameOID.ORGANIZATION_NAME, "Test Org"),
            x509.NameAttribute(NameOID.COMMON_NAME, f"Pass Type ID: {PASS_TYPE_ID}"),
        ]
    )

    now = datetime.now(dt_timezone.utc)
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + timedelta(days=365))
        .sign(private_key, hashes.SHA256())
    )


@pytest.fixture
def credential_files(
    settings: Any, certificate: x509.Certificate, private_key: rsa.RSAPrivateKey
) -> tuple[Path, Path]:
    """Install unencrypted credentials for the demo pass type."""
    return write_credentials(Path(settings.PASSKIT_CERTS_DIR), PASS_TYPE_ID, certificate, private_key)


# --- Template Fixtures ---


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def template_bytes() -> bytes:
    return make_template()


# --- Collaborator Fixtures ---


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def builder() -> PassBuilder:
    return PassBuilder(signer_factory=FakeSigner)


@pytest.fixture
def pass_service(
    monkeypatch: pytest.MonkeyPatch,
    credential_files: tuple[Path, Path],
    notifier: RecordingNotifier,
    builder: PassBuilder,
) -> PassService:
    """A pass service with real storage and credentials, a fake signer and a recording notifier.

    It is installed as the process-wide service so API tests use it too.
    """
    service = build_pass_service(notifier=notifier, builder=builder)
    monkeypatch.setattr("wallet.service._pass_service", service)
    return service
