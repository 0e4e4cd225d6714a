"""
Project-wide pytest fixtures.
"""

import typing as t
from pathlib import Path

import pytest
from django.core.cache import cache

from wallet.service import reset_pass_service


@pytest.fixture(autouse=True)
def enable_celery_eager_mode(settings: t.Any) -> None:
    """Enable Celery eager mode for tests so tasks execute synchronously.

    This ensures that Celery tasks run immediately in the same process,
    allowing tests to verify their side effects without async complications.
    """
    settings.CELERY_TASK_ALWAYS_EAGER = True
    settings.CELERY_TASK_EAGER_PROPAGATES = True


@pytest.fixture(autouse=True)
def passkit_dirs(settings: t.Any, tmp_path: Path) -> t.Iterator[Path]:
    """Point certificate and bundle storage at per-test directories."""
    certs_dir = tmp_path / "certs"
    passes_dir = tmp_path / "passes"
    certs_dir.mkdir()
    passes_dir.mkdir()

    settings.PASSKIT_CERTS_DIR = certs_dir
    settings.PASSKIT_PASSES_DIR = passes_dir
    settings.PASSKIT_WWDR_CERT_PATH = ""
    settings.KEY_PASSPHRASE_FILE = ""
    settings.PASSKIT_WEB_SERVICE_URL = "https://passes.example.com/passkit"

    reset_pass_service()
    yield tmp_path
    reset_pass_service()


@pytest.fixture(autouse=True)
def clear_throttle_cache() -> None:
    """Reset rate limiting state between tests."""
    cache.clear()
