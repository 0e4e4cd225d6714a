"""File storage for issued pass bundles.

One bundle per pass, stored as ``{passTypeId}_{serialNumber}{ext}`` under the
passes directory. Writes go to a temporary file in the same directory and are
moved into place with ``os.replace``, so readers only ever see a complete
bundle.
"""

import os
import tempfile
from pathlib import Path

import structlog
from django.conf import settings

from wallet.exceptions import PassStorageError

logger = structlog.get_logger(__name__)


class PassBundleStorage:
    """Reads and writes .pkpass bundles on the local filesystem."""

    def __init__(self, directory: str | Path | None = None, extension: str | None = None) -> None:
        """Initialize the storage.

        Args:
            directory: Directory holding the bundles.
            extension: Bundle file extension, including the dot.

        If values are not provided, they are read from Django settings.
        """
        self.directory = Path(directory or settings.PASSKIT_PASSES_DIR)
        self.extension = extension or settings.PASSKIT_PASS_EXT

    def path_for(self, pass_type_id: str, serial_number: str) -> Path:
        """Return the bundle path for a pass.

        Raises:
            PassStorageError: If either identifier would escape the directory.
        """
        for value in (pass_type_id, serial_number):
            if not value or "/" in value or "\\" in value or value in (".", ".."):
                raise PassStorageError(f"Invalid pass identifier: {value!r}")
        return self.directory / f"{pass_type_id}_{serial_number}{self.extension}"

    def exists(self, pass_type_id: str, serial_number: str) -> bool:
        return self.path_for(pass_type_id, serial_number).is_file()

    def write(self, pass_type_id: str, serial_number: str, content: bytes) -> Path:
        """Atomically write a bundle, replacing any previous version.

        Returns:
            The path of the written bundle.

        Raises:
            PassStorageError: If the bundle cannot be written.
        """
        path = self.path_for(pass_type_id, serial_number)
        tmp_path: str | None = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=self.directory, prefix=f".{path.name}.", suffix=".tmp")
            with os.fdopen(fd, "wb") as tmp_file:
                tmp_file.write(content)
                tmp_file.flush()
                os.fsync(tmp_file.fileno())
            os.replace(tmp_path, path)
            tmp_path = None
        except OSError as e:
            logger.error("pass_bundle_write_failed", path=str(path), error=str(e))
            raise PassStorageError(f"Failed to write pass bundle {path.name}: {e}")
        finally:
            if tmp_path is not None:
                Path(tmp_path).unlink(missing_ok=True)

        logger.debug("pass_bundle_written", path=str(path), size=len(content))
        return path

    def read(self, pass_type_id: str, serial_number: str) -> bytes:
        """Read a complete bundle.

        Raises:
            PassStorageError: If the bundle cannot be read.
        """
        path = self.path_for(pass_type_id, serial_number)
        try:
            return path.read_bytes()
        except OSError as e:
            logger.error("pass_bundle_read_failed", path=str(path), error=str(e))
            raise PassStorageError(f"Failed to read pass bundle {path.name}: {e}")
