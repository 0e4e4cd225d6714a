"""Exceptions raised by the pass service and its collaborators."""


class PassServiceError(Exception):
    """Base exception for pass service errors."""

    pass


class PassTemplateError(PassServiceError):
    """Raised when an uploaded template (or stored bundle) cannot be read."""

    pass


class PassValidationError(PassServiceError):
    """Raised when a candidate pass violates the pass format's structural rules.

    Attributes:
        errors: Every violation found, in the order they were detected.
    """

    def __init__(self, errors: list[str]) -> None:
        """Initialize the error.

        Args:
            errors: Human-readable descriptions of each violation.
        """
        super().__init__("; ".join(errors))
        self.errors = errors


class CredentialError(PassServiceError):
    """Base exception for signing credential failures."""

    pass


class CredentialNotFoundError(CredentialError):
    """Raised when the certificate or key for a pass type is missing."""

    pass


class CredentialLoadError(CredentialError):
    """Raised when the certificate or key exists but cannot be loaded."""

    pass


class PassSigningError(PassServiceError):
    """Raised when the manifest signature cannot be produced."""

    pass


class PassNotFoundError(PassServiceError):
    """Raised when an update targets a pass that was never issued."""

    pass


class PassUnauthorizedError(PassServiceError):
    """Raised when a pass is requested with an unknown key or a wrong token.

    Both cases share this exception so callers cannot tell them apart.
    """

    pass


class PassStorageError(PassServiceError):
    """Raised when a pass bundle cannot be written or read."""

    pass
