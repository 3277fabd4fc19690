"""Error hierarchy for the Google Drive backup destination.

Every remote failure is wrapped in one of these types with the provider's
message preserved; the original exception is chained as ``__cause__``.
"""


class DriveDestinationError(Exception):
    """Base class for all destination errors."""


class NotConfiguredError(DriveDestinationError):
    """Raised when the OAuth client id or secret has not been configured."""


class NotAuthorizedError(DriveDestinationError):
    """Raised when no access token exists, stored or session-scoped."""


class ExpiredCredentialError(DriveDestinationError):
    """Raised when the access token expired and cannot be refreshed."""


class AuthExchangeError(DriveDestinationError):
    """Raised when Google rejects an authorization code."""

    def __init__(self, description: str) -> None:
        super().__init__(f"Authorization code exchange failed: {description}")
        self.description = description


class UploadError(DriveDestinationError):
    """Raised when a backup cannot be uploaded."""


class DownloadError(DriveDestinationError):
    """Raised when a backup or its metadata cannot be retrieved."""


class DeleteError(DriveDestinationError):
    """Raised when the provider refuses or fails a delete."""


class ListError(DriveDestinationError):
    """Raised when the file listing call itself fails."""


class MissingIdentifierError(DriveDestinationError):
    """Raised when a file reference carries no remote id."""


class TempFileError(DriveDestinationError):
    """Raised when the local scratch file cannot be created or read back."""


class DestinationNotWritableError(DriveDestinationError):
    """Raised when the connection probe of check_writable() fails."""


__all__ = [
    "DriveDestinationError",
    "NotConfiguredError",
    "NotAuthorizedError",
    "ExpiredCredentialError",
    "AuthExchangeError",
    "UploadError",
    "DownloadError",
    "DeleteError",
    "ListError",
    "MissingIdentifierError",
    "TempFileError",
    "DestinationNotWritableError",
]
