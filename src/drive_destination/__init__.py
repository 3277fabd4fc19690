"""Google Drive backup destination with OAuth2 authorization."""

__version__ = "0.1.0"
