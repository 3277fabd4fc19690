"""Google Drive API access: OAuth session, folder resolution, and models."""
