"""Backup destination surface consumed by the host backup engine."""
