"""Credential and folder-cache persistence."""
