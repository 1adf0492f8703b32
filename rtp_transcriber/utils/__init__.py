"""Shared helpers for audio handling and logging."""
