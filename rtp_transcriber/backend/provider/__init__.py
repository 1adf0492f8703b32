"""Streaming recognition providers."""
