"""Pipeline runtime wiring."""

from .pipeline import TranscriptionPipeline

__all__ = ["TranscriptionPipeline"]
