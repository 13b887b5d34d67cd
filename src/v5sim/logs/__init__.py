"""Session transcript logging."""

from .transcript import TranscriptLogger, read_transcript

__all__ = ["TranscriptLogger", "read_transcript"]
