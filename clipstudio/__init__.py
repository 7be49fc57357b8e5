"""Long-form media transcription and clip extraction."""

__version__ = "0.1.0"
