"""Audio analysis: chunk planning, merging and speech-to-text."""
