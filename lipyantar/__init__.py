"""Live Gujarati to IAST/Hunterian transliteration for reader pages."""

__version__ = "0.1.0"
