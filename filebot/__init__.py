"""Filebot - project attachment extraction and storage."""

__version__ = "0.1.0"
