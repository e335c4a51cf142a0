"""Core models and errors shared across filebot."""
