"""Text normalization and chunking helpers."""
