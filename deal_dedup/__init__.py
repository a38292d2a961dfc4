"""Deal deduplication and normalization engine."""

__version__ = "0.1.0"
