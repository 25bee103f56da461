"""Client for searching a processed video archive and feeding its ingestion pipeline."""

__version__ = "1.0.0"
