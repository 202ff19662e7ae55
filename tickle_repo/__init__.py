"""Batch and record lifecycle repository for ingested datasets."""

__version__ = "0.1.0"
