"""Report and action aggregation pipeline for cultivation operations."""

__version__ = "0.1.0"
