"""Synthetic data fixtures package for testing."""

from __future__ import annotations

from . import ingestion_fixtures

__all__ = [
    "ingestion_fixtures",
]
