"""Retrieval components."""

from .service import ContextRetriever

__all__ = ["ContextRetriever"]
