"""
Central re-exports for the task scraper data models.

This module exposes the canonical models from their dedicated modules to
provide stable import paths as "taskscraper.models" without redefining types.
"""
from .request import RequestParams, ResponseValidator
from .response import FetchResult, ResponseSnapshot

__all__ = [
    "RequestParams",
    "ResponseValidator",
    "FetchResult",
    "ResponseSnapshot",
]
