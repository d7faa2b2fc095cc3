"""
Scraper package for the task scraper.

This package contains the fetch-validate-decode engine used by scraping
tasks: request body preparation, the request pipeline, response validation,
bounded body capture, charset normalization and the HTML and JSON decoders.

The main entry point is :class:`Scraper`.
"""
from taskscraper.scraper.errors import ResponseError, html_structure_changed
from taskscraper.scraper.response import preview_body
from taskscraper.scraper.scraper import (
    Scraper,
    with_max_request_body_size,
    with_max_response_body_size,
    with_response_callback,
)

__all__ = [
    "Scraper",
    "with_max_request_body_size",
    "with_max_response_body_size",
    "with_response_callback",
    "ResponseError",
    "html_structure_changed",
    "preview_body",
]
