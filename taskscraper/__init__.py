"""
Task Scraper

A fetch-validate-decode engine that turns remote HTML and JSON resources into
parsed documents and decoded values for higher-level scraping tasks.
"""

__version__ = "0.1.0"
__author__ = "Task Scraper Team"
__description__ = "Bounded, encoding-aware HTML and JSON fetching for scraping tasks"
__license__ = "MIT"

# Package level constants
DEFAULT_MAX_BODY_SIZE = 10 * 1024 * 1024  # 10 MiB

# Version info tuple
VERSION_INFO = tuple(map(int, __version__.split('.')))
