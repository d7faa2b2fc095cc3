"""
Parser package for the task scraper.

Holds the document types handed to scraping tasks.
"""
from taskscraper.parser.html_parser import HTMLDocument

__all__ = ["HTMLDocument"]
