"""Crawl and change-track YouTube comment threads."""

__version__ = "0.1.0"
