"""Fetching of the pages under audit."""

from .fetcher import HttpPageFetcher

__all__ = ["HttpPageFetcher"]
