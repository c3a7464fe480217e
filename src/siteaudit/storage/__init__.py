"""Persistence of page scan results."""

from .json_store import JsonResultStore

__all__ = ["JsonResultStore"]
