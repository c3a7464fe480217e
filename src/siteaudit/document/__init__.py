"""Parsed page documents."""

from .model import DocumentModel

__all__ = ["DocumentModel"]
