"""Utility modules for SiteAudit."""

from .atomic import atomic_write_json
from .slugify import slugify, slugify_url

__all__ = ["atomic_write_json", "slugify", "slugify_url"]
