"""
String slugification for result filenames.
"""

import hashlib
import re
from typing import Optional

# Anything that's not alphanumeric or hyphen
UNSAFE_CHARS_PATTERN = re.compile(r"[^A-Za-z0-9\-]")

SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*://")


def slugify(text: str, replacement: str = "-", max_length: Optional[int] = 200, lowercase: bool = True) -> str:
    """
    Convert a string to a filesystem-safe slug.

    Examples:
        >>> slugify("Hello World!")
        'hello-world'

        >>> slugify("file/path\\name:test")
        'file-path-name-test'
    """
    if not text or not text.strip():
        return ""

    result = UNSAFE_CHARS_PATTERN.sub(replacement, text.strip())

    if len(replacement) == 1:
        result = re.sub(f"{re.escape(replacement)}+", replacement, result)

    result = result.strip(replacement)

    if lowercase:
        result = result.lower()

    if max_length and len(result) > max_length:
        result = result[:max_length].rstrip(replacement)

    return result


def slugify_url(url: str, max_length: int = 120) -> str:
    """
    Slugify a page URL into a unique, readable file stem.

    The scheme is dropped and a short digest of the full URL is appended so
    that URLs differing only in unsafe characters do not collide.

    Examples:
        >>> slugify_url("http://www.test.com/")[:13]
        'www-test-com-'
    """
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:10]
    stem = slugify(SCHEME_PATTERN.sub("", url), max_length=max_length) or "page"
    return f"{stem}-{digest}"
