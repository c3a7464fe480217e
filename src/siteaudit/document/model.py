"""
Queryable document model built from one page's raw markup.

Parsing uses lxml's HTML parser, which recovers from the malformed markup
found on real-world pages (unclosed tags, stray end tags, bad nesting) the
way browsers do. Only input that yields no tree at all is rejected.
"""

from __future__ import annotations

from typing import Any, List, Optional, Union

from lxml import etree
from lxml import html as lxml_html

from ..exceptions import ParseError, QueryError


class DocumentModel:
    """Immutable, XPath-queryable view of a parsed page."""

    __slots__ = ("_root", "_tree")

    def __init__(self, root: lxml_html.HtmlElement) -> None:
        self._root = root
        self._tree = root.getroottree()

    @classmethod
    def parse(cls, raw: Union[bytes, str]) -> "DocumentModel":
        """
        Parse raw markup into a document model.

        Args:
            raw: Page bytes as fetched, or already decoded text

        Returns:
            DocumentModel over the recovered tree

        Raises:
            ParseError: If the input is empty, is not markup, or no tree can be built
        """
        if raw is None or not raw.strip():
            raise ParseError("Document is empty")

        marker = b"<" if isinstance(raw, bytes) else "<"
        if marker not in raw:
            raise ParseError("Input does not contain markup")

        parser = None
        if isinstance(raw, str):
            # lxml refuses text carrying an XML encoding declaration
            raw = raw.encode("utf-8")
            parser = lxml_html.HTMLParser(encoding="utf-8")

        try:
            root = lxml_html.document_fromstring(raw, parser=parser)
        except (etree.ParserError, ValueError) as e:
            raise ParseError(f"Unable to build document tree: {e}") from e

        if root is None:
            raise ParseError("Unable to build document tree")

        return cls(root)

    @property
    def root(self) -> lxml_html.HtmlElement:
        return self._root

    def query(self, expression: str) -> List[Any]:
        """
        Evaluate an XPath expression against the document.

        Every call re-evaluates against the same fixed tree, so results are
        restartable and deterministic.

        Raises:
            QueryError: If the expression is not valid XPath
        """
        try:
            result = self._tree.xpath(expression)
        except (etree.XPathError, TypeError) as e:
            raise QueryError(f"Invalid XPath expression {expression!r}: {e}") from e

        if isinstance(result, list):
            return result
        # Scalar expressions (count(), string(), boolean()) yield a single value
        return [result]

    def query_first(self, expression: str) -> Optional[Any]:
        """Return the first node matching an expression, or None."""
        nodes = self.query(expression)
        return nodes[0] if nodes else None

    def title(self) -> Optional[str]:
        """Return the stripped <title> text, or None if absent or blank."""
        node = self.query_first("//head/title | //title")
        if node is None:
            return None
        text = " ".join(node.text_content().split())
        return text or None

    def base_href(self) -> Optional[str]:
        """Return the document's <base href> value if declared."""
        value = self.query_first("//base[@href]/@href")
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    def __repr__(self) -> str:
        return f"<DocumentModel root={self._root.tag!r}>"
