"""
Tests for DocumentModel parsing and XPath queries.
"""

import pytest

from siteaudit.document import DocumentModel
from siteaudit.exceptions import ParseError, QueryError


@pytest.mark.unit
class TestParse:
    """Lenient parsing of real-world markup."""

    def test_parse_bytes_and_text(self):
        """Bytes and decoded text produce equivalent trees."""
        markup = "<html><head><title>Hi</title></head><body><p>x</p></body></html>"
        assert DocumentModel.parse(markup).title() == "Hi"
        assert DocumentModel.parse(markup.encode("utf-8")).title() == "Hi"

    def test_malformed_markup_is_recovered(self):
        """Unclosed tags and bad nesting still yield a queryable tree."""
        document = DocumentModel.parse(b"<html><body><p>one<p>two<div><span>three</div></span><a href='/x'>x")
        assert len(document.query("//p")) == 2
        assert document.query("//a/@href") == ["/x"]

    def test_fragment_is_wrapped_in_document(self):
        """A bare fragment is parsed into a full html document."""
        document = DocumentModel.parse("<a href='http://example.com/'>link</a>")
        assert document.root.tag == "html"
        assert len(document.query("//a")) == 1

    @pytest.mark.parametrize("raw", [b"", "", "   \n\t", b"   "])
    def test_empty_input_rejected(self, raw):
        with pytest.raises(ParseError):
            DocumentModel.parse(raw)

    def test_non_markup_rejected(self):
        """Plain text without any tag cannot become a document."""
        with pytest.raises(ParseError):
            DocumentModel.parse(b"just some text, no markup at all")

    def test_text_with_xml_declaration(self):
        """Decoded XHTML keeping its encoding declaration still parses."""
        document = DocumentModel.parse(
            '<?xml version="1.0" encoding="UTF-8"?><html><head><title>Café</title></head>'
            '<body><a href="/x">x</a></body></html>'
        )
        assert document.query("//a/@href") == ["/x"]
        assert document.title() == "Café"


@pytest.mark.unit
class TestQuery:
    """XPath evaluation."""

    def test_query_is_restartable(self, example_document):
        """Repeated evaluation of the same expression gives the same nodes."""
        first = [node.get("href") for node in example_document.query("//a[@href]")]
        second = [node.get("href") for node in example_document.query("//a[@href]")]
        assert first == second
        assert len(first) == 9

    def test_scalar_results_are_wrapped(self, example_document):
        assert example_document.query("count(//a)") == [9.0]

    def test_query_first(self, example_document):
        assert example_document.query_first("//a/@href") == "http://www.google.com/"
        assert example_document.query_first("//table") is None

    def test_invalid_xpath_raises_query_error(self, example_document):
        with pytest.raises(QueryError):
            example_document.query("//a[@href")

    def test_title_collapses_whitespace(self):
        document = DocumentModel.parse("<html><head><title>\n  My   page\n</title></head></html>")
        assert document.title() == "My page"

    @pytest.mark.parametrize(
        "markup",
        ["<html><head></head><body>x</body></html>", "<html><head><title>   </title></head></html>"],
    )
    def test_missing_or_blank_title(self, markup):
        assert DocumentModel.parse(markup).title() is None

    def test_base_href(self):
        document = DocumentModel.parse("<html><head><base href=' http://cdn.test.com/sub/ '></head></html>")
        assert document.base_href() == "http://cdn.test.com/sub/"
        assert DocumentModel.parse("<p>no base</p>").base_href() is None

