"""Unit tests for markup parsing and serialization."""

import pytest

from epub_translator.core.epub.exceptions import ExtractionError
from epub_translator.core.epub.markup import (
    HTML, XHTML, detect_dialect, find_body, iter_text_slots, local_name,
    parse_document, serialize_document, text_content,
)


class TestDetectDialect:
    """Test strict/permissive dialect detection."""

    def test_xml_declaration(self):
        assert detect_dialect('<?xml version="1.0"?><html/>') == XHTML

    def test_xhtml_namespace(self):
        assert detect_dialect('<html xmlns="http://www.w3.org/1999/xhtml"><body/></html>') == XHTML

    def test_plain_html(self):
        assert detect_dialect('<!DOCTYPE html><html><body><p>Hi</p></body></html>') == HTML


class TestParseDocument:
    """Test parse_document."""

    def test_xhtml_keeps_declaration_and_doctype(self, xhtml_chapter):
        doc = parse_document(xhtml_chapter, name="ch1.xhtml")

        assert doc.dialect == XHTML
        assert doc.has_xml_declaration
        assert doc.doctype == "<!DOCTYPE html>"
        assert local_name(doc.root) == "html"

    def test_named_entities_in_xhtml(self):
        doc = parse_document('<?xml version="1.0"?><html xmlns="http://www.w3.org/1999/xhtml">'
                             '<body><p>A&nbsp;B &amp; C</p></body></html>')

        assert text_content(find_body(doc.root)) == "A\xa0B & C"

    def test_html_fragment(self):
        doc = parse_document("<p>Hello</p><p>World</p>")

        assert doc.dialect == HTML
        assert doc.fragment_only

    @pytest.mark.parametrize("markup", ["", "   \n  "])
    def test_empty_document(self, markup):
        with pytest.raises(ExtractionError) as exc_info:
            parse_document(markup, name="empty.xhtml")
        assert exc_info.value.document == "empty.xhtml"


class TestSerializeDocument:
    """Test serialization in the document's own dialect."""

    def test_xhtml_round_trip(self, xhtml_chapter):
        output = serialize_document(parse_document(xhtml_chapter))

        assert output.startswith('<?xml version="1.0" encoding="utf-8"?>\n<!DOCTYPE html>\n')
        assert '<html xmlns="http://www.w3.org/1999/xhtml">' in output
        assert "<em>striking</em>" in output
        assert "p { margin: 0; }" in output

    def test_xhtml_self_closing_elements(self):
        markup = ('<?xml version="1.0"?><html xmlns="http://www.w3.org/1999/xhtml">'
                  '<body><p>a<br/>b</p></body></html>')

        assert "<br/>" in serialize_document(parse_document(markup))

    def test_html_fragment_round_trip(self):
        assert serialize_document(parse_document("<p>Hello</p><p>World</p>")) == "<p>Hello</p><p>World</p>"

    def test_html_fragment_keeps_head_content(self):
        """<title> and friends are moved into a generated <head> by the parser."""
        markup = '<title>Chapter</title><link rel="stylesheet" href="a.css"><p>x</p>'

        assert serialize_document(parse_document(markup)) == markup

    def test_html_fragment_translated_title_written(self):
        doc = parse_document("<title>Chapter</title><p>x</p>")
        doc.root.find("head").find("title").text = "章节"

        assert serialize_document(doc) == "<title>章节</title><p>x</p>"

    def test_html_fragment_leading_text_escaped(self):
        assert serialize_document(parse_document("a &lt; b<p>x</p>")) == "a &lt; b<p>x</p>"

    def test_html_fragment_rewritten_leading_text_escaped(self):
        doc = parse_document("loose<p>x</p>")
        find_body(doc.root).text = "<b> & co"

        assert serialize_document(doc) == "&lt;b&gt; &amp; co<p>x</p>"

    def test_html_document_keeps_doctype(self):
        markup = "<!DOCTYPE html><html><head><title>T</title></head><body><p>Hi<br>there</p></body></html>"
        output = serialize_document(parse_document(markup))

        assert output.startswith("<!DOCTYPE html>\n<html>")
        assert "<p>Hi<br>there</p>" in output


class TestTextSlots:
    """Test text slot enumeration."""

    def test_document_order_and_tails(self):
        doc = parse_document("<p>one <b>two</b> three</p>")
        body = find_body(doc.root)

        assert [slot.get() for slot in iter_text_slots(body)] == ["one ", "two", " three"]

    def test_script_and_style_content_skipped(self):
        doc = parse_document('<html xmlns="http://www.w3.org/1999/xhtml"><body>'
                             '<div>a<script>var x = 1;</script>b<style>p {}</style>c</div></body></html>')
        body = find_body(doc.root)

        assert [slot.get() for slot in iter_text_slots(body)] == ["a", "b", "c"]
