"""
Unit tests for the HTML parsing helpers.
"""

from event_harvester.ingestion.adapters.parsers import bs4_soup, first_attr, first_text, get_text_bs4


class TestGetText:
    def test_visible_text_only(self):
        html = "<div>Hello<noscript>enable js</noscript> <b>world</b></div>"
        assert get_text_bs4(html) == "Hello world"

    def test_empty(self):
        assert get_text_bs4("") == ""
        assert get_text_bs4(None) == ""


class TestFirstText:
    def test_first_match(self):
        node = bs4_soup("<div><p> a  b </p><p>c</p></div>")
        assert first_text(node, "p") == "a b"

    def test_blank_is_none(self):
        node = bs4_soup("<div><p>  </p></div>")
        assert first_text(node, "p") is None

    def test_no_selector(self):
        assert first_text(bs4_soup("<p>x</p>"), None) is None

    def test_no_match(self):
        assert first_text(bs4_soup("<p>x</p>"), ".missing") is None


class TestFirstAttr:
    def test_href(self):
        node = bs4_soup('<div><a href=" /e/1 ">x</a></div>')
        assert first_attr(node, "a", "href") == "/e/1"

    def test_missing_attr(self):
        node = bs4_soup("<div><a>x</a></div>")
        assert first_attr(node, "a", "href") is None

    def test_multi_valued_attr_joined(self):
        node = bs4_soup('<div><span class="a b">x</span></div>')
        assert first_attr(node, "span", "class") == "a b"
