"""Tests for the iframe-safe HTML rewriter."""

import unittest
from unittest import mock

from bs4 import BeautifulSoup

from scrapestudio.errors import ValidationError
from scrapestudio.models import FetchResult
from scrapestudio.rewriter import fetch_for_embedding, rewrite_css, rewrite_for_embedding

ORIGIN = "https://news.example.com/section/story.html"

PAGE = """
<html>
<head>
  <meta http-equiv="X-Frame-Options" content="DENY">
  <title>Story</title>
  <link rel="stylesheet" href="/css/site.css">
  <style>@import "print.css"; body { background: url('img/bg.png'); }</style>
</head>
<body>
  <a href="../other.html">other</a>
  <a href="#top">top</a>
  <a href="javascript:void(0)">js</a>
  <img src="pic.jpg" data-src="//cdn.example.com/lazy.jpg">
  <img src="data:image/png;base64,AAAA">
  <form action="/search"><input name="q"></form>
  <div style="background-image: url(&quot;/hero.jpg&quot;)"></div>
</body>
</html>
"""


class TestRewriteForEmbedding(unittest.TestCase):
    """Verify every relative reference becomes absolute against the origin."""

    def setUp(self):
        self.soup = BeautifulSoup(rewrite_for_embedding(PAGE, ORIGIN), "html.parser")

    def test_base_tag_added(self):
        """A base tag pointing at the origin should be added."""
        self.assertEqual(self.soup.find("base")["href"], ORIGIN)

    def test_url_attributes_made_absolute(self):
        """Relative URL attributes should become absolute."""
        self.assertEqual(self.soup.find("link")["href"], "https://news.example.com/css/site.css")
        self.assertEqual(self.soup.find("a")["href"], "https://news.example.com/other.html")
        img = self.soup.find("img")
        self.assertEqual(img["src"], "https://news.example.com/section/pic.jpg")
        self.assertEqual(img["data-src"], "https://cdn.example.com/lazy.jpg")
        self.assertEqual(self.soup.find("form")["action"], "https://news.example.com/search")

    def test_fragments_data_and_javascript_untouched(self):
        """Fragments, data URLs and javascript links should be left alone."""
        hrefs = [a["href"] for a in self.soup.find_all("a")]
        self.assertIn("#top", hrefs)
        self.assertIn("javascript:void(0)", hrefs)
        self.assertEqual(self.soup.find_all("img")[1]["src"], "data:image/png;base64,AAAA")

    def test_css_references_made_absolute(self):
        """Stylesheet url() and @import references should become absolute."""
        css = self.soup.find("style").string
        self.assertIn('@import "https://news.example.com/section/print.css"', css)
        self.assertIn('url("https://news.example.com/section/img/bg.png")', css)
        self.assertIn('url("https://news.example.com/hero.jpg")', self.soup.find("div")["style"])

    def test_framing_defenses_replaced(self):
        """X-Frame-Options should be replaced by a permissive CSP."""
        metas = self.soup.find_all("meta")
        equivs = [m.get("http-equiv", "").lower() for m in metas]
        self.assertNotIn("x-frame-options", equivs)
        self.assertIn("content-security-policy", equivs)

    def test_interception_script_injected(self):
        """The click and submit interception script should be injected."""
        script = self.soup.find_all("script")[-1].string
        self.assertIn("postMessage", script)
        self.assertIn("link-click", script)
        self.assertIn("form-submit", script)

    def test_root_relative_and_relative_paths(self):
        """Root-relative and relative paths should resolve differently."""
        html = (
            '<html><head><meta http-equiv="X-Frame-Options" content="DENY"></head>'
            '<body><img src="/x.png"><img src="y.png"></body></html>'
        )
        soup = BeautifulSoup(rewrite_for_embedding(html, "http://h/a/"), "html.parser")
        self.assertEqual([i["src"] for i in soup.find_all("img")], ["http://h/x.png", "http://h/a/y.png"])
        self.assertIsNone(soup.find("meta", attrs={"http-equiv": "X-Frame-Options"}))

    def test_fragment_without_head_gets_one(self):
        """A fragment without a head should get one."""
        soup = BeautifulSoup(rewrite_for_embedding('<p><img src="a.png"></p>', ORIGIN), "html.parser")
        self.assertIsNotNone(soup.head)
        self.assertEqual(soup.find("img")["src"], "https://news.example.com/section/a.png")

    def test_existing_base_kept(self):
        """An existing base tag should be kept."""
        html = '<html><head><base href="https://elsewhere.com/"></head><body></body></html>'
        soup = BeautifulSoup(rewrite_for_embedding(html, ORIGIN), "html.parser")
        self.assertEqual([b["href"] for b in soup.find_all("base")], ["https://elsewhere.com/"])

    def test_invalid_origin_rejected(self):
        """An invalid origin should raise ValidationError."""
        with self.assertRaises(ValidationError):
            rewrite_for_embedding(PAGE, "not a url")

    def test_rewrite_css_leaves_data_urls(self):
        """data: URLs in CSS should be left alone."""
        css = "a { background: url(data:image/gif;base64,R0lG) }"
        self.assertEqual(rewrite_css(css, ORIGIN), css)


class TestFetchForEmbedding(unittest.TestCase):
    """Verify fetch-then-rewrite behaviour."""

    def _fetcher(self, html, content_type, body=None):
        fetcher = mock.MagicMock()
        fetcher.fetch.return_value = FetchResult(
            url="https://example.com/start",
            final_url="https://example.com/landing/",
            status_code=200,
            html=html,
            latency_ms=5,
            content_type=content_type,
            body=body,
        )
        return fetcher

    def test_html_is_rewritten_against_final_url(self):
        """HTML should be rewritten against the final URL after redirects."""
        fetcher = self._fetcher("<html><head><title> Landing </title></head><body><img src='x.png'></body></html>", "text/html")
        page = fetch_for_embedding(fetcher, "https://example.com/start")
        self.assertEqual(page.title, "Landing")
        self.assertEqual(page.base_url, "https://example.com/landing/")
        self.assertIn("https://example.com/landing/x.png", page.content)
        options = fetcher.fetch.call_args[0][1]
        self.assertEqual(options.headers["Cache-Control"], "no-cache")

    def test_non_html_passes_through(self):
        """Non-HTML text should pass through unchanged."""
        fetcher = self._fetcher('{"ok": true}', "application/json")
        page = fetch_for_embedding(fetcher, "https://example.com/start")
        self.assertEqual(page.content, '{"ok": true}')
        self.assertEqual(page.content_type, "application/json")
        self.assertIsNone(page.title)

    def test_binary_resource_returns_raw_bytes(self):
        """Images come back byte-for-byte instead of as decoded text."""
        png = b"\x89PNG\r\n\x1a\n\x00\x00\x00\rIHDR\xff\xfe"
        fetcher = self._fetcher(png.decode("latin-1"), "image/png", body=png)
        page = fetch_for_embedding(fetcher, "https://example.com/start")
        self.assertEqual(page.content, png)
        self.assertEqual(page.content_type, "image/png")


if __name__ == "__main__":
    unittest.main()
