"""Tests for the command line entry point."""

import csv
import json
import os
import tempfile
import unittest
from unittest import mock

import main
from scrapestudio.rewriter import EmbeddedPage


class TestCli(unittest.TestCase):
    """Verify the subcommands that need no network access."""

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.tmp.cleanup()

    def _path(self, name):
        return os.path.join(self.tmp.name, name)

    def test_export_csv(self):
        """export should write CSV to the output file."""
        src, out = self._path("data.json"), self._path("data.csv")
        with open(src, "w", encoding="utf-8") as f:
            json.dump([{"title": "A", "tags": ["x", "y"]}], f)

        self.assertEqual(main.main(["export", src, "--format", "csv", "--output", out]), 0)
        with open(out, "r", encoding="utf-8", newline="") as f:
            rows = list(csv.reader(f))
        self.assertEqual(rows, [["tags", "title"], ["x, y", "A"]])

    def test_rewrite_local_file(self):
        """rewrite --html should rewrite a local file."""
        src, out = self._path("page.html"), self._path("out.html")
        with open(src, "w", encoding="utf-8") as f:
            f.write('<html><head></head><body><img src="a.png"></body></html>')

        self.assertEqual(main.main(["rewrite", "https://example.com/dir/", "--html", src, "--output", out]), 0)
        with open(out, "r", encoding="utf-8") as f:
            self.assertIn("https://example.com/dir/a.png", f.read())

    def test_rewrite_binary_resource_written_as_bytes(self):
        """Non-HTML resources fetched for embedding are written byte-for-byte."""
        out = self._path("logo.png")
        png = b"\x89PNG\r\n\x1a\n\x00\xff"
        page = EmbeddedPage(content=png, content_type="image/png", base_url="https://example.com/logo.png", status_code=200)
        with mock.patch.object(main.ScrapeStudio, "fetch_for_embedding", return_value=page):
            self.assertEqual(main.main(["rewrite", "https://example.com/logo.png", "--output", out]), 0)
        with open(out, "rb") as f:
            self.assertEqual(f.read(), png)

    def test_invalid_input_returns_error_code(self):
        """Invalid input should exit with status 2."""
        src = self._path("data.json")
        with open(src, "w", encoding="utf-8") as f:
            json.dump([{"a": 1}], f)
        self.assertEqual(main.main(["export", src, "--format", "sql", "--table", "bad name"]), 2)

    def test_unknown_format_is_rejected_by_parser(self):
        """The parser should reject unknown formats."""
        with self.assertRaises(SystemExit):
            main.build_parser().parse_args(["export", "x.json", "--format", "xml"])


if __name__ == "__main__":
    unittest.main()
