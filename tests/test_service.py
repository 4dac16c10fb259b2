"""Tests for the ScrapeStudio facade, templates and settings."""

import json
import os
import unittest
from unittest import mock

from scrapestudio.config import Settings, load_settings
from scrapestudio.models import FetchResult, JobStatus, ScrapeOptions
from scrapestudio.service import ScrapeStudio
from scrapestudio.storage import MemoryStorage
from scrapestudio.templates import SCRAPING_TEMPLATES, get_template


class FakeFetcher:
    def fetch(self, url, options, selectors=()):
        html = '<html><head><title>Home</title></head><body><h1>Hello</h1><a href="/about">about</a></body></html>'
        return FetchResult(url=url, final_url=url, status_code=200, html=html, latency_ms=1, content_type="text/html")


class FakeFactory:
    def __init__(self):
        self.options = []
        self.closed = False

    def create_fetcher(self, options):
        self.options.append(options)
        return FakeFetcher()

    def close(self):
        self.closed = True


def _settings(**overrides):
    settings = Settings(
        timeout_ms=4000,
        max_retries=1,
        qps=0,
        max_redirects=5,
        proxies=["http://p1:8080"],
        browser_pool_size=1,
        browser_headless=True,
        browser_executable_path=None,
        results_path=None,
        vector_dim=8,
        log_level="INFO",
    )
    for name, value in overrides.items():
        setattr(settings, name, value)
    return settings


class TestScrapeStudio(unittest.TestCase):
    """Verify end-to-end wiring with a fake fetcher factory."""

    def setUp(self):
        self.factory = FakeFactory()
        self.studio = ScrapeStudio(_settings(), storage=MemoryStorage(), factory=self.factory)

    def tearDown(self):
        self.studio.close()

    def test_submit_and_fetch_result(self):
        """A submitted job should complete and its result be retrievable."""
        job_id = self.studio.submit_scrape("https://example.com", [{"selector": "h1", "name": "title"}])
        self.assertTrue(self.studio.wait_idle(timeout=5))
        job = self.studio.get_job(job_id)
        self.assertEqual(job.status, JobStatus.COMPLETED)
        self.assertEqual(job.options.timeout, 4000)
        self.assertEqual(self.studio.get_result(job_id)["data"], {"title": "Hello"})

    def test_explicit_timeout_is_kept(self):
        """An explicit timeout should not be replaced by the default."""
        job_id = self.studio.submit_scrape("https://example.com", options={"timeout": 9000})
        self.studio.wait_idle(timeout=5)
        self.assertEqual(self.studio.get_job(job_id).options.timeout, 9000)

    def test_proxy_list_loaded_from_settings(self):
        """PROXY_LIST should seed the proxy pool."""
        self.assertEqual([p.address for p in self.studio.proxy_pool.members()], ["p1:8080"])

    def test_discover_urls(self):
        """discover_urls() should delegate to the discoverer."""
        urls = self.studio.discover_urls("https://example.com/", {"maxDepth": 1})
        self.assertEqual(urls, ["https://example.com/", "https://example.com/about"])

    def test_vector_export_uses_configured_dimension(self):
        """Vector export should use the configured dimension."""
        doc = json.loads(self.studio.export_dataset([{"a": 1}], "vector"))
        self.assertEqual(len(doc["vectors"][0]["embedding"]), 8)

    def test_fetch_for_embedding(self):
        """fetch_for_embedding() should use a fetcher from the factory."""
        page = self.studio.fetch_for_embedding("https://example.com/")
        self.assertEqual(page.title, "Home")
        self.assertIn('href="https://example.com/about"', page.content)
        self.assertEqual(self.factory.options[-1].timeout, 4000)

    def test_close_shuts_down_factory(self):
        """close() should shut down the fetcher factory."""
        self.studio.close()
        self.assertTrue(self.factory.closed)

    def test_suggest_selectors(self):
        """suggest_selectors() should be exposed on the facade."""
        self.assertEqual(self.studio.suggest_selectors("<h1>x</h1>")[0]["name"], "title")


class TestTemplates(unittest.TestCase):
    """Verify the built-in templates are valid inputs."""

    def test_three_templates(self):
        """Three built-in templates should ship."""
        self.assertEqual(
            [t.name for t in SCRAPING_TEMPLATES],
            ["E-commerce Product", "News Article", "Search Results"],
        )

    def test_lookup_is_case_insensitive(self):
        """Template lookup should ignore case."""
        template = get_template("news article")
        self.assertTrue(template.options.format_options.skip_headers)
        self.assertIsNone(get_template("unknown"))

    def test_search_template_paginates(self):
        """The search template should paginate."""
        options = get_template("Search Results").options
        self.assertTrue(options.pagination_enabled)
        self.assertEqual(options.max_pages, 5)

    def test_to_dict_round_trips_options(self):
        """Template options should survive to_dict()."""
        data = get_template("E-commerce Product").to_dict()
        self.assertEqual(ScrapeOptions.from_dict(data["options"]).wait_for_selector, ".product-container")
        self.assertEqual(data["selectors"][3]["type"], "image")


class TestSettings(unittest.TestCase):
    """Verify environment-driven defaults."""

    def test_environment_values(self):
        """Settings should be read from the environment."""
        env = {"SCRAPER_TIMEOUT_MS": "1500", "PROXY_LIST": "http://a:1, http://b:2", "BROWSER_HEADLESS": "false"}
        with mock.patch.dict(os.environ, env):
            settings = load_settings()
        self.assertEqual(settings.timeout_ms, 1500)
        self.assertEqual(settings.proxies, ["http://a:1", "http://b:2"])
        self.assertFalse(settings.browser_headless)

    def test_overrides(self):
        """Keyword overrides should beat the environment."""
        self.assertEqual(load_settings(qps=3.0).qps, 3.0)
        with self.assertRaises(AttributeError):
            load_settings(colour="blue")


if __name__ == "__main__":
    unittest.main()
