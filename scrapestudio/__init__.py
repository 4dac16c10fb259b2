"""Scraping engine package.

Provides a priority job queue, static and headless-browser fetch strategies,
proxy and identity rotation, selector extraction, pagination, link discovery,
dataset export and an iframe-safe HTML rewriter.

Key modules:
    service         -- ScrapeStudio facade wiring everything from Settings
    orchestrator    -- ScrapeOrchestrator priority queue and retry policy
    pipeline        -- ScrapePipeline: fetch, extract, paginate one job
    base            -- BaseFetcher abstract class
    fetchers        -- StaticFetcher, BrowserFetcher concrete strategies
    factory         -- FetcherFactory for choosing a strategy
    browser_pool    -- BrowserPool of headless Chromium instances
    rotation        -- ProxyPool and IdentityPool with health tracking
    extraction      -- selector, semantic and cleaning extraction
    crawl           -- pagination merge and UrlDiscoverer
    export          -- json, csv, sql and vector serializers
    rewriter        -- rewrite_for_embedding and fetch_for_embedding
    templates       -- ready-made selector sets
    models          -- Selector, ScrapeOptions, ScrapeJob, Proxy, Identity
    rate_limiter    -- RateLimiter for per-host QPS throttling
    storage         -- StorageBase, MemoryStorage and JsonlStorage
    config          -- Settings loaded from the environment
    errors          -- ScraperError hierarchy
"""
