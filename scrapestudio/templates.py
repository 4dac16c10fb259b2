"""Ready-made selector sets for common page layouts."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from .models import ScrapeOptions, Selector, SelectorType


@dataclass(frozen=True)
class ScrapingTemplate:
    name: str
    selectors: Tuple[Selector, ...]
    options: ScrapeOptions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "selectors": [s.to_dict() for s in self.selectors],
            "options": self.options.to_dict(),
        }


SCRAPING_TEMPLATES: Tuple[ScrapingTemplate, ...] = (
    ScrapingTemplate(
        name="E-commerce Product",
        selectors=(
            Selector('h1, .product-title, [itemprop="name"]', SelectorType.TEXT, "title"),
            Selector('.price, [itemprop="price"]', SelectorType.TEXT, "price"),
            Selector('.description, [itemprop="description"]', SelectorType.TEXT, "description"),
            Selector('.product-image, [itemprop="image"]', SelectorType.IMAGE, "image"),
            Selector('.rating, [itemprop="ratingValue"]', SelectorType.TEXT, "rating"),
            Selector('.reviews, [itemprop="reviewCount"]', SelectorType.TEXT, "reviewCount"),
        ),
        options=ScrapeOptions.from_dict(
            {"waitForSelector": ".product-container", "javascript": True, "extractionMode": "cleaned"}
        ),
    ),
    ScrapingTemplate(
        name="News Article",
        selectors=(
            Selector('h1, .article-title, [itemprop="headline"]', SelectorType.TEXT, "title"),
            Selector('.article-content, [itemprop="articleBody"]', SelectorType.TEXT, "content"),
            Selector('.author, [itemprop="author"]', SelectorType.TEXT, "author"),
            Selector('.published-date, [itemprop="datePublished"]', SelectorType.TEXT, "date"),
            Selector('.featured-image, [itemprop="image"]', SelectorType.IMAGE, "image"),
        ),
        options=ScrapeOptions.from_dict(
            {
                "waitForSelector": "article",
                "javascript": True,
                "extractionMode": "cleaned",
                "formatOptions": {"skipHeaders": True, "skipFooters": True, "excludeAds": True},
            }
        ),
    ),
    ScrapingTemplate(
        name="Search Results",
        selectors=(
            Selector(".result, .search-result", SelectorType.LIST, "results"),
            Selector(".result-title, .search-result-title", SelectorType.LIST, "titles"),
            Selector(".result-link, .search-result-link", SelectorType.LINK, "links"),
            Selector(".result-description, .search-result-description", SelectorType.LIST, "descriptions"),
        ),
        options=ScrapeOptions.from_dict(
            {
                "pagination": True,
                "paginationSelector": '.next-page, .pagination a[rel="next"]',
                "maxPages": 5,
                "javascript": True,
            }
        ),
    ),
)


def get_template(name: str) -> Optional[ScrapingTemplate]:
    """Look a template up by name, case-insensitively."""
    wanted = name.strip().lower()
    for template in SCRAPING_TEMPLATES:
        if template.name.lower() == wanted:
            return template
    return None
