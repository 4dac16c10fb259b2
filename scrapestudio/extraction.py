"""Selector-driven and heuristic extraction over parsed HTML."""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

from .errors import SelectorError
from .logging_utils import log_event
from .models import ExtractedRecord, ExtractedValue, ExtractionMode, FormatOptions, ScrapeOptions, Selector, SelectorType

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Pruning rules for format hints
# ---------------------------------------------------------------------------

_NOISE_SELECTORS = "script, style, noscript, template"
_HEADER_SELECTORS = 'header, [role="banner"]'
_FOOTER_SELECTORS = 'footer, [role="contentinfo"]'
_AD_SELECTORS = (
    '.ad, .ads, .advert, .advertisement, .sponsored, ins.adsbygoogle, '
    '[id^="ad-"], [class^="ad-"], [data-ad], [data-ad-slot], iframe[src*="doubleclick"]'
)
_ARTICLE_SELECTORS = "article, .article, .content, .post"
_ARTICLE_TITLE_SELECTORS = "h1, h2, .title"

# Evaluated inside the page by the browser strategy; mirrors extract_selectors().
IN_PAGE_EXTRACT_JS = """
(selectors) => {
  const data = {};
  const errors = [];
  for (const s of selectors) {
    try {
      const els = document.querySelectorAll(s.selector);
      if (!els.length) continue;
      const first = els[0];
      let value = null;
      switch (s.type) {
        case "text": value = (first.textContent || "").trim(); break;
        case "html": value = first.innerHTML; break;
        case "attribute": value = first.getAttribute(s.attribute); break;
        case "image": value = first.getAttribute("src"); break;
        case "link": value = first.getAttribute("href"); break;
        case "list": value = Array.from(els).map((el) => (el.textContent || "").trim()); break;
      }
      if (value !== null && value !== undefined) data[s.key] = value;
    } catch (e) {
      errors.push({ selector: s.selector, error: String(e) });
    }
  }
  return { data, errors };
}
"""


def parse_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html or "", "html.parser")


def selector_payload(selectors: Iterable[Selector]) -> List[Dict[str, Any]]:
    """Serialisable selector list passed to IN_PAGE_EXTRACT_JS."""
    return [
        {"selector": s.selector, "type": s.type.value, "key": s.key, "attribute": s.attribute}
        for s in selectors
    ]


def extract_selectors(soup: BeautifulSoup, selectors: Sequence[Selector]) -> ExtractedRecord:
    """Apply every selector independently; failures and empty matches omit the key."""
    record: ExtractedRecord = {}
    for selector in selectors:
        try:
            value = _extract_one(soup, selector)
        except Exception as exc:  # noqa: BLE001
            error = SelectorError(selector.selector, exc)
            log_event(logger, logging.WARNING, "selector_failed", selector=selector.selector, error=str(error))
            continue
        if value is not None:
            record[selector.key] = value
    return record


def _extract_one(soup: BeautifulSoup, selector: Selector) -> Optional[ExtractedValue]:
    if selector.type is SelectorType.LIST:
        matches = soup.select(selector.selector)
        if not matches:
            return None
        return [el.get_text().strip() for el in matches]

    element = soup.select_one(selector.selector)
    if element is None:
        return None
    if selector.type is SelectorType.TEXT:
        return element.get_text().strip()
    if selector.type is SelectorType.HTML:
        return element.decode_contents()
    if selector.type is SelectorType.ATTRIBUTE:
        return _attr(element, selector.attribute or "")
    if selector.type is SelectorType.IMAGE:
        return _attr(element, "src")
    if selector.type is SelectorType.LINK:
        return _attr(element, "href")
    raise SelectorError(selector.selector, ValueError(f"unsupported type {selector.type}"))


def _attr(element: Tag, name: str) -> Optional[str]:
    value = element.get(name)
    if value is None:
        return None
    # bs4 returns multi-valued attributes such as class as lists
    if isinstance(value, list):
        return " ".join(value)
    return value


def semantic_extract(soup: BeautifulSoup) -> ExtractedRecord:
    """Best-effort structure detection: tables, lists and article-like blocks."""
    sections: ExtractedRecord = {}

    tables = []
    for table in soup.find_all("table"):
        rows = []
        for tr in table.find_all("tr"):
            cells = [cell.get_text().strip() for cell in tr.find_all(["td", "th"])]
            if cells:
                rows.append(cells)
        if rows:
            tables.append(rows)
    if tables:
        sections["tables"] = tables

    lists = []
    for lst in soup.find_all(["ul", "ol"]):
        items = [li.get_text().strip() for li in lst.find_all("li")]
        if items:
            lists.append(items)
    if lists:
        sections["lists"] = lists

    articles = []
    for block in soup.select(_ARTICLE_SELECTORS):
        heading = block.select_one(_ARTICLE_TITLE_SELECTORS)
        articles.append({
            "title": heading.get_text().strip() if heading is not None else "",
            "content": block.get_text().strip(),
        })
    if articles:
        sections["articles"] = articles

    return sections


def prune(soup: BeautifulSoup, mode: ExtractionMode, hints: FormatOptions) -> BeautifulSoup:
    """Drop boilerplate according to format hints. `raw` mode leaves the tree untouched."""
    if mode is ExtractionMode.RAW:
        return soup
    groups = [_NOISE_SELECTORS]
    if hints.skip_headers:
        groups.append(_HEADER_SELECTORS)
    if hints.skip_footers:
        groups.append(_FOOTER_SELECTORS)
    if hints.exclude_ads:
        groups.append(_AD_SELECTORS)
    for group in groups:
        for element in soup.select(group):
            if not element.decomposed:
                element.decompose()
    return soup


def find_next_page(soup: BeautifulSoup, pagination_selector: Optional[str], page_url: str) -> Optional[str]:
    """Absolute URL of the next page link, or None."""
    if not pagination_selector:
        return None
    try:
        link = soup.select_one(pagination_selector)
    except Exception as exc:  # noqa: BLE001
        log_event(logger, logging.WARNING, "selector_failed", selector=pagination_selector, error=str(exc))
        return None
    if link is None:
        return None
    href = _attr(link, "href")
    if not href or not href.strip():
        return None
    return urljoin(page_url, href.strip())


def build_record(
    soup: BeautifulSoup,
    selectors: Sequence[Selector],
    options: ScrapeOptions,
    in_page: Optional[ExtractedRecord] = None,
) -> ExtractedRecord:
    """Combine semantic sections with selector output for one page.

    Selectors run against the unpruned tree, so anything the caller names
    explicitly is found even when format hints would strip it. Pruning only
    shapes the semantic sections.

    `in_page` carries selector values already evaluated inside a browser page;
    when present the selectors are not re-applied to the static tree.
    """
    selected = in_page if in_page is not None else extract_selectors(soup, selectors)
    record: ExtractedRecord = {}
    if options.extraction_mode is ExtractionMode.SEMANTIC:
        record.update(semantic_extract(prune(soup, options.extraction_mode, options.format_options)))
    record.update(selected)
    return record


# ---------------------------------------------------------------------------
# Selector suggestions
# ---------------------------------------------------------------------------

_SUGGESTIONS = (
    ('.product, [itemtype*="Product"], .item', "container", "product"),
    ('h1, .title, .product-title, [itemprop="name"]', "text", "title"),
    ('.price, [itemprop="price"], .product-price', "text", "price"),
    ('img.product-image, [itemprop="image"], .main-image', "image", "image"),
    ('.description, [itemprop="description"], .product-description', "text", "description"),
    ('a.product-link, [itemprop="url"]', "link", "productUrl"),
)


def suggest_selectors(html: str) -> List[Dict[str, str]]:
    """Suggest common selectors that match something in `html`."""
    soup = parse_html(html)
    return [
        {"selector": css, "type": kind, "name": name}
        for css, kind, name in _SUGGESTIONS
        if soup.select_one(css) is not None
    ]
