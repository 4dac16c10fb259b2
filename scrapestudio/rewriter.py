"""Rewrites third-party HTML so it can be displayed inside an iframe."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from .base import BaseFetcher, validate_url
from .logging_utils import log_event
from .models import ScrapeOptions

logger = logging.getLogger(__name__)

URL_ATTRIBUTES = ("src", "href", "action", "data-src")
_SKIP_PREFIXES = ("data:", "#", "javascript:")

_CSS_URL = re.compile(r"""url\(\s*(['"]?)([^'")]+)\1\s*\)""", re.IGNORECASE)
_CSS_IMPORT = re.compile(r"""@import\s+(['"])([^'"]+)\1""", re.IGNORECASE)

CSP_POLICY = (
    "default-src * 'unsafe-inline' 'unsafe-eval' data: blob:; "
    "img-src * data: blob:; "
    "style-src * 'unsafe-inline'; "
    "script-src * 'unsafe-inline' 'unsafe-eval'; "
    "connect-src *;"
)

INTERCEPT_SCRIPT = """
window.addEventListener('click', function (e) {
  var target = e.target && e.target.closest ? e.target.closest('a') : null;
  if (target && target.href && !target.getAttribute('target')) {
    e.preventDefault();
    window.parent.postMessage({ type: 'link-click', href: target.href }, '*');
  }
}, true);
window.addEventListener('submit', function (e) {
  e.preventDefault();
  var form = e.target;
  var data = {};
  new FormData(form).forEach(function (value, key) { data[key] = value; });
  window.parent.postMessage({
    type: 'form-submit',
    action: form.action || window.location.href,
    method: form.method || 'GET',
    data: data
  }, '*');
}, true);
"""


def _should_rewrite(value: str) -> bool:
    lowered = value.strip().lower()
    return bool(lowered) and not lowered.startswith(_SKIP_PREFIXES)


def _absolute(value: str, origin_url: str) -> str:
    try:
        return urljoin(origin_url, value.strip())
    except ValueError:
        return value


def rewrite_css(css: str, origin_url: str) -> str:
    """Absolutise url(...) and @import "..." references in a stylesheet."""

    def fix_import(match: re.Match) -> str:
        return f'@import "{_absolute(match.group(2), origin_url)}"'

    def fix_url(match: re.Match) -> str:
        target = match.group(2)
        if not _should_rewrite(target):
            return match.group(0)
        return f'url("{_absolute(target, origin_url)}")'

    return _CSS_URL.sub(fix_url, _CSS_IMPORT.sub(fix_import, css))


def rewrite_for_embedding(html: str, origin_url: str) -> str:
    """Return `html` rewritten for safe display in an iframe served from elsewhere."""
    origin_url = validate_url(origin_url)
    soup = BeautifulSoup(html or "", "html.parser")

    if soup.html is None:
        wrapper = soup.new_tag("html")
        for node in list(soup.contents):
            wrapper.append(node.extract())
        soup.append(wrapper)
    head = soup.head
    if head is None:
        head = soup.new_tag("head")
        soup.html.insert(0, head)

    for attr in URL_ATTRIBUTES:
        for element in soup.find_all(attrs={attr: True}):
            value = element.get(attr)
            if isinstance(value, str) and _should_rewrite(value):
                element[attr] = _absolute(value, origin_url)

    for element in soup.find_all(style=True):
        style = element.get("style")
        if isinstance(style, str) and "url(" in style.lower():
            element["style"] = rewrite_css(style, origin_url)

    for block in soup.find_all("style"):
        css = block.string
        if css:
            block.string = rewrite_css(css, origin_url)

    for meta in soup.find_all("meta", attrs={"http-equiv": True}):
        if str(meta.get("http-equiv", "")).strip().lower() == "x-frame-options":
            meta.decompose()

    if soup.find("base") is None:
        head.insert(0, soup.new_tag("base", href=origin_url))
    csp = soup.new_tag("meta", attrs={"http-equiv": "Content-Security-Policy", "content": CSP_POLICY})
    head.insert(0, csp)

    script = soup.new_tag("script")
    script.string = INTERCEPT_SCRIPT
    head.append(script)

    return str(soup)


@dataclass(frozen=True)
class EmbeddedPage:
    # bytes for non-HTML resources such as images and fonts
    content: Union[str, bytes]
    content_type: Optional[str]
    base_url: str
    status_code: Optional[int]
    title: Optional[str] = None


def fetch_for_embedding(fetcher: BaseFetcher, url: str, options: Optional[ScrapeOptions] = None) -> EmbeddedPage:
    """Fetch `url` and, when it is HTML, rewrite it for iframe display.

    Anything else is passed through as the raw response bytes.
    """
    options = options or ScrapeOptions(headers={"Cache-Control": "no-cache", "Pragma": "no-cache"})
    result = fetcher.fetch(url, options)
    content_type = result.content_type or ""
    if "text/html" not in content_type.lower():
        return EmbeddedPage(
            content=result.body if result.body is not None else result.html,
            content_type=result.content_type,
            base_url=result.final_url,
            status_code=result.status_code,
        )
    title_tag = BeautifulSoup(result.html, "html.parser").title
    title = title_tag.get_text().strip() if title_tag is not None else None
    log_event(logger, logging.DEBUG, "page_rewritten", url=result.url, final_url=result.final_url)
    return EmbeddedPage(
        content=rewrite_for_embedding(result.html, result.final_url),
        content_type="text/html",
        base_url=result.final_url,
        status_code=result.status_code,
        title=title or result.final_url,
    )
