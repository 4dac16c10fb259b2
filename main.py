from __future__ import annotations

import argparse
import json
import sys
from typing import List, Optional, Union

from scrapestudio.config import load_settings
from scrapestudio.errors import ScraperError
from scrapestudio.export import FORMATS
from scrapestudio.logging_utils import configure_logging
from scrapestudio.service import ScrapeStudio
from scrapestudio.templates import get_template


def _load_json(path: Optional[str]):
    if not path:
        return None
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _load_urls(path: str, limit: int) -> List[str]:
    urls: List[str] = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            url = line.strip()
            if not url or url.startswith("#"):
                continue
            urls.append(url)
            if len(urls) >= limit:
                break
    if not urls:
        raise ValueError(f"No URLs found in {path}")
    return urls


def _write_output(text: Union[str, bytes], path: Optional[str]) -> None:
    if isinstance(text, bytes):
        if path:
            with open(path, "wb") as f:
                f.write(text)
        else:
            sys.stdout.buffer.write(text)
        return
    if path:
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
    else:
        sys.stdout.write(text if text.endswith("\n") else text + "\n")


def cmd_scrape(args: argparse.Namespace) -> int:
    selectors = _load_json(args.selectors) or []
    options = _load_json(args.options) or {}
    if args.template:
        template = get_template(args.template)
        if template is None:
            raise ValueError(f"unknown template: {args.template}")
        selectors = selectors or [s.to_dict() for s in template.selectors]
        options = {**template.options.to_dict(), **options}
    if args.javascript:
        options["javascript"] = True

    urls = list(args.urls)
    if args.url_file:
        urls.extend(_load_urls(args.url_file, args.limit))
    if not urls:
        raise ValueError("no URLs given")

    settings = load_settings(results_path=args.results) if args.results else load_settings()
    with ScrapeStudio(settings) as studio:
        job_ids = studio.submit_batch(urls, selectors, options, priority=args.priority)
        studio.wait_idle(timeout=args.wait)

        ok = 0
        fail = 0
        records = []
        for job_id in job_ids:
            job = studio.get_job(job_id)
            if job.status == "completed":
                ok += 1
                stored = studio.get_result(job_id) or {}
                records.append({"url": job.url, **(stored.get("data") or {})})
            elif job.status == "failed":
                fail += 1
            print(
                f"job={job.id} url={job.url} status={job.status.value} "
                f"retries={job.retry_count} error={job.error}",
                file=sys.stderr,
            )

        if records:
            _write_output(studio.export_dataset(records, args.format), args.output)
    print(f"\nDONE: success={ok} fail={fail} total={len(job_ids)}", file=sys.stderr)
    return 0 if fail == 0 else 1


def cmd_discover(args: argparse.Namespace) -> int:
    options = {
        "maxDepth": args.max_depth,
        "maxUrls": args.max_urls,
        "urlPattern": args.pattern,
        "sameDomain": not args.any_domain,
        "javascript": args.javascript,
    }
    with ScrapeStudio(autostart=False) as studio:
        for url in studio.discover_urls(args.seed, options):
            print(url)
    return 0


def cmd_export(args: argparse.Namespace) -> int:
    data = _load_json(args.input)
    opts = {"table_name": args.table} if args.format == "sql" else {}
    with ScrapeStudio(autostart=False) as studio:
        _write_output(studio.export_dataset(data, args.format, **opts), args.output)
    return 0


def cmd_rewrite(args: argparse.Namespace) -> int:
    with ScrapeStudio(autostart=False) as studio:
        if args.html:
            with open(args.html, "r", encoding="utf-8") as f:
                content = studio.rewrite_for_embedding(f.read(), args.url)
        else:
            content = studio.fetch_for_embedding(args.url).content
    _write_output(content, args.output)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="scrapestudio")
    parser.add_argument("--log-level", default=None, help="Logging level (defaults to LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    scrape = sub.add_parser("scrape", help="Queue scrape jobs and wait for them to finish")
    scrape.add_argument("urls", nargs="*", help="URLs to scrape")
    scrape.add_argument("--url-file", help="File with one URL per line")
    scrape.add_argument("--limit", type=int, default=100, help="Max number of URLs to load from --url-file")
    scrape.add_argument("--selectors", help="JSON file with a list of selectors")
    scrape.add_argument("--options", help="JSON file with scrape options")
    scrape.add_argument("--template", help="Name of a built-in template, e.g. 'News Article'")
    scrape.add_argument("--javascript", action="store_true", help="Render pages in a headless browser")
    scrape.add_argument("--priority", type=int, default=1, help="Job priority (higher runs first)")
    scrape.add_argument("--results", help="JSONL file for stored results")
    scrape.add_argument("--format", choices=FORMATS, default="json", help="Output format for scraped records")
    scrape.add_argument("--output", help="Write records here instead of stdout")
    scrape.add_argument("--wait", type=float, default=None, help="Seconds to wait for the queue to drain")
    scrape.set_defaults(func=cmd_scrape)

    discover = sub.add_parser("discover", help="Breadth-first link discovery from a seed URL")
    discover.add_argument("seed")
    discover.add_argument("--max-depth", type=int, default=1)
    discover.add_argument("--max-urls", type=int, default=100)
    discover.add_argument("--pattern", help="Regex a discovered URL must match")
    discover.add_argument("--any-domain", action="store_true", help="Follow links to other hosts")
    discover.add_argument("--javascript", action="store_true")
    discover.set_defaults(func=cmd_discover)

    export = sub.add_parser("export", help="Convert a JSON dataset to another format")
    export.add_argument("input", help="JSON file holding a record or a list of records")
    export.add_argument("--format", choices=FORMATS, default="csv")
    export.add_argument("--table", default="scraped_data", help="Table name for sql output")
    export.add_argument("--output")
    export.set_defaults(func=cmd_export)

    rewrite = sub.add_parser("rewrite", help="Rewrite a page for display inside an iframe")
    rewrite.add_argument("url", help="Page URL (also the base for relative links)")
    rewrite.add_argument("--html", help="Rewrite this local file instead of fetching the URL")
    rewrite.add_argument("--output")
    rewrite.set_defaults(func=cmd_rewrite)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level or load_settings().log_level)
    try:
        return args.func(args)
    except (ScraperError, ValueError, OSError) as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
