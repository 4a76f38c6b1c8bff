#!/usr/bin/env python3
"""
Main entry point for the URL crawler.
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, Optional

from url_crawler import __version__
from url_crawler.crawler.scheduler import crawl
from url_crawler.errors import ConfigError
from url_crawler.storage.visit_store import VisitRecord
from url_crawler.utils.config import Config, load_config
from url_crawler.utils.logger import log_system_info, setup_logging
from url_crawler.utils.monitoring import CrawlMetrics


class CrawlerApp:
    """Main application class for the crawler."""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.metrics: Optional[CrawlMetrics] = None

    def setup_signal_handlers(self, crawl_task: asyncio.Task):
        """Cancel the crawl on SIGINT/SIGTERM."""
        loop = asyncio.get_running_loop()

        def signal_handler(signum):
            self.logger.info(f"Received signal {signum}, initiating shutdown...")
            crawl_task.cancel()

        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, signal_handler, signum)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                pass

    async def run(self, config: Config) -> Optional[Dict[str, VisitRecord]]:
        """Run the crawler. Returns the final visit store, or None if interrupted."""
        crawler_config = config.crawler

        self.logger.info("=== URL CRAWLER STARTING ===")
        self.logger.info(f"Seed URL: {crawler_config.seed_url}")
        self.logger.info(f"Workers: {crawler_config.worker_count}")
        self.logger.info(f"Politeness delay: {crawler_config.politeness_delay}s")

        if config.monitoring.metrics_enabled:
            self.metrics = CrawlMetrics()
            self.metrics.start_server(config.monitoring.prometheus_port)

        crawl_task = asyncio.create_task(
            crawl(crawler_config.seed_url, config=crawler_config, metrics=self.metrics)
        )
        self.setup_signal_handlers(crawl_task)

        try:
            return await crawl_task
        except asyncio.CancelledError:
            self.logger.info("Crawl interrupted")
            return None
        finally:
            self.logger.info("=== URL CRAWLER FINISHED ===")


def build_config(args: argparse.Namespace) -> Config:
    """Load the config file, if any, and apply command-line overrides."""
    if args.config:
        config = load_config(args.config)
    else:
        config = Config()

    overrides = {
        'seed_url': args.url,
        'worker_count': args.workers,
        'politeness_delay': args.delay,
        'max_pages': args.max_pages,
        'max_depth': args.max_depth,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}
    config.crawler = replace(config.crawler, **overrides)

    if args.log_level:
        config.logging = replace(config.logging, level=args.log_level)

    if not config.crawler.seed_url:
        raise ConfigError("A seed URL is required (--url or crawler.seed_url)")

    config.validate()
    return config


def print_results(records: Dict[str, VisitRecord], as_json: bool = False):
    """Print the final visit store to stdout."""
    if as_json:
        payload = {url: record.to_dict() for url, record in sorted(records.items())}
        print(json.dumps(payload, ensure_ascii=False, indent=2))
        return

    for url, record in sorted(records.items()):
        suffix = f" ({record.error})" if record.error else ""
        print(f"{url} [{record.state.value}]{suffix}")
        for found in record.urls_found:
            print(f"    -> {found}")


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Crawl a site starting from a seed URL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py --url https://example.com               # Single worker, 2s delay
  python main.py --url https://example.com -w 4 -d 0.5   # Four workers
  python main.py --config config.yaml --print            # Print the visit store
        """
    )

    parser.add_argument('-u', '--url', help='URL to crawl')
    parser.add_argument('-w', '--workers', type=int, help='Number of concurrent workers')
    parser.add_argument('-d', '--delay', type=float,
                        help='Politeness delay (in seconds) between requests to the same host')
    parser.add_argument('--max-pages', type=int, help='Maximum number of pages to crawl')
    parser.add_argument('--max-depth', type=int, help='Maximum link depth from the seed URL')
    parser.add_argument('--config', help='Path to a YAML configuration file')
    parser.add_argument('-p', '--print', dest='print_results', action='store_true',
                        help='Print the visit store at the end of the crawl')
    parser.add_argument('--json', action='store_true',
                        help='Print the visit store as JSON (implies --print)')
    parser.add_argument('--log-level', help='Log level (DEBUG, INFO, WARNING, ...)')
    parser.add_argument('--version', action='version', version=f'URL Crawler {__version__}')

    args = parser.parse_args()

    if args.config and not Path(args.config).exists():
        print(f"Error: Configuration file '{args.config}' not found.", file=sys.stderr)
        return 1

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    setup_logging(config.logging)
    log_system_info()

    app = CrawlerApp()
    try:
        records = asyncio.run(app.run(config))
    except Exception as e:
        logging.getLogger(__name__).error(f"Fatal error: {e}", exc_info=True)
        return 1

    if records is None:
        return 1

    if args.print_results or args.json:
        print_results(records, as_json=args.json)
    return 0


if __name__ == '__main__':
    sys.exit(main())
