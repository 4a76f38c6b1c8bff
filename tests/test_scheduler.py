"""Tests for the crawl coordinator."""

import asyncio
import logging
from dataclasses import replace

import pytest

from url_crawler.crawler.link_filter import LinkFilter
from url_crawler.crawler.parser import ContentParser
from url_crawler.crawler.pipeline import FetchParsePipeline
from url_crawler.crawler.scheduler import CrawlerScheduler, PolitenessGate, crawl, run_crawl
from url_crawler.crawler.url_frontier import URLFrontier
from url_crawler.errors import ConfigError
from url_crawler.storage.visit_store import InMemoryVisitStore, VisitState
from url_crawler.testing import DictVisitStore, FakeFetcher, FIFOFrontier, html_page
from url_crawler.utils.monitoring import CrawlMetrics

SEED = "http://example.com/"


def complete_graph(size):
    """``size`` pages on one site, each linking to every page."""
    urls = [SEED] + [f"http://example.com/page-{i}" for i in range(1, size)]
    return {url: html_page(*urls) for url in urls}


def chain(*paths):
    """Pages where each links only to the next one."""
    urls = [f"http://example.com{path}" for path in paths]
    pages = {url: html_page(next_url) for url, next_url in zip(urls, urls[1:])}
    pages[urls[-1]] = html_page()
    return pages


def make_scheduler(config, fetcher, frontier=None, visit_store=None, metrics=None):
    pipeline = FetchParsePipeline(fetcher, ContentParser(), LinkFilter(SEED))
    return CrawlerScheduler(
        config,
        frontier if frontier is not None else FIFOFrontier(),
        visit_store if visit_store is not None else DictVisitStore(),
        pipeline,
        metrics
    )


class TestCrawlScenarios:
    """End-to-end crawls over fake sites."""

    @pytest.mark.asyncio
    async def test_duplicate_forms_and_external_links(self, fast_config):
        fetcher = FakeFetcher({
            SEED: html_page("/about", "http://example.com/about", "http://external.com/x"),
            "http://example.com/about": html_page(),
        })
        frontier = FIFOFrontier()

        records = await crawl(SEED, config=fast_config, fetcher=fetcher, frontier=frontier)

        assert set(records) == {"http://example.com/", "http://example.com/about"}
        assert all(record.state is VisitState.VISITED for record in records.values())
        assert records[SEED].urls_found == ["http://example.com/about"]
        assert not any("external.com" in url for url in frontier.pushed)
        assert fetcher.calls == {SEED: 1, "http://example.com/about": 1}

    @pytest.mark.asyncio
    async def test_three_workers_over_complete_graph(self, fast_config):
        pages = complete_graph(10)
        fetcher = FakeFetcher(pages, latency=0.005)
        config = replace(fast_config, worker_count=3)

        records = await crawl(SEED, config=config, fetcher=fetcher)

        assert len(records) == 10
        assert all(record.state is VisitState.VISITED for record in records.values())
        assert set(fetcher.calls) == set(pages)
        assert all(count == 1 for count in fetcher.calls.values())

    @pytest.mark.asyncio
    async def test_failed_fetch_is_terminal(self, fast_config):
        fetcher = FakeFetcher({
            SEED: html_page("/a", "/b"),
            "http://example.com/a": html_page("/"),
            # /b is missing and fails with a 404
        })
        config = replace(fast_config, worker_count=2)

        records = await crawl(SEED, config=config, fetcher=fetcher)

        failed = records["http://example.com/b"]
        assert failed.state is VisitState.VISITED
        assert failed.urls_found == []
        assert "404" in failed.error
        assert records["http://example.com/a"].urls_found == [SEED]
        assert records["http://example.com/a"].error is None
        assert fetcher.calls["http://example.com/b"] == 1

    @pytest.mark.asyncio
    async def test_parse_error_is_terminal(self, fast_config):
        fetcher = FakeFetcher({SEED: "%PDF-1.4"}, content_type='application/pdf')

        records = await crawl(SEED, config=fast_config, fetcher=fetcher)

        assert records[SEED].state is VisitState.VISITED
        assert records[SEED].urls_found == []
        assert "Non-HTML" in records[SEED].error

    @pytest.mark.asyncio
    async def test_seed_is_normalized(self, fast_config):
        fetcher = FakeFetcher({SEED: html_page()})

        records = await crawl("HTTP://Example.com", config=fast_config, fetcher=fetcher)

        assert list(records) == [SEED]

    @pytest.mark.asyncio
    async def test_real_components_under_concurrency(self, fast_config):
        pages = complete_graph(25)
        fetcher = FakeFetcher(pages, latency=0.002)
        config = replace(fast_config, worker_count=8)

        records = await crawl(
            SEED, config=config, fetcher=fetcher,
            frontier=URLFrontier(), visit_store=InMemoryVisitStore()
        )

        assert len(records) == 25
        assert all(record.visited for record in records.values())
        assert max(fetcher.calls.values()) == 1

    def test_run_crawl_blocks_until_done(self, fast_config):
        fetcher = FakeFetcher(chain("/", "/a", "/b"))

        records = run_crawl(SEED, 2, 0.0, config=fast_config, fetcher=fetcher)

        assert sorted(records) == ["http://example.com/", "http://example.com/a", "http://example.com/b"]
        assert all(record.visited for record in records.values())


class TestClaims:
    """Discarding frontier entries that were already claimed."""

    @pytest.mark.asyncio
    async def test_duplicate_frontier_entries_are_fetched_once(self, fast_config):
        fetcher = FakeFetcher({SEED: html_page()})
        frontier = FIFOFrontier([SEED, SEED])
        store = DictVisitStore()
        scheduler = make_scheduler(fast_config, fetcher, frontier, store)

        await scheduler.run(SEED)

        assert fetcher.calls[SEED] == 1
        assert store.claims == [(SEED, True), (SEED, False), (SEED, False)]
        assert scheduler.stats.claims_lost == 2

    @pytest.mark.asyncio
    async def test_links_back_to_visited_pages_are_not_requeued(self, fast_config):
        fetcher = FakeFetcher({
            SEED: html_page("/a"),
            "http://example.com/a": html_page("/", "/a"),
        })
        frontier = FIFOFrontier()

        await make_scheduler(fast_config, fetcher, frontier).run(SEED)

        assert frontier.pushed == [SEED, "http://example.com/a"]

    @pytest.mark.asyncio
    async def test_every_found_link_is_logged(self, fast_config, caplog):
        fetcher = FakeFetcher({
            SEED: html_page("/a"),
            "http://example.com/a": html_page("/", "/a"),
        })

        with caplog.at_level(logging.INFO, logger='url_crawler.crawler.scheduler'):
            await make_scheduler(fast_config, fetcher).run(SEED)

        found = [record.getMessage() for record in caplog.records
                 if "Found URL:" in record.getMessage()]
        assert len(found) == 3
        assert sum(message.endswith("Found URL: http://example.com/a") for message in found) == 2
        assert all(record.levelno == logging.INFO for record in caplog.records
                   if "Found URL:" in record.getMessage())


class TestTermination:
    """Detecting the end of the crawl."""

    @pytest.mark.asyncio
    async def test_all_workers_stop_and_none_in_flight(self, fast_config):
        fetcher = FakeFetcher(complete_graph(6), latency=0.005)
        config = replace(fast_config, worker_count=4)
        scheduler = make_scheduler(config, fetcher, URLFrontier(), InMemoryVisitStore())

        records = await asyncio.wait_for(scheduler.run(SEED), timeout=10)

        assert len(records) == 6
        assert scheduler.in_flight == 0
        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_idle_workers_wait_for_slow_page(self, fast_config):
        # The seed is slow; idle workers must not stop before it yields /a
        fetcher = FakeFetcher(chain("/", "/a"), latency=0.05)
        config = replace(fast_config, worker_count=4)

        records = await crawl(SEED, config=config, fetcher=fetcher)

        assert records["http://example.com/a"].visited

    @pytest.mark.asyncio
    async def test_unexpected_error_aborts_crawl(self, fast_config):
        fetcher = FakeFetcher({SEED: RuntimeError("boom")})
        config = replace(fast_config, worker_count=3)

        with pytest.raises(RuntimeError, match="boom"):
            await asyncio.wait_for(crawl(SEED, config=config, fetcher=fetcher), timeout=10)

    @pytest.mark.asyncio
    async def test_cannot_run_twice_at_once(self, fast_config):
        fetcher = FakeFetcher({SEED: html_page()}, latency=0.05)
        scheduler = make_scheduler(fast_config, fetcher)

        first = asyncio.create_task(scheduler.run(SEED))
        await asyncio.sleep(0.01)

        with pytest.raises(RuntimeError):
            await scheduler.run(SEED)
        await first


class TestLimits:
    """Optional page and depth limits."""

    @pytest.mark.asyncio
    async def test_max_pages(self, fast_config):
        fetcher = FakeFetcher(complete_graph(10))
        config = replace(fast_config, max_pages=3)
        store = DictVisitStore()

        await make_scheduler(config, fetcher, visit_store=store).run(SEED)

        states = list(store.states().values())
        assert states.count(VisitState.VISITED) == 3
        assert states.count(VisitState.DISCOVERED) == 7
        assert sum(fetcher.calls.values()) == 3

    @pytest.mark.asyncio
    async def test_max_depth(self, fast_config):
        fetcher = FakeFetcher(chain("/", "/a", "/b", "/c"))
        config = replace(fast_config, max_depth=1)

        records = await crawl(SEED, config=config, fetcher=fetcher)

        assert sorted(records) == ["http://example.com/", "http://example.com/a"]
        assert records["http://example.com/a"].urls_found == ["http://example.com/b"]


class TestPoliteness:
    """Pacing requests to the same host."""

    @pytest.mark.asyncio
    async def test_gate_delays_only_repeat_requests(self):
        gate = PolitenessGate(0.05)

        first = await gate.wait("http://example.com/a")
        second = await gate.wait("http://example.com/b")
        other_host = await gate.wait("http://other.example.com/")

        assert first == 0
        assert second > 0
        assert other_host == 0

    @pytest.mark.asyncio
    async def test_zero_delay_never_waits(self):
        gate = PolitenessGate(0)

        assert await gate.wait(SEED) == 0
        assert await gate.wait(SEED) == 0

    @pytest.mark.asyncio
    async def test_delay_is_shared_by_all_workers(self, fast_config):
        delay = 0.05
        fetcher = FakeFetcher(complete_graph(4))
        config = replace(fast_config, worker_count=3, politeness_delay=delay)

        await crawl(SEED, config=config, fetcher=fetcher)

        times = sorted(fetcher.request_times)
        gaps = [later - earlier for earlier, later in zip(times, times[1:])]
        assert len(times) == 4
        assert all(gap >= delay - 0.01 for gap in gaps)


class TestConfigurationErrors:
    """Invalid crawl parameters."""

    @pytest.mark.asyncio
    async def test_invalid_seed(self, fast_config):
        with pytest.raises(ConfigError):
            await crawl("ftp://example.com/", config=fast_config, fetcher=FakeFetcher({}))

    @pytest.mark.asyncio
    async def test_invalid_worker_count(self, fast_config):
        with pytest.raises(ConfigError):
            await crawl(SEED, worker_count=0, config=fast_config, fetcher=FakeFetcher({}))


class TestStatsAndMetrics:
    """Crawl statistics and Prometheus metrics."""

    @pytest.mark.asyncio
    async def test_stats(self, fast_config):
        fetcher = FakeFetcher({SEED: html_page("/a", "/b"), "http://example.com/a": html_page()})
        scheduler = make_scheduler(fast_config, fetcher)

        await scheduler.run(SEED)

        stats = scheduler.get_stats()
        assert stats['pages_visited'] == 3
        assert stats['links_discovered'] == 2
        assert stats['fetch_errors'] == 1
        assert stats['parse_errors'] == 0
        assert stats['in_flight'] == 0
        assert stats['is_running'] is False

    @pytest.mark.asyncio
    async def test_metrics(self, fast_config):
        fetcher = FakeFetcher({SEED: html_page("/a", "/b"), "http://example.com/a": html_page()})
        metrics = CrawlMetrics()

        await crawl(SEED, config=fast_config, fetcher=fetcher, metrics=metrics)

        assert metrics.value('crawler_pages_visited_total') == 3
        assert metrics.value('crawler_errors_total', error_type='fetch') == 1
        assert metrics.value('crawler_links_discovered_total') == 2
        assert metrics.value('crawler_in_flight_workers') == 0
        assert 'crawler_fetch_seconds' in metrics.export_text()
