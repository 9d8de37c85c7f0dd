"""
CrawlOrchestrator 单元测试

用假渲染器代替浏览器：每个 URL 对应一组预设的图片元素。
"""
import asyncio
import shutil
import tempfile
import unittest
from contextlib import asynccontextmanager
from pathlib import Path
from unittest.mock import AsyncMock, patch

from config import CrawlerConfig, DatabaseConfig
from core.catalog import Catalog
from core.crawl_cache import CrawlCache
from core.exceptions import EmptyResultError, NotFoundError, PersistenceError, RenderingError
from core.models import CrawlTarget
from core.orchestrator import CrawlOrchestrator
from core.renderer import RenderedImage, Renderer, RenderSession
from core.scroll_stabilizer import ScrollStabilizer
from core.storage import Storage


def big(src):
    return RenderedImage(src, 800, 600)


def icon(src):
    return RenderedImage(src, 16, 16)


class FakeSession(RenderSession):
    def __init__(self, renderer):
        self.renderer = renderer
        self.current = None

    async def goto(self, url):
        await asyncio.sleep(0)
        self.renderer.visited.append(url)
        if url in self.renderer.failing:
            raise RenderingError(f"Timed out: {url}")
        self.current = url

    async def scroll_height(self):
        return 0

    async def scroll_to_bottom(self):
        pass

    async def collect_images(self):
        return list(self.renderer.pages.get(self.current, []))


class FakeRenderer(Renderer):
    def __init__(self, pages=None, failing=()):
        self.pages = pages or {}
        self.failing = set(failing)
        self.visited = []
        self.sessions_opened = 0
        self.sessions_closed = 0

    @asynccontextmanager
    async def session(self):
        self.sessions_opened += 1
        try:
            yield FakeSession(self)
        finally:
            self.sessions_closed += 1


class OrchestratorTestCase(unittest.TestCase):
    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.storage = Storage(DatabaseConfig(sqlite_path=Path(self.test_dir) / "catalog.db"))
        self.storage.connect()
        self.catalog = Catalog(self.storage)
        self.cache = CrawlCache()
        self.renderer = FakeRenderer()
        self.orchestrator = CrawlOrchestrator(
            renderer=self.renderer,
            catalog=self.catalog,
            cache=self.cache,
            stabilizer=ScrollStabilizer(scroll_interval=0),
            config=CrawlerConfig(),
        )

    def tearDown(self):
        self.storage.close()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def images(self):
        return asyncio.run(self.catalog.list_images())

    def sources(self):
        return asyncio.run(self.catalog.list_sources())


class TestCrawlSingleUrl(OrchestratorTestCase):
    def setUp(self):
        super().setUp()
        self.renderer.pages["https://gallery.test/art"] = [
            big("https://gallery.test/a.jpg"),
            icon("https://gallery.test/logo.png"),
            big("https://gallery.test/b.jpg"),
            RenderedImage("https://gallery.test/c.jpg", 300, 80),
            big("https://gallery.test/a.jpg"),
        ]

    def test_fresh_crawl(self):
        result = asyncio.run(self.orchestrator.crawl(CrawlTarget.single("https://gallery.test/art")))

        self.assertEqual(result.new_source.url, "https://gallery.test/art")
        self.assertEqual(result.new_source.name, "gallery.test")
        self.assertEqual(
            [image.src for image in result.new_images],
            ["https://gallery.test/a.jpg", "https://gallery.test/b.jpg"],
        )
        for image in result.new_images:
            self.assertEqual(image.source_id, result.new_source.id)
            self.assertEqual(image.alt, "Image from gallery.test")

        self.assertEqual(self.sources(), [result.new_source])
        self.assertEqual([image.id for image in self.images()], [image.id for image in result.new_images])
        self.assertIn("https://gallery.test/art", self.cache)
        self.assertEqual(self.renderer.sessions_opened, 1)
        self.assertEqual(self.renderer.sessions_closed, 1)

    def test_repeat_within_ttl_hits_cache(self):
        target = CrawlTarget.single("https://gallery.test/art")
        first = asyncio.run(self.orchestrator.crawl(target))
        second = asyncio.run(self.orchestrator.crawl(target))

        self.assertEqual(second, first)
        self.assertEqual(self.renderer.sessions_opened, 1)
        self.assertEqual(len(self.sources()), 1)
        self.assertEqual(len(self.images()), 2)
        self.assertEqual(self.orchestrator.get_statistics()['cache_hits'], 1)

    def test_repeat_after_expiry_creates_new_source(self):
        now = [0.0]
        self.cache._clock = lambda: now[0]
        target = CrawlTarget.single("https://gallery.test/art")
        asyncio.run(self.orchestrator.crawl(target))
        now[0] += self.cache.ttl_seconds
        asyncio.run(self.orchestrator.crawl(target))

        self.assertEqual(self.renderer.sessions_opened, 2)
        self.assertEqual(len(self.sources()), 2)

    def test_single_flight(self):
        target = CrawlTarget.single("https://gallery.test/art")

        async def run():
            return await asyncio.gather(
                self.orchestrator.crawl(target),
                self.orchestrator.crawl(target),
                self.orchestrator.crawl(target),
            )

        results = asyncio.run(run())

        self.assertEqual(self.renderer.sessions_opened, 1)
        self.assertTrue(all(result == results[0] for result in results))
        self.assertEqual(len(self.sources()), 1)
        self.assertEqual(self.orchestrator.get_statistics()['inflight_joins'], 2)
        self.assertEqual(self.orchestrator._inflight, {})

    def test_three_distinct_and_one_duplicate_gives_three(self):
        self.renderer.pages["https://dup.test/"] = [
            big("https://dup.test/1.jpg"),
            big("https://dup.test/2.jpg"),
            big("https://dup.test/1.jpg"),
            big("https://dup.test/3.jpg"),
        ]
        result = asyncio.run(self.orchestrator.crawl(CrawlTarget.single("https://dup.test/")))
        self.assertEqual(len(result.new_images), 3)
        self.assertEqual(len(self.images()), 3)


class TestCrawlMultiPage(OrchestratorTestCase):
    def setUp(self):
        super().setUp()
        self.renderer.pages.update({
            "https://shop.test/list?page=1": [big("https://shop.test/1.jpg"), big("https://shop.test/2.jpg")],
            "https://shop.test/list?page=2": [big("https://shop.test/2.jpg"), big("https://shop.test/3.jpg")],
            "https://shop.test/list?page=3": [icon("https://shop.test/icon.png"), big("https://shop.test/4.jpg")],
        })
        self.target = CrawlTarget.paged("https://shop.test/list?page={page}", 1, 3)

    def test_pages_rendered_in_one_session_and_merged(self):
        result = asyncio.run(self.orchestrator.crawl(self.target))

        self.assertEqual(self.renderer.visited, [
            "https://shop.test/list?page=1",
            "https://shop.test/list?page=2",
            "https://shop.test/list?page=3",
        ])
        self.assertEqual(self.renderer.sessions_opened, 1)
        self.assertEqual(result.new_source.url, "https://shop.test/list?page={page}")
        self.assertEqual(result.new_source.name, "shop.test")
        self.assertEqual(
            [image.src for image in result.new_images],
            ["https://shop.test/1.jpg", "https://shop.test/2.jpg", "https://shop.test/3.jpg", "https://shop.test/4.jpg"],
        )
        self.assertIn("https://shop.test/list?page={page}-1-3", self.cache)

    def test_failure_on_any_page_discards_crawl(self):
        self.renderer.failing.add("https://shop.test/list?page=2")

        with self.assertRaises(RenderingError):
            asyncio.run(self.orchestrator.crawl(self.target))

        self.assertEqual(self.sources(), [])
        self.assertEqual(self.images(), [])
        self.assertEqual(len(self.cache), 0)
        self.assertEqual(self.renderer.sessions_closed, 1)
        self.assertEqual(self.orchestrator.get_statistics()['crawls_failed'], 1)

    def test_three_pages_of_two_without_overlap_gives_six(self):
        for page in (1, 2, 3):
            self.renderer.pages[f"https://grid.test/{page}"] = [
                big(f"https://grid.test/{page}-a.jpg"),
                big(f"https://grid.test/{page}-b.jpg"),
            ]
        result = asyncio.run(self.orchestrator.crawl(CrawlTarget.paged("https://grid.test/{page}", 1, 3)))
        self.assertEqual(len(result.new_images), 6)
        self.assertEqual(len({image.id for image in result.new_images}), 6)


class TestCrawlEmptyAndFailures(OrchestratorTestCase):
    def test_empty_result(self):
        self.renderer.pages["https://icons.test"] = [icon("https://icons.test/1.png")]

        with self.assertRaises(EmptyResultError):
            asyncio.run(self.orchestrator.crawl(CrawlTarget.single("https://icons.test")))

        self.assertEqual(self.sources(), [])
        self.assertNotIn("https://icons.test", self.cache)

    def test_cache_written_only_after_persistence(self):
        self.renderer.pages["https://a.test"] = [big("https://a.test/1.jpg")]

        with patch.object(self.catalog, "add_crawl", AsyncMock(side_effect=PersistenceError("disk full"))):
            with self.assertRaises(PersistenceError):
                asyncio.run(self.orchestrator.crawl(CrawlTarget.single("https://a.test")))

        self.assertEqual(len(self.cache), 0)

    def test_failed_crawl_can_be_retried(self):
        self.renderer.failing.add("https://a.test")
        with self.assertRaises(RenderingError):
            asyncio.run(self.orchestrator.crawl(CrawlTarget.single("https://a.test")))

        self.renderer.failing.clear()
        self.renderer.pages["https://a.test"] = [big("https://a.test/1.jpg")]
        result = asyncio.run(self.orchestrator.crawl(CrawlTarget.single("https://a.test")))
        self.assertEqual(len(result.new_images), 1)


class TestSync(OrchestratorTestCase):
    def test_sync_adds_only_new_images(self):
        url = "https://news.test/"
        self.renderer.pages[url] = [big("https://news.test/1.jpg")]
        source = asyncio.run(self.orchestrator.crawl(CrawlTarget.single(url))).new_source

        self.renderer.pages[url] = [big("https://news.test/2.jpg"), big("https://news.test/1.jpg")]
        first = asyncio.run(self.orchestrator.sync(source.id))
        second = asyncio.run(self.orchestrator.sync(source.id))

        self.assertEqual([image.src for image in first.new_images], ["https://news.test/2.jpg"])
        self.assertEqual(first.new_images[0].source_id, source.id)
        self.assertEqual(second.new_images, [])
        self.assertEqual(self.images()[0].src, "https://news.test/2.jpg")
        self.assertEqual(len(self.images()), 2)

    def test_sync_bypasses_cache(self):
        url = "https://news.test/"
        self.renderer.pages[url] = [big("https://news.test/1.jpg")]
        source = asyncio.run(self.orchestrator.crawl(CrawlTarget.single(url))).new_source
        cached = self.cache.get(url)

        asyncio.run(self.orchestrator.sync(source.id))

        self.assertEqual(self.renderer.sessions_opened, 2)
        self.assertIs(self.cache.get(url), cached)

    def test_sync_pattern_source_renders_first_page(self):
        self.renderer.pages["https://shop.test/p/1"] = [big("https://shop.test/a.jpg")]
        self.renderer.pages["https://shop.test/p/2"] = [big("https://shop.test/b.jpg")]
        target = CrawlTarget.paged("https://shop.test/p/{page}", 1, 2)
        source = asyncio.run(self.orchestrator.crawl(target)).new_source

        self.renderer.visited.clear()
        result = asyncio.run(self.orchestrator.sync(source.id))

        self.assertEqual(self.renderer.visited, ["https://shop.test/p/1"])
        self.assertEqual(result.new_images, [])

    def test_sync_unknown_source(self):
        with self.assertRaises(NotFoundError):
            asyncio.run(self.orchestrator.sync("missing"))
        self.assertEqual(self.renderer.sessions_opened, 0)


if __name__ == "__main__":
    unittest.main()
