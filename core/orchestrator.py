"""
爬取编排器

把 ScrollStabilizer + QualityFilter + Catalog + CrawlCache 组合成完整的爬取 / 同步流程：

    Idle → CacheCheck → (命中 → Done)
                      | (未命中 → Rendering → Filtering → [还有页面? → Rendering]
                                → Reconciling → Persisted → Done)

- 同一指纹的并发爬取只执行一次（single-flight），后到的调用者等待同一个任务的结果
- 持久化成功之后才写缓存
- 持久化之前的任何失败都不会修改目录（多页爬取中任一页失败则整次作废）
"""
import asyncio
from typing import Dict, List, Optional

from loguru import logger
from tqdm import tqdm

from config import CrawlerConfig
from core.catalog import Catalog
from core.crawl_cache import CrawlCache
from core.exceptions import EmptyResultError
from core.models import CrawlResult, CrawlTarget, Image, Source, SyncResult, substitute_page
from core.quality_filter import QualityFilter
from core.renderer import Renderer, RenderSession
from core.scroll_stabilizer import ScrollStabilizer


class CrawlOrchestrator:
    """
    爬取编排器

    Example:
        orchestrator = CrawlOrchestrator(renderer, catalog, CrawlCache())
        result = await orchestrator.crawl(CrawlTarget.single("https://a.test"))
    """

    def __init__(
        self,
        renderer: Renderer,
        catalog: Catalog,
        cache: CrawlCache,
        quality_filter: Optional[QualityFilter] = None,
        stabilizer: Optional[ScrollStabilizer] = None,
        config: Optional[CrawlerConfig] = None,
    ):
        self.renderer = renderer
        self.catalog = catalog
        self.cache = cache
        self.quality_filter = quality_filter or QualityFilter()
        self.stabilizer = stabilizer or ScrollStabilizer()
        self.config = config or CrawlerConfig()

        # 指纹 → 进行中的爬取任务
        self._inflight: Dict[str, asyncio.Task] = {}
        self._sessions = asyncio.Semaphore(self.config.max_concurrent_sessions)

        self.stats = {
            'crawls_requested': 0,
            'cache_hits': 0,
            'inflight_joins': 0,
            'crawls_completed': 0,
            'crawls_failed': 0,
            'empty_results': 0,
            'pages_rendered': 0,
            'images_found': 0,
            'syncs': 0,
            'sync_images_added': 0,
        }

    # ==================== 爬取 ====================

    async def crawl(self, target: CrawlTarget) -> CrawlResult:
        """
        爬取目标并更新目录

        Returns:
            {newSource, newImages}；缓存命中时原样返回缓存的结果包

        Raises:
            EmptyResultError: 没有符合质量要求的图片
            RenderingError: 页面渲染失败
            PersistenceError: 目录写入失败
        """
        self.stats['crawls_requested'] += 1
        key = target.fingerprint

        cached = self.cache.get(key)
        if cached is not None:
            self.stats['cache_hits'] += 1
            logger.info(f"⚡ 返回缓存结果: {key}")
            return cached

        task = self._inflight.get(key)
        if task is not None:
            self.stats['inflight_joins'] += 1
            logger.info(f"⏳ 等待进行中的同一爬取: {key}")
        else:
            logger.info(f"🚀 缓存未命中，开始爬取: {key}")
            task = asyncio.create_task(self._crawl_uncached(target))
            self._inflight[key] = task
            task.add_done_callback(lambda finished: self._forget(key, finished))

        # 调用方取消等待不会取消共享的任务
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._inflight.get(key) is task:
            del self._inflight[key]
        if not task.cancelled() and task.exception() is not None:
            self.stats['crawls_failed'] += 1

    async def _crawl_uncached(self, target: CrawlTarget) -> CrawlResult:
        image_urls = await self._harvest(target.page_urls())
        logger.info(f"   ✓ 共 {len(image_urls)} 张不重复的图片")

        if not image_urls:
            self.stats['empty_results'] += 1
            raise EmptyResultError(f"No qualifying images found for {target.fingerprint}")

        source = Source.for_target(target)
        new_images = [Image.harvested(url, source, self.config.image_author) for url in image_urls]
        await self.catalog.add_crawl(source, new_images)

        result = CrawlResult(new_source=source, new_images=new_images)
        self.cache.put(target.fingerprint, result)
        self.stats['crawls_completed'] += 1
        logger.success(f"🎉 爬取完成: {source.name}，新增 {len(new_images)} 张图片")
        return result

    # ==================== 同步 ====================

    async def sync(self, source_id: str) -> SyncResult:
        """
        重新爬取来源的 URL，只记录新出现的图片（不读写缓存，不分页）

        Raises:
            NotFoundError: 来源不存在
            RenderingError: 页面渲染失败
        """
        self.stats['syncs'] += 1
        source = await self.catalog.get_source(source_id)
        url = substitute_page(source.url, 1, self.config.page_placeholder)
        logger.info(f"🔄 同步来源 {source.name}: {url}")

        found = await self._harvest([url])
        new_images = await self.catalog.add_sync_images(source, found, self.config.image_author)
        self.stats['sync_images_added'] += len(new_images)
        if new_images:
            logger.success(f"✅ 同步完成: 新增 {len(new_images)} 张图片")
        else:
            logger.info("ℹ️  同步完成: 没有新图片")
        return SyncResult(new_images=new_images)

    # ==================== 渲染 ====================

    async def _harvest(self, page_urls: List[str]) -> List[str]:
        """在一个渲染会话中依次处理全部页面，跨页去重"""
        found: Dict[str, None] = {}
        async with self._sessions:
            async with self.renderer.session() as session:
                pages = tqdm(page_urls, desc="Rendering pages", disable=len(page_urls) < 2)
                for url in pages:
                    for image_url in await self._harvest_page(session, url):
                        found.setdefault(image_url, None)
        return list(found)

    async def _harvest_page(self, session: RenderSession, url: str) -> List[str]:
        logger.info(f"📄 渲染页面: {url}")
        await self.stabilizer.stabilize(session, url)
        images = await session.collect_images()
        self.stats['pages_rendered'] += 1
        urls = self.quality_filter.select(images)
        self.stats['images_found'] += len(urls)
        return urls

    def get_statistics(self) -> Dict[str, int]:
        """获取统计信息"""
        return self.stats.copy()
