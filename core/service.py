"""
采集服务

进程级的服务对象：持有 Storage / Catalog / CrawlCache / Renderer / CrawlOrchestrator，
对外提供全部操作（CLI 只和这里打交道）。

Example:
    async with create_service(config) as service:
        result = await service.crawl({"url": "https://example.com"})
"""
import asyncio
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from config import Config, config as default_config
from core.catalog import Catalog
from core.crawl_cache import CrawlCache
from core.downloader import ImageDownloader
from core.exceptions import HarvesterError, ValidationError
from core.models import CatalogImage, CrawlRequest, CrawlResult, Source, SyncResult, validate_http_url
from core.orchestrator import CrawlOrchestrator
from core.quality_filter import QualityFilter
from core.renderer import Renderer, SeleniumRenderer
from core.scroll_stabilizer import ScrollStabilizer
from core.storage import Storage

DELETE_SOURCE_MESSAGE = "Source removed. Favorited images were kept."


class HarvestService:
    """图片采集服务"""

    def __init__(
        self,
        config: Optional[Config] = None,
        renderer: Optional[Renderer] = None,
        storage: Optional[Storage] = None,
        cache: Optional[CrawlCache] = None,
        downloader_factory: Optional[Callable[[], ImageDownloader]] = None,
    ):
        self.config = config or default_config
        self.storage = storage or Storage(self.config.database)
        self.catalog = Catalog(self.storage)
        self.cache = cache or CrawlCache(ttl_seconds=self.config.cache.ttl_seconds)
        self.renderer = renderer or SeleniumRenderer(self.config.renderer)
        self.orchestrator = CrawlOrchestrator(
            renderer=self.renderer,
            catalog=self.catalog,
            cache=self.cache,
            quality_filter=QualityFilter.from_config(self.config.filter),
            stabilizer=ScrollStabilizer.from_config(self.config.renderer),
            config=self.config.crawler,
        )
        self._downloader_factory = downloader_factory or (
            lambda: ImageDownloader(self.config.crawler, self.config.renderer.rotate_user_agent)
        )

    async def __aenter__(self):
        """异步上下文管理器"""
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.stop()

    async def start(self):
        """连接目录数据库"""
        if not self.storage.is_connected:
            self.storage.connect()
        logger.info("⚙️  采集服务已启动")

    async def stop(self):
        """关闭目录数据库"""
        self.storage.close()
        logger.info(f"📊 编排统计: {self.orchestrator.get_statistics()}")

    # ==================== 爬取 ====================

    async def crawl(self, request: Union[CrawlRequest, Dict[str, Any]]) -> CrawlResult:
        """
        爬取一个 URL 或一组分页 URL

        Args:
            request: CrawlRequest 或 {url} / {urlPattern, startPage, endPage} 字典

        Raises:
            ValidationError: 请求不合法（不会产生任何副作用）
        """
        if not isinstance(request, CrawlRequest):
            try:
                request = CrawlRequest(**request)
            except PydanticValidationError as e:
                raise ValidationError(f"Invalid crawl request: {e.errors()[0]['msg']}") from e
        target = request.to_target(self.config.crawler.page_placeholder)
        return await self.orchestrator.crawl(target)

    async def crawl_batch(
        self,
        requests: Sequence[Union[CrawlRequest, Dict[str, Any]]],
    ) -> List[Union[CrawlResult, HarvesterError]]:
        """
        在同一个服务内并发执行一批爬取请求

        相同目标只渲染一次：后到的请求加入进行中的爬取或命中缓存。
        某个请求的 HarvesterError 作为该位置的结果返回，不影响其他请求。

        Returns:
            与 requests 一一对应的 CrawlResult 或 HarvesterError
        """
        results = await asyncio.gather(
            *(self.crawl(request) for request in requests),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException) and not isinstance(result, HarvesterError):
                raise result
        failed = sum(isinstance(result, HarvesterError) for result in results)
        logger.info(f"📦 批量爬取完成: {len(results) - failed} 成功, {failed} 失败")
        return results

    async def sync(self, source_id: str) -> SyncResult:
        return await self.orchestrator.sync(source_id)

    # ==================== 目录 ====================

    async def list_sources(self) -> List[Source]:
        return await self.catalog.list_sources()

    async def delete_source(self, source_id: str) -> Dict[str, Any]:
        """
        删除来源（保留收藏图片），并清理与该来源相关的缓存

        Raises:
            NotFoundError: 来源不存在
        """
        source = await self.catalog.delete_source(source_id)
        self.cache.invalidate_source(source)
        return {"success": True, "message": DELETE_SOURCE_MESSAGE}

    async def list_images(self, favorites_only: bool = False) -> List[CatalogImage]:
        images = await self.catalog.list_images()
        if favorites_only:
            images = [image for image in images if image.is_favorited]
        return images

    async def set_favorite(self, image_id: str, favorite: bool = True) -> Dict[str, List[str]]:
        favorites = await self.catalog.set_favorite(image_id, favorite)
        return {"favorites": favorites}

    # ==================== 下载 ====================

    async def download_image(self, url: str, save_path: Optional[Path] = None) -> Path:
        """
        下载透传：把远程图片原样写入文件

        Raises:
            ValidationError: URL 不合法
            DownloadError: 下载失败
        """
        validate_http_url(url)
        async with self._downloader_factory() as downloader:
            return await downloader.download_to(url, save_path)

    def get_statistics(self) -> Dict[str, Any]:
        """获取统计信息"""
        return {
            "catalog": self.catalog.get_statistics(),
            "orchestrator": self.orchestrator.get_statistics(),
            "cache": self.cache.get_stats(),
        }


def create_service(config: Optional[Config] = None, **kwargs) -> HarvestService:
    """创建采集服务"""
    return HarvestService(config=config, **kwargs)
