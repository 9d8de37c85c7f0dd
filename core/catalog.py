"""
目录（Catalog）

来源 / 图片 / 收藏的持久目录，负责对账规则：
- 所有修改都经过同一把 asyncio.Lock 并在一个 SQLite 事务内完成（单写者）；
  决定写入内容的读取也在事务内，事务持有数据库写锁，对其他进程同样成立
- isFavorited 在读取时由收藏集合计算，不写入图片记录
- 删除来源时采用「保留收藏」的归档策略：
  收藏过的图片断开来源并加 "(Archived) " 前缀保留，其余图片删除
"""
import asyncio
from typing import Any, Dict, Iterable, List

from loguru import logger

from core.exceptions import NotFoundError
from core.models import CatalogImage, Image, Source
from core.storage import Storage


class Catalog:
    """目录服务（单写者）"""

    def __init__(self, storage: Storage):
        self.storage = storage
        self._write_lock = asyncio.Lock()

    # ==================== 读取 ====================

    async def list_sources(self) -> List[Source]:
        return self.storage.list_sources()

    async def get_source(self, source_id: str) -> Source:
        """
        Raises:
            NotFoundError: 来源不存在
        """
        source = self.storage.get_source(source_id)
        if source is None:
            raise NotFoundError(f"Source not found: {source_id}")
        return source

    async def list_images(self) -> List[CatalogImage]:
        """最新在前，附带派生的收藏状态"""
        images = self.storage.list_images()
        favorites = self.storage.favorite_ids()
        return [
            CatalogImage(**image.model_dump(), is_favorited=image.id in favorites)
            for image in images
        ]

    async def list_favorites(self) -> List[str]:
        return self.storage.list_favorites()

    # ==================== 修改 ====================

    async def add_crawl(self, source: Source, images: List[Image]) -> None:
        """一次成功爬取：新建来源并把新图片放到最前面"""
        async with self._write_lock:
            with self.storage.transaction():
                self.storage.insert_source(source)
                self.storage.prepend_images(images)
        logger.info(f"💾 新来源 {source.name} ({source.id})，{len(images)} 张图片")

    async def add_sync_images(
        self,
        source: Source,
        found_urls: Iterable[str],
        author: str = "WebScraper",
    ) -> List[Image]:
        """
        同步：只为该来源尚未记录过的地址新建图片

        比较与写入在同一个写锁和同一个事务内，并发同步（包括其他进程）不会重复记录同一地址。

        Raises:
            NotFoundError: 来源在同步期间被删除
        """
        async with self._write_lock:
            with self.storage.transaction():
                if self.storage.get_source(source.id) is None:
                    raise NotFoundError(f"Source not found: {source.id}")
                existing = self.storage.get_source_srcs(source.id)
                new_urls = list(dict.fromkeys(url for url in found_urls if url not in existing))
                if not new_urls:
                    return []
                new_images = [Image.harvested(url, source, author) for url in new_urls]
                self.storage.prepend_images(new_images)
        logger.info(f"💾 来源 {source.name} 同步新增 {len(new_images)} 张图片")
        return new_images

    async def delete_source(self, source_id: str) -> Source:
        """
        删除来源并按归档策略处理其图片

        Returns:
            被删除的来源（调用方据此清理缓存）

        Raises:
            NotFoundError: 来源不存在
        """
        async with self._write_lock:
            with self.storage.transaction():
                source = self.storage.get_source(source_id)
                if source is None:
                    raise NotFoundError(f"Source not found: {source_id}")

                favorites = self.storage.favorite_ids()
                archived, discarded = [], []
                for image in self.storage.get_images_for_source(source_id):
                    if image.id in favorites:
                        archived.append(image.archived())
                    else:
                        discarded.append(image.id)

                # 先改写/删除图片，最后删除来源，外键约束始终成立
                for image in archived:
                    self.storage.update_image_source(image)
                self.storage.delete_images(discarded)
                self.storage.delete_source(source_id)

        logger.info(
            f"🗑️  删除来源 {source.name}: 归档 {len(archived)} 张收藏图片，删除 {len(discarded)} 张"
        )
        return source

    async def set_favorite(self, image_id: str, favorite: bool) -> List[str]:
        """
        设置收藏状态（幂等，不校验图片是否存在）

        Returns:
            当前全部收藏 ID
        """
        async with self._write_lock:
            with self.storage.transaction():
                if favorite:
                    self.storage.add_favorite(image_id)
                else:
                    self.storage.remove_favorite(image_id)
            favorites = self.storage.list_favorites()
        logger.debug(f"Favorite {image_id} -> {favorite}")
        return favorites

    def get_statistics(self) -> Dict[str, Any]:
        return self.storage.get_statistics()
