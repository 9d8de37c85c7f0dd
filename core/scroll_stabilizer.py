"""
滚动稳定器

导航到页面后按固定间隔滚动到底部，比较前后两次轮询的页面高度：
- 高度不变 → 内容已全部展开
- 达到最大滚动次数 → 防止无限加载的页面
"""
import asyncio
from typing import Optional

from loguru import logger

from config import RendererConfig
from core.renderer import RenderSession


class ScrollStabilizer:
    """有界轮询的滚动加载器"""

    def __init__(self, scroll_interval: float = 2.0, max_scrolls: int = 25):
        """
        Args:
            scroll_interval: 轮询间隔（秒）
            max_scrolls: 最大滚动次数
        """
        self.scroll_interval = scroll_interval
        self.max_scrolls = max_scrolls

    @classmethod
    def from_config(cls, config: Optional[RendererConfig] = None) -> "ScrollStabilizer":
        config = config or RendererConfig()
        return cls(scroll_interval=config.scroll_interval, max_scrolls=config.max_scrolls)

    async def stabilize(self, session: RenderSession, url: str) -> int:
        """
        打开页面并滚动直到高度稳定

        导航失败（RenderingError）直接向上抛出，不重试。

        Returns:
            高度增长的次数
        """
        await session.goto(url)

        last_height = 0
        scrolls = 0
        while True:
            await asyncio.sleep(self.scroll_interval)
            await session.scroll_to_bottom()
            new_height = await session.scroll_height()
            if new_height == last_height:
                logger.debug(f"   ✓ 页面高度稳定: {new_height} ({scrolls} 次滚动)")
                break
            if scrolls >= self.max_scrolls:
                logger.debug(f"   ⏸️  达到最大滚动次数 {self.max_scrolls}，停止滚动")
                break
            last_height = new_height
            scrolls += 1
        return scrolls
