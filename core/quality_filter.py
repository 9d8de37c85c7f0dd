"""
图片质量过滤

按渲染后的原始尺寸区分内容图片和图标/装饰图片，
返回去重后的图片 URL（按首次出现的顺序）。
"""
from typing import Iterable, List, Optional

from loguru import logger

from config import FilterConfig
from core.renderer import RenderedImage


class QualityFilter:
    """尺寸阈值过滤器"""

    def __init__(self, min_width: int = 100, min_height: int = 100):
        self.min_width = min_width
        self.min_height = min_height

    @classmethod
    def from_config(cls, config: Optional[FilterConfig] = None) -> "QualityFilter":
        config = config or FilterConfig()
        return cls(min_width=config.min_width, min_height=config.min_height)

    def qualifies(self, image: RenderedImage) -> bool:
        """宽和高都必须严格大于阈值"""
        return bool(image.src) and image.width > self.min_width and image.height > self.min_height

    def select(self, images: Iterable[RenderedImage]) -> List[str]:
        """
        选出合格图片的 URL

        同一个 src 出现在多个元素上只计一次。
        """
        unique_urls = {}
        total = 0
        for image in images:
            total += 1
            if self.qualifies(image):
                unique_urls.setdefault(image.src, None)
        logger.debug(f"   ✓ 合格图片 {len(unique_urls)}/{total} (>{self.min_width}x{self.min_height})")
        return list(unique_urls)
