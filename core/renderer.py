"""
页面渲染器

渲染器是一个外部能力：负责页面导航、滚动和 DOM 求值。
- Renderer / RenderSession: 抽象接口（编排器只依赖这里）
- SeleniumRenderer: 基于 Selenium + 无头 Chrome 的实现

Selenium 的调用是阻塞的，统一放到线程中执行，避免一个爬取任务阻塞事件循环。
"""
import asyncio
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, List, Optional, TypeVar

from loguru import logger

from config import RendererConfig
from core.exceptions import RenderingError

T = TypeVar("T")

# 收集页面上所有 <img> 的地址和原始尺寸
COLLECT_IMAGES_SCRIPT = """
return Array.from(document.querySelectorAll('img')).map(function (img) {
    return {src: img.src, width: img.naturalWidth, height: img.naturalHeight};
});
"""

SCROLL_HEIGHT_SCRIPT = "return document.body ? document.body.scrollHeight : 0;"
SCROLL_TO_BOTTOM_SCRIPT = "window.scrollTo(0, document.body ? document.body.scrollHeight : 0);"


@dataclass(frozen=True)
class RenderedImage:
    """渲染后 DOM 中的一个图片元素"""
    src: str
    width: int
    height: int


class RenderSession(ABC):
    """一次渲染会话（一个浏览器页面），一次爬取的所有页面共用"""

    @abstractmethod
    async def goto(self, url: str) -> None:
        """导航到 URL；超时或失败抛出 RenderingError"""

    @abstractmethod
    async def scroll_height(self) -> int:
        """当前页面内容高度"""

    @abstractmethod
    async def scroll_to_bottom(self) -> None:
        """滚动到当前底部，触发懒加载"""

    @abstractmethod
    async def collect_images(self) -> List[RenderedImage]:
        """返回页面中全部图片元素"""


class Renderer(ABC):
    """渲染能力：每次调用 session() 打开一个独立会话"""

    @abstractmethod
    def session(self):
        """
        异步上下文管理器，产出 RenderSession，退出时关闭会话

        Example:
            async with renderer.session() as session:
                await session.goto(url)
        """


class SeleniumSession(RenderSession):
    """Selenium WebDriver 会话"""

    def __init__(self, driver):
        self.driver = driver

    async def _call(self, func: Callable[..., T], *args) -> T:
        from selenium.common.exceptions import TimeoutException, WebDriverException

        try:
            return await asyncio.to_thread(func, *args)
        except TimeoutException as e:
            raise RenderingError(f"Timed out: {e.msg or e}") from e
        except WebDriverException as e:
            raise RenderingError(f"Browser error: {e.msg or e}") from e

    async def goto(self, url: str) -> None:
        logger.debug(f"📄 打开页面: {url}")
        await self._call(self.driver.get, url)

    async def scroll_height(self) -> int:
        height = await self._call(self.driver.execute_script, SCROLL_HEIGHT_SCRIPT)
        return int(height or 0)

    async def scroll_to_bottom(self) -> None:
        await self._call(self.driver.execute_script, SCROLL_TO_BOTTOM_SCRIPT)

    async def collect_images(self) -> List[RenderedImage]:
        raw = await self._call(self.driver.execute_script, COLLECT_IMAGES_SCRIPT) or []
        images = []
        for item in raw:
            try:
                images.append(RenderedImage(
                    src=item.get("src") or "",
                    width=int(item.get("width") or 0),
                    height=int(item.get("height") or 0),
                ))
            except (AttributeError, TypeError, ValueError) as e:
                raise RenderingError(f"Unexpected image descriptor {item!r}: {e}") from e
        return images


class SeleniumRenderer(Renderer):
    """
    基于 Selenium 的无头 Chrome 渲染器

    特点：
    - 页面加载策略 eager（DOMContentLoaded 即返回）
    - 导航超时可配置
    - 通过 DevTools 协议按 URL 模式屏蔽样式表、字体等资源
    - 每个会话一个独立的浏览器进程，退出时 quit
    """

    def __init__(self, config: Optional[RendererConfig] = None):
        self.config = config or RendererConfig()

    def build_options(self):
        """构造 Chrome 启动参数"""
        from selenium import webdriver

        options = webdriver.ChromeOptions()
        if self.config.headless:
            options.add_argument('--headless=new')
        options.add_argument('--no-sandbox')
        options.add_argument('--disable-dev-shm-usage')
        options.add_argument('--disable-gpu')
        options.add_argument(f'--window-size={self.config.window_width},{self.config.window_height}')
        if self.config.ignore_https_errors:
            options.add_argument('--ignore-certificate-errors')
            options.accept_insecure_certs = True
        if self.config.rotate_user_agent:
            from fake_useragent import UserAgent
            options.add_argument(f'--user-agent={UserAgent().chrome}')
        if self.config.chrome_binary:
            options.binary_location = self.config.chrome_binary
        options.page_load_strategy = 'eager'
        return options

    def _create_driver(self):
        from selenium import webdriver

        driver = webdriver.Chrome(options=self.build_options())
        driver.set_page_load_timeout(self.config.navigation_timeout)
        driver.set_script_timeout(self.config.navigation_timeout)
        if self.config.blocked_url_patterns:
            driver.execute_cdp_cmd("Network.enable", {})
            driver.execute_cdp_cmd("Network.setBlockedURLs", {"urls": self.config.blocked_url_patterns})
        return driver

    @asynccontextmanager
    async def session(self) -> AsyncIterator[SeleniumSession]:
        from selenium.common.exceptions import WebDriverException

        try:
            driver = await asyncio.to_thread(self._create_driver)
        except WebDriverException as e:
            raise RenderingError(f"Failed to start browser: {e.msg or e}") from e
        logger.debug("✓ 浏览器已启动")
        try:
            yield SeleniumSession(driver)
        finally:
            try:
                await asyncio.to_thread(driver.quit)
                logger.debug("✓ 浏览器已关闭")
            except WebDriverException as e:
                logger.warning(f"⚠️  关闭浏览器失败: {e}")
