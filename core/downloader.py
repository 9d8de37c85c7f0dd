"""
图片下载器模块

下载透传：按原样把远程图片的字节流交给调用方（或写入文件），不做校验和转换。
连接阶段遇到传输错误时按指数退避重试，最终失败抛出 DownloadError。
"""
import asyncio
import os
from pathlib import Path
from typing import AsyncIterator, Dict, Optional
from urllib.parse import unquote, urlparse

import aiohttp
from fake_useragent import UserAgent
from loguru import logger
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from config import CrawlerConfig, config
from core.exceptions import DownloadError
from core.models import validate_http_url

DEFAULT_FILENAME = "image.jpg"


class ImageDownloader:
    """图片下载器"""

    def __init__(self, crawler_config: Optional[CrawlerConfig] = None, rotate_user_agent: bool = True):
        self.crawler_config = crawler_config or config.crawler
        self.rotate_user_agent = rotate_user_agent
        self.ua = UserAgent()
        self.session: Optional[aiohttp.ClientSession] = None
        self.download_stats = {
            "total": 0,
            "success": 0,
            "failed": 0,
            "bytes": 0,
        }

    async def __aenter__(self):
        """异步上下文管理器入口"""
        await self.init_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """异步上下文管理器出口"""
        await self.close()

    async def init_session(self):
        """初始化HTTP会话"""
        timeout = aiohttp.ClientTimeout(total=self.crawler_config.request_timeout)
        self.session = aiohttp.ClientSession(timeout=timeout)
        logger.debug("Image downloader initialized")

    async def close(self):
        """关闭会话"""
        if self.session:
            await self.session.close()
            self.session = None
            logger.debug(f"Download stats: {self.download_stats}")

    def get_headers(self) -> Dict[str, str]:
        """获取请求头"""
        return {
            "User-Agent": self.ua.random if self.rotate_user_agent else self.ua.chrome,
            "Accept": "image/avif,image/webp,image/apng,image/*,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def _open(self, url: str) -> aiohttp.ClientResponse:
        """建立连接（只有这一步会重试，最多 max_retries 次）"""
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.crawler_config.max_retries),
            wait=wait_exponential(multiplier=1, min=2, max=10),
            retry=retry_if_exception_type((aiohttp.ClientConnectionError, asyncio.TimeoutError)),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.warning(f"Retrying {url} (attempt {attempt.retry_state.attempt_number})")
                return await self.session.get(url, headers=self.get_headers())

    async def stream(self, url: str) -> AsyncIterator[bytes]:
        """
        按块产出远程图片的原始字节

        Raises:
            ValidationError: URL 不是绝对 http(s) 地址
            DownloadError: 连接失败或响应状态非 200
        """
        validate_http_url(url)
        if self.session is None:
            raise DownloadError("Downloader session is not initialized")

        self.download_stats["total"] += 1
        try:
            response = await self._open(url)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.download_stats["failed"] += 1
            logger.error(f"Failed to download {url}: {e}")
            raise DownloadError(f"Failed to download {url}: {e}") from e

        try:
            if response.status != 200:
                self.download_stats["failed"] += 1
                raise DownloadError(f"HTTP {response.status} for {url}")
            async for chunk in response.content.iter_chunked(self.crawler_config.chunk_size):
                self.download_stats["bytes"] += len(chunk)
                yield chunk
            self.download_stats["success"] += 1
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.download_stats["failed"] += 1
            raise DownloadError(f"Download interrupted for {url}: {e}") from e
        finally:
            response.release()

    async def download_to(self, url: str, save_path: Optional[Path] = None) -> Path:
        """
        下载单张图片到文件

        Args:
            url: 图片URL
            save_path: 保存路径；为目录或为空时使用从 URL 推导的文件名

        Returns:
            实际写入的文件路径
        """
        validate_http_url(url)
        if save_path is None:
            save_path = Path(self._generate_filename(url))
        elif save_path.is_dir():
            save_path = save_path / self._generate_filename(url)

        save_path.parent.mkdir(parents=True, exist_ok=True)
        size = 0
        try:
            with open(save_path, "wb") as f:
                async for chunk in self.stream(url):
                    f.write(chunk)
                    size += len(chunk)
        except DownloadError:
            save_path.unlink(missing_ok=True)
            raise

        logger.success(f"Downloaded: {save_path.name} ({size} bytes)")
        return save_path

    @staticmethod
    def _generate_filename(url: str) -> str:
        """从 URL 路径取文件名，取不到时使用 image.jpg"""
        name = os.path.basename(unquote(urlparse(url).path))
        if not name or '.' not in name:
            return DEFAULT_FILENAME
        return name

    def get_stats(self) -> Dict[str, int]:
        """获取下载统计"""
        return self.download_stats.copy()
