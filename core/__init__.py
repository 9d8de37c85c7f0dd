"""
核心模块

包含基础组件：
- models: 数据模型（来源、图片、爬取目标）
- renderer: 页面渲染器（Selenium 无头 Chrome）
- scroll_stabilizer: 滚动加载
- quality_filter: 图片尺寸过滤
- crawl_cache: 爬取结果缓存
- storage: 数据存储（SQLite）
- catalog: 目录（单写者、归档策略）
- orchestrator: 爬取编排（single-flight）
- downloader: 图片下载透传
- service: 采集服务
"""
from .exceptions import (
    HarvesterError,
    ValidationError,
    NotFoundError,
    EmptyResultError,
    RenderingError,
    PersistenceError,
    DownloadError,
)
from .models import Source, Image, CatalogImage, CrawlTarget, CrawlRequest, CrawlResult, SyncResult
from .storage import Storage
from .catalog import Catalog
from .crawl_cache import CrawlCache
from .orchestrator import CrawlOrchestrator
from .downloader import ImageDownloader
from .service import HarvestService, create_service

__all__ = [
    'HarvesterError',
    'ValidationError',
    'NotFoundError',
    'EmptyResultError',
    'RenderingError',
    'PersistenceError',
    'DownloadError',
    'Source',
    'Image',
    'CatalogImage',
    'CrawlTarget',
    'CrawlRequest',
    'CrawlResult',
    'SyncResult',
    'Storage',
    'Catalog',
    'CrawlCache',
    'CrawlOrchestrator',
    'ImageDownloader',
    'HarvestService',
    'create_service',
]
