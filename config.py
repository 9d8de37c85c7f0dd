"""
配置管理模块 - 网页图片采集器
统一配置管理，支持环境变量 / .env 文件 / JSON 配置文件
"""
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
import os
import json
from pathlib import Path
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

# 项目根目录
BASE_DIR = Path(__file__).parent


class RendererConfig(BaseModel):
    """浏览器渲染配置"""
    headless: bool = Field(default=True, description="是否无头模式")
    chrome_binary: Optional[str] = Field(default=None, description="Chrome 可执行文件路径")
    navigation_timeout: float = Field(default=90.0, description="页面导航超时（秒）")
    scroll_interval: float = Field(default=2.0, description="滚动轮询间隔（秒）")
    max_scrolls: int = Field(default=25, description="最大滚动次数（防止无限加载）")
    ignore_https_errors: bool = Field(default=True, description="忽略证书错误")
    window_width: int = Field(default=1366, description="窗口宽度")
    window_height: int = Field(default=900, description="窗口高度")
    rotate_user_agent: bool = Field(default=True, description="是否使用随机UA")
    blocked_url_patterns: List[str] = Field(
        default_factory=lambda: ["*.css", "*.woff", "*.woff2", "*.ttf", "*.otf"],
        description="屏蔽的资源URL模式（样式表、字体）"
    )


class FilterConfig(BaseModel):
    """图片质量过滤配置"""
    min_width: int = Field(default=100, description="最小宽度（严格大于）")
    min_height: int = Field(default=100, description="最小高度（严格大于）")


class CacheConfig(BaseModel):
    """爬取结果缓存配置"""
    ttl_seconds: float = Field(default=15 * 60, description="缓存有效期（秒）")


class CrawlerConfig(BaseModel):
    """爬虫配置"""
    max_concurrent_sessions: int = Field(default=2, description="最大并发浏览器会话数")
    page_placeholder: str = Field(default="{page}", description="分页URL中的页码占位符")
    image_author: str = Field(default="WebScraper", description="采集图片的作者字段")
    request_timeout: int = Field(default=30, description="图片下载超时时间")
    max_retries: int = Field(default=3, ge=1, description="下载建立连接的最大尝试次数")
    chunk_size: int = Field(default=64 * 1024, description="下载流分块大小（字节）")


class DatabaseConfig(BaseModel):
    """数据库配置"""
    sqlite_path: Path = Field(default=BASE_DIR / "data" / "catalog.db", description="SQLite 文件路径")
    busy_timeout: float = Field(default=5.0, description="等待其他进程写锁的超时（秒）")


class LogConfig(BaseModel):
    """日志配置"""
    log_level: str = Field(default="INFO", description="日志级别")
    log_dir: Path = Field(default=BASE_DIR / "logs", description="日志目录")
    log_file: str = Field(default="harvester.log", description="日志文件名")
    rotation: str = Field(default="100 MB", description="日志轮转大小")
    retention: str = Field(default="30 days", description="日志保留时间")


class Config(BaseModel):
    """全局配置"""
    renderer: RendererConfig = Field(default_factory=RendererConfig)
    filter: FilterConfig = Field(default_factory=FilterConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    crawler: CrawlerConfig = Field(default_factory=CrawlerConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    log: LogConfig = Field(default_factory=LogConfig)


# ============================================================================
# 配置文件加载
# ============================================================================

def load_config_file(config_file: Path) -> Dict[str, Any]:
    """
    加载 JSON 配置文件

    Args:
        config_file: 配置文件路径

    Returns:
        配置字典

    Raises:
        FileNotFoundError: 配置文件不存在
        json.JSONDecodeError: JSON格式错误
    """
    with open(config_file, 'r', encoding='utf-8') as f:
        return json.load(f)


def create_config_from_dict(data: Dict[str, Any], base: Optional[Config] = None) -> Config:
    """
    从字典创建Config对象

    字典的顶层键为配置段名（renderer / filter / cache / crawler / database / log），
    未出现的段和字段沿用 base（默认为环境变量配置）。

    Args:
        data: 配置字典
        base: 基础配置

    Returns:
        Config实例
    """
    merged = (base or load_config_from_env()).model_dump()
    for section, values in data.items():
        if section not in merged:
            logger.warning(f"⚠️  忽略未知配置段: {section}")
            continue
        if not isinstance(values, dict):
            logger.warning(f"⚠️  配置段 {section} 不是对象，已忽略")
            continue
        merged[section].update(values)
    return Config(**merged)


def load_config(config_file: Optional[Path] = None) -> Config:
    """
    加载配置：指定文件时叠加在环境变量配置之上

    Args:
        config_file: 可选的 JSON 配置文件

    Returns:
        Config实例
    """
    if config_file is None:
        return load_config_from_env()
    data = load_config_file(Path(config_file))
    logger.info(f"📁 使用配置文件: {config_file}")
    return create_config_from_dict(data)


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


# 从环境变量加载配置
def load_config_from_env() -> Config:
    """从环境变量加载配置"""
    config_data = {
        "renderer": {
            "headless": _env_bool("HEADLESS", "true"),
            "chrome_binary": os.getenv("CHROME_BINARY") or None,
            "navigation_timeout": float(os.getenv("NAVIGATION_TIMEOUT", "90")),
            "scroll_interval": float(os.getenv("SCROLL_INTERVAL", "2.0")),
            "max_scrolls": int(os.getenv("MAX_SCROLLS", "25")),
        },
        "filter": {
            "min_width": int(os.getenv("MIN_IMAGE_WIDTH", "100")),
            "min_height": int(os.getenv("MIN_IMAGE_HEIGHT", "100")),
        },
        "cache": {
            "ttl_seconds": float(os.getenv("CACHE_TTL_SECONDS", str(15 * 60))),
        },
        "crawler": {
            "max_concurrent_sessions": int(os.getenv("MAX_CONCURRENT_SESSIONS", "2")),
            "image_author": os.getenv("IMAGE_AUTHOR", "WebScraper"),
            "max_retries": int(os.getenv("MAX_RETRIES", "3")),
        },
        "database": {
            "sqlite_path": Path(os.getenv("SQLITE_PATH", str(BASE_DIR / "data" / "catalog.db"))),
            "busy_timeout": float(os.getenv("SQLITE_BUSY_TIMEOUT", "5.0")),
        },
        "log": {
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
        }
    }
    return Config(**config_data)


# 全局配置实例（默认从环境变量加载）
config = load_config_from_env()
