"""
数据模型

- Source: 爬取目标（来源）
- Image: 采集到的图片记录
- CatalogImage: 附带派生字段 isFavorited 的图片（只在读取时计算，不落库）
- CrawlTarget: 单个 URL 或 (URL 模板, 起始页, 结束页) 三元组
- CrawlRequest / CrawlResult / SyncResult: 对外的请求与结果结构

对外字段名沿用 camelCase（sourceId / newImages ...），Python 属性为 snake_case。
"""
import uuid
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field

from core.exceptions import ValidationError

PAGE_PLACEHOLDER = "{page}"
ARCHIVED_PREFIX = "(Archived) "


def substitute_page(pattern: str, page: int, placeholder: str = PAGE_PLACEHOLDER) -> str:
    """把页码代入 URL 模板"""
    return pattern.replace(placeholder, str(page))


def validate_http_url(url: str) -> str:
    """
    校验绝对 http(s) URL

    Raises:
        ValidationError: URL 为空、不是 http(s) 或缺少主机名
    """
    if not url or not isinstance(url, str):
        raise ValidationError("URL is required")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValidationError(f"Not an absolute http(s) URL: {url}")
    return url


def derive_source_name(url: str) -> str:
    """来源显示名 = 主机名"""
    return urlparse(url).hostname or url


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    def to_dict(self) -> dict:
        """导出为对外的 camelCase 字典"""
        return self.model_dump(by_alias=True, mode="json")


class Source(_CamelModel):
    """爬取来源"""
    id: str
    url: str
    name: str

    @classmethod
    def for_target(cls, target: "CrawlTarget") -> "Source":
        """首次成功爬取时创建来源，名称取第一个具体 URL 的主机名"""
        return cls(
            id=str(uuid.uuid4()),
            url=target.source_url,
            name=derive_source_name(target.first_url),
        )


class Image(_CamelModel):
    """采集到的图片"""
    id: str
    src: str
    alt: str = ""
    source: str
    author: str = "WebScraper"
    source_id: Optional[str] = Field(default=None, alias="sourceId")

    @classmethod
    def harvested(cls, src: str, source: Source, author: str = "WebScraper") -> "Image":
        """为某个来源新建一条图片记录（新生成的 id）"""
        return cls(
            id=f"scrape_{uuid.uuid4().hex}",
            src=src,
            alt=f"Image from {source.name}",
            source=source.name,
            author=author,
            source_id=source.id,
        )

    def archived(self) -> "Image":
        """来源被删除后保留的收藏图片：断开来源并在显示名前加归档前缀"""
        return self.model_copy(update={
            "source_id": None,
            "source": f"{ARCHIVED_PREFIX}{self.source}",
        })


class CatalogImage(Image):
    """读取时附带收藏状态的图片"""
    is_favorited: bool = Field(default=False, alias="isFavorited")


@dataclass(frozen=True)
class CrawlTarget:
    """
    爬取目标

    二选一：
    - 单个 URL
    - (url_pattern, start_page, end_page)，模板中包含页码占位符
    """
    url: Optional[str] = None
    url_pattern: Optional[str] = None
    start_page: Optional[int] = None
    end_page: Optional[int] = None
    placeholder: str = PAGE_PLACEHOLDER

    @classmethod
    def single(cls, url: str) -> "CrawlTarget":
        return cls(url=validate_http_url(url))

    @classmethod
    def paged(
        cls,
        url_pattern: str,
        start_page: int,
        end_page: int,
        placeholder: str = PAGE_PLACEHOLDER,
    ) -> "CrawlTarget":
        if start_page < 0 or end_page < 0:
            raise ValidationError("Page numbers must be non-negative")
        if start_page > end_page:
            raise ValidationError(f"startPage ({start_page}) is after endPage ({end_page})")
        validate_http_url(substitute_page(url_pattern, start_page, placeholder))
        return cls(
            url_pattern=url_pattern,
            start_page=start_page,
            end_page=end_page,
            placeholder=placeholder,
        )

    @property
    def is_multi_page(self) -> bool:
        return self.url_pattern is not None

    @property
    def fingerprint(self) -> str:
        """缓存键：单页为 URL 本身，多页为 模板-起始页-结束页"""
        if self.is_multi_page:
            return f"{self.url_pattern}-{self.start_page}-{self.end_page}"
        return self.url

    @property
    def source_url(self) -> str:
        """记录到来源上的 URL（多页时为模板）"""
        return self.url_pattern if self.is_multi_page else self.url

    @property
    def first_url(self) -> str:
        if self.is_multi_page:
            return substitute_page(self.url_pattern, 1, self.placeholder)
        return self.url

    def page_urls(self) -> List[str]:
        """按页码从小到大返回全部具体 URL（含结束页）"""
        if not self.is_multi_page:
            return [self.url]
        return [
            substitute_page(self.url_pattern, page, self.placeholder)
            for page in range(self.start_page, self.end_page + 1)
        ]


class CrawlRequest(_CamelModel):
    """爬取请求：url 或 urlPattern + startPage + endPage"""
    url: Optional[str] = None
    url_pattern: Optional[str] = Field(default=None, alias="urlPattern")
    start_page: Optional[int] = Field(default=None, alias="startPage")
    end_page: Optional[int] = Field(default=None, alias="endPage")

    @property
    def is_multi_page(self) -> bool:
        return bool(self.url_pattern) and self.start_page is not None and self.end_page is not None

    def to_target(self, placeholder: str = PAGE_PLACEHOLDER) -> CrawlTarget:
        """
        校验请求并转换为爬取目标（多页参数齐全时优先于 url）

        Raises:
            ValidationError: 既没有 url 也没有完整的分页参数，或参数非法
        """
        if self.is_multi_page:
            return CrawlTarget.paged(self.url_pattern, self.start_page, self.end_page, placeholder)
        if not self.url:
            raise ValidationError("A URL or a URL pattern with startPage and endPage is required")
        return CrawlTarget.single(self.url)


class CrawlResult(_CamelModel):
    """一次成功爬取的结果包（也是缓存内容）"""
    new_source: Source = Field(alias="newSource")
    new_images: List[Image] = Field(default_factory=list, alias="newImages")


class SyncResult(_CamelModel):
    """同步结果；没有新图片时为空列表"""
    new_images: List[Image] = Field(default_factory=list, alias="newImages")
