"""
异常定义

所有核心错误都以带类型的异常返回给调用方，核心内部不做自动重试，
由调用方（CLI / API 边界）负责把错误类型映射为用户可见的结果。
"""


class HarvesterError(Exception):
    """采集器错误基类"""


class ValidationError(HarvesterError):
    """请求参数缺失或非法（无副作用）"""


class NotFoundError(HarvesterError):
    """引用的来源不存在（无副作用）"""


class EmptyResultError(HarvesterError):
    """爬取成功但没有找到符合质量要求的图片"""


class RenderingError(HarvesterError):
    """渲染器导航 / 超时 / DOM 求值失败"""


class PersistenceError(HarvesterError):
    """持久化存储读写失败"""


class DownloadError(HarvesterError):
    """图片下载透传失败"""
