"""
CLI命令处理函数

每个子命令一个 handle_* 协程，接收 (service, args)；
run_command 负责分发并把错误类型映射为退出码：
- 0: 成功
- 1: 请求问题（ValidationError / NotFoundError / EmptyResultError）
- 2: 运行故障（RenderingError / PersistenceError / DownloadError）
"""
import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from loguru import logger

from core.exceptions import (
    DownloadError,
    EmptyResultError,
    HarvesterError,
    NotFoundError,
    PersistenceError,
    RenderingError,
    ValidationError,
)
from core.models import CrawlRequest, CrawlResult
from core.service import HarvestService

EXIT_OK = 0
EXIT_REQUEST_ERROR = 1
EXIT_FAILURE = 2

ERROR_EXIT_CODES = {
    ValidationError: EXIT_REQUEST_ERROR,
    NotFoundError: EXIT_REQUEST_ERROR,
    EmptyResultError: EXIT_REQUEST_ERROR,
    RenderingError: EXIT_FAILURE,
    PersistenceError: EXIT_FAILURE,
    DownloadError: EXIT_FAILURE,
}


def exit_code_for(error: HarvesterError) -> int:
    for error_type, code in ERROR_EXIT_CODES.items():
        if isinstance(error, error_type):
            return code
    return EXIT_FAILURE


def print_json(payload: Any):
    print(json.dumps(payload, ensure_ascii=False, indent=2))


def _print_images(images):
    for image in images:
        star = "★" if getattr(image, "is_favorited", False) else " "
        print(f"  {star} {image.id}  [{image.source}]  {image.src}")


def load_batch_file(path: str) -> List[Dict[str, Any]]:
    """
    读取批量爬取文件：JSON 数组，每项是一个请求字典

    Raises:
        ValidationError: 文件无法读取或格式不对
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            entries = json.load(f)
    except (OSError, ValueError) as e:
        raise ValidationError(f"Cannot read batch file {path}: {e}") from e
    if not isinstance(entries, list) or not all(isinstance(entry, dict) for entry in entries):
        raise ValidationError(f"Batch file {path} must contain a JSON array of request objects")
    return entries


def build_crawl_requests(args) -> List[Union[CrawlRequest, Dict[str, Any]]]:
    """
    把 --url / --pattern / --batch 整理成请求列表

    --pattern 与第一个 --url 组成一个请求（分页参数齐全时优先），
    其余 --url 各自成为单页请求，批量文件中的请求排在最后。
    """
    urls = list(args.url or [])
    requests: List[Union[CrawlRequest, Dict[str, Any]]] = []
    if args.url_pattern or not (urls or args.batch):
        requests.append(CrawlRequest(
            url=urls.pop(0) if urls else None,
            url_pattern=args.url_pattern,
            start_page=args.start_page,
            end_page=args.end_page,
        ))
    requests.extend(CrawlRequest(url=url) for url in urls)
    if args.batch:
        requests.extend(load_batch_file(args.batch))
    return requests


def _describe_request(request: Union[CrawlRequest, Dict[str, Any]]) -> str:
    if isinstance(request, CrawlRequest):
        if request.is_multi_page:
            return f"URL模板: {request.url_pattern} (第 {request.start_page}-{request.end_page} 页)"
        return f"URL: {request.url}"
    return f"请求: {json.dumps(request, ensure_ascii=False)}"


def _print_crawl_result(result: CrawlResult):
    print("\n" + "=" * 60)
    print(f"✅ 来源: {result.new_source.name} ({result.new_source.id})")
    print(f"🖼️  新图片: {len(result.new_images)}")
    _print_images(result.new_images)
    print("=" * 60)


async def handle_crawl(service: HarvestService, args) -> Optional[int]:
    """
    处理 crawl 子命令

    单个请求直接调用 service.crawl；多个请求在同一个服务内并发执行，
    相同目标只渲染一次，退出码取失败请求中最严重的一个。
    """
    requests = build_crawl_requests(args)
    if not args.json:
        print(f"\n📌 命令: 爬取页面 ({len(requests)} 个请求)")
        for request in requests:
            print(_describe_request(request))

    if len(requests) == 1:
        result = await service.crawl(requests[0])
        if args.json:
            print_json(result.to_dict())
        else:
            _print_crawl_result(result)
        return EXIT_OK

    results = await service.crawl_batch(requests)
    code = EXIT_OK
    payload = []
    for request, result in zip(requests, results):
        if isinstance(result, HarvesterError):
            code = max(code, exit_code_for(result))
            logger.error(f"❌ {_describe_request(request)} -> {type(result).__name__}: {result}")
            payload.append({"error": type(result).__name__, "message": str(result)})
        elif args.json:
            payload.append(result.to_dict())
        else:
            _print_crawl_result(result)
    if args.json:
        print_json(payload)
    return code


async def handle_sync(service: HarvestService, args):
    """处理 sync 子命令"""
    result = await service.sync(args.source_id)
    if args.json:
        print_json(result.to_dict())
        return
    if not result.new_images:
        print("ℹ️  没有新图片")
        return
    print(f"✅ 新图片: {len(result.new_images)}")
    _print_images(result.new_images)


async def handle_sources(service: HarvestService, args):
    """处理 sources 子命令"""
    sources = await service.list_sources()
    if args.json:
        print_json([source.to_dict() for source in sources])
        return
    if not sources:
        print("ℹ️  还没有来源")
        return
    print(f"\n📂 来源 ({len(sources)}):")
    for source in sources:
        print(f"  {source.id}  {source.name}  {source.url}")


async def handle_delete_source(service: HarvestService, args):
    """处理 delete-source 子命令"""
    result = await service.delete_source(args.source_id)
    if args.json:
        print_json(result)
        return
    print(f"✅ {result['message']}")


async def handle_images(service: HarvestService, args):
    """处理 images 子命令"""
    images = await service.list_images(favorites_only=args.favorites)
    if args.json:
        print_json([image.to_dict() for image in images])
        return
    if not images:
        print("ℹ️  没有图片")
        return
    print(f"\n🖼️  图片 ({len(images)}):")
    _print_images(images)


async def handle_favorite(service: HarvestService, args):
    """处理 favorite 子命令"""
    result = await service.set_favorite(args.image_id, args.favorite)
    if args.json:
        print_json(result)
        return
    action = "已收藏" if args.favorite else "已取消收藏"
    print(f"✅ {action}: {args.image_id}（共 {len(result['favorites'])} 个收藏）")


async def handle_download(service: HarvestService, args):
    """处理 download 子命令"""
    save_path = Path(args.output) if args.output else None
    path = await service.download_image(args.url, save_path)
    if args.json:
        print_json({"url": args.url, "path": str(path)})
        return
    print(f"✅ 已保存: {path}")


async def handle_stats(service: HarvestService, args):
    """处理 stats 子命令"""
    stats = service.get_statistics()
    if args.json:
        print_json(stats)
        return
    print_statistics(stats)


def print_statistics(stats: Dict[str, Dict[str, int]]):
    """输出统计信息"""
    catalog = stats["catalog"]
    print("\n" + "=" * 60)
    print("📊 目录统计:")
    print(f"  来源数: {catalog['total_sources']}")
    print(f"  图片数: {catalog['total_images']}")
    print(f"  归档图片: {catalog['archived_images']}")
    print(f"  收藏数: {catalog['favorites']}")
    print(f"  失效收藏: {catalog['orphaned_favorites']}")
    crawls = stats.get("orchestrator")
    if crawls:
        print("📊 本次运行:")
        print(f"  爬取请求: {crawls['crawls_requested']}")
        print(f"  缓存命中: {crawls['cache_hits']}")
        print(f"  渲染页面: {crawls['pages_rendered']}")
        print(f"  爬取失败: {crawls['crawls_failed']}")
    print("=" * 60)


HANDLERS = {
    'crawl': handle_crawl,
    'sync': handle_sync,
    'sources': handle_sources,
    'delete-source': handle_delete_source,
    'images': handle_images,
    'favorite': handle_favorite,
    'download': handle_download,
    'stats': handle_stats,
}


async def run_command(service: HarvestService, args) -> int:
    """
    执行子命令

    Returns:
        进程退出码
    """
    handler = HANDLERS[args.command]
    try:
        code = await handler(service, args)
    except HarvesterError as e:
        code = exit_code_for(e)
        logger.error(f"❌ {type(e).__name__}: {e}")
        if args.json:
            print_json({"error": type(e).__name__, "message": str(e)})
        return code
    return EXIT_OK if code is None else code
