"""
CLI模块

包含命令行接口相关功能：
- handlers: 命令处理函数
- commands: argparse 定义
"""
from cli.handlers import (
    handle_crawl,
    handle_sync,
    handle_sources,
    handle_delete_source,
    handle_images,
    handle_favorite,
    handle_download,
    handle_stats,
    print_statistics,
    run_command,
)
from cli.commands import create_parser

__all__ = [
    'handle_crawl',
    'handle_sync',
    'handle_sources',
    'handle_delete_source',
    'handle_images',
    'handle_favorite',
    'handle_download',
    'handle_stats',
    'print_statistics',
    'run_command',
    'create_parser',
]
