"""
网页图片采集器 - 命令行入口

渲染网页（或一组分页网页），按尺寸筛选图片，维护来源 / 图片 / 收藏目录。
"""
import asyncio
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

from cli import create_parser, run_command
from cli.handlers import EXIT_REQUEST_ERROR, exit_code_for
from config import Config, LogConfig, load_config
from core.exceptions import HarvesterError
from core.service import create_service


def setup_logging(log_config: LogConfig, verbose: bool = False):
    """配置日志：彩色 stderr + 按大小轮转的文件日志"""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <level>{message}</level>",
        level="DEBUG" if verbose else log_config.log_level,
        colorize=True
    )

    log_file = Path(log_config.log_dir) / log_config.log_file
    log_file.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        log_file,
        rotation=log_config.rotation,
        retention=log_config.retention,
        encoding="utf-8",
        level="DEBUG"
    )


def build_config(args) -> Config:
    """
    加载配置：环境变量 → --config 文件 → --db

    Raises:
        OSError / ValueError: 配置文件不存在或内容非法
    """
    app_config = load_config(Path(args.config) if args.config else None)
    if args.db:
        app_config.database.sqlite_path = Path(args.db)
    return app_config


async def main(argv: Optional[List[str]] = None) -> int:
    """主函数 - 子命令模式"""
    parser = create_parser()
    args = parser.parse_args(argv)

    try:
        app_config = build_config(args)
    except (OSError, ValueError) as e:
        print(f"❌ 无法加载配置文件 {args.config}: {e}", file=sys.stderr)
        return EXIT_REQUEST_ERROR

    setup_logging(app_config.log, args.verbose)

    service = create_service(app_config)
    try:
        await service.start()
    except HarvesterError as e:
        logger.error(f"❌ 无法启动采集服务: {e}")
        return exit_code_for(e)
    try:
        return await run_command(service, args)
    finally:
        await service.stop()


def cli_main():
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli_main()
