"""
CLI命令定义（argparse）
"""
import argparse


def create_parser() -> argparse.ArgumentParser:
    """
    创建命令行参数解析器

    Returns:
        ArgumentParser 实例
    """
    parser = argparse.ArgumentParser(
        prog='harvester.py',
        description='网页图片采集器 (子命令模式)',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
示例:
  # 爬取单个页面
  python harvester.py crawl --url "https://example.com/gallery"

  # 爬取分页页面（{page} 为页码占位符，含结束页）
  python harvester.py crawl --pattern "https://example.com/gallery?page={page}" --start-page 1 --end-page 5

  # 一次运行爬取多个目标（相同目标只渲染一次）
  python harvester.py crawl --url "https://example.com/a" --url "https://example.com/b"
  python harvester.py crawl --batch requests.json --json

  # 同步来源（只记录新出现的图片）
  python harvester.py sync 3f2c...

  # 目录管理
  python harvester.py sources
  python harvester.py images --favorites --json
  python harvester.py favorite scrape_ab12...
  python harvester.py favorite scrape_ab12... --off
  python harvester.py delete-source 3f2c...

  # 下载图片
  python harvester.py download "https://example.com/a.jpg" -o downloads/
        '''
    )
    parser.add_argument('--config', type=str, default=None,
                        help='JSON 配置文件（叠加在环境变量配置之上）')
    parser.add_argument('--db', type=str, default=None,
                        help='SQLite 数据库路径（覆盖配置）')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='输出 DEBUG 日志')

    # 所有子命令共用的输出选项
    output = argparse.ArgumentParser(add_help=False)
    output.add_argument('--json', action='store_true',
                        help='以 JSON 输出结果（camelCase 字段名）')

    # 创建子命令
    subparsers = parser.add_subparsers(dest='command', help='子命令', required=True)

    # ============================================================================
    # 子命令: crawl - 爬取单个 URL 或一组分页 URL
    # ============================================================================
    parser_crawl = subparsers.add_parser('crawl', parents=[output],
                                         help='爬取页面：--url 单页，--pattern + --start-page + --end-page 分页')
    parser_crawl.add_argument('--url', type=str, action='append',
                              help='页面 URL（可重复，多个目标在同一次运行中并发爬取）')
    parser_crawl.add_argument('--pattern', type=str, dest='url_pattern',
                              help='分页 URL 模板（包含 {page} 占位符）；与分页参数齐全时优先于 --url')
    parser_crawl.add_argument('--start-page', type=int, default=None, help='起始页码')
    parser_crawl.add_argument('--end-page', type=int, default=None, help='结束页码（包含）')
    parser_crawl.add_argument('--batch', type=str, default=None, metavar='FILE',
                              help='JSON 请求文件：[{"url": ...}, {"urlPattern": ..., "startPage": 1, "endPage": 3}]')

    # ============================================================================
    # 子命令: sync - 重新爬取来源，只记录新图片
    # ============================================================================
    parser_sync = subparsers.add_parser('sync', parents=[output], help='同步来源')
    parser_sync.add_argument('source_id', type=str, help='来源 ID')

    # ============================================================================
    # 目录管理
    # ============================================================================
    subparsers.add_parser('sources', parents=[output], help='列出全部来源')

    parser_delete = subparsers.add_parser('delete-source', parents=[output],
                                          help='删除来源（收藏过的图片归档保留）')
    parser_delete.add_argument('source_id', type=str, help='来源 ID')

    parser_images = subparsers.add_parser('images', parents=[output], help='列出图片（最新在前）')
    parser_images.add_argument('--favorites', action='store_true', help='只显示收藏的图片')

    parser_favorite = subparsers.add_parser('favorite', parents=[output], help='收藏 / 取消收藏图片')
    parser_favorite.add_argument('image_id', type=str, help='图片 ID')
    parser_favorite.add_argument('--off', dest='favorite', action='store_false',
                                 help='取消收藏')

    # ============================================================================
    # 子命令: download - 下载透传
    # ============================================================================
    parser_download = subparsers.add_parser('download', parents=[output], help='下载单张图片')
    parser_download.add_argument('url', type=str, help='图片 URL')
    parser_download.add_argument('-o', '--output', type=str, default=None,
                                 help='保存路径或目录（默认：当前目录，文件名取自 URL）')

    subparsers.add_parser('stats', parents=[output], help='查看统计信息')

    return parser
