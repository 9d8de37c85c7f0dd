"""
数据存储模块（SQLite）

持久化三类数据：
- sources: 爬取来源
- images: 采集到的图片（seq 越大越新，列表按最新在前返回）
- favorites: 收藏的图片 ID 集合（允许引用已不存在的图片）

sqlite3 错误统一转换为 PersistenceError 抛出；写操作由 Catalog 在
transaction() 中组合，保证一次修改要么全部生效要么全部回滚。
"""
from typing import Dict, Any, List, Optional, Iterable, Iterator, Set
from contextlib import contextmanager
import sqlite3
from pathlib import Path
from datetime import datetime
from loguru import logger

from config import DatabaseConfig, config
from core.exceptions import PersistenceError
from core.models import Image, Source


class Storage:
    """目录数据存储管理器（SQLite 持久化）"""

    def __init__(self, db_config: Optional[DatabaseConfig] = None):
        self.db_config = db_config or config.database
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self):
        """连接数据库（创建 SQLite 文件及表结构）"""
        path = Path(self.db_config.sqlite_path)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            # 事务由 transaction() 显式控制（BEGIN IMMEDIATE），其余语句自动提交
            self._conn = sqlite3.connect(
                str(path),
                timeout=self.db_config.busy_timeout,
                isolation_level=None,
                check_same_thread=False,
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._init_schema()
            logger.success("Connected to SQLite: {}", path)
        except sqlite3.Error as e:
            logger.error("Failed to connect to SQLite: {}", e)
            self._conn = None
            raise PersistenceError(f"Failed to open catalog database {path}: {e}") from e

    def _init_schema(self):
        """初始化表结构"""
        self._conn.executescript("""
            CREATE TABLE IF NOT EXISTS sources (
                id TEXT PRIMARY KEY,
                url TEXT NOT NULL,
                name TEXT NOT NULL,
                created_at TEXT
            );

            CREATE TABLE IF NOT EXISTS images (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT UNIQUE NOT NULL,
                src TEXT NOT NULL,
                alt TEXT,
                source TEXT,
                author TEXT,
                source_id TEXT REFERENCES sources(id),
                created_at TEXT
            );
            CREATE INDEX IF NOT EXISTS idx_images_source_id ON images(source_id);

            CREATE TABLE IF NOT EXISTS favorites (
                image_id TEXT PRIMARY KEY,
                created_at TEXT
            );
        """)
        self._conn.commit()

    def close(self):
        """关闭数据库连接"""
        if self._conn:
            self._conn.close()
            self._conn = None
            logger.info("SQLite connection closed")

    @property
    def is_connected(self) -> bool:
        return self._conn is not None

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise PersistenceError("Catalog database is not connected")
        return self._conn

    def _execute(self, sql: str, params: Iterable[Any] = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, tuple(params))
        except sqlite3.Error as e:
            logger.error("SQLite error: {} ({})", e, sql.split()[0])
            raise PersistenceError(str(e)) from e

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        写事务：正常退出提交，任何异常回滚

        以 BEGIN IMMEDIATE 开始，进入时即取得数据库写锁：
        事务内的读取和写入对其他连接（其他进程）是一个整体，
        另一个写者会等待 busy_timeout 后失败。

        Example:
            with storage.transaction():
                storage.insert_source(source)
                storage.prepend_images(images)
        """
        conn = self.conn
        try:
            conn.execute("BEGIN IMMEDIATE")
        except sqlite3.Error as e:
            logger.error("Failed to begin transaction: {}", e)
            raise PersistenceError(f"Catalog database is busy: {e}") from e

        try:
            yield conn
        except BaseException:
            try:
                conn.execute("ROLLBACK")
            except sqlite3.Error as e:
                logger.error("Rollback failed: {}", e)
            raise

        try:
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            logger.error("Transaction failed: {}", e)
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise PersistenceError(str(e)) from e

    # ==================== 来源 ====================

    def list_sources(self) -> List[Source]:
        """按创建顺序返回全部来源"""
        rows = self._execute("SELECT id, url, name FROM sources ORDER BY rowid").fetchall()
        return [self._row_to_source(row) for row in rows]

    def get_source(self, source_id: str) -> Optional[Source]:
        row = self._execute("SELECT id, url, name FROM sources WHERE id = ?", (source_id,)).fetchone()
        return self._row_to_source(row) if row else None

    def insert_source(self, source: Source) -> None:
        self._execute(
            "INSERT INTO sources (id, url, name, created_at) VALUES (?, ?, ?, ?)",
            (source.id, source.url, source.name, datetime.now().isoformat()),
        )
        logger.debug("Saved source: {}", source.id)

    def delete_source(self, source_id: str) -> bool:
        cur = self._execute("DELETE FROM sources WHERE id = ?", (source_id,))
        return cur.rowcount > 0

    # ==================== 图片 ====================

    def list_images(self) -> List[Image]:
        """最新在前"""
        rows = self._execute(
            "SELECT id, src, alt, source, author, source_id FROM images ORDER BY seq DESC"
        ).fetchall()
        return [self._row_to_image(row) for row in rows]

    def get_images_for_source(self, source_id: str) -> List[Image]:
        rows = self._execute(
            "SELECT id, src, alt, source, author, source_id FROM images WHERE source_id = ? ORDER BY seq DESC",
            (source_id,),
        ).fetchall()
        return [self._row_to_image(row) for row in rows]

    def get_source_srcs(self, source_id: str) -> Set[str]:
        """某来源已记录的图片地址集合"""
        rows = self._execute("SELECT src FROM images WHERE source_id = ?", (source_id,)).fetchall()
        return {row["src"] for row in rows}

    def prepend_images(self, images: List[Image]) -> None:
        """
        把一批新图片放到最前面

        批内顺序保持不变：倒序插入，使第一张图片的 seq 最大。
        """
        now = datetime.now().isoformat()
        for image in reversed(images):
            self._execute(
                """
                INSERT INTO images (id, src, alt, source, author, source_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (image.id, image.src, image.alt, image.source, image.author, image.source_id, now),
            )
        logger.debug("Saved {} image records", len(images))

    def update_image_source(self, image: Image) -> None:
        """改写图片的来源字段（归档时使用），id 与位置不变"""
        self._execute(
            "UPDATE images SET source = ?, source_id = ? WHERE id = ?",
            (image.source, image.source_id, image.id),
        )

    def delete_images(self, image_ids: List[str]) -> int:
        removed = 0
        for image_id in image_ids:
            removed += self._execute("DELETE FROM images WHERE id = ?", (image_id,)).rowcount
        return removed

    # ==================== 收藏 ====================

    def list_favorites(self) -> List[str]:
        """按收藏先后返回图片 ID"""
        rows = self._execute("SELECT image_id FROM favorites ORDER BY rowid").fetchall()
        return [row["image_id"] for row in rows]

    def favorite_ids(self) -> Set[str]:
        return set(self.list_favorites())

    def add_favorite(self, image_id: str) -> None:
        self._execute(
            "INSERT OR IGNORE INTO favorites (image_id, created_at) VALUES (?, ?)",
            (image_id, datetime.now().isoformat()),
        )

    def remove_favorite(self, image_id: str) -> None:
        self._execute("DELETE FROM favorites WHERE image_id = ?", (image_id,))

    # ==================== 统计 ====================

    def get_statistics(self) -> Dict[str, Any]:
        """获取统计信息"""
        def count(sql: str) -> int:
            return self._execute(sql).fetchone()[0]

        return {
            "total_sources": count("SELECT COUNT(*) FROM sources"),
            "total_images": count("SELECT COUNT(*) FROM images"),
            "archived_images": count("SELECT COUNT(*) FROM images WHERE source_id IS NULL"),
            "favorites": count("SELECT COUNT(*) FROM favorites"),
            "orphaned_favorites": count(
                "SELECT COUNT(*) FROM favorites WHERE image_id NOT IN (SELECT id FROM images)"
            ),
        }

    @staticmethod
    def _row_to_source(row: sqlite3.Row) -> Source:
        return Source(id=row["id"], url=row["url"], name=row["name"])

    @staticmethod
    def _row_to_image(row: sqlite3.Row) -> Image:
        return Image(
            id=row["id"],
            src=row["src"],
            alt=row["alt"] or "",
            source=row["source"] or "",
            author=row["author"] or "",
            source_id=row["source_id"],
        )
