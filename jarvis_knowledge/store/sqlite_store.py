"""
jarvis-knowledge SQLite 知识存储

两张表：knowledge_modules / knowledge_items，tags 以 JSON 存储。
支持 WAL 模式与忙时重试。
"""

import json
import sqlite3
import threading
import logging
import time
import uuid
from contextlib import contextmanager
from typing import Optional, List, Dict, Any

from .base import (
    KnowledgeStore,
    normalize_upsert_input,
    pretty_module_name,
    utcnow_iso,
)
from ..exceptions import StoreError
from ..types import KnowledgeItem, KnowledgeModule, UpsertKnowledgeItemInput

logger = logging.getLogger(__name__)

MAX_RETRY_ATTEMPTS = 3
RETRY_DELAY_BASE = 0.1

_ITEM_COLUMNS = '''
    i.id, i.module_id, m.slug AS module_slug, i.title, i.content_markdown,
    i.jarvis_instructions, i.item_type, i.tags, i.importance, i.status,
    i.version, i.created_at, i.updated_at
'''


class SQLiteStore(KnowledgeStore):
    """
    SQLite 知识存储

    特性：
    - 模块自动创建
    - 索引优化
    - WAL 模式提升并发性能
    - sqlite3.Error 统一转换为 StoreError
    """

    def __init__(
        self,
        db_path: str = "jarvis_knowledge.db",
        enable_wal: bool = True,
        busy_timeout_ms: int = 5000,
    ):
        self.db_path = db_path
        self.enable_wal = enable_wal
        self.busy_timeout_ms = busy_timeout_ms
        self._lock = threading.RLock()
        self._connected = False

    @contextmanager
    def _get_conn(self):
        """获取数据库连接"""
        conn = sqlite3.connect(
            self.db_path,
            timeout=self.busy_timeout_ms / 1000.0,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        if self.enable_wal:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
        try:
            yield conn
        finally:
            conn.close()

    def _retry_on_busy(self, func, *args, **kwargs):
        """在数据库忙时重试"""
        last_error = None
        for attempt in range(MAX_RETRY_ATTEMPTS):
            try:
                return func(*args, **kwargs)
            except sqlite3.OperationalError as e:
                if "database is locked" in str(e) or "busy" in str(e).lower():
                    last_error = e
                    delay = RETRY_DELAY_BASE * (2 ** attempt)
                    logger.warning(f"Database busy, retrying in {delay:.2f}s (attempt {attempt + 1})")
                    time.sleep(delay)
                else:
                    raise
        raise last_error

    def _execute(self, func):
        """执行数据库操作，sqlite3 异常转为 StoreError"""
        self._ensure_connected()
        with self._lock:
            try:
                return self._retry_on_busy(func)
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    def _init_tables(self):
        """初始化数据库表"""
        with self._get_conn() as conn:
            cursor = conn.cursor()

            cursor.execute('''
                CREATE TABLE IF NOT EXISTS knowledge_modules (
                    id TEXT PRIMARY KEY,
                    slug TEXT NOT NULL UNIQUE,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_at TEXT NOT NULL
                )
            ''')

            # seq 用于同 importance / created_at 时的插入顺序
            cursor.execute('''
                CREATE TABLE IF NOT EXISTS knowledge_items (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    module_id TEXT REFERENCES knowledge_modules(id),
                    title TEXT NOT NULL,
                    content_markdown TEXT NOT NULL,
                    jarvis_instructions TEXT,
                    item_type TEXT NOT NULL DEFAULT 'rule',
                    tags TEXT NOT NULL DEFAULT '[]',
                    importance REAL DEFAULT 1,
                    status TEXT NOT NULL DEFAULT 'active',
                    version INTEGER DEFAULT 1,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            ''')

            cursor.execute('CREATE INDEX IF NOT EXISTS idx_items_status ON knowledge_items(status)')
            cursor.execute('CREATE INDEX IF NOT EXISTS idx_items_module ON knowledge_items(module_id)')
            cursor.execute(
                'CREATE INDEX IF NOT EXISTS idx_items_rank '
                'ON knowledge_items(importance DESC, created_at DESC)'
            )

            conn.commit()
        logger.info(f"SQLite knowledge store initialized: {self.db_path}")

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> KnowledgeItem:
        data = dict(row)
        data["tags"] = json.loads(data.get("tags") or "[]")
        return KnowledgeItem.from_dict(data)

    @staticmethod
    def _row_to_module(row: sqlite3.Row) -> KnowledgeModule:
        return KnowledgeModule.from_dict(dict(row))

    # ==================== 连接管理 ====================

    async def connect(self) -> bool:
        with self._lock:
            try:
                self._init_tables()
                self._connected = True
                return True
            except sqlite3.Error as e:
                logger.error(f"Failed to connect to SQLite: {e}")
                return False

    async def disconnect(self):
        self._connected = False

    async def health_check(self) -> Dict[str, Any]:
        try:
            with self._get_conn() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM knowledge_items")
                count = cursor.fetchone()["count"]
            return {
                "status": "healthy" if self._connected else "disconnected",
                "adapter": "sqlite",
                "db_path": self.db_path,
                "total_items": count,
            }
        except sqlite3.Error as e:
            return {"status": "unhealthy", "adapter": "sqlite", "error": str(e)}

    # ==================== 检索边界 ====================

    async def list_items(
        self,
        module_slug: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[KnowledgeItem]:
        sql = f'''
            SELECT {_ITEM_COLUMNS}
            FROM knowledge_items i
            LEFT JOIN knowledge_modules m ON m.id = i.module_id
        '''
        where: List[str] = []
        params: List[Any] = []

        if status:
            where.append("i.status = ?")
            params.append(status)
        if module_slug:
            where.append("m.slug = ?")
            params.append(module_slug)
        if search:
            where.append("LOWER(i.title) LIKE ?")
            params.append(f"%{search.lower()}%")

        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY i.importance DESC, i.created_at DESC, i.seq DESC"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)

        def _do_query():
            with self._get_conn() as conn:
                cursor = conn.cursor()
                cursor.execute(sql, params)
                return [self._row_to_item(row) for row in cursor.fetchall()]

        return self._execute(_do_query)

    def _load_item(self, conn: sqlite3.Connection, item_id: str) -> Optional[KnowledgeItem]:
        cursor = conn.cursor()
        cursor.execute(f'''
            SELECT {_ITEM_COLUMNS}
            FROM knowledge_items i
            LEFT JOIN knowledge_modules m ON m.id = i.module_id
            WHERE i.id = ?
        ''', (item_id,))
        row = cursor.fetchone()
        return self._row_to_item(row) if row else None

    # ==================== 写入路径 ====================

    async def upsert_item(self, data: UpsertKnowledgeItemInput) -> KnowledgeItem:
        payload = normalize_upsert_input(data)

        module_id = None
        if data.module_slug:
            module = await self.get_or_create_module(data.module_slug)
            module_id = module.id

        def _do_upsert():
            now = utcnow_iso()
            with self._get_conn() as conn:
                cursor = conn.cursor()
                values = (
                    module_id,
                    payload["title"],
                    payload["content_markdown"],
                    payload["jarvis_instructions"],
                    payload["item_type"],
                    json.dumps(payload["tags"], ensure_ascii=False),
                    payload["importance"],
                    payload["status"],
                )
                if data.id:
                    cursor.execute('''
                        UPDATE knowledge_items
                        SET module_id = ?, title = ?, content_markdown = ?,
                            jarvis_instructions = ?, item_type = ?, tags = ?,
                            importance = ?, status = ?,
                            version = version + 1, updated_at = ?
                        WHERE id = ?
                    ''', values + (now, data.id))
                    if cursor.rowcount == 0:
                        raise StoreError(f"Knowledge item not found: {data.id}")
                    item_id = data.id
                else:
                    item_id = uuid.uuid4().hex
                    cursor.execute('''
                        INSERT INTO knowledge_items
                        (id, module_id, title, content_markdown, jarvis_instructions,
                         item_type, tags, importance, status, version,
                         created_at, updated_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, 1, ?, ?)
                    ''', (item_id,) + values + (now, now))
                conn.commit()
                return self._load_item(conn, item_id)

        return self._execute(_do_upsert)

    # ==================== 模块管理 ====================

    async def get_or_create_module(self, slug: str) -> KnowledgeModule:
        def _do_get_or_create():
            with self._get_conn() as conn:
                cursor = conn.cursor()
                cursor.execute('SELECT * FROM knowledge_modules WHERE slug = ?', (slug,))
                row = cursor.fetchone()
                if row:
                    return self._row_to_module(row)

                module = KnowledgeModule(
                    id=uuid.uuid4().hex,
                    slug=slug,
                    name=pretty_module_name(slug),
                    description=f'Auto-created module for slug "{slug}".',
                    created_at=utcnow_iso(),
                )
                cursor.execute('''
                    INSERT INTO knowledge_modules (id, slug, name, description, created_at)
                    VALUES (?, ?, ?, ?, ?)
                ''', (module.id, module.slug, module.name, module.description, module.created_at))
                conn.commit()
                logger.info(f"Knowledge module auto-created: {slug}")
                return module

        return self._execute(_do_get_or_create)

    async def list_modules(self) -> List[KnowledgeModule]:
        def _do_list():
            with self._get_conn() as conn:
                cursor = conn.cursor()
                cursor.execute('SELECT * FROM knowledge_modules ORDER BY name ASC')
                return [self._row_to_module(row) for row in cursor.fetchall()]

        return self._execute(_do_list)

    async def update_module(
        self,
        module_id: str,
        name: Optional[str] = None,
        slug: Optional[str] = None,
        description: Optional[str] = None,
    ) -> KnowledgeModule:
        update = self._module_update_fields(name, slug, description)
        assignments = ", ".join(f"{key} = ?" for key in update)

        def _do_update():
            with self._get_conn() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    f'UPDATE knowledge_modules SET {assignments} WHERE id = ?',
                    tuple(update.values()) + (module_id,),
                )
                if cursor.rowcount == 0:
                    raise StoreError(f"Knowledge module not found: {module_id}")
                conn.commit()
                cursor.execute('SELECT * FROM knowledge_modules WHERE id = ?', (module_id,))
                return self._row_to_module(cursor.fetchone())

        return self._execute(_do_update)

    async def merge_modules(
        self,
        source_id: str,
        target_id: str,
        delete_source: bool = True,
    ) -> int:
        self._check_merge_args(source_id, target_id)

        def _do_merge():
            with self._get_conn() as conn:
                cursor = conn.cursor()
                cursor.execute(
                    'UPDATE knowledge_items SET module_id = ? WHERE module_id = ?',
                    (target_id, source_id),
                )
                moved = cursor.rowcount
                if delete_source:
                    cursor.execute('DELETE FROM knowledge_modules WHERE id = ?', (source_id,))
                conn.commit()
                return moved

        return self._execute(_do_merge)
