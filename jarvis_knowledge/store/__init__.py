"""
jarvis-knowledge 知识存储层

提供统一的存储接口，支持：
- MemoryStore: 内存存储（测试/开发）
- SQLiteStore: SQLite 存储（开发/小规模生产）
"""

from .base import KnowledgeStore, clean_slug, normalize_upsert_input, pretty_module_name
from .memory_store import MemoryStore
from .sqlite_store import SQLiteStore

__all__ = [
    "KnowledgeStore",
    "MemoryStore",
    "SQLiteStore",
    "clean_slug",
    "pretty_module_name",
    "normalize_upsert_input",
    "create_store",
]


def create_store(config: dict) -> KnowledgeStore:
    """
    根据配置创建知识存储

    Args:
        config: 存储配置字典
            type: "memory" | "sqlite"
            sqlite_path: SQLite 数据库路径（type=sqlite 时）

    Returns:
        KnowledgeStore 实例
    """
    store_type = config.get("type", "memory")

    if store_type == "memory":
        return MemoryStore()
    elif store_type == "sqlite":
        return SQLiteStore(
            db_path=config.get("sqlite_path", "jarvis_knowledge.db"),
        )
    else:
        raise ValueError(f"未知的存储类型: {store_type}")
