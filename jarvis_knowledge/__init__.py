"""
jarvis-knowledge — Jarvis 知识上下文包

负责：
- 知识条目的存储（SQLite / Memory）
- 按重要度与意图标签对活跃知识评分、排序、截断
- 生成注入 prompt 的最小知识上下文块
- Portal API（FastAPI）：查询、写入、批量导入、模块管理

使用:
    from jarvis_knowledge import KnowledgeContextBuilder
    from jarvis_knowledge.store import MemoryStore

    store = MemoryStore()
    await store.connect()
    blocks = await KnowledgeContextBuilder(store).build(intent_tags=["trading"])
"""

__version__ = "0.1.0"

from .context import KnowledgeContextBuilder, build_knowledge_context, score_item
from .types import KnowledgeItem, KnowledgeContextBlock

__all__ = [
    "KnowledgeContextBuilder",
    "build_knowledge_context",
    "score_item",
    "KnowledgeItem",
    "KnowledgeContextBlock",
    "__version__",
]
