"""
jarvis-knowledge 上下文模块

对活跃知识评分、排序、截断，并投影为可注入 prompt 的上下文块。

使用示例：
    from jarvis_knowledge.context import KnowledgeContextBuilder

    builder = KnowledgeContextBuilder(store)
    blocks = await builder.build(intent_tags=["trading"], max_items=5)
"""

from .scorer import (
    TAG_MATCH_BONUS,
    resolve_importance,
    count_tag_overlap,
    score_item,
)
from .builder import (
    DEFAULT_MAX_ITEMS,
    KnowledgeContextBuilder,
    build_knowledge_context,
    format_context_for_prompt,
    rank_items,
    to_context_block,
)

__all__ = [
    "TAG_MATCH_BONUS",
    "DEFAULT_MAX_ITEMS",
    "resolve_importance",
    "count_tag_overlap",
    "score_item",
    "rank_items",
    "to_context_block",
    "KnowledgeContextBuilder",
    "build_knowledge_context",
    "format_context_for_prompt",
]
