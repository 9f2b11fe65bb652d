"""
知识上下文构建器

流程：
    store.list_items(status="active") → 评分 → 稳定降序排序 → 截断 top-K → 投影

每次调用都重新拉取并重新评分，不做缓存。
存储层抛出的异常原样向上传播，不重试、不兜底。
"""

import logging
from typing import List, Optional, Sequence

from ..store.base import KnowledgeStore
from ..types import (
    KnowledgeContextBlock,
    KnowledgeItem,
    KnowledgeStatus,
    ScoredItem,
)
from .scorer import TAG_MATCH_BONUS, resolve_importance, score_item

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITEMS = 8


def rank_items(
    items: Sequence[KnowledgeItem],
    intent_tags: Optional[Sequence[str]] = None,
    max_items: int = DEFAULT_MAX_ITEMS,
    tag_bonus: float = TAG_MATCH_BONUS,
) -> List[ScoredItem]:
    """
    评分、排序并截断候选池

    sorted 是稳定排序（reverse=True 同样稳定），同分条目保持存储层返回的顺序。
    """
    if max_items < 0:
        raise ValueError(f"max_items must be >= 0, got {max_items}")

    intent_tags = list(intent_tags or [])
    scored = [
        ScoredItem(item=item, score=score_item(item, intent_tags, tag_bonus))
        for item in items
    ]
    scored = sorted(scored, key=lambda s: s.score, reverse=True)
    return scored[:max_items]


def to_context_block(item: KnowledgeItem) -> KnowledgeContextBlock:
    """投影为上下文块（不校验，缺失字段原样透传）"""
    return KnowledgeContextBlock(
        title=item.title,
        item_type=item.item_type,
        importance=resolve_importance(item.importance),
        content=item.content_markdown,
        instructions=item.jarvis_instructions,
    )


class KnowledgeContextBuilder:
    """
    知识上下文构建器

    无状态：每次 build 只依赖本次从存储层拿到的快照。
    """

    def __init__(
        self,
        store: KnowledgeStore,
        default_max_items: int = DEFAULT_MAX_ITEMS,
        tag_bonus: float = TAG_MATCH_BONUS,
    ):
        self.store = store
        self.default_max_items = default_max_items
        self.tag_bonus = tag_bonus

    async def build(
        self,
        intent_tags: Optional[Sequence[str]] = None,
        max_items: Optional[int] = None,
    ) -> List[KnowledgeContextBlock]:
        """
        构建知识上下文

        Args:
            intent_tags: 意图标签，如 ["trading", "psychology"]
            max_items: 最多返回条数，默认 8

        Returns:
            按分数降序的上下文块列表（可能为空，不会是 None）

        Raises:
            StoreError: 存储层不可用，原样传播
        """
        if max_items is None:
            max_items = self.default_max_items

        pool = await self.store.list_items(status=KnowledgeStatus.ACTIVE.value)
        ranked = rank_items(pool, intent_tags, max_items, self.tag_bonus)

        logger.debug(
            f"Knowledge context built: pool={len(pool)}, returned={len(ranked)}, "
            f"intent_tags={list(intent_tags or [])}"
        )
        return [to_context_block(s.item) for s in ranked]


async def build_knowledge_context(
    store: KnowledgeStore,
    intent_tags: Optional[Sequence[str]] = None,
    max_items: Optional[int] = None,
) -> List[KnowledgeContextBlock]:
    """使用默认参数构建知识上下文"""
    return await KnowledgeContextBuilder(store).build(
        intent_tags=intent_tags,
        max_items=max_items,
    )


def format_context_for_prompt(blocks: Sequence[KnowledgeContextBlock]) -> str:
    """把上下文块渲染为 markdown，供上游 prompt 组装使用"""
    parts: List[str] = []

    for block in blocks:
        parts.append(
            f"### {block.title} ({block.item_type}, importance {block.importance})"
        )
        if block.content:
            parts.append(block.content.strip())
        if block.instructions:
            parts.append(f"Instructions: {block.instructions.strip()}")
        parts.append("")

    return "\n".join(parts).strip()
