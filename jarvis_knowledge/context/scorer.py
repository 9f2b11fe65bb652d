"""
知识相关性评分

score = importance + tag_bonus × |item.tags ∩ intent_tags|

importance 缺省或不是数字时按 1 处理，负数和 0 原样保留。
标签匹配区分大小写，不做词干化或模糊匹配。
"""

import math
from typing import Any, Iterable, Optional

from ..types import KnowledgeItem, DEFAULT_IMPORTANCE

TAG_MATCH_BONUS = 2


def resolve_importance(value: Any) -> float:
    """把原始 importance 解析为评分基数"""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return DEFAULT_IMPORTANCE
    if math.isnan(value):
        return DEFAULT_IMPORTANCE
    return value


def count_tag_overlap(item: KnowledgeItem, intent_tags: Iterable[str]) -> int:
    """条目标签中出现在意图标签里的数量"""
    wanted = set(intent_tags)
    return sum(1 for tag in (item.tags or []) if tag in wanted)


def score_item(
    item: KnowledgeItem,
    intent_tags: Optional[Iterable[str]] = None,
    tag_bonus: float = TAG_MATCH_BONUS,
) -> float:
    """
    计算单个知识条目的相关性分数

    Args:
        item: 知识条目
        intent_tags: 意图标签，None 或空表示不加分
        tag_bonus: 每个匹配标签的加分

    Returns:
        分数（无副作用，相同输入得到相同输出）
    """
    score = resolve_importance(item.importance)

    if intent_tags:
        score += tag_bonus * count_tag_overlap(item, intent_tags)

    return score
