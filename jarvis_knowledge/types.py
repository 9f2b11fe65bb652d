"""
jarvis-knowledge 数据类型定义

知识条目由存储层持有，上下文构建器只读。
上下文块是面向 prompt 的最小投影，不包含 id / tags / status。
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, List, Dict, Any
import json


class KnowledgeItemType(str, Enum):
    """知识条目类型（已知取值，其它字符串按原样接受）"""
    RULE = "rule"
    CONCEPT = "concept"
    FORMULA = "formula"
    STORY = "story"
    CHECKLIST = "checklist"


class KnowledgeStatus(str, Enum):
    """知识生命周期状态"""
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


DEFAULT_ITEM_TYPE = KnowledgeItemType.RULE.value
DEFAULT_STATUS = KnowledgeStatus.ACTIVE.value
DEFAULT_IMPORTANCE = 1


@dataclass
class KnowledgeModule:
    """知识模块（按 slug 分组）"""
    id: str
    slug: str
    name: str
    description: Optional[str] = None
    created_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "slug": self.slug,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeModule":
        return cls(
            id=data["id"],
            slug=data.get("slug", ""),
            name=data.get("name", ""),
            description=data.get("description"),
            created_at=data.get("created_at"),
        )


@dataclass
class KnowledgeItem:
    """
    知识条目

    importance 允许缺省（None），评分时按 1 处理。
    content_markdown 写入时必填，但读取路径容忍缺失。
    """
    id: str
    title: str
    content_markdown: Optional[str] = None
    jarvis_instructions: Optional[str] = None
    item_type: str = DEFAULT_ITEM_TYPE
    tags: List[str] = field(default_factory=list)
    importance: Optional[float] = None
    status: str = DEFAULT_STATUS
    module_id: Optional[str] = None
    module_slug: Optional[str] = None
    version: int = 1
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典"""
        return {
            "id": self.id,
            "module_id": self.module_id,
            "moduleSlug": self.module_slug,
            "title": self.title,
            "content_markdown": self.content_markdown,
            "jarvis_instructions": self.jarvis_instructions,
            "item_type": self.item_type,
            "tags": list(self.tags),
            "importance": self.importance,
            "status": self.status,
            "version": self.version,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KnowledgeItem":
        """从字典创建（接受 module_slug 或 moduleSlug）"""
        return cls(
            id=data.get("id", ""),
            title=data.get("title", ""),
            content_markdown=data.get("content_markdown"),
            jarvis_instructions=data.get("jarvis_instructions"),
            item_type=data.get("item_type") or DEFAULT_ITEM_TYPE,
            tags=list(data.get("tags") or []),
            importance=data.get("importance"),
            status=data.get("status") or DEFAULT_STATUS,
            module_id=data.get("module_id"),
            module_slug=data.get("module_slug", data.get("moduleSlug")),
            version=data.get("version", 1),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )

    def to_json(self) -> str:
        """序列化为 JSON"""
        return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass
class UpsertKnowledgeItemInput:
    """
    写入输入

    id 存在 → 更新；否则新建。
    """
    title: str
    content_markdown: str
    id: Optional[str] = None
    module_slug: Optional[str] = None
    jarvis_instructions: Optional[str] = None
    item_type: Optional[str] = None
    tags: Optional[List[str]] = None
    importance: Optional[float] = None
    status: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UpsertKnowledgeItemInput":
        """从 HTTP 请求体创建（moduleSlug 为驼峰命名）"""
        return cls(
            id=data.get("id"),
            module_slug=data.get("moduleSlug", data.get("module_slug")),
            title=data.get("title"),
            content_markdown=data.get("content_markdown"),
            jarvis_instructions=data.get("jarvis_instructions"),
            item_type=data.get("item_type"),
            tags=data.get("tags"),
            importance=data.get("importance"),
            status=data.get("status"),
        )


@dataclass(frozen=True)
class ScoredItem:
    """评分中间结果，只在一次构建内存在"""
    item: KnowledgeItem
    score: float


@dataclass(frozen=True)
class KnowledgeContextBlock:
    """注入 prompt 的知识上下文块"""
    title: str
    item_type: str
    importance: float
    content: Optional[str]
    instructions: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d = {
            "title": self.title,
            "item_type": self.item_type,
            "importance": self.importance,
            "content": self.content,
        }
        if self.instructions is not None:
            d["instructions"] = self.instructions
        return d
