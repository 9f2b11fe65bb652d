"""
jarvis-knowledge 知识存储抽象基类

定义检索边界（list_items）与写入路径（upsert_item）的统一接口，
以及模块（module）的查询、自动创建、更新和合并。
"""

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any

from ..exceptions import StoreConnectionError, ValidationError
from ..types import (
    KnowledgeItem,
    KnowledgeModule,
    KnowledgeStatus,
    UpsertKnowledgeItemInput,
    DEFAULT_IMPORTANCE,
    DEFAULT_ITEM_TYPE,
    DEFAULT_STATUS,
)

DEFAULT_MODULE_NAME = "Jarvis Module"


# ==================== 工具函数 ====================

def utcnow_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def pretty_module_name(slug: str) -> str:
    """trading_psychology → Trading Psychology"""
    name = re.sub(r"\s+", " ", slug.replace("_", " ")).strip()
    name = re.sub(r"\b\w", lambda m: m.group(0).upper(), name)
    return name or DEFAULT_MODULE_NAME


def clean_slug(slug: str) -> str:
    """规范化 slug：小写，空白转下划线，其它非法字符转下划线"""
    cleaned = re.sub(r"\s+", "_", slug.strip().lower())
    return re.sub(r"[^a-z0-9_]", "_", cleaned)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_upsert_input(data: UpsertKnowledgeItemInput) -> Dict[str, Any]:
    """
    校验写入输入并填充默认值

    Returns:
        可直接落库的字段字典（不含 id / module_id / 时间戳）

    Raises:
        ValidationError: 缺少 title / content_markdown，或字段类型不合法
    """
    if not isinstance(data.title, str) or not data.title.strip():
        raise ValidationError("title is required")
    if not isinstance(data.content_markdown, str) or not data.content_markdown.strip():
        raise ValidationError("content_markdown is required")

    status = data.status or DEFAULT_STATUS
    if status not in {s.value for s in KnowledgeStatus}:
        raise ValidationError(f"Invalid status: {status}")

    importance = data.importance
    if importance is None:
        importance = DEFAULT_IMPORTANCE
    elif not _is_number(importance):
        raise ValidationError("importance must be a number")

    if data.tags is not None and not isinstance(data.tags, (list, tuple)):
        raise ValidationError("tags must be a list of strings")
    tags: List[str] = []
    for tag in data.tags or []:
        tag = str(tag)
        if tag not in tags:
            tags.append(tag)

    return {
        "title": data.title,
        "content_markdown": data.content_markdown,
        "jarvis_instructions": data.jarvis_instructions or None,
        "item_type": data.item_type or DEFAULT_ITEM_TYPE,
        "tags": tags,
        "importance": importance,
        "status": status,
    }


class KnowledgeStore(ABC):
    """
    知识存储抽象基类

    接口分组：
    - 连接管理
    - 检索边界: list_items
    - 写入路径: upsert_item
    - 模块管理: get_or_create_module / list_modules / update_module / merge_modules

    数据操作在未连接时抛出 StoreConnectionError。
    """

    _connected: bool = False

    def _ensure_connected(self):
        if not self._connected:
            raise StoreConnectionError("Knowledge store is not connected")

    # ==================== 连接管理 ====================

    @abstractmethod
    async def connect(self) -> bool:
        """建立连接"""
        ...

    @abstractmethod
    async def disconnect(self):
        """断开连接"""
        ...

    async def is_connected(self) -> bool:
        """检查连接状态"""
        return self._connected

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """健康检查"""
        ...

    # ==================== 检索边界 ====================

    @abstractmethod
    async def list_items(
        self,
        module_slug: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[KnowledgeItem]:
        """
        查询知识条目

        Args:
            module_slug: 模块 slug 过滤，未知 slug 返回空列表
            status: 状态过滤
            search: 标题子串（不区分大小写）
            limit: 最大条数

        Returns:
            按 importance 降序、created_at 降序排列的条目

        Raises:
            StoreError: 存储不可达或查询失败
        """
        ...

    # ==================== 写入路径 ====================

    @abstractmethod
    async def upsert_item(self, data: UpsertKnowledgeItemInput) -> KnowledgeItem:
        """
        新建或更新知识条目

        Raises:
            ValidationError: 缺少必填字段
            StoreError: 更新的 id 不存在或写入失败
        """
        ...

    # ==================== 模块管理 ====================

    @abstractmethod
    async def get_or_create_module(self, slug: str) -> KnowledgeModule:
        """按 slug 获取模块，不存在时自动创建"""
        ...

    @abstractmethod
    async def list_modules(self) -> List[KnowledgeModule]:
        """按名称升序列出所有模块"""
        ...

    @abstractmethod
    async def update_module(
        self,
        module_id: str,
        name: Optional[str] = None,
        slug: Optional[str] = None,
        description: Optional[str] = None,
    ) -> KnowledgeModule:
        """更新模块名称 / slug / 描述"""
        ...

    @abstractmethod
    async def merge_modules(
        self,
        source_id: str,
        target_id: str,
        delete_source: bool = True,
    ) -> int:
        """
        合并模块：把 source 下的条目移到 target

        Returns:
            移动的条目数量
        """
        ...

    # ==================== 共享校验 ====================

    @staticmethod
    def _module_update_fields(
        name: Optional[str],
        slug: Optional[str],
        description: Optional[str],
    ) -> Dict[str, str]:
        update: Dict[str, str] = {}
        if isinstance(name, str):
            update["name"] = name.strip()
        if isinstance(description, str):
            update["description"] = description.strip()
        if isinstance(slug, str) and slug.strip():
            update["slug"] = clean_slug(slug)
        if not update:
            raise ValidationError("Nothing to update")
        return update

    @staticmethod
    def _check_merge_args(source_id: str, target_id: str):
        if not source_id or not target_id:
            raise ValidationError("sourceId and targetId are required")
        if source_id == target_id:
            raise ValidationError("sourceId and targetId cannot be the same")
