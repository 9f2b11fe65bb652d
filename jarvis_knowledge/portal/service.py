"""
Jarvis Knowledge Portal 服务层

核心业务逻辑，路由层只负责请求解析和响应封装。

职责：
- 知识条目查询 / 写入 / 批量导入
- 模块列表、更新、合并
- 为进程内调用方构建知识上下文
- 摘要任务（已禁用，空操作）
"""

import json
import logging
import time
from typing import Optional, Dict, Any, List, Sequence

from ..config import PortalConfig
from ..context import KnowledgeContextBuilder
from ..exceptions import ImportFormatError, ValidationError
from ..store import KnowledgeStore, create_store, normalize_upsert_input
from ..types import KnowledgeContextBlock, UpsertKnowledgeItemInput

logger = logging.getLogger(__name__)

IMPORT_FORMAT_JSON_V1 = "json-v1"
SUMMARIZER_DISABLED_MESSAGE = "Summarizer disabled for deployment."


class PortalService:
    """
    Portal 服务

    store 可由调用方注入（测试），否则按配置创建。
    """

    def __init__(self, config: PortalConfig, store: Optional[KnowledgeStore] = None):
        """
        初始化 Portal 服务

        Args:
            config: Portal 配置
            store: 预先创建的知识存储（可选）
        """
        self.config = config
        self._store = store
        self._builder: Optional[KnowledgeContextBuilder] = None

        # 状态
        self._initialized = False
        self._start_time = time.time()

        # 统计
        self._stats = {
            "list_count": 0,
            "save_count": 0,
            "import_count": 0,
            "context_count": 0,
        }

    @property
    def store(self) -> KnowledgeStore:
        return self._store

    async def initialize(self):
        """初始化服务"""
        if self._initialized:
            return

        if self._store is None:
            self._store = create_store({
                "type": self.config.store.type,
                "sqlite_path": self.config.store.sqlite_path,
            })
        await self._store.connect()

        self._builder = KnowledgeContextBuilder(
            self._store,
            default_max_items=self.config.context.max_items,
            tag_bonus=self.config.context.tag_bonus,
        )

        self._initialized = True
        logger.info(f"PortalService initialized: store={self.config.store.type}")

    async def shutdown(self):
        """关闭服务"""
        if self._store:
            await self._store.disconnect()

        self._initialized = False
        logger.info("PortalService shutdown")

    # ==================== 知识条目 ====================

    async def list_knowledge(
        self,
        module_slug: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """查询知识列表（limit 固定为配置值）"""
        self._stats["list_count"] += 1

        items = await self._store.list_items(
            module_slug=module_slug,
            status=status or self.config.listing.default_status,
            search=search,
            limit=self.config.listing.limit,
        )
        return [item.to_dict() for item in items]

    async def save_knowledge(self, body: Dict[str, Any]) -> Dict[str, Any]:
        """新建或更新单个知识条目"""
        self._stats["save_count"] += 1

        item = await self._store.upsert_item(UpsertKnowledgeItemInput.from_dict(body))
        return item.to_dict()

    async def bulk_import(self, raw: str, format: str = IMPORT_FORMAT_JSON_V1) -> Dict[str, Any]:
        """
        批量导入（json-v1）

        所有条目先校验再写入；批量模式总是新建条目。

        Args:
            raw: JSON 文本，根节点为条目数组
            format: 数据格式，目前只支持 json-v1

        Returns:
            {"count": 新建数量, "ids": 新建 id 列表}
        """
        self._stats["import_count"] += 1

        if not raw or not raw.strip():
            raise ImportFormatError("No data provided")
        if format != IMPORT_FORMAT_JSON_V1:
            raise ImportFormatError("Unsupported format. Use 'json-v1'.")

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ImportFormatError(
                "Invalid JSON. Make sure the text is valid JSON. You can use any AI "
                "to generate it, but the final text must be valid JSON."
            ) from e

        if not isinstance(parsed, list):
            raise ImportFormatError(
                "JSON root must be an array of items. "
                "Example: [ { ...rule1 }, { ...rule2 } ]."
            )

        inputs = [self._import_input(index, raw_item) for index, raw_item in enumerate(parsed, 1)]

        ids = []
        for data in inputs:
            created = await self._store.upsert_item(data)
            ids.append(created.id)

        logger.info(f"Bulk import finished: {len(ids)} items")
        return {"count": len(ids), "ids": ids}

    def _import_input(self, index: int, raw_item: Any) -> UpsertKnowledgeItemInput:
        if not isinstance(raw_item, dict) or not raw_item.get("title") or not raw_item.get("content_markdown"):
            raise ValidationError(f"Item #{index} missing 'title' or 'content_markdown'.")

        defaults = self.config.importing
        importance = raw_item.get("importance")
        if isinstance(importance, bool) or not isinstance(importance, (int, float)):
            importance = defaults.default_importance
        tags = raw_item.get("tags")

        data = UpsertKnowledgeItemInput(
            module_slug=raw_item.get("moduleSlug") or defaults.default_module_slug,
            title=str(raw_item["title"]),
            content_markdown=str(raw_item["content_markdown"]),
            jarvis_instructions=(
                str(raw_item["jarvis_instructions"]) if raw_item.get("jarvis_instructions") else None
            ),
            item_type=raw_item.get("item_type") or "rule",
            tags=[str(t) for t in tags] if isinstance(tags, list) else [],
            importance=importance,
            status=raw_item.get("status") or "active",
        )
        try:
            normalize_upsert_input(data)
        except ValidationError as e:
            raise ValidationError(f"Item #{index} is invalid: {e}") from e
        return data

    # ==================== 模块 ====================

    async def list_modules(self) -> List[Dict[str, Any]]:
        modules = await self._store.list_modules()
        return [m.to_dict() for m in modules]

    async def update_module(
        self,
        module_id: Optional[str],
        name: Optional[str] = None,
        slug: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Dict[str, Any]:
        if not module_id:
            raise ValidationError("Missing module id")
        module = await self._store.update_module(
            module_id, name=name, slug=slug, description=description,
        )
        return module.to_dict()

    async def merge_modules(
        self,
        source_id: Optional[str],
        target_id: Optional[str],
        delete_source: bool = True,
    ) -> int:
        moved = await self._store.merge_modules(source_id, target_id, delete_source)
        logger.info(f"Modules merged: {source_id} -> {target_id}, moved={moved}")
        return moved

    # ==================== 知识上下文 ====================

    async def build_context(
        self,
        intent_tags: Optional[Sequence[str]] = None,
        max_items: Optional[int] = None,
    ) -> List[KnowledgeContextBlock]:
        """为进程内调用方构建知识上下文（不经过 HTTP）"""
        self._stats["context_count"] += 1
        return await self._builder.build(intent_tags=intent_tags, max_items=max_items)

    # ==================== 摘要（已禁用） ====================

    async def summarize(self) -> Dict[str, Any]:
        """摘要任务已禁用，直接返回成功"""
        return {"message": SUMMARIZER_DISABLED_MESSAGE}

    # ==================== 健康检查 ====================

    async def health_check(self) -> Dict[str, Any]:
        """健康检查"""
        store_health = None
        if self._store:
            store_health = await self._store.health_check()

        return {
            "status": "healthy" if self._initialized else "not_initialized",
            "version": self.config.version,
            "environment": self.config.environment,
            "uptime_seconds": time.time() - self._start_time,
            "stats": self._stats,
            "store": store_health,
        }
