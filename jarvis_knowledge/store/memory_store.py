"""
jarvis-knowledge 内存知识存储

用于测试和开发环境。
"""

import itertools
import threading
import uuid
from typing import Optional, List, Dict, Any

from .base import (
    KnowledgeStore,
    normalize_upsert_input,
    pretty_module_name,
    utcnow_iso,
)
from ..exceptions import StoreError
from ..types import KnowledgeItem, KnowledgeModule, UpsertKnowledgeItemInput


class MemoryStore(KnowledgeStore):
    """
    内存知识存储

    特性：
    - 线程安全
    - 排序与 SQLiteStore 一致（importance ↓, created_at ↓, 插入顺序 ↓）
    """

    def __init__(self):
        self._items: Dict[str, Dict[str, Any]] = {}
        self._modules: Dict[str, KnowledgeModule] = {}
        self._seq = itertools.count(1)
        self._lock = threading.RLock()
        self._connected = False

    # ==================== 连接管理 ====================

    async def connect(self) -> bool:
        self._connected = True
        return True

    async def disconnect(self):
        self._connected = False

    async def health_check(self) -> Dict[str, Any]:
        return {
            "status": "healthy" if self._connected else "disconnected",
            "adapter": "memory",
            "modules": len(self._modules),
            "total_items": len(self._items),
        }

    # ==================== 检索边界 ====================

    def _to_item(self, record: Dict[str, Any]) -> KnowledgeItem:
        module = self._modules.get(record.get("module_id"))
        item = KnowledgeItem.from_dict(record)
        item.module_slug = module.slug if module else None
        return item

    async def list_items(
        self,
        module_slug: Optional[str] = None,
        status: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[KnowledgeItem]:
        with self._lock:
            self._ensure_connected()
            records = list(self._items.values())

            if status:
                records = [r for r in records if r["status"] == status]
            if module_slug:
                module_ids = {m.id for m in self._modules.values() if m.slug == module_slug}
                records = [r for r in records if r.get("module_id") in module_ids]
            if search:
                needle = search.lower()
                records = [r for r in records if needle in r["title"].lower()]

            records.sort(
                key=lambda r: (
                    r["importance"] if r["importance"] is not None else float("-inf"),
                    r["created_at"],
                    r["_seq"],
                ),
                reverse=True,
            )
            if limit is not None:
                records = records[:limit]

            return [self._to_item(r) for r in records]

    # ==================== 写入路径 ====================

    async def upsert_item(self, data: UpsertKnowledgeItemInput) -> KnowledgeItem:
        self._ensure_connected()
        payload = normalize_upsert_input(data)

        module_id = None
        if data.module_slug:
            module = await self.get_or_create_module(data.module_slug)
            module_id = module.id

        with self._lock:
            now = utcnow_iso()
            if data.id:
                existing = self._items.get(data.id)
                if existing is None:
                    raise StoreError(f"Knowledge item not found: {data.id}")
                existing.update(payload)
                existing["module_id"] = module_id
                existing["version"] += 1
                existing["updated_at"] = now
                record = existing
            else:
                record = dict(payload)
                record.update({
                    "id": uuid.uuid4().hex,
                    "module_id": module_id,
                    "version": 1,
                    "created_at": now,
                    "updated_at": now,
                    "_seq": next(self._seq),
                })
                self._items[record["id"]] = record

            return self._to_item(record)

    # ==================== 模块管理 ====================

    async def get_or_create_module(self, slug: str) -> KnowledgeModule:
        with self._lock:
            self._ensure_connected()
            for module in self._modules.values():
                if module.slug == slug:
                    return module

            module = KnowledgeModule(
                id=uuid.uuid4().hex,
                slug=slug,
                name=pretty_module_name(slug),
                description=f'Auto-created module for slug "{slug}".',
                created_at=utcnow_iso(),
            )
            self._modules[module.id] = module
            return module

    async def list_modules(self) -> List[KnowledgeModule]:
        with self._lock:
            self._ensure_connected()
            return sorted(self._modules.values(), key=lambda m: m.name)

    async def update_module(
        self,
        module_id: str,
        name: Optional[str] = None,
        slug: Optional[str] = None,
        description: Optional[str] = None,
    ) -> KnowledgeModule:
        update = self._module_update_fields(name, slug, description)
        with self._lock:
            self._ensure_connected()
            module = self._modules.get(module_id)
            if module is None:
                raise StoreError(f"Knowledge module not found: {module_id}")
            new_slug = update.get("slug")
            if new_slug is not None and any(
                m.slug == new_slug and m.id != module_id for m in self._modules.values()
            ):
                raise StoreError(f"Module slug already exists: {new_slug}")
            for key, value in update.items():
                setattr(module, key, value)
            return module

    async def merge_modules(
        self,
        source_id: str,
        target_id: str,
        delete_source: bool = True,
    ) -> int:
        self._check_merge_args(source_id, target_id)
        with self._lock:
            self._ensure_connected()
            moved = 0
            for record in self._items.values():
                if record.get("module_id") == source_id:
                    record["module_id"] = target_id
                    moved += 1
            if delete_source:
                self._modules.pop(source_id, None)
            return moved

    # ==================== 工具方法 ====================

    def clear(self):
        """清空存储"""
        with self._lock:
            self._items.clear()
            self._modules.clear()
