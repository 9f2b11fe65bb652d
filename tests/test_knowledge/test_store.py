"""
jarvis-knowledge 知识存储测试
"""

import os
import tempfile

import pytest
import pytest_asyncio

from jarvis_knowledge.exceptions import StoreConnectionError, StoreError, ValidationError
from jarvis_knowledge.store.base import utcnow_iso
from jarvis_knowledge.store import (
    MemoryStore,
    SQLiteStore,
    clean_slug,
    create_store,
    pretty_module_name,
)
from jarvis_knowledge.types import UpsertKnowledgeItemInput


def new_input(title="Rule", content="Body", **kwargs) -> UpsertKnowledgeItemInput:
    return UpsertKnowledgeItemInput(title=title, content_markdown=content, **kwargs)


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def store(request):
    if request.param == "memory":
        s = MemoryStore()
        await s.connect()
        yield s
        await s.disconnect()
    else:
        with tempfile.TemporaryDirectory() as tmpdir:
            s = SQLiteStore(db_path=os.path.join(tmpdir, "test.db"))
            await s.connect()
            yield s
            await s.disconnect()


class TestHelpers:
    """测试工具函数"""

    def test_pretty_module_name(self):
        assert pretty_module_name("trading_psychology") == "Trading Psychology"
        assert pretty_module_name("risk__mgmt  rules") == "Risk Mgmt Rules"
        assert pretty_module_name("___") == "Jarvis Module"

    def test_clean_slug(self):
        assert clean_slug("  Trading Psychology ") == "trading_psychology"
        assert clean_slug("Risk-Mgmt!") == "risk_mgmt_"

    def test_create_store(self):
        assert isinstance(create_store({"type": "memory"}), MemoryStore)
        assert isinstance(create_store({"type": "sqlite", "sqlite_path": ":memory:"}), SQLiteStore)
        with pytest.raises(ValueError):
            create_store({"type": "postgres"})

    def test_utcnow_iso_is_timezone_aware(self):
        assert utcnow_iso().endswith("+00:00")


class TestUpsert:
    """测试写入路径"""

    @pytest.mark.asyncio
    async def test_create_with_defaults(self, store):
        item = await store.upsert_item(new_input())
        assert item.id
        assert item.title == "Rule"
        assert item.content_markdown == "Body"
        assert item.item_type == "rule"
        assert item.tags == []
        assert item.importance == 1
        assert item.status == "active"
        assert item.version == 1
        assert item.module_id is None
        assert item.jarvis_instructions is None

    @pytest.mark.asyncio
    async def test_create_with_module_autocreates(self, store):
        item = await store.upsert_item(new_input(module_slug="trading_psychology"))
        assert item.module_slug == "trading_psychology"
        modules = await store.list_modules()
        assert len(modules) == 1
        assert modules[0].name == "Trading Psychology"
        assert modules[0].description == 'Auto-created module for slug "trading_psychology".'
        assert modules[0].id == item.module_id

    @pytest.mark.asyncio
    async def test_existing_module_reused(self, store):
        a = await store.upsert_item(new_input("A", module_slug="risk"))
        b = await store.upsert_item(new_input("B", module_slug="risk"))
        assert a.module_id == b.module_id
        assert len(await store.list_modules()) == 1

    @pytest.mark.asyncio
    async def test_tags_deduplicated(self, store):
        item = await store.upsert_item(new_input(tags=["a", "b", "a"]))
        assert item.tags == ["a", "b"]

    @pytest.mark.asyncio
    async def test_update_increments_version(self, store):
        created = await store.upsert_item(new_input(importance=2))
        updated = await store.upsert_item(new_input(
            id=created.id, title="Rule v2", importance=4,
        ))
        assert updated.id == created.id
        assert updated.title == "Rule v2"
        assert updated.importance == 4
        assert updated.version == 2
        assert updated.created_at == created.created_at
        assert len(await store.list_items()) == 1

    @pytest.mark.asyncio
    async def test_update_unknown_id(self, store):
        with pytest.raises(StoreError):
            await store.upsert_item(new_input(id="missing"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kwargs", [
        {"title": ""},
        {"title": "   "},
        {"content": ""},
        {"status": "deleted"},
        {"importance": "high"},
    ])
    async def test_validation_errors(self, store, kwargs):
        with pytest.raises(ValidationError):
            await store.upsert_item(new_input(**kwargs))

    @pytest.mark.asyncio
    async def test_missing_title_is_store_error(self, store):
        with pytest.raises(StoreError):
            await store.upsert_item(UpsertKnowledgeItemInput(title=None, content_markdown="x"))


class TestListItems:
    """测试检索边界"""

    @pytest.mark.asyncio
    async def test_ordering_by_importance(self, store):
        await store.upsert_item(new_input("low", importance=1))
        await store.upsert_item(new_input("high", importance=5))
        await store.upsert_item(new_input("mid", importance=3))
        items = await store.list_items()
        assert [i.title for i in items] == ["high", "mid", "low"]

    @pytest.mark.asyncio
    async def test_ties_newest_first(self, store):
        await store.upsert_item(new_input("older", importance=2))
        await store.upsert_item(new_input("newer", importance=2))
        items = await store.list_items()
        assert [i.title for i in items] == ["newer", "older"]

    @pytest.mark.asyncio
    async def test_status_filter(self, store):
        await store.upsert_item(new_input("live"))
        await store.upsert_item(new_input("draft", status="draft"))
        items = await store.list_items(status="active")
        assert [i.title for i in items] == ["live"]

    @pytest.mark.asyncio
    async def test_module_filter(self, store):
        await store.upsert_item(new_input("t", module_slug="trading"))
        await store.upsert_item(new_input("p", module_slug="psych"))
        await store.upsert_item(new_input("none"))
        items = await store.list_items(module_slug="trading")
        assert [i.title for i in items] == ["t"]
        assert await store.list_items(module_slug="unknown") == []

    @pytest.mark.asyncio
    async def test_search_and_limit(self, store):
        for i in range(5):
            await store.upsert_item(new_input(f"Risk rule {i}", importance=i))
        await store.upsert_item(new_input("Other"))
        items = await store.list_items(search="risk", limit=2)
        assert [i.title for i in items] == ["Risk rule 4", "Risk rule 3"]

    @pytest.mark.asyncio
    async def test_limit_zero_returns_nothing(self, store):
        await store.upsert_item(new_input())
        assert await store.list_items(limit=0) == []

    @pytest.mark.asyncio
    async def test_tags_roundtrip(self, store):
        await store.upsert_item(new_input(tags=["trading", "psych"], jarvis_instructions="hint"))
        items = await store.list_items()
        assert items[0].tags == ["trading", "psych"]
        assert items[0].jarvis_instructions == "hint"

    @pytest.mark.asyncio
    async def test_disconnected_raises(self, store):
        await store.disconnect()
        with pytest.raises(StoreConnectionError):
            await store.list_items()


class TestModules:
    """测试模块管理"""

    @pytest.mark.asyncio
    async def test_list_sorted_by_name(self, store):
        await store.get_or_create_module("zeta")
        await store.get_or_create_module("alpha")
        modules = await store.list_modules()
        assert [m.slug for m in modules] == ["alpha", "zeta"]

    @pytest.mark.asyncio
    async def test_update_module(self, store):
        module = await store.get_or_create_module("risk")
        updated = await store.update_module(
            module.id, name="  Risk Management ", slug="Risk Mgmt", description=" rules ",
        )
        assert updated.name == "Risk Management"
        assert updated.slug == "risk_mgmt"
        assert updated.description == "rules"

    @pytest.mark.asyncio
    async def test_update_module_nothing_to_update(self, store):
        module = await store.get_or_create_module("risk")
        with pytest.raises(ValidationError):
            await store.update_module(module.id)

    @pytest.mark.asyncio
    async def test_update_module_slug_conflict(self, store):
        await store.get_or_create_module("risk")
        other = await store.get_or_create_module("trading")
        with pytest.raises(StoreError):
            await store.update_module(other.id, slug="Risk")
        assert sorted(m.slug for m in await store.list_modules()) == ["risk", "trading"]

    @pytest.mark.asyncio
    async def test_update_unknown_module(self, store):
        with pytest.raises(StoreError):
            await store.update_module("missing", name="x")

    @pytest.mark.asyncio
    async def test_merge_modules(self, store):
        await store.upsert_item(new_input("a", module_slug="source"))
        await store.upsert_item(new_input("b", module_slug="source"))
        await store.upsert_item(new_input("c", module_slug="target"))
        modules = {m.slug: m for m in await store.list_modules()}

        moved = await store.merge_modules(modules["source"].id, modules["target"].id)
        assert moved == 2

        items = await store.list_items(module_slug="target")
        assert sorted(i.title for i in items) == ["a", "b", "c"]
        assert [m.slug for m in await store.list_modules()] == ["target"]

    @pytest.mark.asyncio
    async def test_merge_keep_source(self, store):
        source = await store.get_or_create_module("source")
        target = await store.get_or_create_module("target")
        moved = await store.merge_modules(source.id, target.id, delete_source=False)
        assert moved == 0
        assert len(await store.list_modules()) == 2

    @pytest.mark.asyncio
    async def test_merge_invalid_args(self, store):
        with pytest.raises(ValidationError):
            await store.merge_modules("", "x")
        with pytest.raises(ValidationError):
            await store.merge_modules("x", "x")


class TestHealth:
    """测试健康检查"""

    @pytest.mark.asyncio
    async def test_health(self, store):
        await store.upsert_item(new_input())
        health = await store.health_check()
        assert health["status"] == "healthy"
        assert health["total_items"] == 1
