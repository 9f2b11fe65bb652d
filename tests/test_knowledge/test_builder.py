"""
知识上下文构建器测试
"""

import pytest

from jarvis_knowledge.context import (
    KnowledgeContextBuilder,
    build_knowledge_context,
    format_context_for_prompt,
    rank_items,
    score_item,
)
from jarvis_knowledge.exceptions import StoreConnectionError, StoreError
from jarvis_knowledge.store import KnowledgeStore, MemoryStore
from jarvis_knowledge.types import KnowledgeContextBlock, KnowledgeItem, UpsertKnowledgeItemInput


def make_item(title, importance=1, tags=None, **kwargs) -> KnowledgeItem:
    kwargs.setdefault("content_markdown", f"content {title}")
    return KnowledgeItem(
        id=f"id-{title}",
        title=title,
        importance=importance,
        tags=list(tags or []),
        **kwargs,
    )


class StaticStore(KnowledgeStore):
    """返回固定候选池的存储，记录 list_items 调用参数"""

    def __init__(self, items=None, error=None):
        self.items = list(items or [])
        self.error = error
        self.calls = []
        self._connected = True

    async def connect(self):
        return True

    async def disconnect(self):
        pass

    async def health_check(self):
        return {"status": "healthy"}

    async def list_items(self, module_slug=None, status=None, search=None, limit=None):
        self.calls.append({
            "module_slug": module_slug, "status": status,
            "search": search, "limit": limit,
        })
        if self.error:
            raise self.error
        return list(self.items)

    async def upsert_item(self, data):
        raise NotImplementedError

    async def get_or_create_module(self, slug):
        raise NotImplementedError

    async def list_modules(self):
        return []

    async def update_module(self, module_id, name=None, slug=None, description=None):
        raise NotImplementedError

    async def merge_modules(self, source_id, target_id, delete_source=True):
        return 0


class TestKnowledgeContextBuilder:
    """测试上下文构建"""

    @pytest.mark.asyncio
    async def test_tag_bonus_reorders(self):
        store = StaticStore([
            make_item("A", importance=1, tags=["trading"]),
            make_item("B", importance=5, tags=[]),
        ])
        blocks = await KnowledgeContextBuilder(store).build(
            intent_tags=["trading"], max_items=2,
        )
        assert [b.title for b in blocks] == ["B", "A"]

    @pytest.mark.asyncio
    async def test_tag_bonus_can_win(self):
        store = StaticStore([
            make_item("A", importance=1, tags=["trading", "risk"]),
            make_item("B", importance=4, tags=[]),
        ])
        blocks = await KnowledgeContextBuilder(store).build(intent_tags=["trading", "risk"])
        assert [b.title for b in blocks] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_no_overlap_single_item(self):
        store = StaticStore([make_item("C", importance=2, tags=["psych"])])
        blocks = await KnowledgeContextBuilder(store).build(intent_tags=["trading"])
        assert [b.title for b in blocks] == ["C"]
        assert blocks[0].importance == 2

    @pytest.mark.asyncio
    async def test_default_budget_is_eight(self):
        store = StaticStore([make_item(f"I{i}", importance=i) for i in range(10)])
        blocks = await KnowledgeContextBuilder(store).build()
        assert len(blocks) == 8
        assert [b.title for b in blocks] == [f"I{i}" for i in range(9, 1, -1)]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("k", [0, 1, 3, 5, 12])
    async def test_budget_respected(self, k):
        store = StaticStore([make_item(f"I{i}", importance=i % 3) for i in range(5)])
        blocks = await KnowledgeContextBuilder(store).build(max_items=k)
        assert len(blocks) == min(k, 5)

    @pytest.mark.asyncio
    async def test_negative_budget_rejected(self):
        store = StaticStore([make_item("A")])
        with pytest.raises(ValueError):
            await KnowledgeContextBuilder(store).build(max_items=-1)

    @pytest.mark.asyncio
    async def test_empty_pool(self):
        blocks = await KnowledgeContextBuilder(StaticStore([])).build(intent_tags=["x"])
        assert blocks == []

    @pytest.mark.asyncio
    async def test_stable_on_ties(self):
        store = StaticStore([
            make_item("first", importance=2),
            make_item("second", importance=2),
            make_item("third", importance=2),
        ])
        blocks = await KnowledgeContextBuilder(store).build()
        assert [b.title for b in blocks] == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_output_non_increasing(self):
        items = [
            make_item("a", importance=3, tags=["x"]),
            make_item("b", importance=1, tags=["x", "y"]),
            make_item("c", importance=7),
            make_item("d", importance=None, tags=["y"]),
            make_item("e", importance=0),
        ]
        store = StaticStore(items)
        blocks = await KnowledgeContextBuilder(store).build(intent_tags=["x", "y"], max_items=5)
        by_title = {i.title: i for i in items}
        scores = [score_item(by_title[b.title], ["x", "y"]) for b in blocks]
        assert scores == sorted(scores, reverse=True)

    @pytest.mark.asyncio
    async def test_idempotent(self):
        store = StaticStore([make_item(f"I{i}", importance=i % 2, tags=["t"] if i % 3 else []) for i in range(6)])
        builder = KnowledgeContextBuilder(store)
        first = await builder.build(intent_tags=["t"], max_items=4)
        second = await builder.build(intent_tags=["t"], max_items=4)
        assert first == second

    @pytest.mark.asyncio
    async def test_requests_active_pool_only(self):
        store = StaticStore([make_item("A")])
        await KnowledgeContextBuilder(store).build(intent_tags=["x"], max_items=3)
        assert store.calls == [{
            "module_slug": None, "status": "active",
            "search": None, "limit": None,
        }]

    @pytest.mark.asyncio
    async def test_refetches_every_call(self):
        store = StaticStore([make_item("A")])
        builder = KnowledgeContextBuilder(store)
        await builder.build()
        store.items.append(make_item("B", importance=9))
        blocks = await builder.build()
        assert len(store.calls) == 2
        assert blocks[0].title == "B"

    @pytest.mark.asyncio
    async def test_store_error_propagates_unchanged(self):
        error = StoreError("store unavailable")
        store = StaticStore(error=error)
        with pytest.raises(StoreError) as exc_info:
            await KnowledgeContextBuilder(store).build()
        assert exc_info.value is error

    @pytest.mark.asyncio
    async def test_disconnected_store_raises(self):
        store = MemoryStore()
        with pytest.raises(StoreConnectionError):
            await build_knowledge_context(store)


class TestProjection:
    """测试上下文块投影"""

    @pytest.mark.asyncio
    async def test_block_fields(self):
        store = StaticStore([
            make_item(
                "Risk rule", importance=4, tags=["trading"],
                item_type="rule", jarvis_instructions="Remind the user gently",
                content_markdown="Never risk more than 1%",
            ),
        ])
        blocks = await KnowledgeContextBuilder(store).build()
        assert blocks == [KnowledgeContextBlock(
            title="Risk rule",
            item_type="rule",
            importance=4,
            content="Never risk more than 1%",
            instructions="Remind the user gently",
        )]
        assert blocks[0].to_dict() == {
            "title": "Risk rule",
            "item_type": "rule",
            "importance": 4,
            "content": "Never risk more than 1%",
            "instructions": "Remind the user gently",
        }

    @pytest.mark.asyncio
    async def test_instructions_omitted_when_absent(self):
        store = StaticStore([make_item("A")])
        blocks = await KnowledgeContextBuilder(store).build()
        assert blocks[0].instructions is None
        assert "instructions" not in blocks[0].to_dict()

    @pytest.mark.asyncio
    async def test_missing_content_still_projected(self):
        store = StaticStore([make_item("A", content_markdown=None)])
        blocks = await KnowledgeContextBuilder(store).build()
        assert len(blocks) == 1
        assert blocks[0].content is None

    @pytest.mark.asyncio
    async def test_missing_importance_projected_as_one(self):
        store = StaticStore([make_item("A", importance=None)])
        blocks = await KnowledgeContextBuilder(store).build()
        assert blocks[0].importance == 1


class TestRankItems:
    """测试排序截断"""

    def test_rank_scores_attached(self):
        ranked = rank_items(
            [make_item("A", importance=1, tags=["t"]), make_item("B", importance=2)],
            intent_tags=["t"],
        )
        assert [(s.item.title, s.score) for s in ranked] == [("A", 3), ("B", 2)]

    def test_rank_custom_bonus(self):
        ranked = rank_items(
            [make_item("A", importance=1, tags=["t"]), make_item("B", importance=2)],
            intent_tags=["t"],
            tag_bonus=0.5,
        )
        assert [s.item.title for s in ranked] == ["B", "A"]


class TestFormatContext:
    """测试 prompt 渲染"""

    def test_empty(self):
        assert format_context_for_prompt([]) == ""

    def test_render(self):
        text = format_context_for_prompt([
            KnowledgeContextBlock("Rule A", "rule", 3, "Body A", "Use it"),
            KnowledgeContextBlock("Concept B", "concept", 1, "Body B"),
        ])
        assert "### Rule A (rule, importance 3)" in text
        assert "Instructions: Use it" in text
        assert "### Concept B (concept, importance 1)" in text
        assert text.index("Rule A") < text.index("Concept B")


class TestWithMemoryStore:
    """与内存存储集成"""

    @pytest.mark.asyncio
    async def test_only_active_items_used(self):
        store = MemoryStore()
        await store.connect()
        await store.upsert_item(UpsertKnowledgeItemInput(
            title="live", content_markdown="c", importance=1,
        ))
        await store.upsert_item(UpsertKnowledgeItemInput(
            title="old", content_markdown="c", importance=5, status="archived",
        ))
        blocks = await build_knowledge_context(store)
        assert [b.title for b in blocks] == ["live"]
