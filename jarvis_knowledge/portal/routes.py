"""
Jarvis Knowledge Portal 路由层

定义 FastAPI 路由，委托给 PortalService。
所有响应使用 {ok: bool, ...} 信封。

API 端点一览：
    GET    /knowledge/list          — 查询知识（moduleSlug / status / search）
    POST   /knowledge/save          — 新建或更新知识
    POST   /knowledge/bulk-import   — 批量导入（json-v1）
    GET    /modules/list            — 模块列表
    POST   /modules/update          — 更新模块
    POST   /modules/merge           — 合并模块
    POST   /jobs/summarize          — 摘要任务（已禁用）
    GET    /jobs/summarize          — 摘要任务（已禁用）
    GET    /health                  — 健康检查
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import KnowledgeError, ValidationError
from .service import PortalService, IMPORT_FORMAT_JSON_V1

logger = logging.getLogger(__name__)


# ==================== 请求模型 ====================

class SaveKnowledgeRequest(BaseModel):
    """
    知识写入请求

    id 存在 → 更新；否则新建。title / content_markdown 由存储层校验。
    """
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = Field(default=None, description="条目 ID（更新时提供）")
    module_slug: Optional[str] = Field(default=None, alias="moduleSlug", description="模块 slug")
    title: Optional[str] = None
    content_markdown: Optional[str] = None
    jarvis_instructions: Optional[str] = None
    item_type: Optional[str] = Field(default=None, description="rule | concept | formula | story | checklist")
    tags: Optional[List[str]] = None
    importance: Optional[float] = None
    status: Optional[str] = Field(default=None, description="active | draft | archived")


class BulkImportRequest(BaseModel):
    """批量导入请求"""
    raw: Optional[str] = Field(default=None, description="JSON 文本，根节点为数组")
    format: str = Field(default=IMPORT_FORMAT_JSON_V1, description="数据格式")


class UpdateModuleRequest(BaseModel):
    """更新模块请求"""
    id: Optional[str] = None
    name: Optional[str] = None
    slug: Optional[str] = None
    description: Optional[str] = None


class MergeModulesRequest(BaseModel):
    """合并模块请求"""
    model_config = ConfigDict(populate_by_name=True)

    source_id: Optional[str] = Field(default=None, alias="sourceId")
    target_id: Optional[str] = Field(default=None, alias="targetId")
    delete_source: bool = Field(default=True, alias="deleteSource")


# ==================== 错误响应 ====================

def error_response(tag: str, err: Exception, status_code: int) -> JSONResponse:
    """记录错误并返回 {ok: false, error} 响应"""
    logger.error(f"[{tag}] error: {err}")
    return JSONResponse(
        {"ok": False, "error": str(err) or "Unknown error"},
        status_code=status_code,
    )


def split_status(err: Exception) -> int:
    """校验错误 → 400，其它错误 → 500"""
    return 400 if isinstance(err, ValidationError) else 500


def create_portal_routers(service: PortalService):
    """
    创建 Portal 路由

    Args:
        service: PortalService 实例

    Returns:
        路由字典 {name: APIRouter}
    """
    split_errors = service.config.server.split_error_status

    def legacy_status(err: Exception) -> int:
        # list / save 默认所有错误返回 400
        if split_errors and isinstance(err, KnowledgeError):
            return split_status(err)
        return 400

    # ==================== 健康检查路由 ====================

    health_router = APIRouter(prefix="/health", tags=["Health"])

    @health_router.get("")
    async def health():
        """健康检查"""
        return await service.health_check()

    # ==================== 知识路由 ====================

    knowledge_router = APIRouter(prefix="/knowledge", tags=["Knowledge"])

    @knowledge_router.get("/list")
    async def list_knowledge(
        module_slug: Optional[str] = Query(None, alias="moduleSlug"),
        status: Optional[str] = Query(None, description="默认 active"),
        search: Optional[str] = Query(None, description="标题关键字"),
    ):
        """查询知识列表"""
        try:
            items = await service.list_knowledge(
                module_slug=module_slug,
                status=status,
                search=search,
            )
        except Exception as e:
            return error_response("knowledge/list", e, legacy_status(e))
        return {"ok": True, "items": items}

    @knowledge_router.post("/save")
    async def save_knowledge(request: SaveKnowledgeRequest):
        """新建或更新知识"""
        try:
            item = await service.save_knowledge(request.model_dump(by_alias=True))
        except Exception as e:
            return error_response("knowledge/save", e, legacy_status(e))
        return {"ok": True, "item": item}

    @knowledge_router.post("/bulk-import")
    async def bulk_import(request: BulkImportRequest):
        """批量导入知识（json-v1）"""
        try:
            result = await service.bulk_import(request.raw or "", request.format)
        except Exception as e:
            return error_response("knowledge/bulk-import", e, split_status(e))
        return {"ok": True, **result}

    # ==================== 模块路由 ====================

    modules_router = APIRouter(prefix="/modules", tags=["Modules"])

    @modules_router.get("/list")
    async def list_modules():
        """模块列表（按名称升序）"""
        try:
            modules = await service.list_modules()
        except Exception as e:
            return error_response("modules/list", e, 500)
        return {"ok": True, "modules": modules}

    @modules_router.post("/update")
    async def update_module(request: UpdateModuleRequest):
        """更新模块"""
        try:
            module = await service.update_module(
                request.id,
                name=request.name,
                slug=request.slug,
                description=request.description,
            )
        except Exception as e:
            return error_response("modules/update", e, split_status(e))
        return {"ok": True, "module": module}

    @modules_router.post("/merge")
    async def merge_modules(request: MergeModulesRequest):
        """合并模块"""
        try:
            moved = await service.merge_modules(
                request.source_id,
                request.target_id,
                delete_source=request.delete_source,
            )
        except Exception as e:
            return error_response("modules/merge", e, split_status(e))
        return {"ok": True, "moved": moved}

    # ==================== 任务路由 ====================

    jobs_router = APIRouter(prefix="/jobs", tags=["Jobs"])

    @jobs_router.post("/summarize")
    async def summarize():
        """摘要任务（已禁用）"""
        result = await service.summarize()
        return {"ok": True, **result}

    @jobs_router.get("/summarize")
    async def summarize_status():
        return {"ok": True, "message": "Summarizer disabled (GET)."}

    return {
        "health": health_router,
        "knowledge": knowledge_router,
        "modules": modules_router,
        "jobs": jobs_router,
    }
