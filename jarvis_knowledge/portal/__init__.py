"""
jarvis-knowledge Portal — 知识管理 API 服务

主要职责：
- 知识条目的查询、写入、批量导入
- 模块管理（列表、更新、合并）
- 摘要任务入口（已禁用）

使用示例：
    from jarvis_knowledge.portal import create_portal_app
    from jarvis_knowledge.config import PortalConfig

    app = create_portal_app(PortalConfig.for_development())

    import uvicorn
    uvicorn.run(app, host="127.0.0.1", port=8082)
"""

from .app import create_portal_app
from .service import PortalService
from .routes import create_portal_routers

__all__ = [
    "create_portal_app",
    "PortalService",
    "create_portal_routers",
]
