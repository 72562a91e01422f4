"""分类树模块 - 服务层"""

from .template_service import TemplateService
from .node_service import NodeService
from .deletion_service import DeletionService
from .content_service import ContentService, visible_items_criteria
from .query_service import TreeQueryService

__all__ = [
    "TemplateService",
    "NodeService",
    "DeletionService",
    "ContentService",
    "TreeQueryService",
    "visible_items_criteria",
]
