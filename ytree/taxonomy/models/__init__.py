"""分类树模块 - 模型"""

from .collection import Collection
from .node import CategoryNode
from .template import Template, TemplateVersion, TemplateBinding
from .content_item import ContentItem

__all__ = [
    "Collection",
    "CategoryNode",
    "Template",
    "TemplateVersion",
    "TemplateBinding",
    "ContentItem",
]
