"""
分类树模块 - 所有者范围

节点要么属于某个集合，要么属于某个模板，二者必居其一。
用带标签的变体表示，"两者都有 / 两者都没有" 在类型上不可表达；
只有按两个可选 ID 传入的请求才需要经过 resolve_owner() 校验。

使用示例:
    owner = CollectionOwner(collection_id=3)
    owner = TemplateOwner(template_id=7)

    owner = resolve_owner(collection_id=req.collection_id, template_id=req.template_id)
"""

from dataclasses import dataclass
from typing import Optional, Union

from .enums import OwnerKind
from .exceptions import InvalidOwnerScope


@dataclass(frozen=True)
class CollectionOwner:
    """集合所有的树"""
    collection_id: int

    @property
    def kind(self) -> OwnerKind:
        return OwnerKind.COLLECTION

    @property
    def owner_id(self) -> int:
        return self.collection_id


@dataclass(frozen=True)
class TemplateOwner:
    """模板所有的树"""
    template_id: int

    @property
    def kind(self) -> OwnerKind:
        return OwnerKind.TEMPLATE

    @property
    def owner_id(self) -> int:
        return self.template_id


Owner = Union[CollectionOwner, TemplateOwner]


def owner_of(kind: Union[OwnerKind, str], owner_id: int) -> Owner:
    """由存储的 (owner_kind, owner_id) 还原所有者"""
    if OwnerKind(kind) == OwnerKind.COLLECTION:
        return CollectionOwner(owner_id)
    return TemplateOwner(owner_id)


def resolve_owner(collection_id: Optional[int] = None, template_id: Optional[int] = None) -> Owner:
    """把两个可选 ID 解析为所有者

    Raises:
        InvalidOwnerScope: 同时提供或都未提供
    """
    if collection_id is not None and template_id is not None:
        raise InvalidOwnerScope(
            "节点不能同时属于集合和模板",
            collection_id=collection_id,
            template_id=template_id,
        )
    if collection_id is None and template_id is None:
        raise InvalidOwnerScope("必须指定节点所属的集合或模板")
    if collection_id is not None:
        return CollectionOwner(collection_id)
    return TemplateOwner(template_id)
