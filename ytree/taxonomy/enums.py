"""
分类树模块 - 枚举定义
"""

from enum import Enum
from typing import Type, TypeVar, Union

from ytree.exceptions import Err

E = TypeVar("E", bound=Enum)


class OwnerKind(str, Enum):
    """树的所有者类型

    每个节点恰好属于一种所有者范围。
    """

    # 集合独有的分类树
    COLLECTION = "collection"

    # 模板树，可被多个集合绑定共享
    TEMPLATE = "template"


class ItemType(str, Enum):
    """内容条目类型（封闭集合）"""

    ACTIVATION = "activation"
    PROPERTY = "property"
    EVENT_TRIGGER = "event_trigger"
    PROMPT = "prompt"
    INSTRUCTION = "instruction"
    REFERENCE = "reference"
    METADATA = "metadata"


class DeletionPolicy(str, Enum):
    """删除策略"""

    # 子节点提升到被删节点的父级，内容条目移到父节点（根节点则变为未分类）
    REASSIGN = "reassign"

    # 整棵子树软删除，子树内所有内容条目变为未分类
    CASCADE = "cascade"

    # 有子节点或内容条目时拒绝删除
    BLOCK = "block"


def parse_enum(enum_cls: Type[E], value: Union[E, str], field: str) -> E:
    """把外部传入的字符串转换为枚举，非法值抛出 ValidationException (422)"""
    try:
        return enum_cls(value)
    except ValueError:
        raise Err.invalid(
            f"{field} 取值无效: {value!r}",
            field=field,
            choices=[member.value for member in enum_cls],
        ) from None
