"""通用工具函数

- parse_file_size: 解析 "10MB" 这类大小字符串（日志配置使用）
- to_snake_case: 类名转表名
- compute_checksum: 对结构化数据做规范化 SHA-256 摘要（内容条目、模板版本快照使用）
"""

import hashlib
import json
import re
from typing import Any, Union


# 单位转换表（按长度降序排列）
SIZE_UNITS = [
    ('TB', 1024 ** 4),
    ('GB', 1024 ** 3),
    ('MB', 1024 ** 2),
    ('KB', 1024),
    ('B', 1),
]


def parse_file_size(size_str: Union[str, int, float]) -> int:
    """解析文件大小字符串

    支持的单位：B, KB, MB, GB, TB（不区分大小写）

    使用示例:
        >>> parse_file_size("10MB")
        10485760
        >>> parse_file_size(1024)
        1024
    """
    if isinstance(size_str, (int, float)):
        return int(size_str)

    size_str = str(size_str).strip().upper()
    if not size_str:
        raise ValueError("文件大小字符串不能为空")

    for unit, multiplier in SIZE_UNITS:
        if size_str.endswith(unit):
            number_str = size_str[:-len(unit)].strip()
            try:
                return int(float(number_str) * multiplier)
            except ValueError:
                raise ValueError(f"无法解析文件大小: {size_str}")

    try:
        return int(float(size_str))
    except ValueError:
        raise ValueError(f"无法解析文件大小: {size_str}")


_CAMEL_BOUNDARY_1 = re.compile(r'(.)([A-Z][a-z]+)')
_CAMEL_BOUNDARY_2 = re.compile(r'([a-z0-9])([A-Z])')


def to_snake_case(name: str) -> str:
    """驼峰命名转下划线命名

    Examples:
        >>> to_snake_case("CategoryNode")
        'category_node'
        >>> to_snake_case("TemplateVersion")
        'template_version'
    """
    name = _CAMEL_BOUNDARY_1.sub(r'\1_\2', name)
    return _CAMEL_BOUNDARY_2.sub(r'\1_\2', name).lower()


def compute_checksum(data: Any) -> str:
    """计算结构化数据的规范化 SHA-256 摘要

    键排序、紧凑分隔符，保证同样的数据总得到同样的摘要。
    无法直接 JSON 序列化的值（如 datetime）按 str() 处理。
    """
    canonical = json.dumps(
        data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()
