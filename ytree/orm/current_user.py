"""当前操作人

把操作人存放在 session.info 中，软删除钩子据此填写 created_by / updated_by / deleted_by，
删除协调器在未显式传入 actor 时也从这里取值。

使用示例:
    from ytree.orm import set_user, get_user_id, clear_user

    set_user(session, current_user)   # 或直接传用户 ID
    ...
    clear_user(session)
"""

from typing import Any, Optional

from sqlalchemy.orm import Session

_USER_KEY = "ytree_current_user_id"


def set_user(session: Session, user: Any) -> None:
    """设置当前操作人

    Args:
        session: 数据库会话
        user: 用户对象（取其 id 属性）或用户 ID
    """
    user_id = getattr(user, "id", user)
    session.info[_USER_KEY] = user_id


def get_user_id(session: Session) -> Optional[int]:
    """获取当前操作人 ID，未设置时返回 None"""
    if session is None:
        return None
    return session.info.get(_USER_KEY)


def clear_user(session: Session) -> None:
    """清除当前操作人"""
    session.info.pop(_USER_KEY, None)
