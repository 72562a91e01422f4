"""
ORM基础模型

提供主键、时间戳、乐观锁版本号、软删除标记以及常用的 CRUD 方法
"""

from __future__ import annotations

from datetime import datetime
from typing import ClassVar, TYPE_CHECKING

from sqlalchemy import DateTime, Integer, func, inspect
from sqlalchemy.ext.hybrid import hybrid_property
from sqlalchemy.orm import Mapped, Query, Session, declarative_base, declared_attr, mapped_column

if TYPE_CHECKING:
    from typing_extensions import Self

from ytree.log import get_logger
from ytree.utils import to_snake_case

logger = get_logger("ytree.orm.transaction")

Base = declarative_base()


class CoreModel(Base):
    """ORM基础模型类

    提供功能：
    - 整数自增主键
    - 自动表名生成（驼峰转下划线）
    - created_at / updated_at / deleted_at 时间戳
    - ver 乐观锁版本号（SQLAlchemy version_id_col）
    - 常用CRUD操作方法，事务上下文中自动抑制 commit=True

    使用示例:
        from ytree.orm import CoreModel, init_database

        init_database("sqlite:///./taxonomy.db")

        class Collection(CoreModel):
            slug: Mapped[str] = mapped_column(String(100), unique=True)

        c = Collection(slug="main")
        c.save(commit=True)
    """
    __abstract__ = True

    # query 属性由 init_database() 通过 scoped_session.query_property() 设置
    if TYPE_CHECKING:
        query: ClassVar[Query[Self]]

    _session: Session = None

    @declared_attr.directive
    def __tablename__(cls) -> str:
        """驼峰命名转下划线"""
        return to_snake_case(cls.__name__)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键")

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        comment="创建时间"
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=True,
        onupdate=func.now(),
        comment="更新时间"
    )
    deleted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        nullable=True,
        default=None,
        comment="删除时间（软删除标记）"
    )

    ver: Mapped[int] = mapped_column(Integer, default=1, nullable=False, comment="版本号")

    # 系统字段列表（构造时自动忽略这些字段）
    _system_fields: ClassVar[set] = {'id', 'created_at', 'updated_at', 'deleted_at', 'ver'}

    @declared_attr.directive
    def __mapper_args__(cls):
        return {"version_id_col": cls.ver}

    def __init__(self, **kwargs):
        """初始化模型实例

        系统字段（id, created_at, updated_at, deleted_at, ver）由系统维护，传入的值会被忽略。
        """
        for field in self._system_fields:
            kwargs.pop(field, None)
        super().__init__(**kwargs)

    def __repr__(self):
        return f"<{self.__class__.__name__} id={self.id}>"

    def __getattribute__(self, name):
        """访问 pending 对象的 id 时自动 flush 以获取主键"""
        value = super().__getattribute__(name)

        if name == 'id' and value is None:
            try:
                state = super().__getattribute__('_sa_instance_state')
                session = state.session
                # flush 过程中（如 before_insert 事件）不能再次 flush
                if session is not None and state.pending and not session._flushing:
                    session.flush()
                    return super().__getattribute__(name)
            except (AttributeError, KeyError):
                pass

        return value

    @hybrid_property
    def is_deleted(self) -> bool:
        """是否已软删除"""
        return self.deleted_at is not None

    @is_deleted.expression
    def is_deleted(cls):
        return cls.deleted_at.isnot(None)

    @property
    def session(self) -> Session:
        """获取当前session

        优先从 query 属性获取 session，否则从全局 scoped_session 获取
        """
        if self._session is None:
            if getattr(self.__class__, "query", None) is not None:
                self._session = self.__class__.query.session
            else:
                from .db_session import db_manager
                self._session = db_manager.get_session()
        return self._session

    # ==================== CRUD 操作方法 ====================

    def save(self, commit: bool = False) -> Self:
        """保存对象（新增或更新）

        Args:
            commit: 是否立即提交，默认False
                   - 无事务时：执行 session.commit()
                   - 有事务时：commit 被抑制，改为 flush

        Returns:
            self: 返回自身，支持链式调用
        """
        self.session.add(self)
        self.__is_commit(commit)
        return self

    def update(self, commit: bool = False, **kwargs) -> Self:
        """更新对象属性

        使用示例:
            node.update(name="新名称", commit=True)
        """
        for key, value in kwargs.items():
            if hasattr(self, key):
                setattr(self, key, value)
        self.__is_commit(commit)
        return self

    def delete(self, commit: bool = False):
        """删除对象（软删除钩子激活时转为软删除）"""
        self.session.delete(self)
        self.__is_commit(commit)

    @classmethod
    def get(cls, id: int):
        """根据ID获取对象（已软删除的记录不可见），不存在返回None"""
        return cls.query.filter_by(id=id).first()

    @classmethod
    def get_with_deleted(cls, id: int):
        """根据ID获取对象，包含已软删除的记录"""
        return cls.query.execution_options(include_deleted=True).filter_by(id=id).first()

    # ==================== 序列化方法 ====================

    def to_dict(self, exclude: set = None) -> dict:
        """转换为字典

        Args:
            exclude: 需要排除的字段集合

        Returns:
            字典格式的对象数据
        """
        exclude = exclude or set()
        return {
            c.key: getattr(self, c.key)
            for c in inspect(self).mapper.column_attrs
            if c.key not in exclude
        }

    # ==================== 提交控制 ====================

    def __is_commit(self, commit=False):
        """根据参数决定是否提交

        在事务上下文中且启用了提交抑制时，commit=True 被忽略，
        改为 flush 以获取自动生成的字段（id, created_at 等）。
        """
        if not commit:
            return
        from .transaction import get_current_transaction
        tx = get_current_transaction()
        if tx is not None and tx.should_suppress_commit():
            logger.debug("commit=True 被事务上下文抑制")
            self.session.flush()
            return
        self.session.commit()
