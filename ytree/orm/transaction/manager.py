"""事务管理器

提供事务管理的统一入口
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from enum import Enum
from functools import wraps
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy.orm import Session

from ytree.log import get_logger

from .context import TransactionContext
from .exceptions import PropagationError

logger = get_logger("ytree.orm.transaction")

T = TypeVar('T')

# 当前事务上下文（线程/协程安全）
_current_transaction: ContextVar[Optional[TransactionContext]] = ContextVar(
    '_current_transaction', default=None
)


def get_current_transaction() -> Optional[TransactionContext]:
    """获取当前事务上下文，不在事务中则返回 None"""
    return _current_transaction.get()


class TransactionPropagation(str, Enum):
    """事务传播行为"""

    REQUIRED = "required"
    """有事务则加入，没有则新建（默认）"""

    NESTED = "nested"
    """在现有事务中创建 savepoint，没有外层事务时报错"""

    MANDATORY = "mandatory"
    """必须在事务中执行"""


class TransactionManager:
    """事务管理器（单例）

    使用示例:
        from ytree.orm import transaction_manager as tm

        with tm.transaction() as tx:
            node.save()
            tx.after_commit(lambda ctx: logger.info("已提交"))

        @tm.transactional()
        def move_subtree(node_id, new_parent_id):
            ...
    """

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        if self._initialized:
            return
        self._default_suppress_commit = True
        self._initialized = True

    def get_session(self) -> Session:
        """获取数据库 session"""
        from ..db_session import db_manager
        return db_manager.get_session()

    @property
    def current_transaction(self) -> Optional[TransactionContext]:
        return _current_transaction.get()

    @contextmanager
    def transaction(
        self,
        session: Session = None,
        propagation: TransactionPropagation = TransactionPropagation.REQUIRED,
        suppress_commit: bool = None
    ) -> Generator[TransactionContext, None, None]:
        """创建事务上下文

        Args:
            session: 数据库会话，不传则自动获取
            propagation: 事务传播行为
            suppress_commit: 是否抑制内部提交，None 则使用默认配置

        使用示例:
            with tm.transaction() as tx:
                service.create_node(...)
                service.create_node(...)
            # 两次创建在同一事务中提交

        注意:
            加入外层事务（REQUIRED）后，内层抛出的异常应继续向外抛出，
            由最外层回滚；只捕获不处理会让 session 处于不一致状态。
            需要局部回滚时使用 tx.savepoint()。
        """
        current = self.current_transaction

        if current is not None and current.is_active:
            if propagation == TransactionPropagation.NESTED:
                logger.debug("NESTED: 创建嵌套事务 (savepoint)")
                with current.savepoint():
                    yield current
                return

            current._nesting_level += 1
            logger.debug(f"{propagation.value}: 加入现有事务 (level={current._nesting_level})")
            try:
                yield current
            finally:
                if current._nesting_level > 1:
                    current._nesting_level -= 1
            return

        if propagation == TransactionPropagation.MANDATORY:
            raise PropagationError("MANDATORY", "必须在事务中执行")
        if propagation == TransactionPropagation.NESTED:
            raise PropagationError("NESTED", "NESTED 需要一个活跃的外层事务")

        if session is None:
            session = self.get_session()
        if suppress_commit is None:
            suppress_commit = self._default_suppress_commit

        ctx = TransactionContext(session=session, suppress_commit=suppress_commit)
        token = _current_transaction.set(ctx)
        try:
            with ctx:
                yield ctx
        finally:
            _current_transaction.reset(token)

    def transactional(
        self,
        propagation: TransactionPropagation = TransactionPropagation.REQUIRED,
        suppress_commit: bool = None
    ):
        """事务装饰器

        使用示例:
            @tm.transactional()
            def create_with_children(data):
                ...
        """
        def decorator(func: Callable[..., T]) -> Callable[..., T]:
            @wraps(func)
            def wrapper(*args, **kwargs) -> T:
                with self.transaction(propagation=propagation, suppress_commit=suppress_commit):
                    return func(*args, **kwargs)
            return wrapper

        return decorator

    def is_in_transaction(self) -> bool:
        """检查当前是否在事务中"""
        tx = self.current_transaction
        return tx is not None and tx.is_active

    def should_suppress_commit(self) -> bool:
        """检查是否应该抑制提交"""
        tx = self.current_transaction
        if tx is None:
            return False
        return tx.should_suppress_commit()


# 全局单例
transaction_manager = TransactionManager()
