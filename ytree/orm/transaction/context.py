"""事务上下文

提供事务和保存点的上下文管理
"""

from __future__ import annotations

from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Dict, List, TYPE_CHECKING

from sqlalchemy.orm import Session

from ytree.log import get_logger

from .exceptions import TransactionAlreadyCommittedError, TransactionNotActiveError

if TYPE_CHECKING:
    from sqlalchemy.orm.session import SessionTransaction

logger = get_logger("ytree.orm.transaction")


class TransactionState(str, Enum):
    """事务状态

        INACTIVE → ACTIVE → COMMITTED
                      ↓
                  ROLLED_BACK / FAILED
    """
    INACTIVE = "inactive"
    ACTIVE = "active"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class SavepointContext:
    """保存点上下文

    使用示例:
        with tx.savepoint() as sp:
            risky_operation()
            # 发生异常时只回滚到此保存点
    """

    def __init__(self, name: str, nested: 'SessionTransaction'):
        self.name = name
        self._nested = nested
        self._state = TransactionState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self._state == TransactionState.ACTIVE

    def release(self) -> None:
        """释放保存点（变更合并到外层事务）"""
        if not self.is_active:
            return
        self._nested.commit()
        self._state = TransactionState.COMMITTED
        logger.debug(f"保存点 {self.name} 已释放")

    def rollback(self) -> None:
        """回滚到此保存点"""
        if not self.is_active:
            return
        self._nested.rollback()
        self._state = TransactionState.ROLLED_BACK
        logger.debug(f"保存点 {self.name} 已回滚")


class TransactionContext:
    """事务上下文

    管理单个事务的生命周期：
    - 状态跟踪与嵌套层级（REQUIRED 加入时层级 +1，只有最外层提交）
    - Savepoint
    - after_commit / after_rollback 回调
    - 提交抑制：事务内 model.save(commit=True) 只 flush 不提交

    使用示例:
        with TransactionContext(session) as tx:
            node.save()

            @tx.after_commit
            def on_committed(ctx):
                publish_tree_changed(node.owner)
    """

    def __init__(self, session: Session, auto_commit: bool = True, suppress_commit: bool = True):
        self._session = session
        self._auto_commit = auto_commit
        self._suppress_commit = suppress_commit
        self._state = TransactionState.INACTIVE
        self._nesting_level = 0
        self._savepoint_counter = 0
        self._after_commit: List[Callable] = []
        self._after_rollback: List[Callable] = []

        # 上下文数据（在回调之间传递数据）
        self.data: Dict[str, Any] = {}

    # ==================== 属性 ====================

    @property
    def session(self) -> Session:
        return self._session

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == TransactionState.ACTIVE

    @property
    def nesting_level(self) -> int:
        return self._nesting_level

    def should_suppress_commit(self) -> bool:
        """CoreModel 据此判断 commit=True 是否应被忽略"""
        return self.is_active and self._suppress_commit

    # ==================== 事务生命周期方法 ====================

    def begin(self) -> 'TransactionContext':
        if self._state == TransactionState.ACTIVE:
            self._nesting_level += 1
            return self

        # SQLAlchemy 默认 autobegin
        self._state = TransactionState.ACTIVE
        self._nesting_level = 1
        logger.debug("事务开始")
        return self

    def commit(self) -> None:
        if self._state == TransactionState.COMMITTED:
            raise TransactionAlreadyCommittedError()
        if self._state != TransactionState.ACTIVE:
            raise TransactionNotActiveError(f"无法提交：事务状态为 {self._state.value}")

        try:
            self._session.commit()
        except Exception:
            self._state = TransactionState.FAILED
            raise
        self._state = TransactionState.COMMITTED
        self._nesting_level = 0
        logger.debug("事务提交成功")
        self._run_callbacks(self._after_commit, "after_commit")

    def rollback(self) -> None:
        if self._state == TransactionState.COMMITTED:
            raise TransactionAlreadyCommittedError("无法回滚：事务已提交")
        if self._state not in (TransactionState.ACTIVE, TransactionState.FAILED):
            return

        self._session.rollback()
        self._state = TransactionState.ROLLED_BACK
        self._nesting_level = 0
        logger.debug("事务回滚成功")
        self._run_callbacks(self._after_rollback, "after_rollback")

    def flush(self) -> None:
        """将变更写入数据库但不提交"""
        if not self.is_active:
            raise TransactionNotActiveError("无法刷新：事务未激活")
        self._session.flush()

    # ==================== Savepoint ====================

    @contextmanager
    def savepoint(self, name: str = None):
        """创建保存点

        使用示例:
            with tx.savepoint("sp1") as sp:
                ...
        """
        if not self.is_active:
            raise TransactionNotActiveError("无法创建保存点：事务未激活")

        if name is None:
            self._savepoint_counter += 1
            name = f"sp_{self._savepoint_counter}"

        sp = SavepointContext(name, self._session.begin_nested())
        logger.debug(f"创建保存点: {name}")
        try:
            yield sp
            sp.release()
        except Exception:
            sp.rollback()
            raise

    # ==================== 回调注册 ====================

    def after_commit(self, func: Callable) -> Callable:
        """注册提交后回调（装饰器方式），回调失败只记录日志"""
        self._after_commit.append(func)
        return func

    def after_rollback(self, func: Callable) -> Callable:
        """注册回滚后回调"""
        self._after_rollback.append(func)
        return func

    def _run_callbacks(self, callbacks: List[Callable], kind: str) -> None:
        for func in callbacks:
            try:
                func(self)
            except Exception as e:
                func_name = getattr(func, '__name__', str(func))
                logger.error(f"{kind} 回调 {func_name} 执行失败: {e}")

    # ==================== 上下文管理器 ====================

    def __enter__(self) -> 'TransactionContext':
        return self.begin()

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if exc_type is not None:
            self.rollback()
            return False

        if self._auto_commit and self._nesting_level == 1 and self.is_active:
            try:
                self.commit()
            except Exception:
                self.rollback()
                raise
        elif self._nesting_level > 1:
            self._nesting_level -= 1

        return False

    def __repr__(self) -> str:
        return (
            f"TransactionContext("
            f"state={self._state.value}, "
            f"nesting_level={self._nesting_level})"
        )
