"""事务管理模块

- 嵌套调用自动加入外层事务（REQUIRED）
- Savepoint（NESTED / tx.savepoint()）
- after_commit / after_rollback 回调
- 提交抑制（事务上下文中 model.save(commit=True) 只 flush）

使用示例:
    from ytree.orm import transaction_manager as tm

    with tm.transaction() as tx:
        node.save(commit=True)   # 被抑制，由外层统一提交

    @tm.transactional()
    def reparent(node_id, new_parent_id):
        ...
"""

from .exceptions import (
    TransactionError,
    TransactionNotActiveError,
    TransactionAlreadyCommittedError,
    PropagationError,
)
from .context import (
    TransactionState,
    TransactionContext,
    SavepointContext,
)
from .manager import (
    TransactionManager,
    TransactionPropagation,
    transaction_manager,
    get_current_transaction,
)

__all__ = [
    "TransactionError",
    "TransactionNotActiveError",
    "TransactionAlreadyCommittedError",
    "PropagationError",
    "TransactionState",
    "TransactionContext",
    "SavepointContext",
    "TransactionManager",
    "TransactionPropagation",
    "transaction_manager",
    "get_current_transaction",
]
