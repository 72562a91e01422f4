"""ORM 模块

使用示例:
    from ytree.orm import (
        Base, CoreModel, init_database, db_session_scope,
        transaction_manager, set_user,
    )
"""

from .core_model import Base, CoreModel
from .db_session import (
    db_manager,
    init_database,
    get_engine,
    get_db,
    db_session_scope,
)
from .soft_delete import (
    SoftDeleteMixin,
    SoftDeleteRewriter,
    IgnoredTable,
    activate_soft_delete_hook,
    deactivate_soft_delete_hook,
    is_soft_delete_active,
)
from .current_user import set_user, get_user_id, clear_user
from .transaction import (
    transaction_manager,
    TransactionManager,
    TransactionContext,
    TransactionPropagation,
    get_current_transaction,
)
from .tree import TreeFieldsMixin, TreeMixin, SubtreeArena, build_tree_list

__all__ = [
    "Base",
    "CoreModel",
    "db_manager",
    "init_database",
    "get_engine",
    "get_db",
    "db_session_scope",
    "SoftDeleteMixin",
    "SoftDeleteRewriter",
    "IgnoredTable",
    "activate_soft_delete_hook",
    "deactivate_soft_delete_hook",
    "is_soft_delete_active",
    "set_user",
    "get_user_id",
    "clear_user",
    "transaction_manager",
    "TransactionManager",
    "TransactionContext",
    "TransactionPropagation",
    "get_current_transaction",
    "TreeFieldsMixin",
    "TreeMixin",
    "SubtreeArena",
    "build_tree_list",
]
