"""软删除支持

- SoftDeleteRewriter: 为 SELECT 语句自动追加 deleted_at IS NULL 过滤
- activate_soft_delete_hook(): 注册 Session 事件，查询自动过滤、delete 转软删除
- SoftDeleteMixin: deleted_by 字段以及 soft_delete() / undelete() 方法

查询已删除记录:
    CategoryNode.query.execution_options(include_deleted=True).all()
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import Integer, Table
from sqlalchemy.event import listens_for
from sqlalchemy.orm import Mapped, Session, mapped_column
from sqlalchemy.orm.util import _ORMJoin
from sqlalchemy.sql import Alias, CompoundSelect, Join, Select, Subquery, TableClause
from sqlalchemy.sql.elements import TextClause

from ytree.log import get_logger

from .current_user import get_user_id

logger = get_logger("ytree.orm.soft_delete")

DELETED_FIELD_NAME = "deleted_at"
INCLUDE_DELETED_OPTION = "include_deleted"


@dataclass
class IgnoredTable:
    """不参与软删除过滤的表"""
    name: str
    table_schema: Optional[str] = None

    def match_name(self, table: Table) -> bool:
        return self.name == table.name and self.table_schema == table.schema


class SoftDeleteRewriter:
    """SQL查询重写器

    为 SELECT（含 JOIN、子查询、UNION）中每个带 deleted_at 列的表追加
    deleted_at IS NULL 条件；execution_options(include_deleted=True) 时跳过。
    """

    def __init__(
            self,
            deleted_field_name: str = DELETED_FIELD_NAME,
            disable_soft_delete_option_name: str = INCLUDE_DELETED_OPTION,
            ignored_tables: List[IgnoredTable] = None,
    ):
        self.ignored_tables = ignored_tables or []
        self.deleted_field_name = deleted_field_name
        self.disable_soft_delete_option_name = disable_soft_delete_option_name

    def rewrite_statement(self, stmt):
        if isinstance(stmt, Select):
            return self.rewrite_select(stmt)
        if isinstance(stmt, CompoundSelect):
            return self.rewrite_compound_select(stmt)
        return stmt

    def rewrite_select(self, stmt: Select) -> Select:
        if stmt.get_execution_options().get(self.disable_soft_delete_option_name):
            return stmt

        for from_obj in stmt.get_final_froms():
            stmt = self._analyze_from(stmt, from_obj)
        return stmt

    def rewrite_compound_select(self, stmt: CompoundSelect) -> CompoundSelect:
        for i in range(len(stmt.selects)):
            stmt.selects[i] = self.rewrite_select(stmt.selects[i])
        return stmt

    def _rewrite_subquery(self, subquery: Subquery) -> None:
        if isinstance(subquery.element, CompoundSelect):
            subquery.element = self.rewrite_compound_select(subquery.element)
        elif isinstance(subquery.element, Select):
            subquery.element = self.rewrite_select(subquery.element)

    def _rewrite_join(self, stmt: Select, join_obj: Union[_ORMJoin, Join]) -> Select:
        for side in (join_obj.left, join_obj.right):
            stmt = self._analyze_from(stmt, side)
        return stmt

    def _analyze_from(self, stmt: Select, from_obj) -> Select:
        if isinstance(from_obj, Table):
            return self._rewrite_from_table(stmt, from_obj, from_obj)

        if isinstance(from_obj, (_ORMJoin, Join)):
            return self._rewrite_join(stmt, from_obj)

        if isinstance(from_obj, Subquery):
            self._rewrite_subquery(from_obj)
            return stmt

        if isinstance(from_obj, Alias):
            # aliased(Model) 产生的是 Table 的别名，过滤条件要落在别名的列上
            if isinstance(from_obj.element, Table):
                return self._rewrite_from_table(stmt, from_obj.element, from_obj)
            if isinstance(from_obj.element, Subquery):
                self._rewrite_subquery(from_obj.element)
            return stmt

        if isinstance(from_obj, (TableClause, TextClause)):
            return stmt

        raise NotImplementedError(f"不支持的FROM类型: {type(from_obj)}")

    def _rewrite_from_table(self, stmt: Select, table: Table, selectable) -> Select:
        if any(ignored.match_name(table) for ignored in self.ignored_tables):
            return stmt

        column_obj = selectable.columns.get(self.deleted_field_name)
        if column_obj is None:
            return stmt

        return stmt.filter(column_obj.is_(None))


# 全局重写器实例
global_rewriter: Optional[SoftDeleteRewriter] = None
_listeners_registered = False


def activate_soft_delete_hook(ignored_tables: List[IgnoredTable] = None) -> SoftDeleteRewriter:
    """激活软删除钩子（重复调用只会替换重写器，不会重复注册事件）

    注册的 Session 事件：
    - do_orm_execute: 重写 SELECT，过滤已软删除的记录（属性刷新不过滤）
    - before_flush: 设置 created_at / updated_at / created_by / updated_by，
      并把 session.delete() 转为软删除（写 deleted_at、deleted_by）

    使用示例:
        from ytree.orm import activate_soft_delete_hook

        activate_soft_delete_hook()
        nodes = CategoryNode.query.all()  # 只返回未删除节点
    """
    global global_rewriter, _listeners_registered

    global_rewriter = SoftDeleteRewriter(ignored_tables=ignored_tables)

    if not _listeners_registered:
        listens_for(Session, "do_orm_execute")(_do_orm_execute)
        listens_for(Session, "before_flush")(_before_flush)
        _listeners_registered = True
        logger.debug("软删除钩子已注册")

    return global_rewriter


def deactivate_soft_delete_hook():
    """停用软删除钩子（事件监听器无法移除，只是让重写器失效）"""
    global global_rewriter
    global_rewriter = None


def is_soft_delete_active() -> bool:
    """检查软删除钩子是否激活"""
    return global_rewriter is not None


def _do_orm_execute(orm_execute_state):
    if global_rewriter is None:
        return
    if orm_execute_state.is_select and not orm_execute_state.is_column_load:
        orm_execute_state.statement = global_rewriter.rewrite_statement(orm_execute_state.statement)


def _before_flush(session, flush_context, instances):
    if global_rewriter is None:
        return

    now = datetime.now()
    user_id = get_user_id(session)

    for instance in session.new:
        if hasattr(instance, 'created_at'):
            instance.created_at = now
        if user_id is not None and hasattr(instance, 'created_by') and instance.created_by is None:
            instance.created_by = user_id

    for instance in session.dirty:
        if not session.is_modified(instance, include_collections=False):
            continue
        if hasattr(instance, 'updated_at'):
            instance.updated_at = now
        if user_id is not None and hasattr(instance, 'updated_by'):
            instance.updated_by = user_id

    # delete 转为软删除：对象从 deleted 集合移回 session 作为普通更新
    for instance in list(session.deleted):
        if not hasattr(instance, DELETED_FIELD_NAME):
            continue
        setattr(instance, DELETED_FIELD_NAME, now)
        if hasattr(instance, 'deleted_by') and instance.deleted_by is None:
            instance.deleted_by = user_id
        session.expunge(instance)
        session.add(instance)


class SoftDeleteMixin:
    """软删除 Mixin

    deleted_at 由 CoreModel 提供，这里补充操作人字段和显式的软删除 / 恢复方法。

    使用示例:
        class CategoryNode(CoreModel, SoftDeleteMixin):
            ...

        node.soft_delete(actor=7)
        node.undelete()
    """

    deleted_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="删除人")

    def soft_delete(self, actor: Optional[int] = None, when: Optional[datetime] = None):
        """软删除当前对象"""
        self.deleted_at = when or datetime.now()
        self.deleted_by = actor

    def undelete(self):
        """恢复软删除的对象"""
        self.deleted_at = None
        self.deleted_by = None
