"""
数据库会话管理模块

公开 API:
- db_manager: 数据库管理器单例
- init_database(): 初始化数据库连接
- get_engine(): 获取数据库引擎
- get_db(): FastAPI 依赖注入用的生成器
- db_session_scope(): 非 HTTP 场景的上下文管理器
"""

import logging
from contextlib import contextmanager
from typing import Any, Callable, Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, scoped_session, sessionmaker
from sqlalchemy.pool import StaticPool

from ytree.log import get_logger

_logger = get_logger("ytree.orm.session")

__all__ = [
    'db_manager',
    'init_database',
    'get_engine',
    'get_db',
    'db_session_scope',
]


def _setup_sqlite_engine(engine) -> None:
    """SQLite 连接设置

    pysqlite 默认只在 DML 前隐式 BEGIN，SAVEPOINT 和事务边界会错位；
    这里关闭驱动的隐式事务，由 SQLAlchemy 显式发出 BEGIN，并打开外键约束。
    """
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


class DatabaseManager:
    """数据库管理器（单例）

    使用示例:
        from ytree.orm import db_manager

        db_manager.init(database_url="sqlite:///./taxonomy.db")
        engine = db_manager.engine
        session = db_manager.get_session()
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
        self._engine = None
        self._session_scope = None
        self._session_maker = None
        self._initialized = True

    # ==================== 属性访问 ====================

    @property
    def engine(self):
        if self._engine is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._engine

    @property
    def session_scope(self) -> scoped_session:
        if self._session_scope is None:
            raise RuntimeError("数据库未初始化，请先调用 init_database()")
        return self._session_scope

    # ==================== 核心方法 ====================

    def init(
        self,
        database_url: str = None,
        echo: bool = False,
        pool_size: int = 5,
        max_overflow: int = 10,
        pool_timeout: int = 30,
        pool_recycle: int = 3600,
        pool_pre_ping: bool = True,
        logger: logging.Logger = None,
        scopefunc: Callable = None,
        config: Any = None,
        auto_setup_query: bool = True,
        activate_soft_delete: bool = True,
    ):
        """初始化数据库连接

        Args:
            database_url: 数据库连接URL（如果提供 config 则忽略）
            echo: 是否输出SQL语句
            pool_size / max_overflow / pool_timeout / pool_recycle / pool_pre_ping: 连接池参数
            logger: 日志记录器
            scopefunc: scoped_session 作用域函数，默认按线程
            config: 数据库配置对象（DatabaseSettings）
            auto_setup_query: 是否自动设置 CoreModel.query
            activate_soft_delete: 是否激活软删除钩子

        Returns:
            tuple: (engine, session_scope)

        使用示例:
            engine, session = init_database("sqlite:///./taxonomy.db")
            engine, session = init_database(config=settings.database)
        """
        if config is not None:
            database_url = getattr(config, "url", database_url)
            echo = getattr(config, "echo", echo)
            pool_size = getattr(config, "pool_size", pool_size)
            max_overflow = getattr(config, "max_overflow", max_overflow)
            pool_timeout = getattr(config, "pool_timeout", pool_timeout)
            pool_recycle = getattr(config, "pool_recycle", pool_recycle)
            pool_pre_ping = getattr(config, "pool_pre_ping", pool_pre_ping)

        if not database_url:
            raise ValueError("database_url 是必需的，请通过参数或 config 提供")

        if logger is None:
            logger = _logger

        # 重复初始化时释放旧连接
        self.dispose()

        if database_url.startswith("sqlite"):
            db_path = database_url.split(":///", 1)[-1] if ":///" in database_url else ""
            if db_path in ("", ":memory:"):
                # 内存数据库：单连接，跨线程共享
                self._engine = create_engine(
                    database_url,
                    echo=echo,
                    connect_args={"check_same_thread": False},
                    poolclass=StaticPool,
                )
                logger.info("SQLite内存数据库引擎创建成功（StaticPool）")
            else:
                self._engine = create_engine(
                    database_url,
                    echo=echo,
                    connect_args={"check_same_thread": False, "timeout": pool_timeout},
                )
                logger.info(f"SQLite文件数据库引擎创建成功: {db_path}")
            _setup_sqlite_engine(self._engine)
        else:
            self._engine = create_engine(
                database_url,
                echo=echo,
                pool_pre_ping=pool_pre_ping,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_recycle=pool_recycle
            )
            logger.info("数据库引擎创建成功")

        self._session_maker = sessionmaker(autocommit=False, autoflush=True, bind=self._engine)
        self._session_scope = scoped_session(self._session_maker, scopefunc=scopefunc)

        if auto_setup_query:
            from .core_model import CoreModel
            CoreModel.query = self._session_scope.query_property()

        if activate_soft_delete:
            from .soft_delete import activate_soft_delete_hook
            activate_soft_delete_hook()

        logger.info("数据库session创建成功")
        return self._engine, self._session_scope

    def get_session(self) -> Session:
        """获取当前作用域的 session（低级 API，优先使用 db_session_scope / get_db）"""
        return self.session_scope()

    def cleanup(self):
        """回滚未提交的更改并移除当前作用域的 session（幂等）"""
        if self._session_scope is not None and self._session_scope.registry.has():
            session = self._session_scope()
            if session.in_transaction():
                session.rollback()
            self._session_scope.remove()

    def dispose(self):
        """释放引擎与会话"""
        self.cleanup()
        if self._engine is not None:
            self._engine.dispose()
        self._engine = None
        self._session_scope = None
        self._session_maker = None


# ==================== 全局单例 ====================

db_manager = DatabaseManager()


# ==================== 公开 API 函数 ====================

def init_database(database_url: str = None, **kwargs):
    """初始化数据库连接

    db_manager.init() 的便捷包装，参数见 DatabaseManager.init()。
    """
    return db_manager.init(database_url=database_url, **kwargs)


def get_engine():
    """获取数据库引擎"""
    return db_manager.engine


@contextmanager
def db_session_scope(auto_commit: bool = True) -> Generator[Session, None, None]:
    """数据库会话上下文管理器（脚本、任务、测试）

    正常退出时提交（auto_commit=True），异常时回滚，最后清理 session。

    使用示例:
        with db_session_scope() as session:
            seed_taxonomy(CollectionOwner(1))
    """
    session = db_manager.get_session()
    try:
        yield session
        if auto_commit:
            session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        db_manager.session_scope.remove()


def get_db() -> Generator[Session, None, None]:
    """FastAPI 依赖：每个请求一个 session，请求结束自动清理

    使用示例:
        @app.get("/tree")
        def read_tree(db: Session = Depends(get_db)):
            ...
    """
    with db_session_scope(auto_commit=False) as session:
        yield session
