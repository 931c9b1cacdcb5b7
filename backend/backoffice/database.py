"""
数据库连接和会话管理
"""
import uuid
from typing import Awaitable, Callable, TypeVar

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from backoffice.config import get_settings

settings = get_settings()

T = TypeVar("T")

# 连接执行选项：事务开始时申请写锁
WRITE_LOCK = "backoffice_write_lock"


def _install_sqlite_hooks(engine: AsyncEngine) -> None:
    """
    SQLite 连接钩子

    - 每个连接启用 WAL / 外键 / busy_timeout
    - 关闭 pysqlite 的隐式事务，由 SQLAlchemy 显式发出 BEGIN
    - 带 WRITE_LOCK 执行选项的连接发出 BEGIN IMMEDIATE：写事务一开始就拿到写锁，
      同一规格库存的并发扣减会排队而不是互相覆盖；只读事务仍可与写事务并行（WAL）
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=60000")
        cursor.close()
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn):
        if conn.get_execution_options().get(WRITE_LOCK):
            conn.exec_driver_sql("BEGIN IMMEDIATE")
        else:
            conn.exec_driver_sql("BEGIN")


def build_engine(database_url: str, echo: bool = False, **engine_kwargs) -> AsyncEngine:
    """创建异步引擎（SQLite 额外挂载连接钩子）"""
    engine_kwargs["echo"] = echo
    if database_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"timeout": 60}

    engine = create_async_engine(database_url, **engine_kwargs)
    if database_url.startswith("sqlite"):
        _install_sqlite_hooks(engine)
    return engine


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


# 创建异步引擎
engine = build_engine(settings.database_url, echo=settings.sqlalchemy_echo)

# 创建异步会话工厂
async_session_maker = build_session_maker(engine)


class Base(DeclarativeBase):
    """SQLAlchemy 模型基类"""
    pass


async def get_db() -> AsyncSession:
    """获取数据库会话（依赖注入）"""
    async with async_session_maker() as session:
        try:
            yield session
        finally:
            await session.close()


async def run_in_transaction(db: AsyncSession, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
    """
    在当前会话的事务中执行 fn

    fn 正常返回则提交；抛出任何异常则整体回滚并原样抛出，不保留部分写入。
    """
    try:
        result = await fn(db)
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return result


async def init_db(bind: AsyncEngine = None):
    """初始化数据库表"""
    from backoffice import models  # noqa: F401  (确保所有模型已注册到 Base.metadata)

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


def generate_id() -> str:
    """主键生成（UUID 字符串）"""
    return str(uuid.uuid4())


async def begin_write(db: AsyncSession) -> None:
    """
    以写事务开始当前会话

    会话已在事务中时不做处理（沿用调用方的事务）。
    """
    if not db.in_transaction():
        await db.connection(execution_options={WRITE_LOCK: True})
