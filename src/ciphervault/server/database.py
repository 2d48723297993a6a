from typing import Generator

from fastapi import Request
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from .config import Settings


def create_db_engine(settings: Settings) -> Engine:
    # SQLite 需要 check_same_thread=False，
    # 因为 FastAPI 的同步接口运行在线程池中，而 SQLite 默认只允许单线程访问同一个连接。
    connect_args = {}
    engine_kwargs = {}
    if settings.DATABASE_URL.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        # 内存数据库必须共享同一个连接，否则每个连接都是一个空库
        if ":memory:" in settings.DATABASE_URL or settings.DATABASE_URL == "sqlite://":
            engine_kwargs["poolclass"] = StaticPool
    else:
        engine_kwargs["pool_timeout"] = settings.DB_POOL_TIMEOUT
        engine_kwargs["pool_pre_ping"] = True

    return create_engine(
        settings.DATABASE_URL,
        echo=settings.DB_ECHO,
        connect_args=connect_args,
        **engine_kwargs,
    )


def init_db(engine: Engine) -> None:
    # 必须先导入 models，SQLModel 才能扫描到所有表
    from . import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


# 获取数据库会话 (Dependency)，每个请求一个 Session
def get_session(request: Request) -> Generator[Session, None, None]:
    with Session(request.app.state.engine) as session:
        yield session
