"""数据库基础配置"""
from sqlalchemy import create_engine, event
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from config import config

Base = declarative_base()


def _setup_engine(db_path: str = None):
    """创建并配置数据库引擎，db_path为空时使用内存库"""
    if db_path:
        eng = create_engine(
            f'sqlite:///{db_path}',
            connect_args={'check_same_thread': False, 'timeout': config.DB_BUSY_TIMEOUT},
        )
    else:
        eng = create_engine(
            'sqlite://',
            connect_args={'check_same_thread': False},
            poolclass=StaticPool
        )

    @event.listens_for(eng, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        if db_path:
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA synchronous=NORMAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
    return eng


def create_session_factory(db_path: str = None):
    """创建独立的引擎与会话工厂（测试及脚本使用）"""
    eng = _setup_engine(db_path)
    Base.metadata.create_all(eng)
    return sessionmaker(autocommit=False, autoflush=False, bind=eng)


def init_db(eng=None):
    """初始化数据库表结构"""
    Base.metadata.create_all(eng or engine)


# 默认引擎和会话
engine = _setup_engine(config.DB_PATH)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
