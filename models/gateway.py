"""持久化网关：业务层访问数据库的唯一入口"""
import abc
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Optional, Union
from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from config import get_logger
from utils.exceptions import ValidationError, PersistenceError, DuplicateRowError
from .base import Base, SessionLocal

logger = get_logger(__name__)

Filters = Optional[Dict[str, Any]]
Order = Optional[Union[str, List[str]]]


class PersistenceGateway(abc.ABC):
    """
    表级增删改查接口。
    单次调用各自原子；需要多语句原子性时使用 transaction()。
    filters: {列名: 值}，值为 list/tuple/set 时为 IN，None 为 IS NULL
    order: 列名，前缀 '-' 表示降序
    """

    @abc.abstractmethod
    def select(self, table: str, filters: Filters = None, order: Order = None,
               limit: Optional[int] = None) -> List[dict]:
        ...

    @abc.abstractmethod
    def insert(self, table: str, row: dict) -> dict:
        ...

    @abc.abstractmethod
    def insert_many(self, table: str, rows: Iterable[dict]) -> List[dict]:
        ...

    @abc.abstractmethod
    def update(self, table: str, patch: dict, filters: Filters) -> int:
        """返回受影响行数；filters 为空字典时更新整表"""
        ...

    @abc.abstractmethod
    def upsert(self, table: str, row: dict) -> dict:
        ...

    @abc.abstractmethod
    def count(self, table: str, filters: Filters = None) -> int:
        ...

    @abc.abstractmethod
    def transaction(self):
        ...

    def first(self, table: str, filters: Filters = None, order: Order = None) -> Optional[dict]:
        rows = self.select(table, filters, order=order, limit=1)
        return rows[0] if rows else None


class SqlGateway(PersistenceGateway):
    """基于 SQLAlchemy 的网关实现，每个线程持有自己的事务会话"""

    def __init__(self, session_factory=None):
        self._session_factory = session_factory or SessionLocal
        self._local = threading.local()

    def _active(self):
        return getattr(self._local, 'session', None)

    @staticmethod
    def _table(name: str):
        table = Base.metadata.tables.get(name)
        if table is None:
            raise ValidationError(f"未知数据表: {name}")
        return table

    @staticmethod
    def _check_columns(table, keys):
        unknown = [k for k in keys if k not in table.c]
        if unknown:
            raise ValidationError(f"{table.name} 不存在字段: {', '.join(unknown)}")

    @classmethod
    def _where(cls, table, filters: Filters):
        if filters is None:
            return []
        cls._check_columns(table, filters.keys())
        conds = []
        for col, val in filters.items():
            column = table.c[col]
            if val is None:
                conds.append(column.is_(None))
            elif isinstance(val, (list, tuple, set, frozenset)):
                conds.append(column.in_(list(val)))
            else:
                conds.append(column == val)
        return conds

    @classmethod
    def _order(cls, table, order: Order):
        if not order:
            return []
        keys = [order] if isinstance(order, str) else list(order)
        cls._check_columns(table, [k.lstrip('-') for k in keys])
        return [table.c[k[1:]].desc() if k.startswith('-') else table.c[k].asc() for k in keys]

    @staticmethod
    def _translate(e: SQLAlchemyError) -> PersistenceError:
        if isinstance(e, IntegrityError):
            return DuplicateRowError(str(e.orig))
        return PersistenceError(str(e))

    @contextmanager
    def _session(self):
        s = self._active()
        if s is not None:
            yield s
            return
        s = self._session_factory()
        try:
            yield s
            s.commit()
        except Exception:
            s.rollback()
            raise
        finally:
            s.close()

    def _run(self, work):
        try:
            with self._session() as s:
                return work(s)
        except SQLAlchemyError as e:
            logger.error(f"数据库操作失败: {e}")
            raise self._translate(e) from e

    @contextmanager
    def transaction(self):
        """事务上下文，嵌套调用并入外层事务"""
        if self._active() is not None:
            yield self
            return
        s = self._session_factory()
        self._local.session = s
        try:
            yield self
            s.commit()
        except SQLAlchemyError as e:
            s.rollback()
            logger.error(f"事务提交失败: {e}")
            raise self._translate(e) from e
        except Exception:
            s.rollback()
            raise
        finally:
            self._local.session = None
            s.close()

    @staticmethod
    def _fetch(s, table, pk) -> dict:
        return dict(s.execute(select(table).where(table.c.id == pk)).mappings().one())

    def select(self, table, filters=None, order=None, limit=None):
        t = self._table(table)
        stmt = select(t).where(*self._where(t, filters)).order_by(*self._order(t, order))
        if limit is not None:
            stmt = stmt.limit(limit)
        return self._run(lambda s: [dict(r) for r in s.execute(stmt).mappings().all()])

    def insert(self, table, row):
        t = self._table(table)
        self._check_columns(t, row.keys())

        def work(s):
            pk = s.execute(t.insert().values(**row)).inserted_primary_key[0]
            return self._fetch(s, t, pk)
        return self._run(work)

    def insert_many(self, table, rows):
        rows = list(rows)
        if not rows:
            return []
        t = self._table(table)
        for row in rows:
            self._check_columns(t, row.keys())

        def work(s):
            return [self._fetch(s, t, s.execute(t.insert().values(**row)).inserted_primary_key[0])
                    for row in rows]
        return self._run(work)

    def update(self, table, patch, filters):
        t = self._table(table)
        if not patch:
            raise ValidationError("更新内容不能为空")
        if filters is None:
            raise ValidationError("更新必须指定条件")
        self._check_columns(t, patch.keys())
        stmt = t.update().where(*self._where(t, filters)).values(**patch)
        return self._run(lambda s: s.execute(stmt).rowcount)

    def upsert(self, table, row):
        t = self._table(table)
        self._check_columns(t, row.keys())

        def work(s):
            pk = row.get('id')
            if pk is not None and s.execute(select(t.c.id).where(t.c.id == pk)).first():
                patch = {k: v for k, v in row.items() if k != 'id'}
                if patch:
                    s.execute(t.update().where(t.c.id == pk).values(**patch))
            else:
                pk = s.execute(t.insert().values(**row)).inserted_primary_key[0]
            return self._fetch(s, t, pk)
        return self._run(work)

    def count(self, table, filters=None):
        t = self._table(table)
        stmt = select(func.count()).select_from(t).where(*self._where(t, filters))
        return self._run(lambda s: s.execute(stmt).scalar_one())
