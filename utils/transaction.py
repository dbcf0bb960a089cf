"""事务管理模块"""
import functools
from contextlib import contextmanager
from config import config, get_logger
from services.audit import append_worm_log
from utils.exceptions import ConcurrencyConflict

logger = get_logger(__name__)


@contextmanager
def transaction_scope(gw):
    """事务上下文管理器，确保原子性操作"""
    audit_buffer = []
    with gw.transaction():
        yield gw, audit_buffer
    # 事务成功后写入WORM日志
    for payload in audit_buffer:
        try:
            append_worm_log(payload)
        except IOError as e:
            logger.error(f"WORM write failed: {e}")


def retry_on_conflict(func):
    """乐观锁冲突时整体重试，超过 OCCUPANCY_MAX_RETRIES 次后抛出"""
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        attempts = max(config.OCCUPANCY_MAX_RETRIES, 1)
        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except ConcurrencyConflict:
                if attempt == attempts:
                    raise
                logger.warning(f"{func.__name__} 并发冲突，第 {attempt} 次重试")
    return wrapper
