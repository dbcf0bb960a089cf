"""审计服务模块"""
import json
import hashlib
import datetime
import uuid
from config import config, get_logger

logger = get_logger(__name__)


def append_worm_log(entry: dict) -> str:
    """写入WORM审计日志"""
    payload = json.dumps(entry, ensure_ascii=False, default=str)
    digest = hashlib.sha256(payload.encode()).hexdigest()
    if not config.WORM_LOG_PATH:
        return digest
    try:
        with open(config.WORM_LOG_PATH, 'a', encoding='utf-8') as f:
            f.write(payload + "\n")
    except IOError as e:
        logger.error(f"WORM日志写入失败: {e}")
        raise
    return digest


class AuditService:
    @staticmethod
    def build_entry(user: str, action: str, target, details="") -> dict:
        return {
            "user": user, "action": action, "target": str(target),
            "details": details if isinstance(details, str) else json.dumps(details, ensure_ascii=False, default=str),
            "trace": str(uuid.uuid4()),
            "ts": datetime.datetime.now().isoformat()
        }

    @staticmethod
    def log_deferred(gw, audit_buffer: list, user: str, action: str, target, details=""):
        """在当前事务中记录审计日志，提交后由 transaction_scope 写入WORM"""
        entry = AuditService.build_entry(user, action, target, details)
        worm_hash = hashlib.sha256(json.dumps(entry, ensure_ascii=False).encode()).hexdigest()
        gw.insert('audit_logs', {
            'user': user, 'action': action, 'target': entry["target"],
            'details': entry["details"], 'trace_id': entry["trace"], 'worm_hash': worm_hash
        })
        audit_buffer.append(entry)
        logger.debug(f"审计日志: {action} -> {target}")

    @staticmethod
    def query(gw, user: str = None, action: str = None, since: datetime.datetime = None,
              limit: int = None) -> list:
        """按操作人、操作类型与起始时间筛选审计日志，最新在前"""
        filters = {}
        if user:
            filters['user'] = user
        if action:
            filters['action'] = action
        logs = gw.select('audit_logs', filters, order=['-created_at', '-id'],
                         limit=limit or config.AUDIT_QUERY_LIMIT)
        if since is not None:
            logs = [l for l in logs if l['created_at'] >= since]
        return logs
