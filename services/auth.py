"""身份上下文：调用方已完成认证，此处只做角色校验"""
from dataclasses import dataclass
from config import get_logger
from utils.exceptions import PermissionDenied

logger = get_logger(__name__)

ROLE_ADMIN = 'admin'
ROLE_STAFF = 'staff'
ROLE_TENANT = 'tenant'
ROLES = (ROLE_ADMIN, ROLE_STAFF, ROLE_TENANT)
MANAGERS = (ROLE_ADMIN, ROLE_STAFF)


@dataclass(frozen=True)
class Actor:
    name: str
    role: str

    def __post_init__(self):
        if self.role not in ROLES:
            raise PermissionDenied(f"未知角色: {self.role}")


SYSTEM_ACTOR = Actor('system', ROLE_ADMIN)


def require_role(actor: Actor, *roles: str):
    if actor is None or actor.role not in roles:
        who = actor.name if actor else '匿名'
        logger.warning(f"权限不足: {who} 需要角色 {roles}")
        raise PermissionDenied(f"{who} 无权执行该操作")
