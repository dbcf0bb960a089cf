"""业务服务模块"""
from .audit import AuditService
from .auth import Actor, require_role
from .settings import SettingsService, SystemSettings

__all__ = ['AuditService', 'Actor', 'require_role', 'SettingsService', 'SystemSettings']
