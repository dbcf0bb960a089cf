"""页面模块导出"""
from .dashboard import page_dashboard
from .rooms import page_rooms
from .tenants import page_tenants
from .billing import page_billing
from .audit import page_audit_query

__all__ = ['page_dashboard', 'page_rooms', 'page_tenants', 'page_billing', 'page_audit_query']
