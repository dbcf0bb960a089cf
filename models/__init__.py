"""数据模型模块"""
from .base import Base, engine, SessionLocal, create_session_factory, init_db
from .entities import (
    Room, Tenant, Occupancy, Billing, Profile, SystemSetting, AuditLog,
    RoomStatus, TenantState, Residency, BillStatus
)
from .gateway import PersistenceGateway, SqlGateway

__all__ = [
    'Base', 'engine', 'SessionLocal', 'create_session_factory', 'init_db',
    'Room', 'Tenant', 'Occupancy', 'Billing', 'Profile', 'SystemSetting', 'AuditLog',
    'RoomStatus', 'TenantState', 'Residency', 'BillStatus',
    'PersistenceGateway', 'SqlGateway'
]
