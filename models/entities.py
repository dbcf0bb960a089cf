"""数据库实体模型"""
import datetime
import enum
import uuid
from sqlalchemy import (
    Column, Integer, String, Float, Date, DateTime, ForeignKey, Text, Boolean,
    UniqueConstraint
)
from sqlalchemy.orm import relationship
from .base import Base


class RoomStatus(str, enum.Enum):
    VACANT = 'vacant'
    OCCUPIED = 'occupied'
    MAINTENANCE = 'maintenance'


class TenantState(enum.IntEnum):
    """租户生命周期，存储于 tenants.action"""
    ACTIVE = 1
    REMOVED = 2


class Residency(str, enum.Enum):
    PRIMARY = 'primary'
    CO_OCCUPANT = 'co-occupant'


class BillStatus(str, enum.Enum):
    PENDING = 'pending'
    PAID = 'paid'
    OVERDUE = 'overdue'


class Room(Base):
    __tablename__ = 'rooms'
    id = Column(Integer, primary_key=True)
    room_number = Column(String(20), unique=True, nullable=False)
    room_type = Column(String(50), default='Standard Double')
    floor = Column(Integer, default=1)
    capacity = Column(Integer, default=2)
    price = Column(Float, default=0.0)
    status = Column(String(20), default=RoomStatus.VACANT.value, nullable=False)
    latest_meter_reading = Column(Float, default=0.0)
    old_meter = Column(Float, default=0.0)
    version = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.now)
    updated_at = Column(DateTime, default=datetime.datetime.now, onupdate=datetime.datetime.now)

    occupancies = relationship("Occupancy", back_populates="room")
    bills = relationship("Billing", back_populates="room")


class Tenant(Base):
    __tablename__ = 'tenants'
    id = Column(Integer, primary_key=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), default='')
    email = Column(String(100))
    phone = Column(String(30))
    address = Column(String(200))
    emergency_contact = Column(String(100))
    room_id = Column(Integer, ForeignKey('rooms.id'), nullable=True)
    room_number = Column(String(20))
    residents = Column(String(20), default=Residency.PRIMARY.value)
    action = Column(Integer, default=int(TenantState.ACTIVE), nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.now)

    occupancies = relationship("Occupancy", back_populates="tenant")


class Occupancy(Base):
    __tablename__ = 'occupancy'
    id = Column(Integer, primary_key=True)
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=False, index=True)
    room_id = Column(Integer, ForeignKey('rooms.id'), nullable=False, index=True)
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=True)
    is_current = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.datetime.now)

    room = relationship("Room", back_populates="occupancies")
    tenant = relationship("Tenant", back_populates="occupancies")


class Billing(Base):
    __tablename__ = 'billing'
    __table_args__ = (UniqueConstraint('room_id', 'billing_month', name='uq_billing_room_month'),)
    id = Column(Integer, primary_key=True)
    room_id = Column(Integer, ForeignKey('rooms.id'), nullable=False)
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=True)
    billing_month = Column(Date, nullable=False)  # 账期首日
    room_rent = Column(Float, default=0.0)
    water_units = Column(Float, default=0.0)
    water_cost = Column(Float, default=0.0)
    electricity_units = Column(Float, default=0.0)
    electricity_cost = Column(Float, default=0.0)
    sum = Column(Float, default=0.0)
    status = Column(String(20), default=BillStatus.PENDING.value, nullable=False)
    due_date = Column(Date)
    paid_date = Column(Date, nullable=True)
    receipt_number = Column(String(50), unique=True)
    created_at = Column(DateTime, default=datetime.datetime.now)

    room = relationship("Room", back_populates="bills")


class Profile(Base):
    __tablename__ = 'profiles'
    id = Column(Integer, primary_key=True)
    email = Column(String(100))
    role = Column(String(20), default='tenant')
    tenant_id = Column(Integer, ForeignKey('tenants.id'), nullable=True)
    staff_id = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.datetime.now)


class SystemSetting(Base):
    __tablename__ = 'system_settings'
    id = Column(Integer, primary_key=True)
    water_rate = Column(Float, default=100.0)
    electricity_rate = Column(Float, default=7.0)
    deposit_rate = Column(Float, default=0.0)  # 权威月租
    late_fee = Column(Float, default=5.0)
    floor = Column(Integer, default=4)
    created_at = Column(DateTime, default=datetime.datetime.now)
    updated_at = Column(DateTime, default=datetime.datetime.now, onupdate=datetime.datetime.now)


class AuditLog(Base):
    __tablename__ = 'audit_logs'
    id = Column(Integer, primary_key=True)
    user = Column(String(50))
    action = Column(String(50))
    target = Column(String(100))
    details = Column(Text)
    trace_id = Column(String(36), default=lambda: str(uuid.uuid4()), unique=True)
    created_at = Column(DateTime, default=datetime.datetime.now)
    worm_hash = Column(String(64), nullable=True)
