"""账单服务模块"""
import datetime
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional
from config import config, get_logger
from models.entities import BillStatus, Residency
from services.audit import AuditService
from services.auth import require_role, MANAGERS
from services.occupancy import OccupancyService
from services.settings import SettingsService, SystemSettings
from utils.exceptions import (
    DormException, ValidationError, AlreadyBilled, AlreadyPaid, BillNotFound,
    MeterReadingBelowPrevious, MissingMeterReading, RoomNotFound, RoomNotOccupied,
    ConcurrencyConflict, DuplicateRowError
)
from utils.helpers import to_decimal, format_money, normalize_month, add_months, parse_reading, today
from utils.transaction import transaction_scope

logger = get_logger(__name__)

_MISSING = object()


@dataclass(frozen=True)
class BillCharges:
    room_rent: Decimal
    water_units: int
    water_cost: Decimal
    electricity_units: Decimal
    electricity_cost: Decimal

    @property
    def total(self) -> Decimal:
        return self.room_rent + self.water_cost + self.electricity_cost


def compute_charges(occupant_count: int, previous_reading, current_reading,
                    settings: SystemSettings) -> BillCharges:
    """水费按人头计，电费按读数差计，租金取权威月租"""
    units = max(to_decimal(current_reading) - to_decimal(previous_reading), Decimal('0'))
    return BillCharges(
        room_rent=to_decimal(settings.deposit_rate),
        water_units=occupant_count,
        water_cost=occupant_count * to_decimal(settings.water_rate),
        electricity_units=units,
        electricity_cost=units * to_decimal(settings.electricity_rate),
    )


@dataclass
class BilledRoom:
    room_id: int
    room_number: str
    billing_id: int
    total: float


@dataclass
class SkippedRoom:
    room_id: Optional[int]
    room_number: str
    reason: str
    message: str


@dataclass
class BillingBatchReport:
    billing_month: datetime.date
    billed: List[BilledRoom] = field(default_factory=list)
    skipped: List[SkippedRoom] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.billed)

    @property
    def total(self) -> float:
        return float(sum(to_decimal(b.total) for b in self.billed))

    def skipped_by_reason(self) -> Dict[str, int]:
        counts = {}
        for s in self.skipped:
            counts[s.reason] = counts.get(s.reason, 0) + 1
        return counts

    def summary(self) -> str:
        text = f"生成 {self.created_count} 张账单，合计 {format_money(self.total)}"
        if self.skipped:
            reasons = "，".join(f"{k}×{v}" for k, v in self.skipped_by_reason().items())
            text += f"；跳过 {len(self.skipped)} 间（{reasons}）"
        return text


def _parse_date(val, label: str) -> datetime.date:
    if isinstance(val, datetime.datetime):
        return val.date()
    if isinstance(val, datetime.date):
        return val
    try:
        return datetime.date.fromisoformat(str(val).strip())
    except ValueError:
        raise ValidationError(f"无效{label}: {val!r}")


class BillingService:
    @staticmethod
    def default_due_date(month: datetime.date) -> datetime.date:
        """默认缴费截止日：次月 BILL_DUE_DAY 日"""
        return add_months(month, 1).replace(day=min(max(config.BILL_DUE_DAY, 1), 28))

    @staticmethod
    def _resolve_readings(rooms: List[dict], meter_readings: dict, report: BillingBatchReport) -> dict:
        """读数键可为房间ID(int)或房号(str)"""
        by_id = {r['id']: r for r in rooms}
        by_number = {r['room_number']: r for r in rooms}
        resolved = {}
        for key, value in (meter_readings or {}).items():
            room = by_number.get(key) if isinstance(key, str) else by_id.get(key)
            if room is None:
                report.skipped.append(SkippedRoom(None, str(key), RoomNotFound.code, f"房间不存在: {key}"))
                continue
            resolved[room['id']] = value
        return resolved

    @staticmethod
    def generate_monthly_bills(gw, actor, billing_month, meter_readings: dict,
                               due_date=None, settings: SystemSettings = None) -> BillingBatchReport:
        """
        批量生成月度账单。
        每个房间独立事务：重复账期、读数倒退等只跳过该房间并写入报告，不中断整批。
        settings 为本批次使用的费率快照，未传入时读取一次。
        """
        require_role(actor, *MANAGERS)
        month = normalize_month(billing_month)
        due = _parse_date(due_date, "缴费截止日") if due_date is not None else BillingService.default_due_date(month)
        if settings is None:
            settings = SettingsService.get_settings(gw)

        report = BillingBatchReport(month)
        rooms = gw.select('rooms', order='room_number')
        readings = BillingService._resolve_readings(rooms, meter_readings, report)
        occupied = {o['room_id'] for o in gw.select('occupancy', {'is_current': True})}
        candidates = [r for r in rooms if r['id'] in occupied or r['id'] in readings]

        for room in candidates:
            try:
                report.billed.append(BillingService._bill_room(
                    gw, room['id'], month, due, readings.get(room['id'], _MISSING), settings
                ))
            except DormException as e:
                report.skipped.append(SkippedRoom(room['id'], room['room_number'], e.code, str(e)))
                logger.warning(f"房间 {room['room_number']} 未生成 {month:%Y-%m} 账单: {e.code} {e}")

        if report.billed:
            with transaction_scope(gw) as (trx, audit_buffer):
                AuditService.log_deferred(trx, audit_buffer, actor.name, "批量计费", f"{month:%Y-%m}", {
                    "count": report.created_count, "total": report.total,
                    "skipped": report.skipped_by_reason()
                })
        logger.info(f"{month:%Y-%m} 账单批次: {report.summary()}")
        return report

    @staticmethod
    def _bill_room(gw, room_id, month, due, raw_reading, settings) -> BilledRoom:
        with gw.transaction():
            room = OccupancyService.get_room(gw, room_id)
            if gw.count('billing', {'room_id': room_id, 'billing_month': month}):
                raise AlreadyBilled(f"房间 {room['room_number']} {month:%Y-%m} 已出账")
            occupants = gw.select('occupancy', {'room_id': room_id, 'is_current': True},
                                  order=['check_in_date', 'id'])
            if not occupants:
                raise RoomNotOccupied(f"房间 {room['room_number']} 无在住租户")
            if raw_reading is _MISSING:
                raise MissingMeterReading(f"房间 {room['room_number']} 缺少电表读数")

            current = parse_reading(raw_reading)
            previous = to_decimal(room['latest_meter_reading'])
            if current < previous:
                raise MeterReadingBelowPrevious(
                    f"房间 {room['room_number']} 读数 {current} 小于上次读数 {previous}")

            charges = compute_charges(len(occupants), previous, current, settings)
            tenants = {t['id']: t for t in gw.select('tenants', {'id': [o['tenant_id'] for o in occupants]})}
            owner = next((o['tenant_id'] for o in occupants
                          if tenants.get(o['tenant_id'], {}).get('residents') != Residency.CO_OCCUPANT),
                         occupants[0]['tenant_id'])
            try:
                bill = gw.insert('billing', {
                    'room_id': room_id, 'tenant_id': owner, 'billing_month': month,
                    'room_rent': float(charges.room_rent),
                    'water_units': charges.water_units, 'water_cost': float(charges.water_cost),
                    'electricity_units': float(charges.electricity_units),
                    'electricity_cost': float(charges.electricity_cost),
                    'sum': float(charges.total), 'status': BillStatus.PENDING.value,
                    'due_date': due,
                    'receipt_number': f"RC{month:%Y%m}-{room['room_number']}-{uuid.uuid4().hex[:6].upper()}"
                })
            except DuplicateRowError as e:
                raise AlreadyBilled(f"房间 {room['room_number']} {month:%Y-%m} 已出账") from e

            # 读数比较并交换，保证电表读数单调
            if gw.update('rooms', {'latest_meter_reading': float(current), 'old_meter': float(previous)},
                         {'id': room_id, 'latest_meter_reading': room['latest_meter_reading']}) != 1:
                raise ConcurrencyConflict(f"房间 {room['room_number']} 电表读数已被并发修改")

        return BilledRoom(room_id, room['room_number'], bill['id'], float(charges.total))

    @staticmethod
    def mark_bill_paid(gw, actor, billing_id, paid_on: Optional[datetime.date] = None) -> dict:
        """标记账单已缴"""
        require_role(actor, *MANAGERS)
        with transaction_scope(gw) as (trx, audit_buffer):
            bill = trx.first('billing', {'id': billing_id})
            if bill is None:
                raise BillNotFound(f"账单不存在: {billing_id}")
            if bill['status'] == BillStatus.PAID:
                raise AlreadyPaid(f"账单 {billing_id} 已缴费")
            paid_on = paid_on or today()
            if trx.update('billing', {'status': BillStatus.PAID.value, 'paid_date': paid_on},
                          {'id': billing_id, 'status': bill['status']}) != 1:
                raise AlreadyPaid(f"账单 {billing_id} 已缴费")
            AuditService.log_deferred(trx, audit_buffer, actor.name, "账单缴费", f"Bill:{billing_id}",
                                      {"amount": bill['sum'], "paid_date": paid_on})
        logger.info(f"账单 {billing_id} 已缴费 {format_money(bill['sum'])}")
        bill.update(status=BillStatus.PAID.value, paid_date=paid_on)
        return bill

    @staticmethod
    def mark_overdue(gw, actor, as_of: Optional[datetime.date] = None) -> int:
        """截止日已过的待缴账单转为逾期"""
        require_role(actor, *MANAGERS)
        as_of = as_of or today()
        with transaction_scope(gw) as (trx, audit_buffer):
            ids = [b['id'] for b in trx.select('billing', {'status': BillStatus.PENDING.value})
                   if b['due_date'] and b['due_date'] < as_of]
            if not ids:
                return 0
            count = trx.update('billing', {'status': BillStatus.OVERDUE.value},
                               {'id': ids, 'status': BillStatus.PENDING.value})
            AuditService.log_deferred(trx, audit_buffer, actor.name, "账单逾期", f"{as_of}", {"bills": ids})
        logger.info(f"{count} 张账单转为逾期")
        return count

    @staticmethod
    def pending_rooms(gw, billing_month) -> list:
        """有在住租户但本月尚未出账的房间"""
        month = normalize_month(billing_month)
        billed = {b['room_id'] for b in gw.select('billing', {'billing_month': month})}
        return [r for r in OccupancyService.room_occupancy(gw)
                if r.occupants and r.room['id'] not in billed]

    @staticmethod
    def calculate_arrears(gw, room_id) -> Decimal:
        """计算房间欠费"""
        bills = gw.select('billing', {'room_id': room_id,
                                      'status': [BillStatus.PENDING.value, BillStatus.OVERDUE.value]})
        return sum((to_decimal(b['sum']) for b in bills), Decimal('0.00'))
