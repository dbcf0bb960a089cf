"""入住管理服务：分配房间、合住、退房与房间状态维护"""
from dataclasses import dataclass, field
from typing import List, Optional
from config import config, get_logger
from models.entities import RoomStatus, TenantState, Residency
from services.audit import AuditService
from services.auth import require_role, MANAGERS
from utils.exceptions import (
    ValidationError, RoomFull, RoomUnavailable, RoomNotFound, TenantNotFound,
    InvalidRoomTransition, DuplicateRoom, ConcurrencyConflict, DuplicateRowError
)
from utils.helpers import today
from utils.transaction import transaction_scope, retry_on_conflict

logger = get_logger(__name__)

CO_OCCUPANT_FIELDS = ('first_name', 'last_name', 'email', 'phone', 'address', 'emergency_contact')


def effective_capacity(room: dict) -> int:
    """房间有效容量，最低为2"""
    return max(int(room.get('capacity') or config.DEFAULT_CAPACITY), 2)


@dataclass
class RoomOccupancy:
    room: dict
    occupants: List[dict] = field(default_factory=list)

    @property
    def occupant_count(self) -> int:
        return len(self.occupants)

    @property
    def capacity(self) -> int:
        return effective_capacity(self.room)

    @property
    def is_full(self) -> bool:
        return self.occupant_count >= self.capacity


class OccupancyService:
    @staticmethod
    def get_room(gw, room_id) -> dict:
        room = gw.first('rooms', {'id': room_id})
        if room is None:
            raise RoomNotFound(f"房间不存在: {room_id}")
        return room

    @staticmethod
    def get_tenant(gw, tenant_id) -> dict:
        """读取在住租户，已移除的视为不存在"""
        tenant = gw.first('tenants', {'id': tenant_id})
        if tenant is None or tenant['action'] == TenantState.REMOVED:
            raise TenantNotFound(f"租户不存在: {tenant_id}")
        return tenant

    @staticmethod
    def current_occupant_count(gw, room_id) -> int:
        return gw.count('occupancy', {'room_id': room_id, 'is_current': True})

    @staticmethod
    def _claim_room(gw, room: dict, patch: Optional[dict] = None):
        """版本号比较并交换，读取后房间被他人修改则抛出 ConcurrencyConflict"""
        values = dict(patch or {})
        values['version'] = room['version'] + 1
        if gw.update('rooms', values, {'id': room['id'], 'version': room['version']}) != 1:
            raise ConcurrencyConflict(f"房间 {room['room_number']} 已被并发修改")
        room.update(values)

    @staticmethod
    def _close_current(gw, tenant_ids, on):
        if tenant_ids:
            gw.update('occupancy', {'is_current': False, 'check_out_date': on},
                      {'tenant_id': list(tenant_ids), 'is_current': True})

    @staticmethod
    def _open(gw, tenant_id, room_id, on) -> dict:
        return gw.insert('occupancy', {
            'tenant_id': tenant_id, 'room_id': room_id,
            'check_in_date': on, 'is_current': True
        })

    @staticmethod
    def _set_status(gw, room_id, status: RoomStatus):
        gw.update('rooms', {'status': status.value}, {'id': room_id})

    @staticmethod
    @retry_on_conflict
    def assign_tenant(gw, actor, tenant_id, room_id) -> dict:
        """
        将租户分配到空房间。
        租户已有在住记录时视为换房：关闭旧记录，合住人随主租户一起迁移，
        旧房间按剩余人数重算状态。
        """
        require_role(actor, *MANAGERS)
        with transaction_scope(gw) as (trx, audit_buffer):
            room = OccupancyService.get_room(trx, room_id)
            if room['status'] == RoomStatus.MAINTENANCE:
                raise RoomUnavailable(f"房间 {room['room_number']} 维修中")
            if OccupancyService.current_occupant_count(trx, room_id) != 0:
                raise RoomUnavailable(f"房间 {room['room_number']} 已有住户")
            tenant = OccupancyService.get_tenant(trx, tenant_id)

            current = trx.first('occupancy', {'tenant_id': tenant_id, 'is_current': True},
                                order='-check_in_date')
            old_room = OccupancyService.get_room(trx, current['room_id']) if current else None

            co_occupants = []
            if old_room and tenant['residents'] != Residency.CO_OCCUPANT:
                co_occupants = [t for t in trx.select('tenants', {
                    'room_id': old_room['id'], 'residents': Residency.CO_OCCUPANT.value,
                    'action': int(TenantState.ACTIVE)
                }) if t['id'] != tenant_id]
            if 1 + len(co_occupants) > effective_capacity(room):
                raise RoomFull(f"房间 {room['room_number']} 容纳不下 {1 + len(co_occupants)} 人")

            OccupancyService._claim_room(trx, room)
            if old_room:
                OccupancyService._claim_room(trx, old_room)

            on = today()
            OccupancyService._close_current(trx, [tenant_id], on)
            occupancy = OccupancyService._open(trx, tenant_id, room_id, on)
            trx.update('tenants', {
                'room_id': room_id, 'room_number': room['room_number'],
                'residents': Residency.PRIMARY.value
            }, {'id': tenant_id})

            child_ids = [t['id'] for t in co_occupants]
            if child_ids:
                OccupancyService._close_current(trx, child_ids, on)
                trx.insert_many('occupancy', [{
                    'tenant_id': cid, 'room_id': room_id, 'check_in_date': on, 'is_current': True
                } for cid in child_ids])
                trx.update('tenants', {'room_id': room_id, 'room_number': room['room_number']},
                           {'id': child_ids})

            OccupancyService._set_status(trx, room_id, RoomStatus.OCCUPIED)
            if old_room:
                left = OccupancyService.current_occupant_count(trx, old_room['id'])
                OccupancyService._set_status(trx, old_room['id'],
                                             RoomStatus.OCCUPIED if left else RoomStatus.VACANT)

            AuditService.log_deferred(trx, audit_buffer, actor.name, "分配房间", f"Tenant:{tenant_id}", {
                "room": room['room_number'],
                "from_room": old_room['room_number'] if old_room else None,
                "co_occupants": child_ids
            })
        logger.info(f"租户 {tenant_id} 入住房间 {room['room_number']}，同迁合住人 {len(child_ids)} 名")
        return occupancy

    @staticmethod
    @retry_on_conflict
    def add_co_occupant(gw, actor, room_id, occupant_data: dict) -> dict:
        """新增或更新合住人（带 id 时为更新），不改变房间状态"""
        require_role(actor, *MANAGERS)
        with transaction_scope(gw) as (trx, audit_buffer):
            room = OccupancyService.get_room(trx, room_id)
            if room['status'] == RoomStatus.MAINTENANCE:
                raise RoomUnavailable(f"房间 {room['room_number']} 维修中")
            current = trx.select('occupancy', {'room_id': room_id, 'is_current': True})

            existing = None
            if occupant_data.get('id') is not None:
                existing = OccupancyService.get_tenant(trx, occupant_data['id'])
                # 带 id 只能更新本房间现有合住人，换房走 assign_tenant
                if existing['residents'] != Residency.CO_OCCUPANT or \
                        not any(o['tenant_id'] == existing['id'] for o in current):
                    raise ValidationError(f"租户 {existing['id']} 不是房间 {room['room_number']} 的合住人")
            if existing is None and len(current) >= effective_capacity(room):
                raise RoomFull(f"房间 {room['room_number']} 已满 ({len(current)}/{effective_capacity(room)})")

            fields = {k: occupant_data[k] for k in CO_OCCUPANT_FIELDS if k in occupant_data}
            if existing is None and not str(fields.get('first_name') or '').strip():
                raise ValidationError("合住人姓名不能为空")

            OccupancyService._claim_room(trx, room)
            fields.update(room_id=room_id, room_number=room['room_number'],
                          residents=Residency.CO_OCCUPANT.value, action=int(TenantState.ACTIVE))
            if existing:
                tenant = trx.upsert('tenants', dict(fields, id=existing['id']))
            else:
                tenant = trx.insert('tenants', fields)

            if existing is None:
                on = today()
                OccupancyService._open(trx, tenant['id'], room_id, on)

            AuditService.log_deferred(trx, audit_buffer, actor.name, "新增合住人", f"Room:{room['room_number']}",
                                      {"tenant_id": tenant['id'], "update": existing is not None})
        logger.info(f"房间 {room['room_number']} 合住人 {tenant['id']} 已登记")
        return tenant

    @staticmethod
    @retry_on_conflict
    def vacate_tenant(gw, actor, tenant_id) -> List[int]:
        """租户及同房间所有住户退房，软删除并清空账号关联，返回被移除的租户ID"""
        require_role(actor, *MANAGERS)
        with transaction_scope(gw) as (trx, audit_buffer):
            tenant = OccupancyService.get_tenant(trx, tenant_id)
            if not tenant['room_id']:
                raise ValidationError(f"租户 {tenant_id} 未分配房间")
            room = OccupancyService.get_room(trx, tenant['room_id'])
            ids = [t['id'] for t in trx.select('tenants', {
                'room_id': room['id'], 'action': int(TenantState.ACTIVE)
            })]

            OccupancyService._claim_room(trx, room)
            trx.update('profiles', {'tenant_id': None, 'staff_id': None}, {'tenant_id': ids})
            OccupancyService._close_current(trx, ids, today())
            trx.update('tenants', {'action': int(TenantState.REMOVED)}, {'id': ids})
            left = OccupancyService.current_occupant_count(trx, room['id'])
            OccupancyService._set_status(trx, room['id'], RoomStatus.OCCUPIED if left else RoomStatus.VACANT)

            AuditService.log_deferred(trx, audit_buffer, actor.name, "退房", f"Room:{room['room_number']}",
                                      {"tenants": ids})
        logger.info(f"房间 {room['room_number']} 退房，移除租户 {ids}")
        return ids

    @staticmethod
    @retry_on_conflict
    def remove_co_occupants(gw, actor, tenant_id) -> List[int]:
        """只移除租户房间内的合住人，房间状态不变"""
        require_role(actor, *MANAGERS)
        with transaction_scope(gw) as (trx, audit_buffer):
            tenant = OccupancyService.get_tenant(trx, tenant_id)
            if not tenant['room_id']:
                raise ValidationError(f"租户 {tenant_id} 未分配房间")
            room = OccupancyService.get_room(trx, tenant['room_id'])
            ids = [t['id'] for t in trx.select('tenants', {
                'room_id': room['id'], 'residents': Residency.CO_OCCUPANT.value,
                'action': int(TenantState.ACTIVE)
            }) if t['id'] != tenant_id]
            if not ids:
                raise ValidationError(f"房间 {room['room_number']} 没有合住人")

            OccupancyService._claim_room(trx, room)
            trx.update('profiles', {'tenant_id': None}, {'tenant_id': ids})
            OccupancyService._close_current(trx, ids, today())
            trx.update('tenants', {'action': int(TenantState.REMOVED)}, {'id': ids})
            AuditService.log_deferred(trx, audit_buffer, actor.name, "移除合住人", f"Room:{room['room_number']}",
                                      {"tenants": ids})
        logger.info(f"房间 {room['room_number']} 移除合住人 {ids}")
        return ids

    @staticmethod
    @retry_on_conflict
    def set_maintenance(gw, actor, room_id, enabled: bool) -> dict:
        """维修状态切换，仅允许 vacant <-> maintenance"""
        require_role(actor, *MANAGERS)
        with transaction_scope(gw) as (trx, audit_buffer):
            room = OccupancyService.get_room(trx, room_id)
            if enabled:
                if room['status'] != RoomStatus.VACANT or OccupancyService.current_occupant_count(trx, room_id):
                    raise InvalidRoomTransition(f"房间 {room['room_number']} 非空置，不能转为维修")
                new_status = RoomStatus.MAINTENANCE
            else:
                if room['status'] != RoomStatus.MAINTENANCE:
                    raise InvalidRoomTransition(f"房间 {room['room_number']} 不在维修中")
                new_status = RoomStatus.VACANT
            old_status = room['status']
            OccupancyService._claim_room(trx, room, {'status': new_status.value})
            AuditService.log_deferred(trx, audit_buffer, actor.name, "房间状态", f"Room:{room['room_number']}",
                                      {"from": old_status, "to": new_status.value})
        logger.info(f"房间 {room['room_number']} 状态 {old_status} -> {new_status.value}")
        return room

    @staticmethod
    def register_room(gw, actor, data: dict, settings) -> dict:
        """登记新房间，租金取系统权威月租"""
        require_role(actor, *MANAGERS)
        number = str(data.get('room_number') or '').strip()
        if not number:
            raise ValidationError("房号不能为空")
        try:
            floor = int(data['floor'])
            capacity = max(int(data.get('capacity') or config.DEFAULT_CAPACITY), 2)
        except (KeyError, TypeError, ValueError):
            raise ValidationError("楼层与容量必须为整数")

        with transaction_scope(gw) as (trx, audit_buffer):
            if trx.count('rooms', {'room_number': number}):
                raise DuplicateRoom(f"房号已存在: {number}")
            try:
                room = trx.insert('rooms', {
                    'room_number': number, 'room_type': data.get('room_type') or 'Standard Double',
                    'floor': floor, 'capacity': capacity, 'price': settings.deposit_rate,
                    'status': RoomStatus.VACANT.value,
                    'latest_meter_reading': float(data.get('latest_meter_reading') or 0.0)
                })
            except DuplicateRowError as e:
                raise DuplicateRoom(f"房号已存在: {number}") from e
            AuditService.log_deferred(trx, audit_buffer, actor.name, "新增房间", f"Room:{number}",
                                      {"floor": floor, "capacity": capacity})
        return room

    @staticmethod
    def register_tenant(gw, actor, data: dict) -> dict:
        """登记尚未分配房间的主租户"""
        require_role(actor, *MANAGERS)
        fields = {k: data[k] for k in CO_OCCUPANT_FIELDS if k in data}
        if not str(fields.get('first_name') or '').strip():
            raise ValidationError("租户姓名不能为空")
        with transaction_scope(gw) as (trx, audit_buffer):
            tenant = trx.insert('tenants', dict(fields, residents=Residency.PRIMARY.value,
                                                action=int(TenantState.ACTIVE)))
            AuditService.log_deferred(trx, audit_buffer, actor.name, "新增租户", f"Tenant:{tenant['id']}",
                                      {"first_name": tenant['first_name']})
        return tenant

    @staticmethod
    def room_occupancy(gw) -> List[RoomOccupancy]:
        """所有房间及其在住租户"""
        rooms = gw.select('rooms', order='room_number')
        current = gw.select('occupancy', {'is_current': True}, order=['check_in_date', 'id'])
        tenants = {t['id']: t for t in gw.select('tenants', {'id': [o['tenant_id'] for o in current]})} \
            if current else {}
        result = {r['id']: RoomOccupancy(r) for r in rooms}
        for occ in current:
            entry = result.get(occ['room_id'])
            tenant = tenants.get(occ['tenant_id'])
            if entry is not None and tenant is not None:
                entry.occupants.append(dict(tenant, check_in_date=occ['check_in_date']))
        return list(result.values())
