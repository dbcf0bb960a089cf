#!/usr/bin/env python3
"""测试数据初始化脚本 - 验证入住与账单业务逻辑"""
import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import date
from models import SqlGateway, init_db
from services.auth import SYSTEM_ACTOR
from services.billing import BillingService
from services.occupancy import OccupancyService
from services.price_sync import RoomPriceSyncService
from services.settings import SettingsService
from utils.exceptions import ConfigurationError, DuplicateRoom
from utils.helpers import format_money


def init_settings(gw):
    """初始化系统费率"""
    try:
        settings = SettingsService.get_settings(gw)
    except ConfigurationError:
        gw.insert('system_settings', {
            'water_rate': 100.0, 'electricity_rate': 7.0, 'deposit_rate': 3500.0, 'late_fee': 5.0, 'floor': 3
        })
        settings = SettingsService.get_settings(gw)
    print(f"✅ 系统费率: 水 {settings.water_rate}/人，电 {settings.electricity_rate}/度，月租 {settings.deposit_rate}")
    return settings


def init_rooms(gw, settings):
    """初始化测试房间"""
    for floor in range(1, settings.floor_count + 1):
        for n in range(1, 4):
            try:
                OccupancyService.register_room(gw, SYSTEM_ACTOR, {'room_number': f"{floor}0{n}", 'floor': floor},
                                               settings)
            except DuplicateRoom:
                pass
    print(f"✅ 房间初始化完成: {gw.count('rooms')} 间")


def init_tenants(gw):
    """登记租户并分配房间"""
    rooms = [o for o in OccupancyService.room_occupancy(gw) if not o.occupants and o.room['status'] == 'vacant']
    if len(rooms) < 2:
        print("⚠️ 空房不足，跳过租户初始化")
        return []
    a = OccupancyService.register_tenant(gw, SYSTEM_ACTOR, {'first_name': "Somchai", 'phone': "0810000001"})
    b = OccupancyService.register_tenant(gw, SYSTEM_ACTOR, {'first_name': "Niran", 'phone': "0810000002"})
    OccupancyService.assign_tenant(gw, SYSTEM_ACTOR, a['id'], rooms[0].room['id'])
    OccupancyService.add_co_occupant(gw, SYSTEM_ACTOR, rooms[0].room['id'], {'first_name': "Malee"})
    OccupancyService.assign_tenant(gw, SYSTEM_ACTOR, b['id'], rooms[1].room['id'])
    print(f"✅ 租户入住: {rooms[0].room['room_number']} (2人), {rooms[1].room['room_number']} (1人)")
    return [rooms[0].room, rooms[1].room]


def run_billing(gw, rooms):
    """生成本月账单并核销一张"""
    month = date.today().replace(day=1)
    readings = {r['id']: (r['latest_meter_reading'] or 0.0) + 50 for r in rooms}
    report = BillingService.generate_monthly_bills(gw, SYSTEM_ACTOR, month, readings)
    print(f"✅ {report.summary()}")
    if report.billed:
        BillingService.mark_bill_paid(gw, SYSTEM_ACTOR, report.billed[0].billing_id)
        print(f"✅ 核销账单: {report.billed[0].room_number} {format_money(report.billed[0].total)}")


def verify_consistency(gw):
    """验证容量与租金一致性"""
    print("\n" + "=" * 50)
    print("🔍 一致性核对")
    print("=" * 50)
    ok = True
    for o in OccupancyService.room_occupancy(gw):
        if o.occupant_count > o.capacity:
            print(f"❌ 房间 {o.room['room_number']} 超员 {o.occupant_count}/{o.capacity}")
            ok = False
        if o.occupants and o.room['status'] != 'occupied':
            print(f"❌ 房间 {o.room['room_number']} 有住户但状态为 {o.room['status']}")
            ok = False
    status = RoomPriceSyncService.check_sync(gw)
    if not status.is_synced:
        print(f"❌ {len(status.mismatched_rooms)} 间房间租金与系统设置不一致")
        ok = False
    print("\n✅ 一致性核对通过！" if ok else "\n❌ 一致性核对失败")
    return ok


def main():
    print("=" * 50)
    print("宿舍管理系统 - 业务逻辑测试")
    print("=" * 50)

    init_db()
    gw = SqlGateway()
    settings = init_settings(gw)
    init_rooms(gw, settings)

    print("\n--- 业务流程测试 ---")
    rooms = init_tenants(gw)
    if rooms:
        run_billing(gw, rooms)

    success = verify_consistency(gw)
    print("\n" + "=" * 50)
    print("✅ 所有测试通过！" if success else "❌ 测试失败，请检查业务逻辑")
    print("=" * 50)


if __name__ == "__main__":
    main()
