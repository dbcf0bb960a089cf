"""账单服务测试"""
import datetime
from decimal import Decimal
import pytest

from models import SqlGateway, create_session_factory
from models.entities import BillStatus
from services.billing import BillingService, compute_charges
from services.occupancy import OccupancyService
from services.settings import SystemSettings
from utils.exceptions import (
    ValidationError, AlreadyPaid, BillNotFound, PermissionDenied, ConfigurationError
)

JUNE = datetime.date(2024, 6, 1)


@pytest.fixture
def occupied_room(gw, admin, settings, make_room, make_tenant):
    """101：A 与合住人 B，上次电表读数 100"""
    room = make_room("101", reading=100.0)
    a = make_tenant("A")
    OccupancyService.assign_tenant(gw, admin, a['id'], room['id'])
    OccupancyService.add_co_occupant(gw, admin, room['id'], {'first_name': "B"})
    return room, a


class TestComputeCharges:
    """费用计算测试"""

    def test_reference_bill(self):
        """2人，水费100，电费7，读数100->150，月租3500，合计4050"""
        s = SystemSettings(water_rate=100, electricity_rate=7, deposit_rate=3500)
        c = compute_charges(2, 100, 150, s)
        assert c.water_units == 2
        assert c.water_cost == Decimal('200')
        assert c.electricity_units == Decimal('50')
        assert c.electricity_cost == Decimal('350')
        assert c.room_rent == Decimal('3500')
        assert c.total == Decimal('4050')

    def test_units_never_negative(self):
        s = SystemSettings(water_rate=100, electricity_rate=7, deposit_rate=3500)
        assert compute_charges(1, 150, 100, s).electricity_units == 0


class TestGenerateMonthlyBills:
    """批量出账测试"""

    def test_generates_expected_row(self, gw, admin, occupied_room):
        room, a = occupied_room
        report = BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 150})

        assert report.created_count == 1
        assert report.skipped == []
        bill = gw.first('billing', {'room_id': room['id']})
        assert bill['billing_month'] == JUNE
        assert bill['tenant_id'] == a['id']
        assert bill['water_units'] == 2
        assert bill['water_cost'] == 200
        assert bill['electricity_units'] == 50
        assert bill['electricity_cost'] == 350
        assert bill['room_rent'] == 3500
        assert bill['sum'] == 4050
        assert bill['status'] == BillStatus.PENDING.value
        assert bill['due_date'] == datetime.date(2024, 7, 5)
        assert bill['receipt_number'].startswith("RC202406-101-")

        stored = gw.first('rooms', {'id': room['id']})
        assert stored['latest_meter_reading'] == 150
        assert stored['old_meter'] == 100

    def test_reading_below_previous(self, gw, admin, occupied_room):
        """读数倒退时该房间跳过，不写账单也不改读数"""
        room, _ = occupied_room
        report = BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 80})

        assert report.created_count == 0
        assert [s.reason for s in report.skipped] == ['MeterReadingBelowPrevious']
        assert gw.count('billing') == 0
        assert gw.first('rooms', {'id': room['id']})['latest_meter_reading'] == 100

    def test_rerun_is_idempotent(self, gw, admin, occupied_room):
        first = BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 150})
        rows = gw.select('billing')

        second = BillingService.generate_monthly_bills(gw, admin, "2024-06-15", {"101": 150})

        assert first.created_count == 1
        assert second.created_count == 0
        assert [s.reason for s in second.skipped] == ['AlreadyBilled']
        assert gw.select('billing') == rows

    def test_meter_is_monotonic(self, gw, admin, occupied_room):
        room, _ = occupied_room
        history = [gw.first('rooms', {'id': room['id']})['latest_meter_reading']]
        for month, reading in (("2024-06", 150), ("2024-07", 140), ("2024-08", 180)):
            BillingService.generate_monthly_bills(gw, admin, month, {"101": reading})
            history.append(gw.first('rooms', {'id': room['id']})['latest_meter_reading'])
        assert history == sorted(history)
        assert history[-1] == 180
        assert gw.first('rooms', {'id': room['id']})['old_meter'] == 150

    def test_partial_batch(self, gw, admin, occupied_room, make_room, make_tenant):
        """单个房间失败不影响其他房间"""
        other = make_room("102", reading=10.0)
        c = make_tenant("C")
        OccupancyService.assign_tenant(gw, admin, c['id'], other['id'])

        report = BillingService.generate_monthly_bills(gw, admin, JUNE, {"101": 90, other['id']: 20})

        assert [b.room_number for b in report.billed] == ["102"]
        assert [(s.room_number, s.reason) for s in report.skipped] == [("101", 'MeterReadingBelowPrevious')]
        bill = gw.first('billing', {'room_id': other['id']})
        assert bill['water_cost'] == 100
        assert bill['electricity_cost'] == 70
        assert bill['sum'] == 3670
        assert "跳过 1 间" in report.summary()

    def test_skip_reasons(self, gw, admin, occupied_room, make_room):
        """缺读数、未知房号、空房均按房间报告"""
        make_room("103", reading=0.0)
        report = BillingService.generate_monthly_bills(gw, admin, "2024-06", {"999": 10, "103": 10})
        reasons = {s.room_number: s.reason for s in report.skipped}
        assert reasons == {"999": 'RoomNotFound', "101": 'MissingMeterReading', "103": 'NotOccupied'}
        assert gw.count('billing') == 0

    def test_rerun_after_vacate_reports_already_billed(self, gw, admin, occupied_room):
        """已出账后退房，重跑同账期仍报告已出账"""
        room, a = occupied_room
        BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 150})
        OccupancyService.vacate_tenant(gw, admin, a['id'])

        report = BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 150})

        assert [(s.room_number, s.reason) for s in report.skipped] == [("101", 'AlreadyBilled')]
        assert gw.count('billing') == 1

    def test_invalid_reading_value(self, gw, admin, occupied_room):
        report = BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": "abc"})
        assert [s.reason for s in report.skipped] == ['ValidationError']

    def test_invalid_month_is_fatal(self, gw, admin, occupied_room):
        with pytest.raises(ValidationError):
            BillingService.generate_monthly_bills(gw, admin, "June", {"101": 150})
        assert gw.count('billing') == 0

    def test_settings_snapshot(self, gw, admin, occupied_room):
        """显式传入的费率快照优先于数据库设置"""
        snapshot = SystemSettings(water_rate=50, electricity_rate=5, deposit_rate=3000)
        BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 110}, settings=snapshot)
        assert gw.first('billing')['sum'] == 3000 + 100 + 50

    def test_missing_settings(self, gw, admin, make_room):
        with pytest.raises(ConfigurationError):
            BillingService.generate_monthly_bills(gw, admin, "2024-06", {})

    def test_explicit_due_date(self, gw, admin, occupied_room):
        BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 150}, due_date="2024-06-30")
        assert gw.first('billing')['due_date'] == datetime.date(2024, 6, 30)

    def test_pending_rooms(self, gw, admin, occupied_room):
        assert [r.room['room_number'] for r in BillingService.pending_rooms(gw, "2024-06")] == ["101"]
        BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 150})
        assert BillingService.pending_rooms(gw, "2024-06") == []

    def test_tenant_role_rejected(self, gw, tenant_actor, occupied_room):
        with pytest.raises(PermissionDenied):
            BillingService.generate_monthly_bills(gw, tenant_actor, "2024-06", {"101": 150})


class MeterRaceGateway(SqlGateway):
    """在写入读数前模拟另一批次已更新读数"""

    def update(self, table, patch, filters):
        if table == 'rooms' and filters and 'latest_meter_reading' in filters:
            super().update('rooms', {'latest_meter_reading': 999.0}, {'id': filters['id']})
        return super().update(table, patch, filters)


class TestMeterRace:
    def test_conflict_rolls_back_room(self, session_factory, gw, admin, occupied_room):
        room, _ = occupied_room
        report = BillingService.generate_monthly_bills(MeterRaceGateway(session_factory), admin,
                                                       "2024-06", {"101": 150})
        assert [s.reason for s in report.skipped] == ['ConcurrencyConflict']
        assert gw.count('billing') == 0
        assert gw.first('rooms', {'id': room['id']})['latest_meter_reading'] == 100


class CompetingBillGateway(SqlGateway):
    """写入账单前，另一连接抢先提交同一房间同一账期的账单"""

    def insert(self, table, row):
        if table == 'billing':
            SqlGateway(self._session_factory).insert('billing', {
                'room_id': row['room_id'], 'billing_month': row['billing_month'],
                'sum': 1.0, 'status': BillStatus.PENDING.value
            })
        return super().insert(table, row)


class TestBillingRace:
    """两个批次分别提交的竞争"""

    @pytest.fixture
    def session_factory(self, tmp_path):
        return create_session_factory(str(tmp_path / "dorm.db"))

    def test_unique_period_blocks_second_bill(self, session_factory, gw, admin, occupied_room):
        room, _ = occupied_room
        report = BillingService.generate_monthly_bills(CompetingBillGateway(session_factory), admin,
                                                       "2024-06", {"101": 150})

        assert report.created_count == 0
        assert [s.reason for s in report.skipped] == ['AlreadyBilled']
        bills = gw.select('billing')
        assert len(bills) == 1
        assert bills[0]['sum'] == 1.0
        assert gw.first('rooms', {'id': room['id']})['latest_meter_reading'] == 100


class TestPayment:
    """缴费与逾期测试"""

    @pytest.fixture
    def bill(self, gw, admin, occupied_room):
        BillingService.generate_monthly_bills(gw, admin, "2024-06", {"101": 150})
        return gw.first('billing')

    def test_mark_paid(self, gw, staff, bill):
        paid = BillingService.mark_bill_paid(gw, staff, bill['id'], paid_on=datetime.date(2024, 7, 1))
        assert paid['status'] == BillStatus.PAID.value
        stored = gw.first('billing', {'id': bill['id']})
        assert stored['status'] == BillStatus.PAID.value
        assert stored['paid_date'] == datetime.date(2024, 7, 1)

    def test_double_payment_rejected(self, gw, admin, bill):
        BillingService.mark_bill_paid(gw, admin, bill['id'])
        with pytest.raises(AlreadyPaid) as exc:
            BillingService.mark_bill_paid(gw, admin, bill['id'])
        assert exc.value.code == 'AlreadyPaid'

    def test_tenant_cannot_mark_paid(self, gw, tenant_actor, bill):
        with pytest.raises(PermissionDenied):
            BillingService.mark_bill_paid(gw, tenant_actor, bill['id'])
        assert gw.first('billing', {'id': bill['id']})['status'] == BillStatus.PENDING.value

    def test_unknown_bill(self, gw, admin, bill):
        with pytest.raises(BillNotFound):
            BillingService.mark_bill_paid(gw, admin, 404)

    def test_mark_overdue(self, gw, admin, bill):
        assert BillingService.mark_overdue(gw, admin, as_of=datetime.date(2024, 7, 5)) == 0
        assert BillingService.mark_overdue(gw, admin, as_of=datetime.date(2024, 7, 6)) == 1
        assert gw.first('billing')['status'] == BillStatus.OVERDUE.value
        assert BillingService.calculate_arrears(gw, bill['room_id']) == Decimal('4050')

        BillingService.mark_bill_paid(gw, admin, bill['id'])
        assert BillingService.calculate_arrears(gw, bill['room_id']) == 0
