"""测试公共夹具：每个测试使用独立的内存数据库"""
import os
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from config import config
from models import SqlGateway, create_session_factory
from models.entities import RoomStatus, Residency
from services.auth import Actor
from services.settings import SettingsService


@pytest.fixture(autouse=True)
def worm_log(tmp_path, monkeypatch):
    """WORM日志写入临时目录"""
    path = tmp_path / "worm_audit.log"
    monkeypatch.setattr(config, 'WORM_LOG_PATH', str(path))
    return path


@pytest.fixture
def session_factory():
    return create_session_factory()


@pytest.fixture
def gw(session_factory):
    return SqlGateway(session_factory)


@pytest.fixture
def admin():
    return Actor('admin', 'admin')


@pytest.fixture
def staff():
    return Actor('staff01', 'staff')


@pytest.fixture
def tenant_actor():
    return Actor('tenant01', 'tenant')


@pytest.fixture
def settings(gw):
    """水费100/人，电费7/度，月租3500"""
    gw.insert('system_settings', {
        'water_rate': 100.0, 'electricity_rate': 7.0, 'deposit_rate': 3500.0,
        'late_fee': 5.0, 'floor': 4
    })
    return SettingsService.get_settings(gw)


@pytest.fixture
def make_room(gw):
    def _make(number, capacity=2, status=RoomStatus.VACANT.value, reading=0.0, price=3500.0, floor=1):
        return gw.insert('rooms', {
            'room_number': number, 'floor': floor, 'capacity': capacity, 'status': status,
            'latest_meter_reading': reading, 'price': price
        })
    return _make


@pytest.fixture
def make_tenant(gw):
    def _make(first_name, residents=Residency.PRIMARY.value, **extra):
        row = {'first_name': first_name, 'last_name': 'Test', 'residents': residents}
        row.update(extra)
        return gw.insert('tenants', row)
    return _make
