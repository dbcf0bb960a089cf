"""房间租金与系统权威月租的对账同步"""
from dataclasses import dataclass, field
from typing import List
from config import get_logger
from services.audit import AuditService
from services.auth import require_role, ROLE_ADMIN
from services.settings import SettingsService, SystemSettings
from utils.exceptions import PersistenceError, ConfigurationError
from utils.helpers import to_decimal
from utils.transaction import transaction_scope

logger = get_logger(__name__)


@dataclass
class MismatchedRoom:
    id: int
    room_number: str
    current_price: float


@dataclass
class PriceSyncStatus:
    is_synced: bool
    system_rate: float
    mismatched_rooms: List[MismatchedRoom] = field(default_factory=list)


@dataclass
class PriceSyncResult:
    success: bool
    updated_count: int = 0
    errors: List[str] = field(default_factory=list)
    message: str = ""


class RoomPriceSyncService:
    @staticmethod
    def check_sync(gw, settings: SystemSettings = None) -> PriceSyncStatus:
        """找出租金与权威月租不一致的房间"""
        settings = settings or SettingsService.get_settings(gw)
        rate = to_decimal(settings.deposit_rate)
        mismatched = [
            MismatchedRoom(r['id'], r['room_number'], r['price'])
            for r in gw.select('rooms', order='room_number')
            if r['price'] is None or to_decimal(r['price']) != rate
        ]
        return PriceSyncStatus(not mismatched, settings.deposit_rate, mismatched)

    @staticmethod
    def sync_all(gw, actor, settings: SystemSettings = None) -> PriceSyncResult:
        """
        一次性将所有房间租金改为权威月租。
        updated_count 为更新前不一致的房间数；数据库错误记入 errors 而不抛出。
        """
        require_role(actor, ROLE_ADMIN)
        try:
            settings = settings or SettingsService.get_settings(gw)
            status = RoomPriceSyncService.check_sync(gw, settings)
            if status.is_synced:
                return PriceSyncResult(True, 0, [], "所有房间租金已与系统设置一致")

            with transaction_scope(gw) as (trx, audit_buffer):
                trx.update('rooms', {'price': settings.deposit_rate}, {})
                AuditService.log_deferred(trx, audit_buffer, actor.name, "同步房间租金", "全部房间", {
                    "rate": settings.deposit_rate,
                    "rooms": [m.room_number for m in status.mismatched_rooms]
                })
        except (PersistenceError, ConfigurationError) as e:
            logger.error(f"房间租金同步失败: {e}")
            return PriceSyncResult(False, 0, [str(e)], "房间租金同步失败")

        count = len(status.mismatched_rooms)
        for m in status.mismatched_rooms:
            logger.info(f"房间 {m.room_number}: {m.current_price} -> {settings.deposit_rate}")
        logger.info(f"房间租金同步完成: {count} 间")
        return PriceSyncResult(True, count, [], f"已将 {count} 间房间租金更新为 {settings.deposit_rate}")
