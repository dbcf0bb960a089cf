"""系统设置读取与校验（核心只读）"""
from dataclasses import dataclass, field
from typing import List
from config import get_logger
from utils.exceptions import ConfigurationError

logger = get_logger(__name__)


@dataclass(frozen=True)
class SystemSettings:
    water_rate: float
    electricity_rate: float
    deposit_rate: float
    late_fee: float = 5.0
    floor_count: int = 4

    @classmethod
    def from_row(cls, row: dict) -> 'SystemSettings':
        return cls(
            water_rate=float(row.get('water_rate') or 0.0),
            electricity_rate=float(row.get('electricity_rate') or 0.0),
            deposit_rate=float(row.get('deposit_rate') or 0.0),
            late_fee=float(row.get('late_fee') or 0.0),
            floor_count=int(row.get('floor') or 0),
        )


@dataclass
class SettingsValidation:
    is_valid: bool
    issues: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


class SettingsService:
    @staticmethod
    def get_settings(gw) -> SystemSettings:
        """读取最新一条系统设置"""
        row = gw.first('system_settings', order=['-created_at', '-id'])
        if row is None:
            raise ConfigurationError("未找到系统设置")
        return SystemSettings.from_row(row)

    @staticmethod
    def validate_settings(gw) -> SettingsValidation:
        issues, recommendations = [], []
        rows = gw.select('system_settings', order=['-created_at', '-id'])
        if not rows:
            return SettingsValidation(False, ["未找到系统设置"], ["请先创建系统设置记录"])

        latest = rows[0]
        for key, label in (('deposit_rate', '月租'), ('water_rate', '水费单价'),
                           ('electricity_rate', '电费单价')):
            if not latest.get(key) or latest[key] <= 0:
                issues.append(f"{label}无效")
                recommendations.append(f"请设置大于0的{label}")
        if len(rows) > 1:
            issues.append(f"存在多条系统设置记录({len(rows)})")
            recommendations.append("只保留最新一条系统设置")

        if issues:
            logger.warning(f"系统设置校验未通过: {issues}")
        return SettingsValidation(not issues, issues, recommendations)
