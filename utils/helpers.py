"""通用工具函数"""
import datetime
from decimal import Decimal, InvalidOperation
from utils.exceptions import ValidationError, MissingMeterReading


def to_decimal(val) -> Decimal:
    if val is None:
        return Decimal('0.00')
    return Decimal(str(val))


def format_money(val) -> str:
    return f"฿{to_decimal(val):,.2f}"


def today() -> datetime.date:
    return datetime.date.today()


def normalize_month(val) -> datetime.date:
    """账期归一化为当月1日，接受 YYYY-MM / YYYY-MM-DD / date"""
    if isinstance(val, datetime.datetime):
        return val.date().replace(day=1)
    if isinstance(val, datetime.date):
        return val.replace(day=1)
    if isinstance(val, str):
        text = val.strip()
        for fmt in ('%Y-%m', '%Y-%m-%d'):
            try:
                return datetime.datetime.strptime(text, fmt).date().replace(day=1)
            except ValueError:
                continue
    raise ValidationError(f"无效账期: {val!r}")


def add_months(month: datetime.date, n: int) -> datetime.date:
    idx = month.year * 12 + (month.month - 1) + n
    return datetime.date(idx // 12, idx % 12 + 1, 1)


def parse_reading(val) -> Decimal:
    """电表读数校验：必须为非负数"""
    if val is None or (isinstance(val, str) and not val.strip()):
        raise MissingMeterReading("缺少电表读数")
    if isinstance(val, bool):
        raise ValidationError(f"无效电表读数: {val!r}")
    try:
        num = to_decimal(val)
    except InvalidOperation:
        raise ValidationError(f"无效电表读数: {val!r}")
    if not num.is_finite() or num < 0:
        raise ValidationError(f"无效电表读数: {val!r}")
    return num
