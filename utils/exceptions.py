"""自定义异常类"""


class DormException(Exception):
    """系统基础异常，code 供调用方区分错误类型"""
    code = 'Error'


class ValidationError(DormException):
    """数据验证错误"""
    code = 'ValidationError'


class ConfigurationError(DormException):
    """配置错误"""
    code = 'ConfigurationError'


class PermissionDenied(DormException):
    """角色权限不足"""
    code = 'PermissionDenied'


class CapacityError(DormException):
    """房间容量错误"""
    code = 'CapacityError'


class RoomFull(CapacityError):
    code = 'RoomFull'


class RoomUnavailable(CapacityError):
    """房间维修中或已有住户"""
    code = 'RoomUnavailable'


class ConflictError(DormException):
    """业务状态冲突"""
    code = 'ConflictError'


class AlreadyBilled(ConflictError):
    code = 'AlreadyBilled'


class AlreadyPaid(ConflictError):
    code = 'AlreadyPaid'


class MeterReadingBelowPrevious(ConflictError):
    code = 'MeterReadingBelowPrevious'


class InvalidRoomTransition(ConflictError):
    code = 'InvalidRoomTransition'


class DuplicateRoom(ConflictError):
    code = 'DuplicateRoom'


class ConcurrencyConflict(ConflictError):
    """乐观锁比较失败"""
    code = 'ConcurrencyConflict'


class NotFoundError(DormException):
    code = 'NotFound'


class TenantNotFound(NotFoundError):
    code = 'TenantNotFound'


class RoomNotFound(NotFoundError):
    code = 'RoomNotFound'


class BillNotFound(NotFoundError):
    code = 'BillNotFound'


class PersistenceError(DormException):
    """数据库操作错误"""
    code = 'PersistenceError'


class DuplicateRowError(PersistenceError):
    """唯一约束冲突"""
    code = 'DuplicateRow'


class MissingMeterReading(ValidationError):
    code = 'MissingMeterReading'


class RoomNotOccupied(ConflictError):
    """房间无在住租户"""
    code = 'NotOccupied'
