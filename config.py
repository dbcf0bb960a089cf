"""配置管理模块"""
import os
import logging
from dataclasses import dataclass

# 配置日志
logging.basicConfig(
    level=getattr(logging, os.getenv('DORM_LOG_LEVEL', 'INFO').upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(os.getenv('DORM_LOG_FILE', 'dorm.log'), encoding='utf-8'),
        logging.StreamHandler()
    ]
)

def get_logger(name: str) -> logging.Logger:
    """获取模块日志器"""
    return logging.getLogger(name)

@dataclass
class Config:
    # 应用配置
    APP_NAME: str = os.getenv('DORM_APP_NAME', '宿舍管理系统')

    # 数据库配置
    DB_PATH: str = os.getenv('DORM_DB_PATH', 'dormitory.db')
    DB_BUSY_TIMEOUT: int = int(os.getenv('DORM_DB_BUSY_TIMEOUT', '30'))

    # 审计配置（为空则不写WORM文件）
    WORM_LOG_PATH: str = os.getenv('DORM_WORM_LOG', 'worm_audit.log')

    # 入住配置
    DEFAULT_CAPACITY: int = int(os.getenv('DORM_DEFAULT_CAPACITY', '2'))
    OCCUPANCY_MAX_RETRIES: int = int(os.getenv('DORM_OCCUPANCY_RETRIES', '3'))

    # 账单配置
    BILL_DUE_DAY: int = int(os.getenv('DORM_BILL_DUE_DAY', '5'))

    # 查询配置
    AUDIT_QUERY_LIMIT: int = int(os.getenv('DORM_AUDIT_QUERY_LIMIT', '1000'))

config = Config()
