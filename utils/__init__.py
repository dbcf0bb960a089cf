"""工具函数模块"""
from .helpers import to_decimal, format_money, normalize_month

__all__ = ['to_decimal', 'format_money', 'normalize_month']
