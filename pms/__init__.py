"""
PMS 预订核心

房间库存、价格方案、预订生命周期、账单与审计
"""
__version__ = "1.0.0"
