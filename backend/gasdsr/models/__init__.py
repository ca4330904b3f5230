from .stock import DailyStockReport

__all__ = [
    'DailyStockReport',
]
