from .stock_record import StockRecord
from .shop import Shop

# This ensures all models are registered with SQLAlchemy
__all__ = [
    'StockRecord',
    'Shop',
]
