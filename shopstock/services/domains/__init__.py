"""
Domain Services

- StockEngine: transactional stock movements and admin stock operations
- StockQueries: read models over committed state
- Account: balance aggregate used inside engine transactions
"""
from .accounts import Account
from .catalog import StockQueries
from .stock import StockEngine

__all__ = [
    "Account",
    "StockEngine",
    "StockQueries",
]
