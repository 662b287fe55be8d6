"""
Gold Wallet

Points earned by watching rewarded ads (20 a day, premium accounts exempt)
and spent on phone unlocks, shop boosts and ad-free periods. Every movement
is appended to a transaction log the cached balance can be audited against.
"""

from .models import GoldSource, GoldTransaction, TransactionType
from .service import WalletService, normalize_daily_counters

__all__ = [
    "GoldSource",
    "GoldTransaction",
    "TransactionType",
    "WalletService",
    "normalize_daily_counters",
]
