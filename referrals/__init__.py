"""
Referral Ledger

This module provides:
- Referral rewards credited to a cached balance, idempotent by key
- Withdrawal requests debited up front and held for admin review
- Approve clears the request; reject clears it and re-credits the amount
- An append-only entry log with the balance after every movement
"""

from .models import (
    EntryType,
    ReferralEntry,
    ReferralSummary,
    WithdrawalAction,
)
from .service import ReferralService

__all__ = [
    "EntryType",
    "ReferralEntry",
    "ReferralSummary",
    "WithdrawalAction",
    "ReferralService",
]
