"""
Identity Store and Profile Registry

This module provides:
- Identities with their wallet, referral and staged-subscription fields
- Service provider and shop listing profiles
- The single grant path that writes a paid subscription window
- Public listing search with contact redaction for anonymous callers
- A locking in-memory document store shared by every ledger
"""

from .models import (
    Identity,
    ProfileKind,
    ProfileStatus,
    ServiceProviderProfile,
    ShopProfile,
    Viewer,
    to_public_view,
)
from .service import AccountService
from .storage import InMemoryStorage

__all__ = [
    "Identity",
    "ProfileKind",
    "ProfileStatus",
    "ServiceProviderProfile",
    "ShopProfile",
    "Viewer",
    "to_public_view",
    "AccountService",
    "InMemoryStorage",
]
