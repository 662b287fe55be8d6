from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from accounts.models import Identity
from accounts.service import AccountService
from core.clock import Clock, local_now
from core.errors import InsufficientBalanceError, NotFoundError, RateLimitError, ValidationError
from core.pagination import clamp_page, paginate

from .models import (
    AdCreditResult,
    BalanceAudit,
    GoldSource,
    GoldTransaction,
    SpendResult,
    TransactionType,
    WalletView,
)

logger = structlog.get_logger(__name__)

DAILY_AD_CAP = 20
AD_REWARD_POINTS = 1
COSTS = {
    GoldSource.UNLOCK_PHONE: 2,
    GoldSource.BOOST_SHOP: 10,
    GoldSource.REMOVE_ADS: 5,
}
BOOST_DURATION = timedelta(days=7)
AD_FREE_DURATION = timedelta(days=30)
WALLET_PAGE_DEFAULT_LIMIT = 20
WALLET_PAGE_MAX_LIMIT = 50


def _calendar_day(moment: datetime, now: datetime):
    if moment.tzinfo is not None and now.tzinfo is not None:
        moment = moment.astimezone(now.tzinfo)
    return moment.date()


def normalize_daily_counters(identity: Identity, now: datetime) -> Identity:
    """Return a copy with `ads_watched_today` reset if the last ad was on an earlier day."""
    last = identity.last_ad_watch_date
    if last is None or _calendar_day(last, now) == now.date():
        return identity.model_copy()
    return identity.model_copy(update={"ads_watched_today": 0})


def _remaining(identity: Identity) -> int:
    return max(0, DAILY_AD_CAP - identity.ads_watched_today)


class WalletService:
    def __init__(self, accounts: AccountService, clock: Clock = local_now):
        self.accounts = accounts
        self.storage = accounts.storage
        self.clock = clock

    def _record(self, identity_id: UUID, kind: TransactionType, amount: int, source: GoldSource, now: datetime) -> GoldTransaction:
        entry = GoldTransaction(
            id=uuid4(),
            identity_id=identity_id,
            type=kind,
            amount=amount,
            source=source,
            created_at=now,
        )
        return GoldTransaction(**self.storage.append_gold_transaction(entry.model_dump()))

    def credit_for_ad_watched(self, identity_id: UUID) -> AdCreditResult:
        with self.storage.locked(identity_id):
            now = self.clock()
            identity = normalize_daily_counters(self.accounts.get_identity(identity_id), now)

            if identity.is_premium:
                return AdCreditResult(
                    credited=False,
                    gold_points=identity.gold_points,
                    ads_watched_today=identity.ads_watched_today,
                    remaining_ads_today=_remaining(identity),
                )
            if identity.ads_watched_today >= DAILY_AD_CAP:
                logger.info("ad_credit_capped", identity_id=str(identity_id))
                raise RateLimitError(
                    "Daily ad limit reached. Try again tomorrow.",
                    data={"gold_points": identity.gold_points, "remaining_ads_today": 0},
                )

            identity.gold_points += AD_REWARD_POINTS
            identity.ads_watched_today += 1
            identity.last_ad_watch_date = now
            self.accounts.save_identity(identity)
            self._record(identity_id, TransactionType.EARN, AD_REWARD_POINTS, GoldSource.REWARD_AD, now)

        logger.info("ad_credited", identity_id=str(identity_id), ads_watched_today=identity.ads_watched_today)
        return AdCreditResult(
            credited=True,
            gold_points=identity.gold_points,
            ads_watched_today=identity.ads_watched_today,
            remaining_ads_today=_remaining(identity),
        )

    def spend(self, identity_id: UUID, source: Any, cost: Optional[int] = None) -> SpendResult:
        try:
            source = GoldSource(source)
        except ValueError:
            raise ValidationError(f"Unknown gold spend: {source}")
        if source not in COSTS:
            raise ValidationError(f"{source.value} is not a spend")
        cost = COSTS[source] if cost is None else cost
        if cost <= 0:
            raise ValidationError("Cost must be positive")

        with self.storage.locked(identity_id):
            identity = self.accounts.get_identity(identity_id)
            now = self.clock()
            if source == GoldSource.BOOST_SHOP and self.accounts.get_owned_shop(identity_id) is None:
                raise NotFoundError("Shop profile not found")

            result = SpendResult(source=source, gold_points=identity.gold_points, premium=identity.is_premium)
            if not identity.is_premium:
                if identity.gold_points < cost:
                    raise InsufficientBalanceError(
                        "Insufficient gold points",
                        data={"gold_points": identity.gold_points, "required": cost},
                    )
                identity.gold_points -= cost
                result.charged = cost

            if source == GoldSource.UNLOCK_PHONE:
                result.unlocked = True
            elif source == GoldSource.REMOVE_ADS:
                identity.ad_free_until = now + AD_FREE_DURATION
                result.ad_free_until = identity.ad_free_until

            if result.charged or source == GoldSource.REMOVE_ADS:
                self.accounts.save_identity(identity)
            if source == GoldSource.BOOST_SHOP:
                result.boost_expires = self.accounts.set_shop_boost(identity_id, now + BOOST_DURATION).boost_expires
            if result.charged:
                result.transaction = self._record(identity_id, TransactionType.SPEND, cost, source, now)
            result.gold_points = identity.gold_points

        logger.info(
            "gold_spent",
            identity_id=str(identity_id),
            source=source.value,
            charged=result.charged,
            premium=result.premium,
        )
        return result

    def get_wallet(self, identity_id: UUID, page: Any = None, limit: Any = None) -> WalletView:
        identity = normalize_daily_counters(self.accounts.get_identity(identity_id), self.clock())
        page, limit = clamp_page(
            page, limit, default_limit=WALLET_PAGE_DEFAULT_LIMIT, max_limit=WALLET_PAGE_MAX_LIMIT
        )
        entries = [GoldTransaction(**data) for data in self.storage.list_gold_transactions(identity_id)]
        items, pagination = paginate(entries, page, limit)
        return WalletView(
            gold_points=identity.gold_points,
            ads_watched_today=identity.ads_watched_today,
            remaining_ads_today=_remaining(identity),
            is_premium=identity.is_premium,
            ad_free_until=identity.ad_free_until,
            transactions=items,
            pagination=pagination,
        )

    def audit_balance(self, identity_id: UUID) -> BalanceAudit:
        with self.storage.locked(identity_id):
            identity = self.accounts.get_identity(identity_id)
            entries = self.storage.list_gold_transactions(identity_id)
        earned = sum(e["amount"] for e in entries if e["type"] == TransactionType.EARN)
        spent = sum(e["amount"] for e in entries if e["type"] == TransactionType.SPEND)
        audit = BalanceAudit(
            identity_id=identity_id,
            cached_balance=identity.gold_points,
            earned=earned,
            spent=spent,
            ledger_balance=earned - spent,
            consistent=identity.gold_points == earned - spent,
        )
        if not audit.consistent:
            logger.warning("gold_balance_drift", identity_id=str(identity_id), cached=audit.cached_balance, ledger=audit.ledger_balance)
        return audit
