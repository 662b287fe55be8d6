import re
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional
from uuid import UUID, uuid4

import structlog

from accounts.models import Identity, PendingWithdrawal, WithdrawalChannel
from accounts.service import AccountService
from core.clock import Clock, local_now
from core.errors import ValidationError

from .models import (
    EntryType,
    PendingWithdrawalView,
    ProcessWithdrawalResponse,
    ReferralEntry,
    ReferralHistoryResponse,
    ReferralSummary,
    WithdrawalAction,
    WithdrawalResponse,
)

logger = structlog.get_logger(__name__)

WITHDRAWAL_THRESHOLD = Decimal("10")
HISTORY_MAX_LIMIT = 50
AMOUNT_RANGE_MESSAGE = (
    "Please enter an amount greater than ₹10 and less than or equal to your available balance."
)


def _to_amount(value: Any) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValidationError(AMOUNT_RANGE_MESSAGE)
    if not amount.is_finite():
        raise ValidationError(AMOUNT_RANGE_MESSAGE)
    return amount


def parse_channel(value: Optional[str]) -> WithdrawalChannel:
    if value and value.strip().lower() == WithdrawalChannel.GPAY.value:
        return WithdrawalChannel.GPAY
    return WithdrawalChannel.PHONEPE


class ReferralService:
    def __init__(self, accounts: AccountService, clock: Clock = local_now):
        self.accounts = accounts
        self.storage = accounts.storage
        self.clock = clock

    def _append(
        self,
        identity: Identity,
        entry_type: EntryType,
        amount: Decimal,
        description: str,
        now: datetime,
        idempotency_key: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> ReferralEntry:
        entry = ReferralEntry(
            id=uuid4(),
            identity_id=identity.id,
            entry_type=entry_type,
            amount=amount,
            balance_after=identity.referral_balance,
            idempotency_key=idempotency_key,
            description=description,
            created_at=now,
            metadata=metadata or {},
        )
        return ReferralEntry(**self.storage.append_referral_entry(entry.model_dump()))

    def get_summary(self, identity_id: UUID) -> ReferralSummary:
        code = self.accounts.ensure_referral_code(identity_id)
        identity = self.accounts.get_identity(identity_id)
        return ReferralSummary(
            referral_code=code,
            referral_balance=identity.referral_balance,
            can_withdraw=identity.referral_balance >= WITHDRAWAL_THRESHOLD and identity.pending_withdrawal is None,
            threshold=WITHDRAWAL_THRESHOLD,
            pending_withdrawal=identity.pending_withdrawal,
        )

    def credit(
        self, identity_id: UUID, amount: Any, reason: str, idempotency_key: Optional[str] = None
    ) -> ReferralEntry:
        """Add a referral reward to the balance.

        A repeated `idempotency_key` for the same identity returns the entry
        recorded the first time. Keys are scoped to the identity.
        """
        amount = _to_amount(amount)
        if amount <= 0:
            raise ValidationError("Referral credit must be positive")

        with self.storage.locked(identity_id):
            if idempotency_key:
                existing = self.storage.find_referral_entry(identity_id, idempotency_key)
                if existing:
                    return ReferralEntry(**existing)

            identity = self.accounts.get_identity(identity_id)
            now = self.clock()
            identity.referral_balance += amount
            self.accounts.save_identity(identity)
            entry = self._append(identity, EntryType.CREDIT, amount, reason, now, idempotency_key=idempotency_key)

        logger.info("referral_credited", identity_id=str(identity_id), amount=str(amount))
        return entry

    def request_withdrawal(
        self,
        identity_id: UUID,
        channel: Optional[str] = None,
        payout_phone: Optional[str] = None,
        amount: Any = None,
    ) -> WithdrawalResponse:
        with self.storage.locked(identity_id):
            identity = self.accounts.get_identity(identity_id)
            balance = identity.referral_balance

            if identity.pending_withdrawal is not None:
                raise ValidationError("A withdrawal request is already pending approval.")
            if balance < WITHDRAWAL_THRESHOLD:
                raise ValidationError("Minimum balance of ₹10 is required to enable withdrawal.")

            to_withdraw = balance
            if amount is not None:
                to_withdraw = _to_amount(amount)
                if to_withdraw < WITHDRAWAL_THRESHOLD or to_withdraw > balance:
                    raise ValidationError(AMOUNT_RANGE_MESSAGE)

            phone = re.sub(r"\D", "", str(payout_phone or "").strip())
            if len(phone) != 10:
                raise ValidationError("Please enter a valid 10-digit mobile number for PhonePe/GPay.")

            now = self.clock()
            resolved_channel = parse_channel(channel)
            identity.pending_withdrawal = PendingWithdrawal(
                amount=to_withdraw,
                channel=resolved_channel,
                payout_phone=phone,
                requested_at=now,
            )
            identity.referral_balance = balance - to_withdraw
            self.accounts.save_identity(identity)
            entry = self._append(
                identity,
                EntryType.DEBIT,
                -to_withdraw,
                f"Withdrawal requested via {resolved_channel.value}",
                now,
                metadata={"channel": resolved_channel.value},
            )

        logger.info(
            "referral_withdrawal_requested",
            identity_id=str(identity_id),
            amount=str(to_withdraw),
            channel=resolved_channel.value,
        )
        return WithdrawalResponse(
            message="Your withdrawal request has been raised successfully and is pending approval.",
            amount=to_withdraw,
            channel=resolved_channel,
            requested_at=now,
            referral_balance=identity.referral_balance,
            ledger_entry=entry,
        )

    def list_pending_withdrawals(self) -> list[PendingWithdrawalView]:
        pending = []
        for data in self.storage.list_identities():
            identity = Identity(**data)
            if identity.pending_withdrawal is None:
                continue
            pending.append(PendingWithdrawalView(
                identity_id=identity.id,
                name=identity.name,
                email=identity.email,
                phone_number=identity.phone_number,
                referral_code=identity.referral_code,
                referral_balance=identity.referral_balance,
                withdrawal=identity.pending_withdrawal,
            ))
        pending.sort(key=lambda p: p.withdrawal.requested_at, reverse=True)
        return pending

    def process_withdrawal(self, identity_id: UUID, action: Any) -> ProcessWithdrawalResponse:
        try:
            action = WithdrawalAction(str(action).strip().lower())
        except ValueError:
            raise ValidationError('action must be "approve" or "reject"')

        with self.storage.locked(identity_id):
            identity = self.accounts.get_identity(identity_id)
            pending = identity.pending_withdrawal
            if pending is None:
                raise ValidationError("No pending withdrawal request for this user")

            now = self.clock()
            identity.pending_withdrawal = None
            entry = None
            if action == WithdrawalAction.REJECT:
                identity.referral_balance += pending.amount
            self.accounts.save_identity(identity)
            if action == WithdrawalAction.REJECT:
                entry = self._append(
                    identity,
                    EntryType.REVERSAL,
                    pending.amount,
                    "Withdrawal rejected, amount returned",
                    now,
                    metadata={"requested_at": pending.requested_at.isoformat()},
                )

        logger.info(
            "referral_withdrawal_processed",
            identity_id=str(identity_id),
            action=action.value,
            amount=str(pending.amount),
        )
        if action == WithdrawalAction.APPROVE:
            message = "Withdrawal approved."
        else:
            message = "Withdrawal rejected. Amount has been re-added to the customer wallet."
        return ProcessWithdrawalResponse(
            message=message,
            action=action,
            identity_id=identity_id,
            amount=pending.amount,
            ledger_entry=entry,
        )

    def get_history(self, identity_id: UUID, limit: int = 50, offset: int = 0) -> ReferralHistoryResponse:
        limit = min(HISTORY_MAX_LIMIT, max(1, limit))
        offset = max(0, offset)
        identity = self.accounts.get_identity(identity_id)
        entries = [ReferralEntry(**data) for data in self.storage.list_referral_entries(identity_id)]
        return ReferralHistoryResponse(
            identity_id=identity_id,
            entries=entries[offset:offset + limit],
            total_count=len(entries),
            current_balance=identity.referral_balance,
        )
