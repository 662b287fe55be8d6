from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, ConfigDict

from accounts.models import PendingWithdrawal, WithdrawalChannel


class EntryType(str, Enum):
    CREDIT = "CREDIT"
    DEBIT = "DEBIT"
    REVERSAL = "REVERSAL"


class WithdrawalAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"


class ReferralEntry(BaseModel):
    id: UUID
    identity_id: UUID
    entry_type: EntryType
    amount: Decimal = Field(..., description="Signed: debits are negative")
    balance_after: Decimal
    idempotency_key: Optional[str] = None
    description: str
    created_at: datetime
    metadata: dict = Field(default_factory=dict)

    model_config = ConfigDict(from_attributes=True)


class ReferralSummary(BaseModel):
    referral_code: Optional[str] = None
    referral_balance: Decimal
    can_withdraw: bool
    threshold: Decimal
    pending_withdrawal: Optional[PendingWithdrawal] = None


class WithdrawalRequest(BaseModel):
    amount: Optional[Decimal] = Field(default=None, description="Defaults to the full balance")
    withdrawal_type: Optional[str] = Field(default=None, description="gpay or phonepe (default)")
    withdrawal_phone: Optional[str] = None

    model_config = ConfigDict(json_schema_extra={
        "example": {
            "amount": 12,
            "withdrawal_type": "gpay",
            "withdrawal_phone": "98765 43210",
        }
    })


class WithdrawalResponse(BaseModel):
    message: str
    amount: Decimal
    channel: WithdrawalChannel
    requested_at: datetime
    referral_balance: Decimal
    ledger_entry: ReferralEntry


class PendingWithdrawalView(BaseModel):
    identity_id: UUID
    name: str
    email: Optional[str] = None
    phone_number: Optional[str] = None
    referral_code: Optional[str] = None
    referral_balance: Decimal
    withdrawal: PendingWithdrawal


class ProcessWithdrawalRequest(BaseModel):
    action: str = Field(..., description="approve or reject")


class ProcessWithdrawalResponse(BaseModel):
    message: str
    action: WithdrawalAction
    identity_id: UUID
    amount: Decimal
    ledger_entry: Optional[ReferralEntry] = None


class ReferralHistoryResponse(BaseModel):
    identity_id: UUID
    entries: list[ReferralEntry]
    total_count: int
    current_balance: Decimal
