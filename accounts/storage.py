import itertools
import threading
from collections import defaultdict
from contextlib import contextmanager
from copy import deepcopy
from typing import Any, Iterator, Optional
from uuid import UUID

from core.errors import ConflictError

from .models import ProfileKind


class InMemoryStorage:
    """Document store shared by every ledger.

    Reads and writes hand out deep copies, so a caller never mutates stored
    state except through a `save_*` call. Read-modify-write sequences on one
    key run inside `locked(key)`.
    """

    def __init__(self):
        self.identities: dict[UUID, dict] = {}
        self.service_profiles: dict[UUID, dict] = {}
        self.shop_profiles: dict[UUID, dict] = {}
        self.payment_orders: dict[str, dict] = {}
        self.subscriptions: dict[str, dict] = {}
        self.subscription_payments: dict[tuple[UUID, str], dict] = {}
        self.gold_transactions: dict[UUID, dict] = {}
        self.referral_entries: dict[UUID, dict] = {}
        self.referral_idempotency_index: dict[tuple[UUID, str], UUID] = {}
        self.promotions: dict[UUID, dict] = {}
        self.complaints: dict[UUID, dict] = {}

        self._index_lock = threading.RLock()
        self._sequence = itertools.count(1)
        self._locks: dict[str, threading.RLock] = defaultdict(threading.RLock)
        self._locks_mutex = threading.Lock()

    @contextmanager
    def locked(self, key: Any) -> Iterator[None]:
        with self._locks_mutex:
            lock = self._locks[str(key)]
        with lock:
            yield

    # Identities

    def insert_identity(self, data: dict) -> dict:
        with self._index_lock:
            for existing in self.identities.values():
                if data.get("email") and existing.get("email") == data["email"]:
                    raise ConflictError("User with this email or phone already exists")
                if data.get("phone_number") and existing.get("phone_number") == data["phone_number"]:
                    raise ConflictError("User with this email or phone already exists")
                if data.get("referral_code") and existing.get("referral_code") == data["referral_code"]:
                    raise ConflictError("Referral code already taken")
            self.identities[data["id"]] = deepcopy(data)
        return deepcopy(data)

    def get_identity(self, identity_id: UUID) -> Optional[dict]:
        data = self.identities.get(identity_id)
        return deepcopy(data) if data else None

    def find_identity(self, **criteria: Any) -> Optional[dict]:
        for data in self.identities.values():
            if all(data.get(field) == value for field, value in criteria.items()):
                return deepcopy(data)
        return None

    def save_identity(self, data: dict) -> dict:
        with self._index_lock:
            code = data.get("referral_code")
            if code:
                for other_id, existing in self.identities.items():
                    if other_id != data["id"] and existing.get("referral_code") == code:
                        raise ConflictError("Referral code already taken")
            self.identities[data["id"]] = deepcopy(data)
        return deepcopy(data)

    def list_identities(self) -> list[dict]:
        return [deepcopy(data) for data in self.identities.values()]

    # Profiles

    def _profiles(self, kind: ProfileKind) -> dict[UUID, dict]:
        return self.service_profiles if kind == ProfileKind.SERVICE else self.shop_profiles

    def insert_profile(self, kind: ProfileKind, data: dict) -> dict:
        collection = self._profiles(kind)
        with self._index_lock:
            for existing in collection.values():
                if existing["identity_id"] == data["identity_id"]:
                    raise ConflictError(f"A {kind.value} profile already exists for this account")
                if data.get("phone_number") and existing.get("phone_number") == data["phone_number"]:
                    raise ConflictError(f"A {kind.value} profile already exists for this phone number")
            collection[data["id"]] = deepcopy(data)
        return deepcopy(data)

    def get_profile(self, kind: ProfileKind, profile_id: UUID) -> Optional[dict]:
        data = self._profiles(kind).get(profile_id)
        return deepcopy(data) if data else None

    def find_profile_by_owner(self, kind: ProfileKind, identity_id: UUID) -> Optional[dict]:
        for data in self._profiles(kind).values():
            if data["identity_id"] == identity_id:
                return deepcopy(data)
        return None

    def save_profile(self, kind: ProfileKind, data: dict) -> dict:
        collection = self._profiles(kind)
        with self._index_lock:
            phone = data.get("phone_number")
            if phone:
                for other_id, existing in collection.items():
                    if other_id != data["id"] and existing.get("phone_number") == phone:
                        raise ConflictError(f"A {kind.value} profile already exists for this phone number")
            collection[data["id"]] = deepcopy(data)
        return deepcopy(data)

    def list_profiles(self, kind: ProfileKind) -> list[dict]:
        return [deepcopy(data) for data in self._profiles(kind).values()]

    # Payment orders

    def insert_payment_order(self, data: dict) -> dict:
        with self._index_lock:
            if data["order_id"] in self.payment_orders:
                raise ConflictError(f"Order {data['order_id']} already exists")
            self.payment_orders[data["order_id"]] = deepcopy(data)
        return deepcopy(data)

    def get_payment_order(self, order_id: str) -> Optional[dict]:
        data = self.payment_orders.get(order_id)
        return deepcopy(data) if data else None

    def save_payment_order(self, data: dict) -> dict:
        self.payment_orders[data["order_id"]] = deepcopy(data)
        return deepcopy(data)

    def list_payment_orders(self, identity_id: UUID) -> list[dict]:
        return [deepcopy(o) for o in self.payment_orders.values() if o["identity_id"] == identity_id]

    # Recurring subscriptions

    def insert_subscription(self, data: dict) -> dict:
        with self._index_lock:
            if data["gateway_subscription_id"] in self.subscriptions:
                raise ConflictError(f"Subscription {data['gateway_subscription_id']} already exists")
            self.subscriptions[data["gateway_subscription_id"]] = deepcopy(data)
        return deepcopy(data)

    def get_subscription(self, gateway_subscription_id: str) -> Optional[dict]:
        data = self.subscriptions.get(gateway_subscription_id)
        return deepcopy(data) if data else None

    def save_subscription(self, data: dict) -> dict:
        self.subscriptions[data["gateway_subscription_id"]] = deepcopy(data)
        return deepcopy(data)

    def list_subscriptions(self, identity_id: UUID) -> list[dict]:
        return [deepcopy(s) for s in self.subscriptions.values() if s["identity_id"] == identity_id]

    def upsert_subscription_payment(self, data: dict) -> bool:
        """Insert keyed by (subscription, gateway payment id); returns False if it already existed."""
        key = (data["subscription_id"], data["gateway_payment_id"])
        with self._index_lock:
            if key in self.subscription_payments:
                return False
            self.subscription_payments[key] = deepcopy(data)
        return True

    def list_subscription_payments(self, subscription_id: UUID) -> list[dict]:
        return [
            deepcopy(p) for (sub_id, _), p in self.subscription_payments.items()
            if sub_id == subscription_id
        ]

    # Gold transactions

    def append_gold_transaction(self, data: dict) -> dict:
        with self._index_lock:
            data = {**data, "sequence": next(self._sequence)}
            self.gold_transactions[data["id"]] = deepcopy(data)
        return deepcopy(data)

    def list_gold_transactions(self, identity_id: UUID) -> list[dict]:
        entries = [deepcopy(t) for t in self.gold_transactions.values() if t["identity_id"] == identity_id]
        entries.sort(key=lambda t: (t["created_at"], t["sequence"]), reverse=True)
        return entries

    # Referral entries

    def append_referral_entry(self, data: dict) -> dict:
        with self._index_lock:
            if data.get("idempotency_key"):
                key = (data["identity_id"], data["idempotency_key"])
                if key in self.referral_idempotency_index:
                    raise ConflictError(f"Referral entry {data['idempotency_key']} already recorded")
                self.referral_idempotency_index[key] = data["id"]
            data = {**data, "sequence": next(self._sequence)}
            self.referral_entries[data["id"]] = deepcopy(data)
        return deepcopy(data)

    def find_referral_entry(self, identity_id: UUID, idempotency_key: str) -> Optional[dict]:
        entry_id = self.referral_idempotency_index.get((identity_id, idempotency_key))
        data = self.referral_entries.get(entry_id) if entry_id else None
        return deepcopy(data) if data else None

    def list_referral_entries(self, identity_id: UUID) -> list[dict]:
        entries = [deepcopy(e) for e in self.referral_entries.values() if e["identity_id"] == identity_id]
        entries.sort(key=lambda e: (e["created_at"], e["sequence"]), reverse=True)
        return entries

    # Promotions

    def save_promotion(self, data: dict) -> dict:
        self.promotions[data["id"]] = deepcopy(data)
        return deepcopy(data)

    def get_promotion(self, promotion_id: UUID) -> Optional[dict]:
        data = self.promotions.get(promotion_id)
        return deepcopy(data) if data else None

    def delete_promotion(self, promotion_id: UUID) -> bool:
        return self.promotions.pop(promotion_id, None) is not None

    def list_promotions(self) -> list[dict]:
        return [deepcopy(data) for data in self.promotions.values()]

    # Complaints

    def insert_complaint(self, data: dict) -> dict:
        with self._index_lock:
            data = {**data, "sequence": next(self._sequence)}
            self.complaints[data["id"]] = deepcopy(data)
        return deepcopy(data)

    def list_complaints(self, identity_id: UUID) -> list[dict]:
        entries = [deepcopy(c) for c in self.complaints.values() if c["identity_id"] == identity_id]
        entries.sort(key=lambda c: (c["created_at"], c["sequence"]), reverse=True)
        return entries
