"""Typed views over payment_transactions.metadata.

Each (payment_method, service_type) pair has one shape. The JSON column is
decoded here, at the model boundary, so the reconciliation code works with
attributes instead of dict lookups on an opaque blob.

    details = decode_payment_details(tx)
    if isinstance(details, ChatAccessDetails):
        expiry = compute_access_expiry(details.plan_type, now)
"""

from dataclasses import dataclass
from datetime import timedelta

PLAN_DURATIONS = {
    "daily": timedelta(hours=24),
    "monthly": timedelta(days=30),
}
PLAN_TYPES = tuple(PLAN_DURATIONS)

IAP_PROVIDERS = ("apple", "google")


@dataclass(frozen=True)
class ChatAccessDetails:
    """Hosted-checkout payment for chat access."""

    plan_type: str | None

    service_type = "chat_access"
    payment_method = "paystack"

    def to_metadata(self):
        return {"planType": self.plan_type}


@dataclass(frozen=True)
class InAppPurchaseDetails:
    """App-store receipt queued for manual verification."""

    provider: str
    receipt: str
    product_id: str | None = None

    service_type = "chat_access"
    payment_method = "iap"

    def to_metadata(self):
        return {
            "provider": self.provider,
            "receipt": self.receipt,
            "productId": self.product_id,
        }


def is_valid_plan_type(plan_type):
    return plan_type in PLAN_DURATIONS


def compute_access_expiry(plan_type, now):
    """Expiry for a grant made at `now`.

    daily -> +24h, monthly -> +30 days, anything else -> now (no time credited).
    """
    return now + PLAN_DURATIONS.get(plan_type, timedelta(0))


def encode_payment_details(details, **extra):
    """Serialize a details variant for the metadata column."""
    metadata = details.to_metadata()
    metadata.update(extra)
    return metadata


def decode_payment_details(transaction):
    """Decode a PaymentTransaction's metadata into its variant.

    Rows written before plan types were validated, or with a hand-edited
    metadata column, decode to ChatAccessDetails(plan_type=None).
    """
    metadata = transaction.metadata_ or {}
    if not isinstance(metadata, dict):
        metadata = {}

    if transaction.payment_method == "iap":
        return InAppPurchaseDetails(
            provider=metadata.get("provider"),
            receipt=metadata.get("receipt"),
            product_id=metadata.get("productId"),
        )

    plan_type = metadata.get("planType") or metadata.get("plan_type")
    if not is_valid_plan_type(plan_type):
        plan_type = None
    return ChatAccessDetails(plan_type=plan_type)
