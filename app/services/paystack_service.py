"""Paystack service — all Paystack API calls and webhook signature checks.

Responsible for:
- Initializing hosted-checkout transactions (chat access payments)
- Verifying transactions by reference
- Creating customers, plans and recurring subscriptions
- Disabling subscriptions
- Verifying inbound webhook signatures (HMAC-SHA512 of the raw body)

Every call has a bounded timeout (PAYSTACK_TIMEOUT). Failures raise
GatewayError / GatewayTimeoutError before any local state is touched;
callers persist only after a call returns.
"""

import hashlib
import hmac
import logging

import requests
from flask import current_app

from app.errors import ConfigurationError, GatewayError, GatewayTimeoutError

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-paystack-signature"


def to_minor_units(amount):
    """Naira -> kobo. Paystack amounts are always in minor units."""
    return int(amount) * 100


# ──────────────────────────────────────────────
# HTTP plumbing
# ──────────────────────────────────────────────

def _request(method, path, json=None, params=None):
    """Call the Paystack API and return the `data` member of the envelope.

    Paystack wraps every response as {"status": bool, "message": str, "data": ...}.
    A false status is treated the same as an HTTP error.
    """
    secret_key = current_app.config.get("PAYSTACK_SECRET_KEY")
    if not secret_key:
        raise ConfigurationError("PAYSTACK_SECRET_KEY is not configured")

    url = f"{current_app.config['PAYSTACK_BASE_URL']}{path}"
    headers = {
        "Authorization": f"Bearer {secret_key}",
        "Content-Type": "application/json",
    }

    try:
        resp = requests.request(
            method,
            url,
            json=json,
            params=params,
            headers=headers,
            timeout=current_app.config["PAYSTACK_TIMEOUT"],
        )
    except requests.Timeout as e:
        logger.warning(f"Paystack {method} {path} timed out: {e}")
        raise GatewayTimeoutError("Payment gateway timed out, please retry")
    except requests.RequestException as e:
        logger.error(f"Paystack {method} {path} failed: {e}")
        raise GatewayError("Payment gateway unavailable")

    try:
        body = resp.json()
    except ValueError:
        body = {}

    if resp.status_code >= 400 or not body.get("status"):
        message = body.get("message") or f"Paystack returned HTTP {resp.status_code}"
        logger.warning(f"Paystack {method} {path} rejected: {message}")
        raise GatewayError(message, details={"gateway_status": resp.status_code})

    return body.get("data") or {}


# ──────────────────────────────────────────────
# Transactions
# ──────────────────────────────────────────────

def initialize_transaction(email, amount, reference, metadata=None,
                           callback_url=None):
    """Start a hosted checkout for `amount` (major units).

    Returns a dict with payment_url, reference, access_code and
    provider_transaction_id (when Paystack provides one).
    """
    frontend_url = current_app.config["FRONTEND_URL"]
    payload = {
        "email": email,
        "amount": to_minor_units(amount),
        "currency": current_app.config["PAYSTACK_CURRENCY"],
        "reference": reference,
        "callback_url": callback_url or f"{frontend_url}/payment/callback",
        "channels": ["card", "bank_transfer"],
        "metadata": {
            **(metadata or {}),
            "custom_fields": [
                {
                    "display_name": "Chat Access Payment",
                    "variable_name": "chat_access",
                    "value": "true",
                }
            ],
        },
    }

    data = _request("POST", "/transaction/initialize", json=payload)

    if not data.get("authorization_url"):
        raise GatewayError("Payment gateway did not return a checkout URL")

    return {
        "payment_url": data["authorization_url"],
        "access_code": data.get("access_code"),
        "reference": data.get("reference") or reference,
        "provider_transaction_id": (
            str(data["id"]) if data.get("id") is not None else None
        ),
    }


def verify_transaction(reference):
    """Fetch the authoritative status of a transaction.

    Returns the Paystack transaction object; callers look at
    `status` ("success", "abandoned", "failed", "ongoing", ...) and
    `amount` (minor units).
    """
    return _request("GET", f"/transaction/verify/{reference}")


# ──────────────────────────────────────────────
# Customers, plans, subscriptions
# ──────────────────────────────────────────────

def create_customer(email, first_name=None, last_name=None, phone=None):
    payload = {"email": email}
    if first_name:
        payload["first_name"] = first_name
    if last_name:
        payload["last_name"] = last_name
    if phone:
        payload["phone"] = phone
    return _request("POST", "/customer", json=payload)


def create_plan(name, amount, interval, description=None, currency=None):
    """Create a recurring plan. `amount` is in major units."""
    payload = {
        "name": name,
        "amount": to_minor_units(amount),
        "interval": interval,
        "currency": currency or current_app.config["PAYSTACK_CURRENCY"],
        "send_invoices": True,
        "send_sms": False,
    }
    if description:
        payload["description"] = description
    return _request("POST", "/plan", json=payload)


def create_subscription(customer_code, plan_code, authorization_code):
    return _request("POST", "/subscription", json={
        "customer": customer_code,
        "plan": plan_code,
        "authorization": authorization_code,
    })


def fetch_subscription(subscription_code):
    return _request("GET", f"/subscription/{subscription_code}")


def disable_subscription(subscription_code, email_token=None):
    """Stop a subscription from renewing.

    Paystack requires the email token issued with the subscription; it is
    fetched when the caller doesn't have it.
    """
    if not email_token:
        details = fetch_subscription(subscription_code)
        email_token = details.get("email_token")
    return _request("POST", "/subscription/disable", json={
        "code": subscription_code,
        "token": email_token,
    })


# ──────────────────────────────────────────────
# Webhook signatures
# ──────────────────────────────────────────────

def compute_signature(payload, secret):
    """HMAC-SHA512 hex digest of the raw request body."""
    if isinstance(payload, str):
        payload = payload.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), payload, hashlib.sha512).hexdigest()


def verify_webhook_signature(payload, signature):
    """Check a webhook body against the x-paystack-signature header.

    Raises ConfigurationError if no webhook secret is configured.
    Returns True/False for the signature itself.
    """
    secret = current_app.config.get("PAYSTACK_WEBHOOK_SECRET")
    if not secret:
        raise ConfigurationError("Server configuration error")
    if not signature:
        return False
    expected = compute_signature(payload, secret)
    # Werkzeug decodes headers as latin-1. Comparing bytes makes a non-ASCII
    # header an ordinary mismatch.
    return hmac.compare_digest(
        expected.encode("ascii"), signature.encode("latin-1", "replace")
    )
