"""Tests for the chat access payment flow.

Covers:
- Initialize: happy path, validation before any gateway call,
  gateway failures and timeouts leave no pending row
- Verify: pending, success grants access once, already-successful
  short-circuits, amount mismatch, ownership
- Access status endpoint
- In-app purchase receipts
"""

from datetime import timedelta
from unittest.mock import patch

import requests

from app.extensions import db
from app.models.audit import AuditEvent
from app.models.order import Order
from app.models.payment_transaction import PaymentTransaction
from app.models.user import User
from app.services import payment_service
from app.services.access_service import as_utc


def _pending_tx(user_id, reference="chat_ref_1", amount=5000, plan_type="monthly"):
    tx = PaymentTransaction(
        user_id=user_id,
        reference=reference,
        amount=amount,
        status="pending",
        payment_method="paystack",
        service_type="chat_access",
        metadata_={"planType": plan_type},
    )
    db.session.add(tx)
    db.session.commit()
    return tx


class TestInitializeChatPayment:

    @patch("app.services.paystack_service.requests.request")
    def test_happy_path(self, mock_request, client, seed_data, login, paystack_response):
        mock_request.return_value = paystack_response({
            "authorization_url": "https://checkout.paystack.com/abc123",
            "access_code": "abc123",
        })
        login("ada@example.com")

        resp = client.post("/payments/chat/initialize", json={
            "amount": 5000, "planType": "monthly",
        })

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["payment_url"] == "https://checkout.paystack.com/abc123"
        assert data["amount"] == 5000
        assert data["reference"].startswith("chat_")

        # Gateway got minor units and a bounded timeout
        args, kwargs = mock_request.call_args
        assert args[0] == "POST"
        assert args[1].endswith("/transaction/initialize")
        assert kwargs["json"]["amount"] == 500000
        assert kwargs["json"]["reference"] == data["reference"]
        assert kwargs["timeout"] == 15

        tx = PaymentTransaction.query.filter_by(reference=data["reference"]).one()
        assert tx.status == "pending"
        assert tx.amount == 5000
        assert tx.metadata_["planType"] == "monthly"
        assert seed_data["user"].payment_reference == data["reference"]

    @patch("app.services.paystack_service.requests.request")
    def test_links_own_order(self, mock_request, client, seed_data, login, paystack_response):
        mock_request.return_value = paystack_response(
            {"authorization_url": "https://checkout.paystack.com/x"}
        )
        db.session.add(Order(id="order_abc", user_id=seed_data["user_id"], amount=500000))
        db.session.commit()
        login("ada@example.com")

        resp = client.post("/payments/chat/initialize", json={
            "amount": 5000, "planType": "daily", "orderId": "order_abc",
        })

        assert resp.status_code == 200
        tx = PaymentTransaction.query.one()
        assert tx.order_id == "order_abc"

    @patch("app.services.paystack_service.requests.request")
    def test_other_users_order_not_found(self, mock_request, client, seed_data, login):
        db.session.add(Order(id="order_abc", user_id=seed_data["friend_id"], amount=100))
        db.session.commit()
        login("ada@example.com")

        resp = client.post("/payments/chat/initialize", json={
            "amount": 5000, "planType": "daily", "orderId": "order_abc",
        })

        assert resp.status_code == 404
        mock_request.assert_not_called()

    @patch("app.services.paystack_service.requests.request")
    def test_invalid_plan_type_makes_no_gateway_call(self, mock_request, client, seed_data, login):
        login("ada@example.com")
        resp = client.post("/payments/chat/initialize", json={
            "amount": 5000, "planType": "weekly",
        })

        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Invalid plan type"
        mock_request.assert_not_called()
        assert PaymentTransaction.query.count() == 0

    @patch("app.services.paystack_service.requests.request")
    def test_invalid_amount_makes_no_gateway_call(self, mock_request, client, seed_data, login):
        login("ada@example.com")
        resp = client.post("/payments/chat/initialize", json={
            "amount": -10, "planType": "daily",
        })

        assert resp.status_code == 400
        mock_request.assert_not_called()

    @patch("app.services.paystack_service.requests.request")
    def test_amount_beyond_column_range_makes_no_gateway_call(self, mock_request, client,
                                                              seed_data, login):
        login("ada@example.com")
        resp = client.post("/payments/chat/initialize", json={
            "amount": 3_000_000_000, "planType": "daily",
        })

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_ERROR"
        mock_request.assert_not_called()
        assert PaymentTransaction.query.count() == 0

    @patch("app.services.paystack_service.requests.request")
    def test_gateway_rejection_leaves_no_row(self, mock_request, client, seed_data, login,
                                             paystack_response):
        mock_request.return_value = paystack_response(
            None, status=False, message="Invalid key", http_status=401
        )
        login("ada@example.com")

        resp = client.post("/payments/chat/initialize", json={
            "amount": 5000, "planType": "daily",
        })

        assert resp.status_code == 400
        body = resp.get_json()
        assert body["code"] == "GATEWAY_ERROR"
        assert body["retryable"] is False
        assert PaymentTransaction.query.count() == 0
        assert seed_data["user"].payment_reference is None

    @patch("app.services.paystack_service.requests.request")
    def test_gateway_timeout_is_retryable(self, mock_request, client, seed_data, login):
        mock_request.side_effect = requests.Timeout("read timed out")
        login("ada@example.com")

        resp = client.post("/payments/chat/initialize", json={
            "amount": 5000, "planType": "daily",
        })

        assert resp.status_code == 504
        body = resp.get_json()
        assert body["code"] == "GATEWAY_TIMEOUT"
        assert body["retryable"] is True
        assert PaymentTransaction.query.count() == 0

    @patch("app.services.paystack_service.requests.request")
    def test_missing_secret_key(self, mock_request, client, seed_data, login, app, monkeypatch):
        monkeypatch.setitem(app.config, "PAYSTACK_SECRET_KEY", None)
        login("ada@example.com")

        resp = client.post("/payments/chat/initialize", json={
            "amount": 5000, "planType": "daily",
        })

        assert resp.status_code == 500
        assert resp.get_json()["code"] == "SERVER_MISCONFIGURED"
        mock_request.assert_not_called()


class TestVerifyChatPayment:

    def test_missing_reference(self, client, seed_data, login):
        login("ada@example.com")
        resp = client.post("/payments/chat/verify", json={})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "Missing reference"

    @patch("app.services.paystack_service.requests.request")
    def test_unknown_reference(self, mock_request, client, seed_data, login):
        login("ada@example.com")
        resp = client.post("/payments/chat/verify", json={"reference": "chat_nope"})
        assert resp.status_code == 404
        mock_request.assert_not_called()

    @patch("app.services.paystack_service.requests.request")
    def test_other_users_reference(self, mock_request, client, seed_data, login):
        _pending_tx(seed_data["friend_id"])
        login("ada@example.com")

        resp = client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        assert resp.status_code == 404
        mock_request.assert_not_called()

    @patch("app.services.paystack_service.requests.request")
    def test_not_yet_paid(self, mock_request, client, seed_data, login, paystack_response):
        _pending_tx(seed_data["user_id"])
        mock_request.return_value = paystack_response(
            {"status": "abandoned", "amount": 500000}
        )
        login("ada@example.com")

        resp = client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        assert resp.status_code == 200
        body = resp.get_json()
        assert body["paid"] is False
        assert body["status"] == "abandoned"
        assert seed_data["user"].has_chat_access is False
        assert PaymentTransaction.query.one().status == "pending"

    @patch("app.services.paystack_service.requests.request")
    def test_success_grants_monthly_access(self, mock_request, client, seed_data, login,
                                           paystack_response):
        _pending_tx(seed_data["user_id"], plan_type="monthly")
        mock_request.return_value = paystack_response(
            {"status": "success", "amount": 500000, "id": 987654}
        )
        login("ada@example.com")

        resp = client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        assert resp.status_code == 200
        assert resp.get_json()["paid"] is True
        assert mock_request.call_args[0][1].endswith("/transaction/verify/chat_ref_1")

        user = seed_data["user"]
        assert user.has_chat_access is True
        assert user.payment_reference == "chat_ref_1"
        assert as_utc(user.access_expiry_date) - as_utc(user.payment_date) == timedelta(days=30)

        tx = PaymentTransaction.query.one()
        assert tx.status == "success"
        assert tx.provider_transaction_id == "987654"
        assert tx.metadata_["processed_via"] == "verify"

    @patch("app.services.paystack_service.requests.request")
    def test_success_grants_daily_access(self, mock_request, client, seed_data, login,
                                         paystack_response):
        _pending_tx(seed_data["user_id"], plan_type="daily", amount=200)
        mock_request.return_value = paystack_response({"status": "success", "amount": 20000})
        login("ada@example.com")

        client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        user = seed_data["user"]
        assert as_utc(user.access_expiry_date) - as_utc(user.payment_date) == timedelta(hours=24)

    @patch("app.services.paystack_service.requests.request")
    def test_already_successful_skips_gateway(self, mock_request, client, seed_data, login):
        tx = _pending_tx(seed_data["user_id"])
        tx.status = "success"
        db.session.commit()
        login("ada@example.com")

        resp = client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        assert resp.status_code == 200
        assert resp.get_json()["paid"] is True
        mock_request.assert_not_called()

    @patch("app.services.paystack_service.requests.request")
    def test_repeat_verify_grants_once(self, mock_request, client, seed_data, login,
                                       paystack_response):
        _pending_tx(seed_data["user_id"])
        mock_request.return_value = paystack_response({"status": "success", "amount": 500000})
        login("ada@example.com")

        client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})
        first_expiry = seed_data["user"].access_expiry_date
        client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        assert seed_data["user"].access_expiry_date == first_expiry
        assert mock_request.call_count == 1

    @patch("app.services.paystack_service.requests.request")
    def test_webhook_landing_during_gateway_call_wins(self, mock_request, client, seed_data,
                                                       login, paystack_response):
        """Verify sees pending, the webhook commits while verify waits on
        Paystack, and verify then finds the row already successful."""
        _pending_tx(seed_data["user_id"])
        real_apply = payment_service.apply_charge_success
        outcomes = []
        webhook_expiry = []

        def recording_apply(*args, **kwargs):
            outcome = real_apply(*args, **kwargs)
            outcomes.append((kwargs["source"], outcome))
            return outcome

        def webhook_then_gateway(*args, **kwargs):
            recording_apply("chat_ref_1", source="webhook", gateway_amount=500000)
            webhook_expiry.append(
                db.session.get(User, seed_data["user_id"]).access_expiry_date
            )
            return paystack_response({"status": "success", "amount": 500000, "id": 111})

        mock_request.side_effect = webhook_then_gateway
        login("ada@example.com")

        with patch.object(payment_service, "apply_charge_success",
                          side_effect=recording_apply):
            resp = client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        assert resp.status_code == 200
        assert resp.get_json()["paid"] is True
        assert outcomes == [
            ("webhook", payment_service.GRANTED),
            ("verify", payment_service.ALREADY_PROCESSED),
        ]

        db.session.expire_all()
        assert AuditEvent.query.filter_by(action="payment.succeeded").count() == 1
        tx = PaymentTransaction.query.one()
        assert tx.status == "success"
        assert tx.metadata_["processed_via"] == "webhook"
        user = db.session.get(User, seed_data["user_id"])
        assert user.has_chat_access is True
        assert as_utc(user.access_expiry_date) == as_utc(webhook_expiry[0])

    @patch("app.services.paystack_service.requests.request")
    def test_amount_mismatch_does_not_grant(self, mock_request, client, seed_data, login,
                                            paystack_response):
        _pending_tx(seed_data["user_id"], amount=5000)
        mock_request.return_value = paystack_response({"status": "success", "amount": 100})
        login("ada@example.com")

        resp = client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        assert resp.status_code == 400
        assert resp.get_json()["code"] == "AMOUNT_MISMATCH"
        assert seed_data["user"].has_chat_access is False
        assert PaymentTransaction.query.one().status == "pending"

    @patch("app.services.paystack_service.requests.request")
    def test_one_kobo_drift_is_tolerated(self, mock_request, client, seed_data, login,
                                         paystack_response):
        _pending_tx(seed_data["user_id"], amount=5000)
        mock_request.return_value = paystack_response({"status": "success", "amount": 499999})
        login("ada@example.com")

        resp = client.post("/payments/chat/verify", json={"reference": "chat_ref_1"})

        assert resp.get_json()["paid"] is True


class TestChatAccessStatus:

    def test_unpaid_user(self, client, seed_data, login):
        login("ada@example.com")
        body = client.get("/payments/chat/access").get_json()
        assert body["hasAccess"] is False
        assert body["accessExpiryDate"] is None

    def test_paid_user(self, client, seed_data, login):
        login("grace@example.com")
        body = client.get("/payments/chat/access").get_json()
        assert body["hasAccess"] is True
        assert body["paymentReference"] == "chat_seeded"
        assert body["accessExpiryDate"] is not None


class TestInAppPurchase:

    def test_receipt_is_queued(self, client, seed_data, login):
        login("ada@example.com")
        resp = client.post("/payments/iap/verify", json={
            "provider": "apple", "receipt": "MIIT...base64", "productId": "chat.monthly",
        })

        assert resp.status_code == 200
        reference = resp.get_json()["data"]["reference"]
        assert reference.startswith("iap_")
        assert reference.endswith(seed_data["user_id"])

        tx = PaymentTransaction.query.filter_by(reference=reference).one()
        assert tx.payment_method == "iap"
        assert tx.status == "pending"
        assert tx.metadata_["provider"] == "apple"
        # Queued receipts never grant access on their own
        assert seed_data["user"].has_chat_access is False

    def test_unknown_provider_rejected(self, client, seed_data, login):
        login("ada@example.com")
        resp = client.post("/payments/iap/verify", json={
            "provider": "amazon", "receipt": "abc",
        })
        assert resp.status_code == 400
        assert PaymentTransaction.query.count() == 0
