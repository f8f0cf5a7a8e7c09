# tests/test_webhook.py
"""
Tests for the webhook server: signatures, ingestion and partner queries.

Run:
    pytest tests/test_webhook.py -v
"""
import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from aiohttp.test_utils import TestClient, TestServer

from config import Config, ConfigurationError
from models import CommissionRecord
from affiliate_system.events.setup import setup_affiliate_event_handlers
from webhook import WebhookHandler, sign_payload
from webhook.webhook_handler import json_dumps

SECRET = "test-secret"


def signed(data, secret=SECRET):
    body = dict(data)
    body["signature"] = sign_payload(secret, body)
    return body


def call(method, path, payload=None, raw=None):
    """Run one request against a fresh app and return (status, json)."""

    async def _call():
        handler = WebhookHandler(SECRET)
        async with TestClient(TestServer(handler.app)) as client:
            if method == "GET":
                response = await client.get(path)
            else:
                body = raw if raw is not None else json_dumps(payload)
                response = await client.post(
                    path, data=body, headers={"Content-Type": "application/json"}
                )
            return response.status, await response.json()

    return asyncio.run(_call())


# =============================================================================
# TEST CLASS: Signatures
# =============================================================================

class TestSignature:

    def test_signature_ignores_own_field(self):
        data = {"b": 1, "a": "x"}
        assert sign_payload(SECRET, data) == sign_payload(SECRET, dict(data, signature="zzz"))

    def test_signature_depends_on_secret(self):
        data = {"invoice_code": "HD1"}
        assert sign_payload(SECRET, data) != sign_payload("other", data)

    def test_missing_secret(self):
        Config.set(Config.WEBHOOK_SECRET_KEY, None)
        try:
            with pytest.raises(ConfigurationError):
                WebhookHandler()
        finally:
            Config.set(Config.WEBHOOK_SECRET_KEY, SECRET)

    def test_bad_signature_rejected(self, session):
        status, body = call("POST", "/affiliate/dashboard", signed({"partner_id": 1}, secret="wrong"))

        assert status == 401
        assert body["code"] == "UNAUTHORIZED"

    def test_unsigned_rejected(self, session):
        status, _ = call("POST", "/affiliate/dashboard", {"partner_id": 1})
        assert status == 401

    def test_stale_timestamp_rejected(self, session):
        stale = (datetime.now(timezone.utc) - timedelta(hours=1)).isoformat()

        status, body = call("POST", "/affiliate/dashboard", signed({"partner_id": 1, "timestamp": stale}))

        assert status == 400
        assert body["error"] == "Request expired"

    def test_invalid_json(self, session):
        status, body = call("POST", "/affiliate/orders", raw="{not json")

        assert status == 400
        assert body["code"] == "VALIDATION_ERROR"

    def test_body_too_large(self, session):
        status = asyncio.run(self._post_large())
        assert status == 413

    async def _post_large(self):
        handler = WebhookHandler(SECRET)
        async with TestClient(TestServer(handler.app)) as client:
            response = await client.post("/affiliate/orders", data="x" * (1024 * 101))
            return response.status


# =============================================================================
# TEST CLASS: Ingestion
# =============================================================================

class TestIngestion:

    def test_order_creates_commission(self, session, engine_config, make_order):
        """
        TEST: Signed order goes through the event bus into the store.
        """
        setup_affiliate_event_handlers()
        payload = make_order(amount="2000000")

        status, body = call("POST", "/affiliate/orders", signed(payload))

        assert status == 200
        assert body["success"] is True
        assert body["created"] is True
        session.expire_all()
        assert session.query(CommissionRecord).filter_by(invoice_code=payload["invoice_code"]).count() == 1

    def test_rejected_order_is_processed(self, session, engine_config, make_order):
        """
        TEST: Business rejection returns 200 with the invalid reason.
        """
        setup_affiliate_event_handlers()

        status, body = call("POST", "/affiliate/orders", signed(make_order(invoice_status="processing")))

        assert status == 200
        assert body["success"] is False
        assert body["invalidReasonCode"] == "INVOICE_NOT_COMPLETED"

    def test_malformed_order(self, session, engine_config, make_order):
        setup_affiliate_event_handlers()
        payload = make_order()
        payload["invoice_amount"] = "lots"

        status, body = call("POST", "/affiliate/orders", signed(payload))

        assert status == 400
        assert body["code"] == "VALIDATION_ERROR"

    def test_missing_tier_ladder(self, session, commission_settings, lock_settings, make_order):
        """
        TEST: Engine misconfiguration is a 500, not a store outage.
        """
        setup_affiliate_event_handlers()

        status, body = call("POST", "/affiliate/orders", signed(make_order()))

        assert status == 500
        assert body["code"] == "CONFIGURATION_ERROR"

    def test_no_handlers_registered(self, session, make_order):
        status, body = call("POST", "/affiliate/orders", signed(make_order()))

        assert status == 503
        assert body["code"] == "SYSTEM_ERROR"

    def test_cancellation_unknown_invoice(self, session):
        setup_affiliate_event_handlers()

        status, body = call("POST", "/affiliate/cancellations", signed({
            "invoice_code": "NOPE",
            "cancelled_at": "2025-01-15T02:00:00Z",
        }))

        assert status == 404
        assert body["code"] == "NOT_FOUND"


# =============================================================================
# TEST CLASS: Queries
# =============================================================================

class TestQueries:

    def test_health(self, session):
        status, body = call("GET", "/affiliate/health")

        assert status == 200
        assert body["status"] == "ok"

    def test_dashboard(self, session, partner, tier_ladder, make_record):
        make_record(partner, status="locked", commission="200000")

        status, body = call("POST", "/affiliate/dashboard", signed({"partner_id": partner.id}))

        assert status == 200
        assert Decimal(body["stats"]["locked_commission"]) == Decimal("200000")
        assert body["tier"]["current"]["tier_code"] == "SILVER"

    def test_dashboard_unknown_partner(self, session, tier_ladder):
        status, body = call("POST", "/affiliate/dashboard", signed({"partner_id": 404}))

        assert status == 404
        assert body["code"] == "NOT_FOUND"

    def test_partner_id_required(self, session):
        status, body = call("POST", "/affiliate/my-customers", signed({"page": 1}))

        assert status == 400
        assert body["error"] == "partner_id is required"

    def test_my_customers(self, session, partner, make_record):
        make_record(partner, status="pending", customer="F1-W")

        status, body = call("POST", "/affiliate/my-customers", signed({"partner_id": partner.id}))

        assert status == 200
        assert [c["f1_customer_id"] for c in body["customers"]] == ["F1-W"]

    def test_customer_detail(self, session, partner, make_record):
        make_record(partner, status="locked", customer="F1-D", f1_phone="0944444444", commission="80000")

        status, body = call("POST", "/affiliate/customer-detail", signed({
            "partner_id": partner.id,
            "f1_phone": "84944444444",
        }))

        assert status == 200
        assert body["customer"]["f1_customer_id"] == "F1-D"
        assert Decimal(body["orders"][0]["total_commission"]) == Decimal("80000")

    def test_customer_detail_requires_phone(self, session, partner):
        status, body = call("POST", "/affiliate/customer-detail", signed({"partner_id": partner.id}))

        assert status == 400
        assert body["error"] == "f1_phone is required"

    def test_customer_detail_unknown_phone(self, session, partner):
        status, body = call("POST", "/affiliate/customer-detail", signed({
            "partner_id": partner.id,
            "f1_phone": "0900000000",
        }))

        assert status == 404
        assert body["code"] == "NOT_FOUND"

    def test_payment_batch_and_history(self, session, partner, make_record):
        make_record(partner, status="locked", commission_month="2025-01", commission="100000")

        status, batch = call("POST", "/affiliate/admin/payment-batch", signed({
            "payment_month": "2025-01",
            "admin_user_id": "admin-1",
        }))
        assert status == 200
        assert batch["totalRecords"] == 1

        status, history = call("POST", "/affiliate/payment-history", signed({"partner_id": partner.id}))
        assert status == 200
        assert history["batches"][0]["batch_id"] == batch["batchId"]

    def test_payment_batch_empty_month(self, session):
        status, body = call("POST", "/affiliate/admin/payment-batch", signed({
            "payment_month": "2030-01",
            "admin_user_id": "admin-1",
        }))

        assert status == 404
