#!/usr/bin/env python3
"""
Smoke Test D: Stripe Subscription Sync Test

Validates:
1. Webhook handlers map Stripe statuses onto local statuses
2. User resolution order: existing row, metadata, customer's profile
3. Unresolvable subscriptions are stored with user_id NULL
4. At most one active subscription per user
5. Activation provisions a number once; cancellation releases it
6. Reconciliation links orphans and one bad row never stops the batch
7. Management URL: ownership check and portal fallback
8. Webhook endpoint: signature and payload errors are 400, a missing secret is 500
9. Admin routes need a matching X-Admin-Token

This test uses mocked Stripe/DB to verify logic.
"""

import asyncio
import json
import sys
from pathlib import Path
from unittest import mock

import pytest
import stripe
from fastapi.testclient import TestClient

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from src.api.main import app
from src.api.routes import admin as admin_routes
from src.api.routes import webhooks as webhook_routes
from src.lib.errors import NotFoundError, ValidationError
from src.lib.reconciliation import ReconciliationService
from src.lib.subscriptions import SubscriptionService, map_status


def stripe_subscription(sub_id="sub_1", customer="cus_1", status="active", metadata=None, **extra):
    """Minimal customer.subscription.* payload (newer API: period on the item)."""
    return {
        "id": sub_id,
        "customer": customer,
        "status": status,
        "metadata": metadata or {},
        "cancel_at_period_end": False,
        "items": {"data": [{
            "quantity": 1,
            "price": {"id": "price_monthly", "unit_amount": 4900},
            "current_period_start": 1735689600,
            "current_period_end": 1738368000,
        }]},
        **extra,
    }


@pytest.fixture
def provisioner():
    return mock.AsyncMock()


@pytest.fixture
def deprovisioner():
    return mock.AsyncMock()


@pytest.fixture
def service(db, provisioner, deprovisioner):
    return SubscriptionService(client=db, provisioner=provisioner, deprovisioner=deprovisioner)


def handle(service, subscription, **kwargs):
    return asyncio.run(service.handle_subscription_event(subscription, **kwargs))


class TestStatusMapping:

    @pytest.mark.parametrize("stripe_status,expected", [
        ("active", "active"),
        ("trialing", "trialing"),
        ("past_due", "past_due"),
        ("unpaid", "past_due"),
        ("paused", "paused"),
        ("canceled", "canceled"),
        ("incomplete_expired", "canceled"),
        ("incomplete", "pending"),
        ("something_new", "pending"),
        (None, "pending"),
    ])
    def test_map_status(self, stripe_status, expected):
        assert map_status(stripe_status) == expected

    def test_row_uses_item_period(self, service):
        row = service.subscription_row(stripe_subscription())

        assert row["current_period_start_at"].startswith("2025-01-01")
        assert row["current_period_end_at"].startswith("2025-02-01")
        assert row["tier_type"] == "paid"
        assert row["price_id"] == "price_monthly"


class TestWebhookUserResolution:

    def test_metadata_user(self, db, service, user_id):
        result = handle(service, stripe_subscription(metadata={"user_id": user_id}))

        assert result["user_id"] == user_id
        assert db.rows("subscriptions", id="sub_1")[0]["user_id"] == user_id

    def test_existing_row_wins_over_metadata(self, db, service, user_id, other_user_id):
        db.seed("subscriptions", {"id": "sub_1", "user_id": user_id, "status": "pending"})

        result = handle(service, stripe_subscription(metadata={"user_id": other_user_id}))

        assert result["user_id"] == user_id

    def test_customer_profile_fallback(self, db, service, user_id):
        db.seed("profiles", {"id": user_id, "email": "a@example.com", "stripe_customer_id": "cus_1"})

        result = handle(service, stripe_subscription())

        assert result["user_id"] == user_id

    def test_unresolved_stored_with_null_user(self, db, service, provisioner):
        result = handle(service, stripe_subscription(customer="cus_unknown"))

        print(f"  Stored: {db.rows('subscriptions', id='sub_1')}")
        assert result["user_id"] is None
        assert db.rows("subscriptions", id="sub_1")[0]["user_id"] is None
        provisioner.assert_not_awaited()

    def test_missing_id_rejected(self, service):
        with pytest.raises(ValidationError):
            handle(service, {"status": "active"})


class TestOneActivePerUser:

    def test_activation_retires_older_active(self, db, service, user_id):
        db.seed("subscriptions", {"id": "sub_old", "user_id": user_id, "status": "active", "current": True})

        handle(service, stripe_subscription(sub_id="sub_new", metadata={"user_id": user_id}))

        active = db.rows("subscriptions", user_id=user_id, status="active")
        assert [row["id"] for row in active] == ["sub_new"]
        assert db.rows("subscriptions", id="sub_old")[0]["status"] == "canceled"
        assert db.rows("subscriptions", id="sub_old")[0]["current"] is False
        assert db.rows("subscriptions", id="sub_new")[0]["current"] is True

    def test_replayed_event_is_idempotent(self, db, service, user_id, provisioner):
        event = stripe_subscription(metadata={"user_id": user_id})

        handle(service, event)
        handle(service, event)

        assert len(db.rows("subscriptions", id="sub_1")) == 1
        provisioner.assert_awaited_once_with(user_id)


class TestProvisioning:

    def test_activation_provisions(self, service, user_id, provisioner):
        handle(service, stripe_subscription(metadata={"user_id": user_id}))

        provisioner.assert_awaited_once_with(user_id)

    def test_provisioning_failure_does_not_fail_webhook(self, db, user_id):
        failing = mock.AsyncMock(side_effect=RuntimeError("twilio down"))
        service = SubscriptionService(client=db, provisioner=failing)

        result = handle(service, stripe_subscription(metadata={"user_id": user_id}))

        assert result["status"] == "active"
        failing.assert_awaited_once()

    def test_cancellation_releases_number(self, service, user_id, deprovisioner):
        handle(service, stripe_subscription(metadata={"user_id": user_id}))
        handle(service, stripe_subscription(status="canceled", metadata={"user_id": user_id}))

        deprovisioner.assert_awaited_once_with(user_id)

    def test_dunning_cancellation_releases_number(self, service, user_id, deprovisioner):
        # active -> past_due -> canceled: Stripe's failed-payment path
        for status in ("active", "past_due", "canceled"):
            handle(service, stripe_subscription(status=status, metadata={"user_id": user_id}))

        deprovisioner.assert_awaited_once_with(user_id)

    def test_replayed_cancellation_releases_once(self, service, user_id, deprovisioner):
        event = stripe_subscription(status="canceled", metadata={"user_id": user_id})

        handle(service, event)
        handle(service, event)

        deprovisioner.assert_awaited_once_with(user_id)

    def test_cancellation_keeps_number_while_another_is_active(self, db, service, user_id, deprovisioner):
        handle(service, stripe_subscription(sub_id="sub_old", status="past_due", metadata={"user_id": user_id}))
        db.seed("subscriptions", {"id": "sub_other", "user_id": user_id, "status": "active"})

        handle(service, stripe_subscription(sub_id="sub_old", status="canceled", metadata={"user_id": user_id}))

        deprovisioner.assert_not_awaited()

    def test_past_due_keeps_number(self, service, user_id, deprovisioner):
        handle(service, stripe_subscription(metadata={"user_id": user_id}))
        handle(service, stripe_subscription(status="past_due", metadata={"user_id": user_id}))

        deprovisioner.assert_not_awaited()


class TestCustomerEvents:

    def test_customer_email_mirrored(self, db, service):
        service.handle_customer_event({"id": "cus_1", "email": " Agent@Example.com "})
        service.handle_customer_event({"id": "cus_1", "email": "new@example.com"})

        rows = db.rows("customers", customer_id="cus_1")
        assert len(rows) == 1
        assert rows[0]["email"] == "new@example.com"

    def test_customer_without_email_skipped(self, db, service):
        service.handle_customer_event({"id": "cus_2"})

        assert db.rows("customers") == []


class TestReconciliation:

    def test_links_orphans_and_counts_errors(self, db, user_id):
        db.seed("profiles", {"id": user_id, "email": "agent@example.com", "stripe_customer_id": None})
        db.seed("customers", {"customer_id": "cus_known", "email": "agent@example.com"})
        db.seed(
            "subscriptions",
            {"id": "sub_free", "user_id": user_id, "status": "active", "tier_type": "free"},
            {"id": "sub_orphan", "user_id": None, "stripe_customer_id": "cus_known", "status": "active", "tier_type": "paid"},
            {"id": "sub_stranger", "user_id": None, "stripe_customer_id": "cus_stranger", "status": "active"},
            {"id": "sub_broken", "user_id": None, "stripe_customer_id": "cus_broken", "status": "active"},
        )

        def retrieve(customer_id):
            if customer_id == "cus_broken":
                raise RuntimeError("unexpected failure")
            return {"id": customer_id, "email": "stranger@example.com"}

        with mock.patch("stripe.Customer.retrieve", side_effect=retrieve):
            summary = ReconciliationService(client=db).recover_subscription_linking()

        print(f"  Summary: {summary}")
        assert summary["total"] == 3
        assert summary["processed"] == 1
        assert summary["errors"] == 2

        linked = db.rows("subscriptions", id="sub_orphan")[0]
        assert linked["user_id"] == user_id
        assert linked["current"] is True
        assert db.rows("subscriptions", id="sub_free") == []
        assert db.rows("profiles", id=user_id)[0]["stripe_customer_id"] == "cus_known"
        # Stripe lookups are cached in the customers table
        assert db.rows("customers", customer_id="cus_stranger")[0]["email"] == "stranger@example.com"

    def test_backfill_profile_customer_ids(self, db, user_id, other_user_id):
        db.seed(
            "profiles",
            {"id": user_id, "email": "one@example.com", "stripe_customer_id": None},
            {"id": other_user_id, "email": "two@example.com", "stripe_customer_id": None},
        )
        db.seed("customers", {"customer_id": "cus_one", "email": "one@example.com"})

        linked = ReconciliationService(client=db).backfill_profile_customer_ids()

        assert linked == 1
        assert db.rows("profiles", id=user_id)[0]["stripe_customer_id"] == "cus_one"
        assert db.rows("profiles", id=other_user_id)[0]["stripe_customer_id"] is None

    def test_recover_single_user(self, db, user_id):
        db.seed("profiles", {"id": user_id, "email": "agent@example.com", "stripe_customer_id": "cus_a"})
        db.seed("subscriptions", {"id": "sub_a", "user_id": None, "stripe_customer_id": "cus_a", "status": "canceled"})

        result = ReconciliationService(client=db).recover_user_subscription("Agent@Example.com")

        assert result == {"linked": 1, "subscriptions": ["sub_a"]}
        assert db.rows("subscriptions", id="sub_a")[0]["user_id"] == user_id

    def test_recover_unknown_user(self, db):
        with pytest.raises(NotFoundError):
            ReconciliationService(client=db).recover_user_subscription("ghost@example.com")

    def test_health_counts(self, db, user_id):
        db.seed("profiles", {"id": user_id, "email": "a@example.com", "stripe_customer_id": None})
        db.seed(
            "subscriptions",
            {"id": "sub_1", "user_id": user_id, "status": "active"},
            {"id": "sub_2", "user_id": user_id, "status": "active"},
            {"id": "sub_3", "user_id": None, "status": "active"},
        )

        health = ReconciliationService(client=db).subscription_health()

        assert health == {
            "unlinked_subscriptions": 1,
            "profiles_missing_customer_id": 1,
            "users_with_multiple_active": 1,
        }


class TestManagementUrl:

    @pytest.fixture
    def owned(self, db, user_id):
        db.seed("subscriptions", {"id": "sub_owned", "user_id": user_id, "stripe_customer_id": "cus_1", "status": "active"})

    @pytest.mark.parametrize("bad_id", [None, 42, "", "cs_123", "price_1"])
    def test_invalid_subscription_id(self, service, user_id, bad_id):
        with pytest.raises(ValidationError):
            service.get_management_url(user_id, bad_id, "https://app/settings")

    def test_other_users_subscription_is_404(self, owned, service, other_user_id):
        with pytest.raises(NotFoundError):
            service.get_management_url(other_user_id, "sub_owned", "https://app/settings")

    def test_payment_method_flow(self, owned, service, user_id):
        with mock.patch("stripe.billing_portal.Session.create", return_value=mock.Mock(url="https://portal/flow")) as create:
            url = service.get_management_url(user_id, "sub_owned", "https://app/settings")

        assert url == "https://portal/flow"
        assert create.call_args.kwargs["flow_data"]["type"] == "payment_method_update"

    def test_falls_back_to_plain_portal(self, owned, service, user_id):
        calls = []

        def create(**kwargs):
            calls.append(kwargs)
            if "flow_data" in kwargs:
                raise stripe.InvalidRequestError("flow not enabled", param="flow_data")
            return mock.Mock(url="https://portal/plain")

        with mock.patch("stripe.billing_portal.Session.create", side_effect=create):
            url = service.get_management_url(user_id, "sub_owned", "https://app/settings")

        assert url == "https://portal/plain"
        assert len(calls) == 2
        assert "flow_data" not in calls[1]


class TestStripeWebhookEndpoint:

    @pytest.fixture
    def client(self, db, monkeypatch, provisioner, deprovisioner):
        monkeypatch.setenv("STRIPE_WEBHOOK_SECRET", "whsec_test")
        monkeypatch.setattr(
            webhook_routes,
            "SubscriptionService",
            lambda: SubscriptionService(client=db, provisioner=provisioner, deprovisioner=deprovisioner),
        )
        return TestClient(app)

    def post(self, client, event):
        return client.post(
            "/webhooks/stripe",
            content=json.dumps(event),
            headers={"stripe-signature": "t=1,v1=abc", "content-type": "application/json"},
        )

    def test_bad_signature_is_400(self, client, db):
        error = stripe.SignatureVerificationError("No signatures found", "t=1,v1=abc")
        with mock.patch("stripe.Webhook.construct_event", side_effect=error):
            response = self.post(client, {"type": "customer.created"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid signature"}
        assert db.queries == []

    def test_bad_payload_is_400(self, client):
        with mock.patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json")):
            response = self.post(client, {"type": "customer.created"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid payload"}

    def test_missing_secret_is_500(self, client, monkeypatch):
        monkeypatch.delenv("STRIPE_WEBHOOK_SECRET")

        with mock.patch("stripe.Webhook.construct_event") as construct:
            response = self.post(client, {"type": "customer.created"})

        assert response.status_code == 500
        construct.assert_not_called()

    def test_unknown_event_acknowledged(self, client, db):
        with mock.patch("stripe.Webhook.construct_event"):
            response = self.post(client, {"type": "invoice.finalized", "data": {"object": {}}})

        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert db.queries == []

    def test_subscription_event_dispatched(self, client, db, user_id, provisioner):
        event = {
            "type": "customer.subscription.created",
            "data": {"object": stripe_subscription(metadata={"user_id": user_id})},
        }
        with mock.patch("stripe.Webhook.construct_event") as construct:
            response = self.post(client, event)

        assert response.json() == {"received": True}
        assert construct.call_args.args[2] == "whsec_test"
        assert db.rows("subscriptions", id="sub_1")[0]["status"] == "active"
        provisioner.assert_awaited_once_with(user_id)


class TestAdminGuard:

    @pytest.fixture
    def client(self, db, monkeypatch):
        monkeypatch.setenv("ADMIN_API_TOKEN", "admin-secret")
        monkeypatch.setattr(admin_routes, "ReconciliationService", lambda: ReconciliationService(client=db))
        return TestClient(app)

    @pytest.mark.parametrize("headers", [{}, {"X-Admin-Token": "wrong"}])
    def test_missing_or_wrong_token_is_403(self, client, db, headers):
        response = client.get("/admin/subscription-health", headers=headers)

        assert response.status_code == 403
        assert response.json() == {"error": "Forbidden"}
        assert db.queries == []

    def test_unconfigured_token_is_500(self, client, monkeypatch):
        monkeypatch.delenv("ADMIN_API_TOKEN")

        response = client.post("/admin/recover-subscriptions", headers={"X-Admin-Token": "admin-secret"})

        assert response.status_code == 500

    def test_matching_token(self, client):
        response = client.get("/admin/subscription-health", headers={"X-Admin-Token": "admin-secret"})

        assert response.status_code == 200
        assert response.json() == {
            "unlinked_subscriptions": 0,
            "profiles_missing_customer_id": 0,
            "users_with_multiple_active": 0,
        }


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
